"""User-facing status messages for an upload session."""
from typing import Optional


class StatusMessages:
    """
    Holds the current error, success and warning message.

    Each slot keeps one message; showing the same text again does not
    produce a second message.
    """

    def __init__(self):
        self.error: Optional[str] = None
        self.success: Optional[str] = None
        self.warning: Optional[str] = None

    def set_error(self, message: str) -> None:
        self.error = message
        self.success = None

    def clear_error(self) -> None:
        self.error = None

    def show_success(self, message: str) -> bool:
        """Show a success message. Returns False if it is already shown."""
        if self.success == message:
            return False
        self.success = message
        self.error = None
        return True

    def clear_success(self) -> None:
        self.success = None

    def show_warning(self, message: str) -> None:
        self.warning = message

    def clear(self) -> None:
        self.error = None
        self.success = None
        self.warning = None
