"""
File validation gate.

Runs once per file before it enters the queue. A rejected file never
becomes an upload task.
"""
from typing import Optional

from ..config import UploadPolicy
from ..exceptions import FileTypeRejectedError, FileSizeRejectedError
from ..logging import get_logger
from .models import FileInfo


class FileValidator:
    """
    Validates files against an UploadPolicy.

    Responsibilities:
    - Check the MIME type against the accepted types
    - Check the byte size against the size limit
    """

    def __init__(self, default_policy: Optional[UploadPolicy] = None):
        self._default_policy = default_policy or UploadPolicy()
        self._logger = get_logger('stimuli_uploader.validation')

    @property
    def default_policy(self) -> UploadPolicy:
        return self._default_policy

    def validate(self, file: FileInfo, policy: Optional[UploadPolicy] = None) -> None:
        """
        Validate a file for upload.

        Args:
            file: File metadata
            policy: Policy to apply (falls back to the default policy)

        Raises:
            FileTypeRejectedError: If the type is not accepted
            FileSizeRejectedError: If the file is larger than allowed
        """
        policy = policy or self._default_policy

        if not policy.accepts_type(file.mime_type):
            self._logger.warning(f"Rejected {file.name}: type {file.mime_type} not accepted")
            raise FileTypeRejectedError(file.mime_type)

        if policy.max_file_size is not None and file.size > policy.max_file_size:
            self._logger.warning(
                f"Rejected {file.name}: {file.size} bytes exceeds {policy.max_file_size}"
            )
            raise FileSizeRejectedError(file.size, policy.max_file_size)

        self._logger.debug(f"File validated: {file.name} ({file.size} bytes, {file.mime_type})")

    def is_valid(self, file: FileInfo, policy: Optional[UploadPolicy] = None) -> bool:
        """Returns True if the file passes the policy."""
        try:
            self.validate(file, policy)
        except (FileTypeRejectedError, FileSizeRejectedError):
            return False
        return True
