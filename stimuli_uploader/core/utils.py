import math
import uuid


def format_file_size(num_bytes: int) -> str:
    """Formats a byte count as B, KB or MB."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


def generate_task_id() -> str:
    """Returns a new opaque task identifier."""
    return uuid.uuid4().hex


def round_half_up(value: float) -> int:
    """Rounds to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def clamp_progress(value: float) -> int:
    """Clamps a progress value to the integer range [0, 100]."""
    return max(0, min(100, round_half_up(value)))
