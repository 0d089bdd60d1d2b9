"""
Part size rules for S3 multipart uploads.
"""

import math
from numbers import Real

from ...core.exceptions import InvalidArgumentError

S3_MIN_PART_SIZE = 5 * 1024 * 1024  # 5 MiB
S3_MAX_PARTS = 10_000


def _check_positive_size(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, Real) \
            or not math.isfinite(value) or value <= 0:
        raise InvalidArgumentError(f"{name} must be a positive number, got {value!r}")


def normalize_part_size(desired: float, total_bytes: int) -> int:
    """
    Normalize a desired part size so it respects the S3 limits.

    The result is never below 5 MiB and always small enough in count to
    stay within 10,000 parts.

    Args:
        desired: Requested part size in bytes
        total_bytes: Size of the whole object

    Returns:
        Effective part size in bytes

    Raises:
        InvalidArgumentError: If ``desired`` is not a positive finite number
            or ``total_bytes`` is negative
    """
    _check_positive_size("part_size", desired)
    if total_bytes < 0:
        raise InvalidArgumentError(f"total_bytes must not be negative, got {total_bytes}")

    min_by_count = -(-total_bytes // S3_MAX_PARTS)
    return max(math.ceil(desired), S3_MIN_PART_SIZE, min_by_count)


def get_num_parts(total_bytes: int, part_size: int) -> int:
    """Number of parts needed to cover ``total_bytes``; 0 for an empty object."""
    _check_positive_size("part_size", part_size)
    if total_bytes <= 0:
        return 0
    return -(-total_bytes // part_size)
