"""Time-ordered unique identifiers."""

import time
from uuid import uuid4


def new_id(prefix: str) -> str:
    """
    Return ``<prefix>_<time><random>``.

    The first 16 hex digits are the creation time in nanoseconds, so ids sort
    by creation order; the uuid4 suffix keeps ids created in the same
    nanosecond distinct.
    """
    return f"{prefix}_{time.time_ns():016x}{uuid4().hex[:12]}"
