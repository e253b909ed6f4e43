"""Vector codec for sqlite-vec storage.

Converts between Python float lists and the little-endian float32 blobs
that sqlite-vec stores in vec0 tables, and enforces the configured
dimensionality.

Malformed components (non-numeric, NaN, infinite) are coerced to 0.0
rather than rejecting the whole vector; a warning is logged instead.
"""

import logging
import math
import struct
from numbers import Real
from typing import Any, Sequence

from sqlite_memory.constants import FLOAT32_SIZE
from sqlite_memory.errors import DimensionMismatchError

logger = logging.getLogger(__name__)


def _clean_component(value: Any) -> float | None:
    """Return value as a finite float, or None if it must be replaced."""
    # bool is a Real subclass but never a meaningful vector component
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def sanitize_vector(values: Sequence[Any], dimensions: int) -> tuple[list[float], int]:
    """Validate vector width and coerce malformed components to zero.

    Args:
        values: Candidate vector
        dimensions: Required length

    Returns:
        Tuple of (sanitized vector, number of components replaced with 0.0)

    Raises:
        DimensionMismatchError: If len(values) != dimensions
    """
    if len(values) != dimensions:
        raise DimensionMismatchError(expected=dimensions, received=len(values))

    sanitized: list[float] = []
    replaced = 0
    for value in values:
        number = _clean_component(value)
        if number is None:
            replaced += 1
            number = 0.0
        sanitized.append(number)

    if replaced:
        logger.warning(
            f"Invalid vector values detected, replaced {replaced} of {dimensions} components with 0.0"
        )

    return sanitized, replaced


def serialize_vector(values: Sequence[float]) -> bytes:
    """Serialize a vector to float32 bytes for sqlite-vec storage."""
    return struct.pack(f"<{len(values)}f", *values)


def deserialize_vector(data: bytes) -> list[float]:
    """Deserialize float32 bytes from sqlite-vec."""
    count = len(data) // FLOAT32_SIZE
    return list(struct.unpack(f"<{count}f", data[: count * FLOAT32_SIZE]))
