"""Deterministic quality hash of a face descriptor.

Stored next to each embedding for future deduplication of identical faces
across re-uploads. Matching never reads it.
"""

import math
from collections.abc import Sequence

import numpy as np


def face_hash(descriptor: Sequence[float] | np.ndarray) -> str:
    """Fold the descriptor into a 32-bit hash rendered as hex.

    Each value is scaled by 1e6 and floored; the running hash is
    ``h * 31 + v`` wrapped to a signed 32-bit integer. The absolute value is
    returned zero-padded to at least 8 hex digits.
    """
    h = 0
    for val in np.asarray(descriptor, dtype=np.float64).ravel():
        v = math.floor(float(val) * 1000000)
        h = _to_int32((h << 5) - h + v)
    return format(abs(h), "x").rjust(8, "0")


def _to_int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000
