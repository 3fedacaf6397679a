"""
Vector math shared by the permission engine and the embedding scorer.

Plain lists of floats, no numpy: the vectors here have one dimension per
taxonomy category (tens, not thousands) or are embedding lookups done once.
"""

import math
from typing import Sequence


def dot_product(a: Sequence[float], b: Sequence[float]) -> float:
    """A · B = Σ(A[i] × B[i])"""
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} vs {len(b)}")
    return sum(x * y for x, y in zip(a, b))


def magnitude(v: Sequence[float]) -> float:
    """||A|| = √(Σ(A[i]²))"""
    return math.sqrt(dot_product(v, v))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    cos(θ) = (A · B) / (||A|| × ||B||)

    Returns a value in [-1, 1]:
      1.0 = same direction
      0.0 = orthogonal, OR either vector has zero magnitude (undefined angle)
     -1.0 = opposite directions
    """
    mag_a = magnitude(a)
    mag_b = magnitude(b)

    if mag_a == 0 or mag_b == 0:
        return 0.0

    similarity = dot_product(a, b) / (mag_a * mag_b)

    # Clamp floating point drift
    return max(-1.0, min(1.0, similarity))
