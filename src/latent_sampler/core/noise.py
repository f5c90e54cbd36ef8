"""Standard-normal noise for latent initialization."""

import math
import numpy as np

from ..errors import UnsupportedDType
from .halfprec import encode_array
from .prng import Seed, SimpleFastCounter32


def standard_normal_values(count: int, seed: Seed) -> np.ndarray:
    """Draw ``count`` standard-normal samples as float64.

    Each sample consumes two consecutive uniforms ``u1, u2`` and keeps the
    cosine branch of the Box-Muller transform. The order of draws is part of
    the reproducibility contract.

    Note: a draw of exactly ``u1 == 0`` would give an infinite radius. It is
    not clamped, clamping would change the noise for seeds that reach it.
    The period and mixing of the generator make that draw practically
    unreachable.
    """
    generator = SimpleFastCounter32.from_seed(seed)
    values = np.empty(count, dtype=np.float64)
    for i in range(count):
        u1 = generator.next()
        u2 = generator.next()
        # ln(0) is -inf under IEEE rules; math.log raises instead.
        radius = math.sqrt(-2.0 * math.log(u1)) if u1 > 0.0 else math.inf
        theta = 2.0 * math.pi * u2
        values[i] = radius * math.cos(theta)
    return values


def fill_standard_normal(buffer: np.ndarray, seed: Seed) -> np.ndarray:
    """Fill a half-float buffer in place with seeded standard-normal noise.

    Args:
        buffer: ``uint16`` array of half-float bit patterns, any shape.
            Elements are written in C (linear index) order.
        seed: Generation seed

    Returns:
        The same buffer, for chaining
    """
    if buffer.dtype != np.uint16:
        raise UnsupportedDType(f"Noise buffer must hold uint16 half floats, got {buffer.dtype}")
    if not buffer.flags.c_contiguous:
        raise ValueError("Noise buffer must be C-contiguous")
    flat = buffer.reshape(-1)
    flat[:] = encode_array(standard_normal_values(flat.size, seed))
    return buffer
