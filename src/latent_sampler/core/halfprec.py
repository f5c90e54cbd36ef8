"""Bit-exact float32 <-> IEEE-754 binary16 conversion.

Half floats are carried around as ``uint16`` bit patterns so that buffers can
be handed to an inference engine without reinterpretation. Encoding rounds to
nearest with ties to even, saturates to signed infinity on overflow, flushes
magnitudes below half the smallest denormal to signed zero and keeps NaN a
quiet NaN. Decoding is exact.
"""

import numpy as np

HALF_INFINITY = 0x7C00
HALF_QUIET_NAN = 0x7E00
HALF_MAX = 65504.0

# float32 biased exponents bounding each binary16 class.
_SPECIAL_EXPONENT = 0xFF
_OVERFLOW_EXPONENT = 143  # 2**16 and above
_NORMAL_EXPONENT = 113  # 2**-14, smallest binary16 normal
_DENORMAL_EXPONENT = 102  # 2**-25, half of the smallest binary16 denormal


def _round_half_even(kept: np.ndarray, remainder: np.ndarray, halfway: np.ndarray) -> np.ndarray:
    round_up = (remainder > halfway) | ((remainder == halfway) & ((kept & 1) == 1))
    return kept + round_up


def encode_array(values) -> np.ndarray:
    """Encode float values to binary16 bit patterns.

    Args:
        values: Array-like of floats. Values are first rounded to float32.

    Returns:
        ``uint16`` array with the same shape as ``values``
    """
    shape = np.shape(values)
    with np.errstate(over="ignore"):
        floats = np.ascontiguousarray(values, dtype=np.float32).reshape(-1)
    x = floats.view(np.uint32).astype(np.int64)

    sign = (x >> 16) & 0x8000
    exponent = (x >> 23) & 0xFF
    mantissa = x & 0x7FFFFF

    # Normal range: rebias the exponent, keep 10 mantissa bits and round on
    # the 13 dropped ones. A carry out of the mantissa bumps the exponent,
    # all the way to infinity for the largest inputs.
    normal = ((exponent - 112) << 10) | (mantissa >> 13)
    normal = _round_half_even(normal, mantissa & 0x1FFF, np.int64(0x1000))

    # Denormal range: shift the full 24-bit significand down to units of
    # 2**-24. A carry may promote the result to the smallest normal.
    shift = np.clip(126 - exponent, 1, 31)
    significand = mantissa | 0x800000
    denormal = _round_half_even(
        significand >> shift,
        significand & ((np.int64(1) << shift) - 1),
        np.int64(1) << (shift - 1),
    )

    special = np.where(mantissa != 0, HALF_QUIET_NAN | (mantissa >> 13), HALF_INFINITY)

    magnitude = np.select(
        [
            exponent == _SPECIAL_EXPONENT,
            exponent >= _OVERFLOW_EXPONENT,
            exponent >= _NORMAL_EXPONENT,
            exponent >= _DENORMAL_EXPONENT,
        ],
        [special, HALF_INFINITY, normal, denormal],
        default=0,
    )
    return (sign | magnitude).astype(np.uint16).reshape(shape)


def decode_array(bits) -> np.ndarray:
    """Decode binary16 bit patterns to float32 values.

    Args:
        bits: Array-like of ``uint16`` bit patterns

    Returns:
        ``float32`` array with the same shape as ``bits``
    """
    shape = np.shape(bits)
    h = np.ascontiguousarray(bits, dtype=np.uint16).reshape(-1).astype(np.uint32)

    sign = (h & 0x8000) << 16
    exponent = (h >> 10) & 0x1F
    fraction = h & 0x3FF

    normal = sign | ((exponent + 112) << 23) | (fraction << 13)
    special = sign | np.uint32(0x7F800000) | (fraction << 13)
    wide = np.where(exponent == 0x1F, special, normal).astype(np.uint32).view(np.float32)

    denormal = fraction.astype(np.float32) * np.float32(2.0 ** -24)
    denormal = np.where(sign != 0, -denormal, denormal)

    return np.where(exponent == 0, denormal, wide).astype(np.float32).reshape(shape)


def encode_float16(value: float) -> int:
    """Encode a single float to its binary16 bit pattern."""
    return int(encode_array([value])[0])


def decode_float16(bits: int) -> float:
    """Decode a single binary16 bit pattern."""
    return float(decode_array([bits & 0xFFFF])[0])


def convert_to_float16(values) -> np.ndarray:
    """Convert a float32 buffer to a flat ``uint16`` buffer of half floats."""
    return encode_array(np.asarray(values, dtype=np.float32).reshape(-1))


def is_nan(bits) -> np.ndarray:
    """Elementwise NaN test on binary16 bit patterns."""
    h = np.asarray(bits, dtype=np.uint16)
    return ((h & 0x7C00) == 0x7C00) & ((h & 0x03FF) != 0)
