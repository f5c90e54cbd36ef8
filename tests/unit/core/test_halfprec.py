"""Test half-precision encoding and decoding."""

import math

import numpy as np
import pytest

from latent_sampler.core.halfprec import (
    convert_to_float16,
    decode_array,
    decode_float16,
    encode_array,
    encode_float16,
    is_nan,
)


@pytest.mark.parametrize("value, bits", [
    (0.0, 0x0000),
    (-0.0, 0x8000),
    (1.0, 0x3C00),
    (-2.0, 0xC000),
    (0.5, 0x3800),
    (1.0 / 3.0, 0x3555),
    (65504.0, 0x7BFF),
    (2.0 ** -14, 0x0400),
    (2.0 ** -24, 0x0001),
    (-(2.0 ** -24), 0x8001),
])
def test_encode_known_values(value, bits):
    """Test exact encodings of well-known values."""
    assert encode_float16(value) == bits


def test_encode_rounds_ties_to_even():
    """Test that halfway cases round to the even mantissa."""
    # Halfway between 1.0 (even) and 1 + 2**-10 (odd)
    assert encode_float16(1.0 + 2.0 ** -11) == 0x3C00
    # Halfway between 1 + 2**-10 (odd) and 1 + 2**-9 (even)
    assert encode_float16(1.0 + 3 * 2.0 ** -11) == 0x3C02
    # Just above halfway rounds up
    assert encode_float16(1.0 + 2.0 ** -11 + 2.0 ** -20) == 0x3C01


def test_encode_denormal_rounding():
    """Test rounding in the denormal range."""
    # Exactly half the smallest denormal ties to zero
    assert encode_float16(2.0 ** -25) == 0x0000
    assert encode_float16(-(2.0 ** -25)) == 0x8000
    # Anything above half rounds up to the smallest denormal
    assert encode_float16(1.5 * 2.0 ** -25) == 0x0001
    # Far below the denormal range flushes to zero
    assert encode_float16(1e-10) == 0x0000
    assert encode_float16(-1e-10) == 0x8000


def test_encode_denormal_carry_promotes_to_normal():
    """Test that rounding the largest denormal up yields the smallest normal."""
    assert encode_float16(1023.5 * 2.0 ** -24) == 0x0400
    assert encode_float16(1022.5 * 2.0 ** -24) == 0x03FE
    assert decode_float16(0x0400) == 2.0 ** -14


def test_encode_overflow_saturates_to_infinity():
    """Test that values beyond the binary16 range become signed infinity."""
    # 65520 is halfway between 65504 and 2**16; ties to even means infinity
    assert encode_float16(65520.0) == 0x7C00
    assert encode_float16(65519.0) == 0x7BFF
    assert encode_float16(1e5) == 0x7C00
    assert encode_float16(-1e5) == 0xFC00
    assert encode_float16(1e300) == 0x7C00
    assert encode_float16(math.inf) == 0x7C00
    assert encode_float16(-math.inf) == 0xFC00


def test_encode_nan_stays_nan():
    """Test that NaN encodes to a quiet NaN distinct from infinity."""
    bits = encode_float16(math.nan)
    assert bits & 0x7C00 == 0x7C00
    assert bits & 0x03FF != 0
    assert bits & 0x0200
    assert math.isnan(decode_float16(bits))


def test_encode_nan_preserves_sign():
    """Test that the sign of a NaN survives encoding."""
    negative_nan = np.array([0xFFC00000], dtype=np.uint32).view(np.float32)
    bits = int(encode_array(negative_nan)[0])
    assert bits & 0x8000
    assert is_nan(bits)


@pytest.mark.parametrize("bits, value", [
    (0x3C00, 1.0),
    (0xC000, -2.0),
    (0x7BFF, 65504.0),
    (0x0001, 2.0 ** -24),
    (0x03FF, 1023 * 2.0 ** -24),
    (0x0400, 2.0 ** -14),
    (0x3555, 0.333251953125),
])
def test_decode_known_values(bits, value):
    """Test exact decodings."""
    assert decode_float16(bits) == value


def test_decode_special_values():
    """Test signed zero, infinities and NaN."""
    assert math.copysign(1.0, decode_float16(0x8000)) == -1.0
    assert decode_float16(0x7C00) == math.inf
    assert decode_float16(0xFC00) == -math.inf
    assert math.isnan(decode_float16(0x7E00))
    assert math.isnan(decode_float16(0x7C01))
    assert math.isnan(decode_float16(0xFE00))


def test_encode_matches_numpy_float16(rng):
    """Test encoding against numpy's IEEE float16 conversion."""
    magnitudes = 2.0 ** rng.integers(-30, 17, 20000)
    values = (rng.standard_normal(20000) * magnitudes).astype(np.float32)
    values = np.concatenate([values, rng.uniform(-70000, 70000, 5000).astype(np.float32)])

    with np.errstate(over="ignore"):
        expected = values.astype(np.float16).view(np.uint16)
    np.testing.assert_array_equal(encode_array(values), expected)


def test_array_forms_preserve_shape():
    """Test that array helpers keep the input shape."""
    values = np.arange(12, dtype=np.float32).reshape(3, 4)
    bits = encode_array(values)
    assert bits.shape == (3, 4)
    assert bits.dtype == np.uint16
    decoded = decode_array(bits)
    assert decoded.shape == (3, 4)
    assert decoded.dtype == np.float32
    np.testing.assert_array_equal(decoded, values)


def test_convert_to_float16_flattens():
    """Test float32 buffer conversion."""
    bits = convert_to_float16(np.array([[1.0, -2.0], [0.5, 0.0]], dtype=np.float32))
    assert bits.shape == (4,)
    assert list(bits) == [0x3C00, 0xC000, 0x3800, 0x0000]
