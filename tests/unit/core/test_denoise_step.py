"""Test guided Euler denoising steps."""

import numpy as np
import pytest

from latent_sampler.core.halfprec import decode_array, encode_array
from latent_sampler.core.latent import LatentState
from latent_sampler.core.sampler import (
    apply_vae_scale,
    decoder_input,
    denoise_step,
    denoise_step_split,
    guided_noise,
)
from latent_sampler.core.schedule import NoiseSchedule
from latent_sampler.core.tensor import DType, Tensor
from latent_sampler.errors import ScheduleExhausted, ShapeMismatch, UnsupportedDType

C, H, W = 2, 3, 3
SIZE = C * H * W


def half(values):
    return encode_array(np.asarray(values, dtype=np.float32))


def float16_oracle(values):
    """Round float64 values through float32 to float16 with numpy."""
    return np.asarray(values, dtype=np.float64).astype(np.float32).astype(np.float16).view(np.uint16)


def as_f64(bits):
    return np.asarray(bits, dtype=np.uint16).view(np.float16).astype(np.float64)


@pytest.fixture
def state(random_half):
    return LatentState.from_sample(random_half(SIZE), C, H, W, initial_sigma=14.614647)


@pytest.fixture
def schedule():
    return NoiseSchedule()


def dual(positive, negative):
    return Tensor(DType.FLOAT16, (2, C, H, W), np.concatenate([positive, negative]))


def single(bits):
    return Tensor(DType.FLOAT16, (1, C, H, W), bits)


def test_default_guidance_weights():
    """Test the literal weights: scale for positive, 1 - scale for negative.

    This is not the conventional 1 + scale classifier-free guidance; the
    reference arithmetic is kept as is.
    """
    assert guided_noise(half([1.0]), half([0.0]))[0] == 7.5
    assert guided_noise(half([0.0]), half([1.0]))[0] == -6.5
    assert guided_noise(half([1.0]), half([1.0]))[0] == 1.0


def test_unit_positive_weight_is_plain_euler(state, schedule, random_half):
    """Test that guidance 1.0 ignores the negative branch."""
    positive = random_half(SIZE)
    negative = random_half(SIZE)
    before = state.batch0.copy()

    denoise_step(state, 3, dual(positive, negative), schedule, guidance_scale=1.0)

    expected = float16_oracle(as_f64(before) + as_f64(positive) * (schedule.sigma(4) - schedule.sigma(3)))
    np.testing.assert_array_equal(state.batch0, expected)


def test_guided_step_matches_simplified_euler(state, schedule, random_half):
    """Test sample + (7.5 * pos - 6.5 * neg) * dt."""
    positive = random_half(SIZE)
    negative = random_half(SIZE)
    before = state.batch0.copy()

    denoise_step(state, 0, dual(positive, negative), schedule)

    guided = as_f64(positive) * 7.5 + as_f64(negative) * (1 - 7.5)
    expected = float16_oracle(as_f64(before) + guided * schedule.delta(0))
    np.testing.assert_array_equal(state.batch0, expected)


def test_split_matches_combined(state, schedule, random_half):
    """Test that both prediction layouts give bit-identical latents."""
    positive = random_half(SIZE)
    negative = random_half(SIZE)
    combined = state.copy()
    split = state.copy()

    denoise_step(combined, 5, dual(positive, negative), schedule)
    denoise_step_split(split, 5, single(positive), single(negative), schedule)

    np.testing.assert_array_equal(combined.data, split.data)


def test_batch1_is_not_an_accumulator(state, schedule, random_half):
    """Test that the step only writes batch 0."""
    batch1 = state.data[SIZE:].copy()
    denoise_step(state, 0, dual(random_half(SIZE), random_half(SIZE)), schedule)
    np.testing.assert_array_equal(state.data[SIZE:], batch1)


def test_float32_prediction_is_accepted(state, schedule, random_half):
    """Test that float32 predictions are rounded to half floats first."""
    positive = random_half(SIZE)
    negative = random_half(SIZE)
    as_float32 = Tensor(
        DType.FLOAT32,
        (2, C, H, W),
        decode_array(np.concatenate([positive, negative]))
    )
    reference = state.copy()

    denoise_step(state, 1, as_float32, schedule)
    denoise_step(reference, 1, dual(positive, negative), schedule)

    np.testing.assert_array_equal(state.data, reference.data)


def test_combined_shape_mismatch(state, schedule, random_half):
    """Test that a single-batch prediction fails the combined step."""
    before = state.data.copy()
    with pytest.raises(ShapeMismatch):
        denoise_step(state, 0, single(random_half(SIZE)), schedule)
    np.testing.assert_array_equal(state.data, before)


def test_split_shape_mismatch(state, schedule, random_half):
    """Test that a dual-batch prediction fails the split step."""
    with pytest.raises(ShapeMismatch):
        denoise_step_split(
            state, 0, dual(random_half(SIZE), random_half(SIZE)), single(random_half(SIZE)), schedule
        )


def test_unsupported_prediction_dtype(state, schedule):
    """Test that integer predictions are rejected."""
    prediction = Tensor(DType.INT32, (2, C, H, W), np.zeros(2 * SIZE, dtype=np.int32))
    with pytest.raises(UnsupportedDType):
        denoise_step(state, 0, prediction, schedule)


def test_iteration_past_schedule(state, schedule, random_half):
    """Test that stepping past the last iteration fails."""
    before = state.data.copy()
    with pytest.raises(ScheduleExhausted):
        denoise_step(state, schedule.num_steps, dual(random_half(SIZE), random_half(SIZE)), schedule)
    np.testing.assert_array_equal(state.data, before)


def test_apply_vae_scale(random_half):
    """Test division by the VAE scaling factor."""
    latent = random_half(SIZE)
    original = latent.copy()

    scaled = apply_vae_scale(latent)

    np.testing.assert_array_equal(scaled, float16_oracle(as_f64(latent) * (1.0 / 0.18215)))
    np.testing.assert_array_equal(latent, original)
    assert decode_array(apply_vae_scale(half([0.18215 * 2])))[0] == pytest.approx(2.0, rel=2e-3)


def test_apply_vae_scale_rejects_zero():
    """Test that a zero factor is rejected."""
    with pytest.raises(ValueError):
        apply_vae_scale(half([1.0]), scaling_factor=0.0)


def test_decoder_input_shape(state):
    """Test the single-batch decoder hand-off."""
    tensor = decoder_input(state)
    assert tensor.shape == (1, C, H, W)
    assert tensor.dtype is DType.FLOAT16
    np.testing.assert_array_equal(tensor.data, apply_vae_scale(state.batch0))
    assert not np.shares_memory(tensor.data, state.data)
