"""Classifier-free-guided Euler denoising.

One iteration:
1. Scale batch 0 by 1 / sqrt(sigma**2 + 1) into a scratch dual-batch copy
2. Ask the predictor for noise (positive row 0, negative row 1)
3. Blend: guided = positive * w + negative * (1 - w)
4. Euler step on batch 0: sample += guided * (sigma_next - sigma)

The Euler step is the simplified form of
    predicted_original = sample - sigma * noise
    derivative = (sample - predicted_original) / sigma
    sample = sample + derivative * dt
which collapses to ``sample + noise * dt``. Only the simplified arithmetic is
used, its rounding is what reproducible output depends on.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Union

import numpy as np

from ..errors import GenerationCancelled, ShapeMismatch, UnsupportedDType
from .halfprec import convert_to_float16, decode_array, encode_array
from .latent import LatentState, scale_half
from .schedule import NoiseSchedule
from .tensor import DType, Tensor

if TYPE_CHECKING:
    from ..predictor import Predictor

logger = logging.getLogger(__name__)

DEFAULT_GUIDANCE_SCALE = 7.5
DEFAULT_VAE_SCALING_FACTOR = 0.18215


class BatchLayout(Enum):
    """How positive and negative predictions are obtained."""
    COMBINED = "combined"  # one call on a [2, C, H, W] sample
    SPLIT = "split"  # two calls on [1, C, H, W] samples

    @classmethod
    def from_name(cls, name: Union[str, "BatchLayout"]) -> "BatchLayout":
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown batch layout: {name}") from None


@dataclass
class SamplingProgress:
    """Progress of one denoising run, handed to callbacks after each iteration."""
    total: int
    iteration: int = 0
    timestep: Optional[int] = None
    sigma: Optional[float] = None
    iteration_times: List[float] = field(default_factory=list)
    total_time: float = 0.0

    @property
    def fraction(self) -> float:
        return self.iteration / self.total if self.total else 1.0

    @property
    def done(self) -> bool:
        return self.iteration >= self.total


def _half_floats(tensor: Tensor) -> np.ndarray:
    """Predictor output as half-float bit patterns."""
    if tensor.dtype is DType.FLOAT16:
        return tensor.data
    if tensor.dtype is DType.FLOAT32:
        return convert_to_float16(tensor.data)
    raise UnsupportedDType(f"Predicted noise must be float16 or float32, got {tensor.dtype.value}")


def guided_noise(
    positive: np.ndarray,
    negative: np.ndarray,
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE
) -> np.ndarray:
    """Blend positive and negative predictions.

    The positive weight is the guidance scale itself and the negative weight
    is ``1 - scale``. With the default 7.5 that is ``7.5 * pos - 6.5 * neg``.

    Args:
        positive: Half-float bit patterns of the positive prediction
        negative: Half-float bit patterns of the negative prediction
        guidance_scale: Positive weight

    Returns:
        float64 guided noise
    """
    positive_weight = guidance_scale
    negative_weight = 1 - positive_weight
    return (
        decode_array(positive).astype(np.float64) * positive_weight
        + decode_array(negative).astype(np.float64) * negative_weight
    )


def _euler_update(
    state: LatentState,
    iteration: int,
    positive: np.ndarray,
    negative: np.ndarray,
    schedule: NoiseSchedule,
    guidance_scale: float
):
    dt = schedule.delta(iteration)
    noise = guided_noise(positive, negative, guidance_scale)
    sample = decode_array(state.batch0).astype(np.float64)
    state.commit(encode_array(sample + noise * dt))


def denoise_step(
    state: LatentState,
    iteration: int,
    predicted_noise: Tensor,
    schedule: NoiseSchedule,
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE
) -> LatentState:
    """Advance the latent one step from a dual-batch prediction.

    Args:
        state: Latent, updated in place
        iteration: Iteration index in ``[0, N)``
        predicted_noise: ``[2, C, H, W]`` prediction, positive in batch 0
        schedule: Noise schedule
        guidance_scale: Positive guidance weight

    Returns:
        ``state``
    """
    if predicted_noise.shape != state.shape:
        raise ShapeMismatch(
            f"Predicted noise shape {predicted_noise.shape} does not match latent {state.shape}"
        )
    bits = _half_floats(predicted_noise)
    half = state.single_batch_size
    _euler_update(state, iteration, bits[:half], bits[half:], schedule, guidance_scale)
    return state


def denoise_step_split(
    state: LatentState,
    iteration: int,
    positive_noise: Tensor,
    negative_noise: Tensor,
    schedule: NoiseSchedule,
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE
) -> LatentState:
    """Advance the latent one step from two single-batch predictions.

    Gives bit-identical results to :func:`denoise_step` when the dual-batch
    prediction is the concatenation of ``positive_noise`` and
    ``negative_noise``.
    """
    for name, tensor in (("Positive", positive_noise), ("Negative", negative_noise)):
        if tensor.shape != state.single_batch_shape:
            raise ShapeMismatch(
                f"{name} noise shape {tensor.shape} does not match latent batch "
                f"{state.single_batch_shape}"
            )
    _euler_update(
        state,
        iteration,
        _half_floats(positive_noise),
        _half_floats(negative_noise),
        schedule,
        guidance_scale
    )
    return state


def apply_vae_scale(
    latent: np.ndarray,
    scaling_factor: float = DEFAULT_VAE_SCALING_FACTOR
) -> np.ndarray:
    """Undo the VAE latent scaling before decoding.

    Elementwise ``x * (1 / scaling_factor)`` on half-float bit patterns.
    Returns a new array; the input is not modified.
    """
    if scaling_factor == 0:
        raise ValueError("VAE scaling factor must be non-zero")
    return scale_half(np.asarray(latent, dtype=np.uint16), 1.0 / scaling_factor)


def decoder_input(
    state: LatentState,
    scaling_factor: float = DEFAULT_VAE_SCALING_FACTOR
) -> Tensor:
    """Single-batch ``[1, C, H, W]`` half-float tensor for the VAE decoder."""
    return Tensor(DType.FLOAT16, state.single_batch_shape, apply_vae_scale(state.batch0, scaling_factor))


def _predict(
    predictor: "Predictor",
    sample: Tensor,
    timestep: int,
    conditioning: Tensor
) -> Tensor:
    prediction = predictor.predict(sample, timestep, conditioning)
    if not isinstance(prediction, Tensor):
        raise UnsupportedDType(f"Predictor returned {type(prediction).__name__}, expected Tensor")
    return prediction


def denoise_iteration(
    state: LatentState,
    iteration: int,
    predictor: "Predictor",
    conditioning: Tensor,
    schedule: NoiseSchedule,
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE,
    batch_layout: Union[str, BatchLayout] = BatchLayout.COMBINED
) -> LatentState:
    """Run the predictor for one iteration and apply the guided Euler step."""
    layout = BatchLayout.from_name(batch_layout)
    timestep = schedule.timestep(iteration)
    sample = state.prediction_input(schedule.prediction_scale(iteration))

    if layout is BatchLayout.COMBINED:
        predicted = _predict(predictor, sample, timestep, conditioning)
        return denoise_step(state, iteration, predicted, schedule, guidance_scale)

    if conditioning.batch != 2:
        raise ShapeMismatch(
            f"Split layout needs positive and negative conditioning rows, got batch {conditioning.batch}"
        )
    single = sample.batch_slice(0, 1)
    positive = _predict(predictor, single, timestep, conditioning.batch_slice(0, 1))
    negative = _predict(predictor, single, timestep, conditioning.batch_slice(1, 2))
    return denoise_step_split(state, iteration, positive, negative, schedule, guidance_scale)


def run_denoising_loop(
    state: LatentState,
    predictor: "Predictor",
    conditioning: Tensor,
    schedule: NoiseSchedule,
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE,
    batch_layout: Union[str, BatchLayout] = BatchLayout.COMBINED,
    progress_callback: Optional[Callable[[SamplingProgress], None]] = None,
    should_stop: Optional[Callable[[], bool]] = None
) -> SamplingProgress:
    """Denoise ``state`` in place over every schedule step.

    Iterations run strictly in order; each one finishes its update before the
    next builds its scratch copy.

    Args:
        state: Latent prepared by :meth:`LatentState.from_seed` or
            :meth:`LatentState.from_sample`
        predictor: Noise predictor
        conditioning: Conditioning tensor, positive row first
        schedule: Noise schedule
        guidance_scale: Positive guidance weight
        batch_layout: ``combined`` or ``split`` prediction calls
        progress_callback: Called after every completed iteration
        should_stop: Polled before every iteration; returning True aborts
            the run with :class:`GenerationCancelled`

    Returns:
        Final progress record
    """
    layout = BatchLayout.from_name(batch_layout)
    progress = SamplingProgress(total=schedule.num_steps)
    logger.info(f"Beginning denoising loop for {schedule.num_steps} iterations ({layout.value} layout)")
    start = time.perf_counter()

    for i in range(schedule.num_steps):
        if should_stop is not None and should_stop():
            logger.info(f"Denoising cancelled before iteration {i}")
            raise GenerationCancelled(i, schedule.num_steps)

        iteration_start = time.perf_counter()
        denoise_iteration(state, i, predictor, conditioning, schedule, guidance_scale, layout)
        elapsed = time.perf_counter() - iteration_start

        progress.iteration = i + 1
        progress.timestep = schedule.timestep(i)
        progress.sigma = schedule.sigma(i + 1)
        progress.iteration_times.append(elapsed)
        progress.total_time = time.perf_counter() - start
        logger.debug(f"Iteration {i + 1}/{schedule.num_steps} execution time: {elapsed * 1000:.2f}ms")
        if progress_callback is not None:
            progress_callback(progress)

    progress.total_time = time.perf_counter() - start
    logger.info(f"Denoising loop execution time: {progress.total_time * 1000:.2f}ms")
    return progress
