"""Numerical core: half floats, seeded noise, schedule and Euler steps."""

from .halfprec import encode_float16, decode_float16, encode_array, decode_array
from .prng import Seed, SimpleFastCounter32
from .noise import fill_standard_normal
from .schedule import NoiseSchedule, DEFAULT_SIGMAS, DEFAULT_TIMESTEPS
from .tensor import DType, Tensor
from .latent import LatentState
from .sampler import (
    BatchLayout,
    SamplingProgress,
    apply_vae_scale,
    denoise_step,
    denoise_step_split,
    run_denoising_loop,
)

__all__ = [
    "encode_float16",
    "decode_float16",
    "encode_array",
    "decode_array",
    "Seed",
    "SimpleFastCounter32",
    "fill_standard_normal",
    "NoiseSchedule",
    "DEFAULT_SIGMAS",
    "DEFAULT_TIMESTEPS",
    "DType",
    "Tensor",
    "LatentState",
    "BatchLayout",
    "SamplingProgress",
    "apply_vae_scale",
    "denoise_step",
    "denoise_step_split",
    "run_denoising_loop",
]
