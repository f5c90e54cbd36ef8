"""Latent sampler for Stable Diffusion style image generation.

Drives iterative latent-space denoising:
1. Seed: SFC32 PRNG + Box-Muller fill a half-float latent
2. Prescale by the first sigma, duplicate into a positive/negative batch
3. Loop: scale, predict noise, blend with guidance, Euler step
4. Divide by the VAE scaling factor and hand off to a decoder

Components:
- core/ - half-float codec, PRNG, schedule, latent state, Euler steps
- predictor - noise predictor interface and PyTorch adapter
- pipeline - LatentSampler facade
"""

__version__ = "0.1.0"

from .config import SamplerConfig, load_config
from .core.prng import Seed
from .core.schedule import NoiseSchedule
from .core.tensor import Tensor
from .errors import (
    GenerationCancelled,
    SamplerError,
    ScheduleExhausted,
    ShapeMismatch,
    UnsupportedDType,
)
from .pipeline import LatentSampler
from .predictor import ModulePredictor, Predictor

__all__ = [
    "SamplerConfig",
    "load_config",
    "Seed",
    "NoiseSchedule",
    "Tensor",
    "GenerationCancelled",
    "SamplerError",
    "ScheduleExhausted",
    "ShapeMismatch",
    "UnsupportedDType",
    "LatentSampler",
    "ModulePredictor",
    "Predictor",
]
