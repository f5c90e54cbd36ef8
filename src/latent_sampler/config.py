"""Sampler configuration."""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List

import yaml

from .core.prng import DEFAULT_SEED, Seed
from .core.sampler import DEFAULT_GUIDANCE_SCALE, DEFAULT_VAE_SCALING_FACTOR, BatchLayout
from .core.schedule import DEFAULT_SIGMAS, DEFAULT_TIMESTEPS, NoiseSchedule

logger = logging.getLogger(__name__)


@dataclass
class SamplerConfig:
    """Configuration for a generation run."""
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE
    iteration_count: int = len(DEFAULT_TIMESTEPS)
    sigmas: List[float] = field(default_factory=lambda: list(DEFAULT_SIGMAS))
    timesteps: List[float] = field(default_factory=lambda: list(DEFAULT_TIMESTEPS))
    seed: int = DEFAULT_SEED
    batch_layout: str = BatchLayout.COMBINED.value
    vae_scaling_factor: float = DEFAULT_VAE_SCALING_FACTOR
    # Latent geometry for 512x512 images
    latent_channels: int = 4
    latent_height: int = 64
    latent_width: int = 64
    # Text encoder output
    text_sequence_length: int = 77
    text_embedding_width: int = 768

    def __post_init__(self):
        self.sigmas = [float(s) for s in self.sigmas]
        self.timesteps = [float(t) for t in self.timesteps]
        self.batch_layout = BatchLayout.from_name(self.batch_layout).value
        if self.iteration_count != len(self.timesteps):
            raise ValueError(
                f"iteration_count={self.iteration_count} but schedule has "
                f"{len(self.timesteps)} timesteps"
            )
        if min(self.latent_channels, self.latent_height, self.latent_width) <= 0:
            raise ValueError("Latent dimensions must be positive")
        if self.vae_scaling_factor == 0:
            raise ValueError("vae_scaling_factor must be non-zero")
        Seed(self.seed)
        self.build_schedule()

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "SamplerConfig":
        """Build from a mapping, ignoring an optional ``sampler`` wrapper.

        A schedule given without ``iteration_count`` sets it implicitly.
        """
        config = dict(config.get("sampler", config))
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            raise ValueError(f"Unknown sampler config keys: {sorted(unknown)}")
        if "timesteps" in config and "iteration_count" not in config:
            config["iteration_count"] = len(config["timesteps"])
        return cls(**config)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def build_schedule(self) -> NoiseSchedule:
        return NoiseSchedule(self.sigmas, self.timesteps)

    def build_seed(self) -> Seed:
        return Seed(self.seed)

    @property
    def layout(self) -> BatchLayout:
        return BatchLayout(self.batch_layout)

    @property
    def conditioning_shape(self):
        return (2, self.text_sequence_length, self.text_embedding_width)


def load_config(path: str) -> SamplerConfig:
    """Load a YAML sampler config."""
    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}
    logger.info(f"Loaded config from {path}")
    return SamplerConfig.from_dict(config)
