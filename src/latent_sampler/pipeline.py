"""High-level sampling entry point.

Seeds a latent, runs the guided Euler loop against a predictor and returns
the VAE-rescaled single-batch latent ready for an external decoder.
"""

import logging
from typing import Callable, Optional

from .config import SamplerConfig
from .core.latent import LatentState
from .core.prng import Seed
from .core.sampler import SamplingProgress, decoder_input, run_denoising_loop
from .core.tensor import Tensor
from .predictor import Predictor

logger = logging.getLogger(__name__)


class LatentSampler:
    """Runs one generation per :meth:`sample` call. Not shared between threads."""

    def __init__(self, predictor: Predictor, config: Optional[SamplerConfig] = None):
        self.config = config or SamplerConfig()
        self.predictor = predictor
        self.schedule = self.config.build_schedule()
        self.last_progress: Optional[SamplingProgress] = None

    def initialize_latents(self, seed: Optional[Seed] = None) -> LatentState:
        """Seeded noise latent, prescaled by the first sigma."""
        seed = seed or self.config.build_seed()
        logger.info(f"Generating initial noise for seed {seed.value}")
        return LatentState.from_seed(
            seed,
            self.config.latent_channels,
            self.config.latent_height,
            self.config.latent_width,
            initial_sigma=self.schedule.sigma(0)
        )

    def denoise(
        self,
        state: LatentState,
        conditioning: Tensor,
        progress_callback: Optional[Callable[[SamplingProgress], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None
    ) -> SamplingProgress:
        """Run every schedule step on ``state`` in place."""
        progress = run_denoising_loop(
            state,
            self.predictor,
            conditioning,
            self.schedule,
            guidance_scale=self.config.guidance_scale,
            batch_layout=self.config.layout,
            progress_callback=progress_callback,
            should_stop=should_stop
        )
        self.last_progress = progress
        return progress

    def sample(
        self,
        conditioning: Tensor,
        seed: Optional[Seed] = None,
        initial_state: Optional[LatentState] = None,
        progress_callback: Optional[Callable[[SamplingProgress], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None
    ) -> Tensor:
        """Generate a decoder-ready latent.

        Args:
            conditioning: Text embedding, positive row first
            seed: Overrides the configured seed
            initial_state: Use this latent instead of seeded noise. It is
                denoised in place.
            progress_callback: Called after every iteration
            should_stop: Polled between iterations to abort the run

        Returns:
            Half-float tensor ``[1, C, H, W]`` divided by the VAE scaling factor
        """
        state = initial_state if initial_state is not None else self.initialize_latents(seed)
        self.denoise(state, conditioning, progress_callback, should_stop)
        logger.info("Applying VAE scaling factor")
        return decoder_input(state, self.config.vae_scaling_factor)
