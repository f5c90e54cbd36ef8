"""Noise schedule for Euler sampling."""

import math
from typing import Optional, Sequence, Tuple

from ..errors import ScheduleExhausted

# Hard-coded values for 25 iterations (the standard).
DEFAULT_SIGMAS: Tuple[float, ...] = (
    14.614647, 11.435942, 9.076809, 7.3019943, 5.9489183, 4.903778, 4.0860896,
    3.4381795, 2.9183085, 2.495972, 2.1485956, 1.8593576, 1.6155834, 1.407623,
    1.2280698, 1.0711612, 0.9323583, 0.80802417, 0.695151, 0.5911423, 0.49355352,
    0.3997028, 0.30577788, 0.20348993, 0.02916753, 0.0,
)
DEFAULT_TIMESTEPS: Tuple[float, ...] = (
    999.0, 957.375, 915.75, 874.125, 832.5, 790.875, 749.25, 707.625, 666.0,
    624.375, 582.75, 541.125, 499.5, 457.875, 416.25, 374.625, 333.0, 291.375,
    249.75, 208.125, 166.5, 124.875, 83.25, 41.625, 0.0,
)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class NoiseSchedule:
    """Ordered sigmas and timesteps driving the denoising loop.

    ``sigmas`` has N+1 entries ending in exactly 0, ``timesteps`` has N.
    Iteration ``i`` moves the latent from ``sigmas[i]`` to ``sigmas[i + 1]``
    and queries the predictor at ``timesteps[i]``.
    """

    def __init__(
        self,
        sigmas: Optional[Sequence[float]] = None,
        timesteps: Optional[Sequence[float]] = None
    ):
        self.sigmas = tuple(float(s) for s in (DEFAULT_SIGMAS if sigmas is None else sigmas))
        self.timesteps = tuple(float(t) for t in (DEFAULT_TIMESTEPS if timesteps is None else timesteps))
        self._validate()

    def _validate(self):
        if len(self.timesteps) == 0:
            raise ValueError("Schedule needs at least one timestep")
        if len(self.sigmas) != len(self.timesteps) + 1:
            raise ValueError(
                f"Expected {len(self.timesteps) + 1} sigmas for {len(self.timesteps)} timesteps, "
                f"got {len(self.sigmas)}"
            )
        if any(math.isnan(s) for s in self.sigmas) or any(math.isnan(t) for t in self.timesteps):
            raise ValueError("Schedule contains NaN")
        if any(a < b for a, b in zip(self.sigmas, self.sigmas[1:])):
            raise ValueError("Sigmas must be non-increasing")
        if any(a < b for a, b in zip(self.timesteps, self.timesteps[1:])):
            raise ValueError("Timesteps must be non-increasing")
        if self.sigmas[-1] != 0.0:
            raise ValueError(f"Last sigma must be 0, got {self.sigmas[-1]}")

    @property
    def num_steps(self) -> int:
        return len(self.timesteps)

    def __len__(self) -> int:
        return self.num_steps

    def __repr__(self) -> str:
        return f"NoiseSchedule(num_steps={self.num_steps}, sigma_max={self.sigmas[0]})"

    def _check_step(self, i: int, upper: int):
        if not 0 <= i < upper:
            raise ScheduleExhausted(f"Iteration {i} outside schedule range [0, {upper})")

    def sigma(self, i: int) -> float:
        """Noise level entering iteration i; ``sigma(N)`` is the terminal 0."""
        self._check_step(i, self.num_steps + 1)
        return self.sigmas[i]

    def delta(self, i: int) -> float:
        """Euler step size ``sigma(i + 1) - sigma(i)`` (non-positive)."""
        self._check_step(i, self.num_steps)
        return self.sigmas[i + 1] - self.sigmas[i]

    def timestep(self, i: int) -> int:
        """Integer timestep handed to the predictor at iteration i."""
        self._check_step(i, self.num_steps)
        return round_half_away(self.timesteps[i])

    def prediction_scale(self, i: int) -> float:
        """Input scaling ``1 / sqrt(sigma**2 + 1)`` for iteration i."""
        sigma = self.sigma(i)
        return 1 / math.sqrt(sigma * sigma + 1)
