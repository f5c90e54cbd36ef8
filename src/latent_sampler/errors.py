"""Exceptions raised by the sampling core.

Every failure aborts the current generation run. Callers decide how to
surface them.
"""


class SamplerError(Exception):
    """Base class for sampling failures."""


class ShapeMismatch(SamplerError, ValueError):
    """Latent and predicted-noise tensors disagree in shape."""


class UnsupportedDType(SamplerError, TypeError):
    """Element type not understood by the codec or tensor builders."""


class ScheduleExhausted(SamplerError, IndexError):
    """Iteration index outside the range covered by the noise schedule."""


class GenerationCancelled(SamplerError):
    """Run aborted by the caller between two iterations."""

    def __init__(self, iteration: int, total: int):
        super().__init__(f"Generation cancelled before iteration {iteration} of {total}")
        self.iteration = iteration
        self.total = total
