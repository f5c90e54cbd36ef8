"""Dual-batch latent state mutated by the denoising loop."""

from typing import Optional, Tuple

import numpy as np

from ..errors import ShapeMismatch, UnsupportedDType
from .halfprec import decode_array, encode_array
from .noise import fill_standard_normal
from .prng import Seed
from .tensor import DType, Tensor

LATENT_BATCH = 2


def scale_half(bits: np.ndarray, factor: float) -> np.ndarray:
    """Multiply half floats by ``factor`` in double precision and re-encode."""
    return encode_array(decode_array(bits).astype(np.float64) * factor)


class LatentState:
    """Half-float latent of shape ``[2, C, H, W]``.

    Batch 0 holds the sample being denoised and is the only slot that
    accumulates updates. Batch 1 exists so a single predictor call can see
    the negative conditioning; it is rebuilt from batch 0 for every
    prediction and never read back.
    """

    def __init__(self, channels: int, height: int, width: int, data: Optional[np.ndarray] = None):
        self.channels = channels
        self.height = height
        self.width = width
        if data is None:
            data = np.zeros(LATENT_BATCH * self.single_batch_size, dtype=np.uint16)
        data = np.asarray(data)
        if data.dtype != np.uint16:
            raise UnsupportedDType(f"Latent buffer must hold uint16 half floats, got {data.dtype}")
        if data.size != LATENT_BATCH * self.single_batch_size:
            raise ShapeMismatch(
                f"Latent buffer holds {data.size} elements, shape {self.shape} needs "
                f"{LATENT_BATCH * self.single_batch_size}"
            )
        self.data = np.ascontiguousarray(data).reshape(-1)

    @classmethod
    def from_sample(
        cls,
        sample: np.ndarray,
        channels: int,
        height: int,
        width: int,
        initial_sigma: float = 1.0
    ) -> "LatentState":
        """Build the state entering iteration 0 from a single-batch sample.

        The sample is duplicated into both batch slots, then batch 0 is
        prescaled by the first sigma.
        """
        sample = np.asarray(sample, dtype=np.uint16).reshape(-1)
        state = cls(channels, height, width, np.concatenate([sample, sample]))
        state.prescale(initial_sigma)
        return state

    @classmethod
    def from_seed(
        cls,
        seed: Seed,
        channels: int,
        height: int,
        width: int,
        initial_sigma: float
    ) -> "LatentState":
        """Seeded standard-normal latent, prescaled by ``initial_sigma``."""
        noise = np.empty(channels * height * width, dtype=np.uint16)
        fill_standard_normal(noise, seed)
        return cls.from_sample(noise, channels, height, width, initial_sigma)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (LATENT_BATCH, self.channels, self.height, self.width)

    @property
    def single_batch_shape(self) -> Tuple[int, int, int, int]:
        return (1, self.channels, self.height, self.width)

    @property
    def single_batch_size(self) -> int:
        return self.channels * self.height * self.width

    @property
    def batch0(self) -> np.ndarray:
        """Writable view of the accumulating sample."""
        return self.data[:self.single_batch_size]

    def values(self) -> np.ndarray:
        """Batch 0 decoded to float32, shaped ``[1, C, H, W]``."""
        return decode_array(self.batch0).reshape(self.single_batch_shape)

    def copy(self) -> "LatentState":
        return LatentState(self.channels, self.height, self.width, self.data.copy())

    def tensor(self) -> Tensor:
        """Dual-batch view of the canonical buffer."""
        return Tensor(DType.FLOAT16, self.shape, self.data)

    def prescale(self, sigma: float):
        """Scale batch 0 by ``sigma`` in place."""
        self.batch0[:] = scale_half(self.batch0, sigma)

    def prediction_input(self, scale: float) -> Tensor:
        """Scratch dual-batch sample for the predictor.

        Batch 0 is scaled by ``scale`` and copied into batch 1, so both
        conditioning branches see the same input. The canonical buffer is not
        touched.
        """
        half = self.single_batch_size
        scratch = self.data.copy()
        scratch[:half] = scale_half(scratch[:half], scale)
        scratch[half:] = scratch[:half]
        return Tensor(DType.FLOAT16, self.shape, scratch)

    def commit(self, updated: np.ndarray):
        """Replace batch 0 with a fully computed update."""
        updated = np.asarray(updated)
        if updated.dtype != np.uint16:
            raise UnsupportedDType(f"Latent update must hold uint16 half floats, got {updated.dtype}")
        if updated.size != self.single_batch_size:
            raise ShapeMismatch(
                f"Latent update holds {updated.size} elements, batch 0 holds {self.single_batch_size}"
            )
        self.batch0[:] = updated.reshape(-1)
