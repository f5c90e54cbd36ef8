"""Pytest fixtures for testing."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from latent_sampler.core.halfprec import encode_array
from latent_sampler.core.schedule import NoiseSchedule
from latent_sampler.core.tensor import DType, Tensor, fill_value
from latent_sampler.predictor import Predictor


class ConstantPredictor(Predictor):
    """Returns the same noise value everywhere and records its calls."""

    def __init__(self, value: float = 1.0):
        self.bits = int(encode_array([value])[0])
        self.calls = []

    def predict(self, sample, timestep, conditioning):
        self.calls.append((sample.copy(), timestep, conditioning.shape))
        return fill_value(DType.FLOAT16, sample.shape, self.bits)


class BranchPredictor(Predictor):
    """Returns ``positive`` for conditioning row 0 and ``negative`` for row 1.

    Conditioning rows are recognised by their first element, 1.0 for the
    positive prompt and -1.0 for the negative one.
    """

    def __init__(self, positive: np.ndarray, negative: np.ndarray):
        self.positive = np.asarray(positive, dtype=np.uint16).reshape(-1)
        self.negative = np.asarray(negative, dtype=np.uint16).reshape(-1)
        self.calls = 0

    def predict(self, sample, timestep, conditioning):
        self.calls += 1
        rows = []
        for row in range(conditioning.batch):
            marker = conditioning.batch_slice(row, row + 1).float_values()[0]
            rows.append(self.positive if marker > 0 else self.negative)
        return Tensor(DType.FLOAT16, sample.shape, np.concatenate(rows))


def make_conditioning(sequence_length: int = 3, width: int = 4) -> Tensor:
    values = np.zeros((2, sequence_length, width), dtype=np.float32)
    values[0, 0, 0] = 1.0
    values[1, 0, 0] = -1.0
    return Tensor(DType.FLOAT16, values.shape, encode_array(values).reshape(-1))


@pytest.fixture
def conditioning():
    return make_conditioning()


@pytest.fixture
def two_step_schedule():
    """sigmas 1.0 -> 0.5 -> 0.0 at timesteps 10, 5."""
    return NoiseSchedule([1.0, 0.5, 0.0], [10.0, 5.0])


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def random_half(rng):
    """Factory for random finite half floats in [-scale, scale]."""
    def make(size, scale=3.0):
        return encode_array(rng.uniform(-scale, scale, size).astype(np.float32))
    return make


@pytest.fixture
def constant_predictor():
    """ConstantPredictor class, instantiate with the noise value."""
    return ConstantPredictor


@pytest.fixture
def branch_predictor():
    """BranchPredictor class, instantiate with positive and negative noise."""
    return BranchPredictor
