"""Noise predictors consumed by the denoising loop.

The loop only needs ``predict(sample, timestep, conditioning) -> noise`` with
matching shapes. ``ModulePredictor`` adapts a PyTorch UNet to that contract.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import torch

from .core.halfprec import convert_to_float16
from .core.tensor import DType, Tensor
from .errors import UnsupportedDType

logger = logging.getLogger(__name__)


class Predictor(ABC):
    """Base class for noise predictors."""

    @abstractmethod
    def predict(self, sample: Tensor, timestep: int, conditioning: Tensor) -> Tensor:
        """Predict noise for ``sample`` at ``timestep``.

        Args:
            sample: Half-float latent ``[B, C, H, W]``
            timestep: Integer diffusion timestep
            conditioning: Text embedding with one row per batch entry

        Returns:
            Predicted noise with the same shape as ``sample``
        """
        pass


def tensor_to_torch(tensor: Tensor, device: str = "cpu") -> torch.Tensor:
    """Copy a core tensor into torch, half floats as ``torch.float16``."""
    array = tensor.array()
    if tensor.dtype is DType.FLOAT16:
        array = array.view(np.float16)
    return torch.from_numpy(np.array(array)).to(device)


def torch_to_tensor(value: torch.Tensor) -> Tensor:
    """Convert a floating torch tensor to a half-float core tensor."""
    value = value.detach().cpu()
    if value.dtype == torch.float16:
        bits = value.contiguous().numpy().view(np.uint16)
    elif value.is_floating_point():
        bits = convert_to_float16(value.to(torch.float32).numpy())
    else:
        raise UnsupportedDType(f"Predicted noise must be floating point, got {value.dtype}")
    return Tensor(DType.FLOAT16, tuple(value.shape), bits.reshape(-1))


def _unwrap_output(output: Any) -> torch.Tensor:
    if isinstance(output, torch.Tensor):
        return output
    if isinstance(output, dict):
        for key in ("out_sample", "sample"):
            if key in output:
                return output[key]
    if isinstance(output, (tuple, list)) and output:
        return output[0]
    if hasattr(output, "sample"):
        return output.sample
    raise TypeError(f"Cannot find predicted noise in model output of type {type(output).__name__}")


class ModulePredictor(Predictor):
    """Predictor backed by a torch module called as ``module(sample, timestep, encoder_hidden_states)``."""

    def __init__(self, module: torch.nn.Module, device: str = "cpu"):
        self.module = module.to(device)
        self.module.eval()
        self.device = device

    def predict(self, sample: Tensor, timestep: int, conditioning: Tensor) -> Tensor:
        x = tensor_to_torch(sample, self.device)
        hidden_states = tensor_to_torch(conditioning, self.device)
        t = torch.full((sample.batch,), timestep, dtype=torch.long, device=self.device)

        with torch.no_grad():
            output = _unwrap_output(self.module(x, t, hidden_states))

        return torch_to_tensor(output)


def load_module_predictor(path: str, device: str = "cpu") -> ModulePredictor:
    """Load a TorchScript UNet from ``path``."""
    logger.info(f"Loading TorchScript predictor from {path}")
    module = torch.jit.load(path, map_location=device)
    return ModulePredictor(module, device=device)
