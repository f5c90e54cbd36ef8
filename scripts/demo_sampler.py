#!/usr/bin/env python3
"""End-to-end demo of the latent sampler.

This script demonstrates:
1. Seeding a half-float latent from a 128-bit seed
2. Running the 25-step guided Euler loop against a toy PyTorch predictor
3. Checking that combined and split prediction layouts agree bit for bit
4. Producing the VAE-rescaled decoder input

Run with: python scripts/demo_sampler.py
"""

import sys
from pathlib import Path

import numpy as np
import torch
import torch.nn as nn

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from latent_sampler.config import SamplerConfig
from latent_sampler.core.halfprec import encode_array
from latent_sampler.core.tensor import DType, Tensor
from latent_sampler.pipeline import LatentSampler
from latent_sampler.predictor import ModulePredictor
from latent_sampler.utils.logging import setup_logging


class ToyUNet(nn.Module):
    """Single conv layer conditioned on the mean text embedding."""

    def __init__(self, channels: int = 4):
        super().__init__()
        self.conv = nn.Conv2d(channels, channels, kernel_size=3, padding=1)

    def forward(self, sample, timestep, encoder_hidden_states):
        x = sample.float()
        t = (timestep.float() / 1000.0).view(-1, 1, 1, 1)
        cond = encoder_hidden_states.float().mean(dim=(1, 2)).view(-1, 1, 1, 1)
        return (torch.tanh(self.conv(x)) * (1 + t) + cond).half()


def main():
    setup_logging()
    torch.manual_seed(0)

    module = ToyUNet()
    base = dict(latent_height=16, latent_width=16, text_sequence_length=8, text_embedding_width=16)

    embeddings = np.random.default_rng(0).standard_normal((2, 8, 16)).astype(np.float32) * 0.1
    conditioning = Tensor(DType.FLOAT16, embeddings.shape, encode_array(embeddings).reshape(-1))

    outputs = {}
    for layout in ("combined", "split"):
        config = SamplerConfig(batch_layout=layout, **base)
        sampler = LatentSampler(ModulePredictor(module), config)
        outputs[layout] = sampler.sample(conditioning)
        progress = sampler.last_progress
        print(f"[{layout}] {progress.iteration} iterations in {progress.total_time:.3f}s")

    same = np.array_equal(outputs["combined"].data, outputs["split"].data)
    values = outputs["combined"].float_values()
    print(f"Decoder input shape: {outputs['combined'].shape}")
    print(f"Layouts identical: {same}")
    print(f"Latent stats: mean={values.mean():.4f} std={values.std():.4f}")


if __name__ == "__main__":
    main()
