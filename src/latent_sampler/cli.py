"""Command line entry point.

Usage:
    latent-sampler \
        --checkpoint unet.torchscript.pt \
        --conditioning text_embeddings.npy \
        --output latents.npy \
        --config configs/default.yaml

The output is the VAE-rescaled float16 latent ``[1, C, H, W]``; decoding it
to pixels is left to the VAE decoder.
"""

import argparse
import logging
from typing import List, Optional

import numpy as np

from .config import SamplerConfig, load_config
from .core.halfprec import convert_to_float16
from .core.prng import Seed
from .core.sampler import SamplingProgress
from .core.tensor import DType, Tensor
from .errors import ShapeMismatch
from .pipeline import LatentSampler
from .predictor import load_module_predictor
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


def load_conditioning(path: str, config: SamplerConfig) -> Tensor:
    """Load a ``[2, seq, width]`` text embedding saved with ``numpy.save``."""
    array = np.load(path)
    expected = config.conditioning_shape
    if array.shape != expected:
        raise ShapeMismatch(f"Conditioning {path} has shape {array.shape}, expected {expected}")
    if array.dtype == np.float16:
        bits = np.ascontiguousarray(array).view(np.uint16).reshape(-1)
    else:
        bits = convert_to_float16(array)
    return Tensor(DType.FLOAT16, expected, bits)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Denoise a seeded latent with a UNet noise predictor")
    parser.add_argument("--config", type=str, default=None, help="YAML sampler config")
    parser.add_argument("--checkpoint", type=str, required=True, help="TorchScript UNet")
    parser.add_argument("--conditioning", type=str, required=True,
                        help="Text embeddings .npy, positive row first")
    parser.add_argument("--output", type=str, required=True, help="Output .npy for the decoder input")
    parser.add_argument("--seed", type=int, default=None, help="Override the configured seed")
    parser.add_argument("--random_seed", action="store_true", help="Pick a random 6-digit seed")
    parser.add_argument("--device", type=str, default="cpu", help="Device")
    parser.add_argument("--log_file", type=str, default=None, help="Also log to this file")
    parser.add_argument("--steps_log", action="store_true", help="Log every iteration")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    config = load_config(args.config) if args.config else SamplerConfig()
    if args.random_seed:
        seed = Seed.random()
    elif args.seed is not None:
        seed = Seed(args.seed)
    else:
        seed = config.build_seed()
    logger.info(f"Seed: {seed.value}")
    logger.info(f"Device: {args.device}")

    predictor = load_module_predictor(args.checkpoint, device=args.device)
    conditioning = load_conditioning(args.conditioning, config)
    sampler = LatentSampler(predictor, config)

    def report(progress: SamplingProgress):
        if args.steps_log:
            logger.info(
                f"Iteration {progress.iteration}/{progress.total} completed "
                f"({progress.fraction * 100:.2f}%)"
            )

    latents = sampler.sample(conditioning, seed=seed, progress_callback=report)
    np.save(args.output, latents.array().view(np.float16))
    logger.info(f"Saved decoder input {latents.shape} to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
