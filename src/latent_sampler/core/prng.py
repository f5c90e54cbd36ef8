"""Deterministic counter-based PRNG for initial latent noise.

The generator is PractRand's Small Fast Counter (SFC32): four 32-bit words
of state, all arithmetic wrapping at 2**32. It is not cryptographic. Its only
job is to make a seed produce the same noise on every machine.
"""

import random
from dataclasses import dataclass
from typing import Tuple

MASK32 = 0xFFFFFFFF
SEED_BITS = 128
DEFAULT_SEED = 123465


@dataclass(frozen=True)
class Seed:
    """128-bit generation seed."""
    value: int = DEFAULT_SEED

    def __post_init__(self):
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError(f"Seed must be an integer, got {type(self.value).__name__}")
        if not 0 <= self.value < (1 << SEED_BITS):
            raise ValueError(f"Seed must be in [0, 2**{SEED_BITS}), got {self.value}")

    def words(self) -> Tuple[int, int, int, int]:
        """Split into four 32-bit words, least significant first."""
        return (
            self.value & MASK32,
            (self.value >> 32) & MASK32,
            (self.value >> 64) & MASK32,
            (self.value >> 96) & MASK32,
        )

    @classmethod
    def random(cls) -> "Seed":
        """Pick a fresh 6-digit seed."""
        return cls(random.randint(100000, 999999))


class SimpleFastCounter32:
    """SFC32 generator yielding uniform floats in [0, 1)."""

    def __init__(self, a: int, b: int, c: int, d: int):
        self.a = a & MASK32
        self.b = b & MASK32
        self.c = c & MASK32
        self.d = d & MASK32

    @classmethod
    def from_seed(cls, seed: Seed) -> "SimpleFastCounter32":
        return cls(*seed.words())

    @property
    def state(self) -> Tuple[int, int, int, int]:
        return (self.a, self.b, self.c, self.d)

    def next_uint32(self) -> int:
        """Advance the state and return the next raw 32-bit output."""
        a, b, c, d = self.a, self.b, self.c, self.d
        t = (a + b) & MASK32
        a = b ^ (b >> 9)
        b = (c + (c << 3)) & MASK32
        c = ((c << 21) | (c >> 11)) & MASK32
        d = (d + 1) & MASK32
        t = (t + d) & MASK32
        c = (c + t) & MASK32
        self.a, self.b, self.c, self.d = a, b, c, d
        return t

    def next(self) -> float:
        """Next uniform draw in [0, 1)."""
        return self.next_uint32() / 4294967296.0

    def __iter__(self):
        return self

    def __next__(self) -> float:
        return self.next()
