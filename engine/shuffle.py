from __future__ import annotations

import math
import random
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

# Linear-congruential step shared by every peer. Changing any of these breaks
# agreement with games already in flight.
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x1_0000_0000 if value & 0x8000_0000 else value


def seed_hash(seed: str) -> int:
    """Fold a seed string into a signed 32-bit accumulator.

    Walks UTF-16 code units with ``acc = acc * 31 + unit`` wrapped to int32,
    which is the classic Java/JavaScript string hash. Using code units rather
    than code points keeps non-BMP seeds stable across platforms.
    """
    acc = 0
    units = seed.encode("utf-16-le")
    for idx in range(0, len(units), 2):
        unit = units[idx] | (units[idx + 1] << 8)
        acc = _to_int32(acc * 31 + unit)
    return acc


def seeded_shuffle(deck: Sequence[T], seed: str) -> List[T]:
    """Deterministic Fisher–Yates permutation of ``deck`` for ``seed``.

    Not secure against the dealer: whoever picks the seed can search for a
    favourable permutation. Reproducibility is the only goal here.
    """
    shuffled = list(deck)
    state = seed_hash(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        state = (state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        j = math.floor(state / LCG_MODULUS * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def shuffle_unseeded(deck: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Uniform shuffle for local practice games only. Never use across peers."""
    rng = rng or random.SystemRandom()
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled
