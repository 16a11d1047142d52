# oral_exam/services/seeded_select.py
"""
Reproducible prompt selection.

A session stores only its seed; replaying seeded_select with the same pool,
count and seed gives back the same prompts in the same order.
"""
import random
import secrets
from typing import List, Sequence, TypeVar

from oral_exam.services.errors import InvalidArgument

T = TypeVar("T")

SEED_MAX = 2**31 - 1


def generate_seed() -> int:
    """Fresh seed for one session."""
    return secrets.randbelow(SEED_MAX)


def seeded_select(pool: Sequence[T], count: int, seed: int) -> List[T]:
    """
    Shuffle a copy of ``pool`` with ``seed`` and return the first ``count`` items.

    Raises:
        InvalidArgument: count is negative
    """
    if count < 0:
        raise InvalidArgument(f"count must be >= 0, got {count}")

    shuffled = list(pool)
    random.Random(seed).shuffle(shuffled)
    return shuffled[:count]
