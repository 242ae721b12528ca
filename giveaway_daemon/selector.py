"""Uniform winner draw over a giveaway's participants."""

from __future__ import annotations

import random
import secrets
from typing import Iterable, Optional


def select_winner(
    participants: Iterable[int],
    *,
    exclude: Iterable[int] = (),
    rng: Optional[random.Random] = None,
) -> Optional[int]:
    """Pick one participant uniformly at random, or None when nobody is eligible."""
    excluded = set(exclude)
    population = sorted({int(p) for p in participants} - excluded)
    if not population:
        return None
    if len(population) == 1:
        return population[0]
    rng = rng or secrets.SystemRandom()
    return rng.choice(population)
