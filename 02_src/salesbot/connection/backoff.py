"""Reconnect delay policy."""

import random


def reconnect_delay(
    attempt: int,
    base: float = 1.0,
    cap: float = 30.0,
    rng: random.Random | None = None,
) -> float:
    """Exponential backoff with equal jitter for the given 1-based attempt.

    The delay lies in [d/2, d] where d = min(cap, base * 2 ** (attempt - 1)).
    """
    ceiling = min(cap, base * (2 ** max(attempt - 1, 0)))
    return (rng or random).uniform(ceiling / 2, ceiling)
