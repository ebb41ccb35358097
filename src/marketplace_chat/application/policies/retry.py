from __future__ import annotations


def backoff_seconds(attempts: int, *, base: float, cap: float) -> float:
    """Exponential delay for the given number of failed attempts, capped."""
    if attempts <= 0:
        return base
    return min(base * (2 ** attempts), max(cap, base))
