# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Score combination and tier classification.

Each signal weight is treated as an independent probability that the page is
a block, so the combined score is ``1 - prod(1 - w)``.  Two 0.2 signals give
0.36, not 0.4: weak corroborating evidence does not stack linearly.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import Signal, Tier

BLOCKED_THRESHOLD = 0.70
SUSPECTED_THRESHOLD = 0.40

# Absorbs float error so a single 0.7 signal (1 - 0.30000000000000004)
# still lands on the inclusive lower edge of "blocked".
_EPSILON = 1e-9


def combine_scores(weights: Iterable[float]) -> float:
    """Combine independent block probabilities into one score in [0, 1]."""
    remaining = 1.0
    for w in weights:
        if not 0.0 <= w <= 1.0:
            raise ValueError(f"signal weight must be within [0, 1], got {w}")
        remaining *= 1.0 - w
    if remaining == 1.0:
        return 0.0
    return 1.0 - remaining


def score_signals(signals: Iterable[Signal]) -> float:
    return combine_scores(s.weight for s in signals)


def classify_tier(score: float) -> Tier:
    """Map a score onto a tier; lower band edges are inclusive."""
    if score + _EPSILON >= BLOCKED_THRESHOLD:
        return Tier.BLOCKED
    if score + _EPSILON >= SUSPECTED_THRESHOLD:
        return Tier.SUSPECTED
    return Tier.CLEAR


def merge_signals(primary: Sequence[Signal], secondary: Sequence[Signal]) -> list[Signal]:
    """Concatenate two signal lists, deduplicated by ``name``.

    Instances from *primary* win on conflict, so re-running an idempotent
    detector in a later pass never double-counts it.
    """
    merged: list[Signal] = []
    seen: set[str] = set()
    for sig in (*primary, *secondary):
        if sig.name in seen:
            continue
        seen.add(sig.name)
        merged.append(sig)
    return merged

