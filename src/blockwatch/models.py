# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Value objects produced by one block-detection analysis.

Leaf module with no blockwatch imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Tier(StrEnum):
    """Discretized block confidence."""

    CLEAR = "clear"
    SUSPECTED = "suspected"
    BLOCKED = "blocked"


class Pass(StrEnum):
    """Which evaluation pass produced a signal or result."""

    FAST = "fast"
    FULL = "full"


@dataclass(frozen=True, slots=True)
class Signal:
    """One fired detector: an independent probability-of-block estimate."""

    name: str
    weight: float  # 0.0–1.0
    details: str
    source: Pass

    def __post_init__(self) -> None:
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"weight must be within [0, 1], got {self.weight}")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "weight": self.weight,
            "details": self.details,
            "source": str(self.source),
        }


@dataclass(frozen=True, slots=True)
class RedirectHop:
    """One redirect preceding the final response (chain is oldest first)."""

    url: str
    status_code: int

    def to_dict(self) -> dict:
        return {"url": self.url, "status_code": self.status_code}


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Sole output artifact of one analysis call.

    ``score`` and ``tier`` are derived from ``signals`` by the result builder
    in :mod:`blockwatch.formatting`; ``persistent_block`` mirrors tracker state
    at reporting time.
    """

    url: str
    hostname: str
    score: float
    tier: Tier
    signals: tuple[Signal, ...]
    pass_: Pass
    persistent_block: bool = False
    redirect_chain: tuple[RedirectHop, ...] = field(default_factory=tuple)

    @property
    def signal_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.signals)

    @property
    def is_blocked(self) -> bool:
        return self.tier is Tier.BLOCKED

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "hostname": self.hostname,
            "tier": str(self.tier),
            "score": self.score,
            "pass": str(self.pass_),
            "persistent_block": self.persistent_block,
            "signals": [s.to_dict() for s in self.signals],
            "redirect_chain": [h.to_dict() for h in self.redirect_chain],
        }
