# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""BlockWatch: heuristic block detection for browser-automation navigations.

Inspects a navigation outcome (status, headers, title, DOM content, redirect
history) and classifies it as ``clear``, ``suspected`` or ``blocked``:

- independent weighted signals combined as ``1 - prod(1 - w)``
- a cheap fast pass (status/headers) and a content-aware full pass
- persistent-block escalation that stops reload loops against a host that
  keeps blocking

The engine only reports.  Callers decide whether to add a routing rule and
reload, using ``tier`` and ``persistent_block`` on the result.
"""

from __future__ import annotations

from .config import EngineConfig, load_config
from .engine import BlockDetectionEngine
from .errors import BlockWatchError, ConfigError
from .logging_config import configure as configure_logging
from .matching import KeywordTable, matches
from .models import DetectionResult, Pass, RedirectHop, Signal, Tier
from .scoring import BLOCKED_THRESHOLD, SUSPECTED_THRESHOLD, classify_tier, combine_scores
from .tracker import PersistentBlockTracker

__version__ = "0.1.0"

__all__ = [
    "BLOCKED_THRESHOLD",
    "SUSPECTED_THRESHOLD",
    "BlockDetectionEngine",
    "BlockWatchError",
    "ConfigError",
    "DetectionResult",
    "EngineConfig",
    "KeywordTable",
    "Pass",
    "PersistentBlockTracker",
    "RedirectHop",
    "Signal",
    "Tier",
    "classify_tier",
    "combine_scores",
    "configure_logging",
    "load_config",
    "matches",
]
