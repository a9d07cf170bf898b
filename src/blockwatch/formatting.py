# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Result construction and the per-analysis log line.

The log line is the calibration record for detector weights, so its shape is
stable: ``detection_result`` followed by one JSON object carrying every field
of the result (all signals with weight, source and details).
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from urllib.parse import urlparse

from .models import DetectionResult, Pass, RedirectHop, Signal
from .scoring import classify_tier, score_signals

LOG_EVENT = "detection_result"


def extract_hostname(url: str) -> str:
    """Hostname without port; the raw input when it is not an absolute URL."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    return hostname or url


def build_result(
    url: str,
    signals: Iterable[Signal],
    pass_: Pass,
    *,
    hostname: str | None = None,
    redirect_chain: Iterable[RedirectHop] = (),
    persistent_block: bool = False,
) -> DetectionResult:
    """Build a result; score and tier are always derived from *signals*."""
    sigs = tuple(signals)
    score = score_signals(sigs)
    return DetectionResult(
        url=url,
        hostname=extract_hostname(url) if hostname is None else hostname,
        score=score,
        tier=classify_tier(score),
        signals=sigs,
        pass_=pass_,
        persistent_block=persistent_block,
        redirect_chain=tuple(redirect_chain),
    )


def log_record(result: DetectionResult) -> dict:
    record = result.to_dict()
    record["score"] = round(result.score, 4)
    record["signal_names"] = list(result.signal_names)
    return record


def format_log_line(result: DetectionResult) -> str:
    """``detection_result {...}`` with keys sorted for stable diffs."""
    return f"{LOG_EVENT} {json.dumps(log_record(result), sort_keys=True, ensure_ascii=False)}"
