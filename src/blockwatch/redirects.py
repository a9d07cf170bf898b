# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Redirect chain reconstruction and challenge-domain lookup.

Walks ``response.request.redirected_from`` backwards and returns the hops
oldest-first.  A driver that exposes no redirect history yields an empty
chain, which is not an error.
"""

from __future__ import annotations

import logging
from typing import Any

from .models import RedirectHop

logger = logging.getLogger(__name__)

CHALLENGE_DOMAIN_PATTERNS: tuple[str, ...] = (
    "/cdn-cgi/challenge-platform/",
    "challenges.cloudflare.com",
    "geo.captcha-delivery.com",
)

# Chromium gives up after 20 redirects; anything longer is a cyclic fake.
_MAX_HOPS = 32


def match_challenge_domain(url: str) -> str | None:
    """Return the challenge pattern contained in *url*, or None."""
    if not url:
        return None
    for pattern in CHALLENGE_DOMAIN_PATTERNS:
        if pattern in url:
            return pattern
    return None


async def _hop_status(request: Any) -> int:
    try:
        prior = await request.response()
    except Exception:
        logger.debug("Redirect hop response unavailable", exc_info=True)
        return 0
    if prior is None:
        return 0
    try:
        return int(prior.status or 0)
    except Exception:
        return 0


async def walk_redirect_chain(response: Any) -> list[RedirectHop]:
    """Reconstruct the redirects that led to *response*, oldest first."""
    if response is None:
        return []

    hops: list[RedirectHop] = []
    try:
        request = getattr(response, "request", None)
        while request is not None and len(hops) < _MAX_HOPS:
            previous = getattr(request, "redirected_from", None)
            if previous is None:
                break
            hops.append(
                RedirectHop(
                    url=getattr(previous, "url", "") or "",
                    status_code=await _hop_status(previous),
                )
            )
            request = previous
    except Exception:
        logger.debug("Redirect chain walk failed, keeping %d hops", len(hops), exc_info=True)

    hops.reverse()
    return hops
