# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Persistent-block escalation state.

Escalation, keyed by exact URL and by hostname:

1. First "blocked" result for a URL → URL recorded as retried.  The caller
   typically adds a routing rule for the host and reloads once.
2. Same URL "blocked" again → hostname becomes persistent.
3. Any URL on a persistent hostname reports ``persistent_block`` at once.

State is only cleared by :meth:`PersistentBlockTracker.reset`.  One tracker
is shared by every page an engine handles, so all access goes through a lock;
it is held for set operations only, never across an ``await``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .models import Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackerSnapshot:
    """Immutable copy of tracker state for monitoring."""

    retried_urls: frozenset[str]
    persistent_hostnames: frozenset[str]


class PersistentBlockTracker:
    """Tracks retried URLs and persistently blocked hostnames."""

    __slots__ = ("_lock", "_retried_urls", "_persistent_hostnames")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._retried_urls: set[str] = set()
        self._persistent_hostnames: set[str] = set()

    def is_persistent(self, hostname: str) -> bool:
        with self._lock:
            return hostname in self._persistent_hostnames

    def is_retried(self, url: str) -> bool:
        with self._lock:
            return url in self._retried_urls

    def record(self, url: str, hostname: str, tier: Tier) -> bool:
        """Apply one finalized result; return the ``persistent_block`` flag."""
        with self._lock:
            if hostname in self._persistent_hostnames:
                return True
            if tier is not Tier.BLOCKED:
                return False
            if url in self._retried_urls:
                self._persistent_hostnames.add(hostname)
                escalated = True
            else:
                self._retried_urls.add(url)
                escalated = False

        if escalated:
            logger.warning("Persistent block: %s still blocked after retry (%s)", hostname, url)
        else:
            logger.info("Block detected on %s, first escalation for %s", hostname, url)
        return escalated

    def reset(self) -> None:
        with self._lock:
            self._retried_urls.clear()
            self._persistent_hostnames.clear()

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            return TrackerSnapshot(
                retried_urls=frozenset(self._retried_urls),
                persistent_hostnames=frozenset(self._persistent_hostnames),
            )
