# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright glue: drive navigations and watch pages for in-page transitions.

Playwright's async ``Page`` / ``Response`` already satisfy the engine's
capability protocols, so this module only owns the event wiring::

    engine = BlockDetectionEngine(on_detection=handle)
    watcher = PlaywrightBlockWatcher(engine)
    watcher.attach(page)
    result = await watcher.goto(page, "https://example.com")

``goto`` runs the full two-pass protocol.  While attached, main-frame
``framenavigated`` events that did not come from ``goto`` are analyzed after a
per-page quiet window: a URL change without a document response is an SPA
transition (content pass only); one preceded by a main-frame document
response (link click, form post) gets the two-pass treatment.  Bursts of
events collapse into one analysis.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Frame, Page, Response

from .engine import BlockDetectionEngine
from .models import DetectionResult

logger = logging.getLogger(__name__)

DEFAULT_SPA_DEBOUNCE_MS = 500
DEFAULT_NAVIGATION_TIMEOUT_MS = 30_000


@dataclass(slots=True)
class _PageWatch:
    """Per-page watcher state."""

    last_url: str = ""
    navigating: int = 0  # goto() calls in flight
    document_response: Response | None = None
    tasks: set[asyncio.Task] = field(default_factory=set)  # every analysis task not yet done
    sleeping: asyncio.Task | None = None  # task still inside its quiet window
    last_result: DetectionResult | None = None
    handlers: dict[str, Any] = field(default_factory=dict)


class PlaywrightBlockWatcher:
    """Runs :class:`BlockDetectionEngine` against Playwright pages."""

    def __init__(
        self,
        engine: BlockDetectionEngine,
        *,
        spa_debounce_ms: int = DEFAULT_SPA_DEBOUNCE_MS,
        wait_until: str = "domcontentloaded",
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
    ) -> None:
        if spa_debounce_ms < 0:
            raise ValueError(f"spa_debounce_ms must be >= 0, got {spa_debounce_ms}")
        self._engine = engine
        self._debounce_s = spa_debounce_ms / 1000
        self._wait_until = wait_until
        self._navigation_timeout_ms = navigation_timeout_ms
        self._pages: dict[Page, _PageWatch] = {}

    @property
    def engine(self) -> BlockDetectionEngine:
        return self._engine

    def last_result(self, page: Page) -> DetectionResult | None:
        state = self._pages.get(page)
        return state.last_result if state else None

    # -- navigation ----------------------------------------------------------

    async def goto(self, page: Page, url: str) -> DetectionResult:
        """Navigate and analyze.  Navigation errors propagate unchanged."""
        state = self._pages.get(page) or _PageWatch()
        state.navigating += 1
        try:
            response = await page.goto(url, wait_until=self._wait_until, timeout=self._navigation_timeout_ms)
            result = await self._engine.analyze_navigation(page, response)
        finally:
            state.navigating -= 1
            state.document_response = None
        state.last_url = result.url
        state.last_result = result
        return result

    # -- event wiring ----------------------------------------------------------

    def attach(self, page: Page) -> None:
        """Start watching *page* for navigations not driven by :meth:`goto`."""
        if page in self._pages and self._pages[page].handlers:
            return
        state = self._pages.setdefault(page, _PageWatch())
        state.last_url = page.url

        def on_response(response: Response) -> None:
            self._on_response(page, state, response)

        def on_frame_navigated(frame: Frame) -> None:
            self._on_frame_navigated(page, state, frame)

        def on_close(_page: Page) -> None:
            self.detach(page)

        state.handlers = {
            "response": on_response,
            "framenavigated": on_frame_navigated,
            "close": on_close,
        }
        for event, handler in state.handlers.items():
            page.on(event, handler)

    def detach(self, page: Page) -> None:
        """Stop watching *page* and cancel pending analysis."""
        state = self._pages.pop(page, None)
        if state is None:
            return
        for event, handler in state.handlers.items():
            with contextlib.suppress(Exception):
                page.remove_listener(event, handler)
        state.handlers = {}
        for task in list(state.tasks):
            task.cancel()

    async def aclose(self) -> None:
        """Detach every page and wait for cancelled work to unwind."""
        tasks = [task for s in self._pages.values() for task in s.tasks]
        for page in list(self._pages):
            self.detach(page)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

    def _on_response(self, page: Page, state: _PageWatch, response: Response) -> None:
        if state.navigating:
            return
        try:
            if not response.request.is_navigation_request() or response.frame != page.main_frame:
                return
        except Exception:
            return
        state.document_response = response

    def _on_frame_navigated(self, page: Page, state: _PageWatch, frame: Frame) -> None:
        if state.navigating or frame != page.main_frame:
            return
        url = frame.url
        if url == state.last_url:
            return
        state.last_url = url
        response, state.document_response = state.document_response, None
        self._schedule(page, state, response)

    def _schedule(self, page: Page, state: _PageWatch, response: Response | None) -> None:
        # Only collapse work still in its quiet window; an analysis that has
        # started is left to finish.
        if state.sleeping is not None:
            state.sleeping.cancel()
        task = asyncio.get_running_loop().create_task(self._run_debounced(page, state, response))
        state.tasks.add(task)
        task.add_done_callback(state.tasks.discard)
        state.sleeping = task

    async def _run_debounced(self, page: Page, state: _PageWatch, response: Response | None) -> None:
        await asyncio.sleep(self._debounce_s)
        if state.sleeping is asyncio.current_task():
            state.sleeping = None
        if page.is_closed():
            return
        if response is not None:
            result = await self._engine.analyze_navigation(page, response)
        else:
            result = await self._engine.analyze_spa(page)
        state.last_result = result
        logger.debug("Watched navigation analyzed: %s -> %s", result.url, result.tier)
