# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Two-pass block-detection orchestrator.

Per navigation:

1. **Fast pass**: status + headers only, safe before the DOM is ready.
   A fast score already at the blocked threshold short-circuits.
2. **Settle**: wait for ``networkidle``, bounded by
   ``network_idle_timeout_ms``; on timeout the full pass runs anyway.
3. **Full pass**: response detectors re-run, content probes run
   concurrently, signals merged with the fast pass by name (fast wins).
   A "suspected" outcome is re-checked once against rendered ``innerText``.

SPA transitions (URL change without a new response) run the content
detectors only.  Finalized results go through the persistent-block tracker,
one ``detection_result`` log line, and the ``on_detection`` sink.
:func:`blockwatch.configure_logging` can route those lines to a calibration
file.

The engine never raises for page/response failures and never reloads
anything: callers act on ``tier`` / ``persistent_block``.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
import logging
from typing import Any

from .capabilities import DetectionSink, PageLike, ResponseLike
from .config import EngineConfig
from .detectors import (
    VISIBLE_TEXT_PREFIX,
    DetectorTables,
    detect_challenge_selectors,
    detect_http_status,
    detect_meta_refresh,
    detect_redirect_to_challenge,
    detect_response_headers,
    detect_text_to_html_ratio,
    detect_title_keywords,
    detect_visible_text,
    read_response_url,
)
from .formatting import build_result, extract_hostname, format_log_line
from .models import DetectionResult, Pass, Signal, Tier
from .redirects import walk_redirect_chain
from .scoring import classify_tier, merge_signals, score_signals
from .tracker import PersistentBlockTracker

logger = logging.getLogger(__name__)


def _page_url(page: Any) -> str:
    try:
        return page.url or ""
    except Exception:
        logger.debug("Page URL unavailable", exc_info=True)
        return ""


class BlockDetectionEngine:
    """Classifies navigation outcomes as clear / suspected / blocked.

    One instance may serve many pages concurrently; the tracker is the only
    state shared between analyses.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        on_detection: DetectionSink | None = None,
        tracker: PersistentBlockTracker | None = None,
        verbose: bool = False,
    ) -> None:
        cfg = config or EngineConfig()
        self._settings: tuple[EngineConfig, DetectorTables] = (cfg, DetectorTables.from_config(cfg))
        self._tracker = tracker or PersistentBlockTracker()
        self._on_detection = on_detection
        self._log_level = logging.INFO if verbose else logging.DEBUG

    # -- configuration / state ---------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._settings[0]

    @property
    def tracker(self) -> PersistentBlockTracker:
        return self._tracker

    @property
    def enabled(self) -> bool:
        return self._settings[0].enabled

    def update_config(self, config: EngineConfig) -> None:
        """Replace the config wholesale; analyses already running keep theirs."""
        self._settings = (config, DetectorTables.from_config(config))
        logger.debug("Block detection config updated (enabled=%s)", config.enabled)

    def set_on_detection(self, sink: DetectionSink | None) -> None:
        self._on_detection = sink

    def reset(self) -> None:
        """Forget retried URLs and persistent hostnames."""
        self._tracker.reset()

    def should_act(self, result: DetectionResult) -> bool:
        """Whether the caller's auto-reload policy applies to *result*."""
        if result.persistent_block:
            return False
        cfg = self._settings[0]
        if result.tier is Tier.BLOCKED:
            return cfg.auto_reload
        if result.tier is Tier.SUSPECTED:
            return cfg.auto_reload_on_suspected
        return False

    # -- entry points -------------------------------------------------------

    async def analyze_fast(self, page: PageLike, response: ResponseLike | None) -> DetectionResult:
        """Status/header pass.  Does not touch the tracker or the sink."""
        config, _ = self._settings
        url = _page_url(page)
        if not config.enabled:
            return build_result(url, (), Pass.FAST)
        result = self._fast_pass(url, response, config)
        self._log(result)
        return result

    async def analyze_full(
        self,
        page: PageLike,
        response: ResponseLike | None = None,
        fast_result: DetectionResult | None = None,
    ) -> DetectionResult:
        """Content-aware pass, merged with *fast_result* when supplied."""
        config, tables = self._settings
        url = _page_url(page)
        if not config.enabled:
            return build_result(url, (), Pass.FULL)

        hostname = extract_hostname(url)
        prior = fast_result.signals if fast_result is not None else ()
        response_signals = self._response_signals(response, config, Pass.FULL)

        if self._tracker.is_persistent(hostname):
            signals = merge_signals(prior, response_signals)
            return await self._finalize(page, build_result(url, signals, Pass.FULL, hostname=hostname))

        chain, content_signals = await asyncio.gather(
            walk_redirect_chain(response),
            self._content_signals(page, config, tables),
        )
        redirect_signal = detect_redirect_to_challenge(chain, read_response_url(response))
        full_signals = [*response_signals, *content_signals]
        if redirect_signal is not None:
            full_signals.append(redirect_signal)

        signals = await self._recheck_suspected(page, merge_signals(prior, full_signals), tables)
        return await self._finalize(
            page,
            build_result(url, signals, Pass.FULL, hostname=hostname, redirect_chain=chain),
        )

    async def analyze_spa(self, page: PageLike) -> DetectionResult:
        """In-page navigation: content detectors only, reported as a full pass."""
        config, tables = self._settings
        url = _page_url(page)
        if not config.enabled:
            return build_result(url, (), Pass.FULL)

        hostname = extract_hostname(url)
        if self._tracker.is_persistent(hostname):
            return await self._finalize(page, build_result(url, (), Pass.FULL, hostname=hostname))

        signals = await self._content_signals(page, config, tables)
        signals = await self._recheck_suspected(page, signals, tables)
        return await self._finalize(page, build_result(url, signals, Pass.FULL, hostname=hostname))

    async def analyze_navigation(self, page: PageLike, response: ResponseLike | None) -> DetectionResult:
        """Fast pass, short-circuit or settle, then full pass."""
        config, _ = self._settings
        url = _page_url(page)
        if not config.enabled:
            return build_result(url, (), Pass.FULL)

        fast = self._fast_pass(url, response, config)
        if fast.tier is Tier.BLOCKED:
            logger.debug("Fast pass short-circuit for %s (score=%.3f)", url, fast.score)
            return await self._finalize(page, fast)

        if not fast.persistent_block:
            await self.wait_for_settle(page)
        return await self.analyze_full(page, response, fast_result=fast)

    async def wait_for_settle(self, page: PageLike) -> bool:
        """Wait for ``networkidle`` within the configured budget.

        Returns True if the page settled, False on timeout, error, or when
        the page cannot report load state.  Never raises except on
        cancellation, which also cancels the pending load-state wait.
        """
        waiter = getattr(page, "wait_for_load_state", None)
        if waiter is None:
            return False
        budget_s = self._settings[0].network_idle_timeout_s
        try:
            idle_task = asyncio.ensure_future(waiter("networkidle"))
        except Exception:
            logger.debug("networkidle wait could not start", exc_info=True)
            return False

        try:
            done, _pending = await asyncio.wait({idle_task}, timeout=budget_s)
        finally:
            if not idle_task.done():
                idle_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await idle_task

        if idle_task in done:
            exc = idle_task.exception()
            if exc is None:
                return True
            logger.debug("networkidle completed with error: %s", exc)
            return False

        logger.debug("networkidle budget exceeded (%.1fs), running full pass anyway", budget_s)
        return False

    # -- internals ----------------------------------------------------------

    def _fast_pass(self, url: str, response: Any, config: EngineConfig) -> DetectionResult:
        hostname = extract_hostname(url)
        return build_result(
            url,
            self._response_signals(response, config, Pass.FAST),
            Pass.FAST,
            hostname=hostname,
            persistent_block=self._tracker.is_persistent(hostname),
        )

    @staticmethod
    def _response_signals(response: Any, config: EngineConfig, source: Pass) -> list[Signal]:
        if response is None:
            return []
        signals: list[Signal] = []
        status_signal = detect_http_status(response, config.blocking_status_codes, source)
        if status_signal is not None:
            signals.append(status_signal)
        signals.extend(detect_response_headers(response, source))
        return signals

    @staticmethod
    async def _content_signals(page: Any, config: EngineConfig, tables: DetectorTables) -> list[Signal]:
        # Independent read-only probes; combine only after all have settled.
        title, selector, text, ratio, meta = await asyncio.gather(
            detect_title_keywords(page, tables.title),
            detect_challenge_selectors(page, config.challenge_selectors),
            detect_visible_text(page, tables),
            detect_text_to_html_ratio(page),
            detect_meta_refresh(page),
        )
        signals: list[Signal] = [s for s in (title, selector) if s is not None]
        signals.extend(text)
        signals.extend(s for s in (ratio, meta) if s is not None)
        return signals

    @staticmethod
    async def _recheck_suspected(page: Any, signals: list[Signal], tables: DetectorTables) -> list[Signal]:
        """Re-derive visible-text signals from ``innerText`` when suspected.

        ``textContent`` counts script/style text and hidden nodes, which can
        push ordinary pages into the suspected band.
        """
        if classify_tier(score_signals(signals)) is not Tier.SUSPECTED:
            return signals
        kept = [s for s in signals if not s.name.startswith(VISIBLE_TEXT_PREFIX)]
        kept.extend(await detect_visible_text(page, tables, use_inner_text=True))
        return kept

    async def _finalize(self, page: Any, result: DetectionResult) -> DetectionResult:
        persistent = self._tracker.record(result.url, result.hostname, result.tier)
        if persistent != result.persistent_block:
            result = dataclasses.replace(result, persistent_block=persistent)
        self._log(result)
        await self._notify(result, page)
        return result

    async def _notify(self, result: DetectionResult, page: Any) -> None:
        sink = self._on_detection
        if sink is None:
            return
        try:
            ret = sink(result, page)
            if inspect.isawaitable(ret):
                await ret
        except Exception:
            logger.warning("on_detection callback failed for %s", result.url, exc_info=True)

    def _log(self, result: DetectionResult) -> None:
        if logger.isEnabledFor(self._log_level):
            logger.log(self._log_level, "%s", format_log_line(result))
