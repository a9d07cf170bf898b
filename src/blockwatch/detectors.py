# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Independent block-signal detectors.

Each detector inspects one facet of a navigation outcome and emits zero or
one weighted :class:`Signal` (the visible-text detector may emit up to three
differently named ones).  No detector looks at another detector's output.

Two families:

- **Response detectors** (status, headers, redirect target): synchronous,
  need no DOM, runnable in both passes and idempotent.
- **Content detectors** (title, selectors, visible text, text ratio, meta
  refresh): await in-page probes, full/SPA pass only.

Every probe failure (detached frame, navigation race, closed page) is
swallowed and logged at DEBUG: the detector abstains instead of failing the
analysis.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .config import EngineConfig
from .matching import KeywordTable
from .models import Pass, RedirectHop, Signal
from .redirects import match_challenge_domain

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

W_STATUS_BLOCKING = 0.85
W_STATUS_503 = 0.60
W_CF_MITIGATED = 0.90
W_SERVER_CLOUDFLARE = 0.10
W_TITLE_KEYWORD = 0.80
W_CHALLENGE_SELECTOR = 0.80
W_TEXT_SHORT = 0.20
W_TEXT_STRONG = 0.60
W_TEXT_WEAK = 0.15
W_LOW_TEXT_RATIO = 0.20
W_REDIRECT_CHALLENGE = 0.70
W_META_REFRESH_CHALLENGE = 0.65

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

SHORT_TEXT_CHARS = 50
# Strong keywords only count on near-empty pages; long articles mention
# "captcha" legitimately.
STRONG_KEYWORD_MAX_TEXT_CHARS = 500
RATIO_MIN_HTML_CHARS = 1000
RATIO_MAX = 0.03

# ---------------------------------------------------------------------------
# Built-in keyword lists
# ---------------------------------------------------------------------------

TITLE_KEYWORDS: tuple[str, ...] = (
    "access denied",
    "blocked",
    "forbidden",
    "security check",
    "attention required",
    "just a moment",
)

STRONG_TEXT_KEYWORDS: tuple[str, ...] = (
    "captcha",
    "access denied",
    "verify you are human",
    "bot detection",
)

WEAK_TEXT_KEYWORDS: tuple[str, ...] = (
    "blocked",
    "forbidden",
    "cloudflare",
    "please verify",
    "unusual activity",
)

# Names of the signals re-derived when a suspected result is re-checked
# against rendered innerText.
VISIBLE_TEXT_PREFIX = "visible_text_"

# ---------------------------------------------------------------------------
# In-page probes (Playwright evaluate() function strings)
# ---------------------------------------------------------------------------

_TEXT_CONTENT_JS = "() => (document.body ? document.body.textContent : '') || ''"

_INNER_TEXT_JS = "() => (document.body ? document.body.innerText : '') || ''"

_CHALLENGE_SELECTOR_JS = """(selectors) => {
  for (const sel of selectors) {
    try {
      if (document.querySelector(sel)) return sel;
    } catch (e) {
      // invalid selector syntax: skip it, keep checking the rest
    }
  }
  return null;
}"""

_HTML_RATIO_JS = """() => {
  const html = document.documentElement ? document.documentElement.outerHTML : '';
  const text = document.body ? (document.body.textContent || '') : '';
  return { htmlLength: html.length, textLength: text.length };
}"""

_META_REFRESH_JS = """() => {
  const meta = document.querySelector('meta[http-equiv="refresh" i]');
  return meta ? (meta.getAttribute('content') || '') : null;
}"""

_META_REFRESH_URL_RE = re.compile(r"url\s*=\s*(.+)", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectorTables:
    """Keyword tables compiled once per configuration update."""

    title: KeywordTable
    strong_text: KeywordTable
    weak_text: KeywordTable

    @classmethod
    def from_config(cls, config: EngineConfig) -> DetectorTables:
        return cls(
            title=KeywordTable.build((*TITLE_KEYWORDS, *config.extra_keywords)),
            strong_text=KeywordTable.build((*STRONG_TEXT_KEYWORDS, *config.extra_keywords)),
            weak_text=KeywordTable.build(WEAK_TEXT_KEYWORDS),
        )


# ---------------------------------------------------------------------------
# Response detectors
# ---------------------------------------------------------------------------


def read_status(response: Any) -> int:
    """Response status, or 0 when unavailable."""
    if response is None:
        return 0
    try:
        return int(response.status or 0)
    except Exception:
        logger.debug("Response status unavailable", exc_info=True)
        return 0


def _read_headers(response: Any) -> dict[str, str]:
    raw: Mapping[str, str] | None = response.headers
    if not raw:
        return {}
    return {str(k).lower(): str(v) for k, v in raw.items()}


def detect_http_status(
    response: Any,
    blocking_codes: Collection[int],
    source: Pass = Pass.FAST,
) -> Signal | None:
    status = read_status(response)
    if status == 0:
        return None
    if status in blocking_codes:
        return Signal(f"http_status_{status}", W_STATUS_BLOCKING, f"HTTP {status} response", source)
    if status == 503:
        return Signal("http_status_503", W_STATUS_503, "HTTP 503 response", source)
    return None


def detect_response_headers(response: Any, source: Pass = Pass.FAST) -> list[Signal]:
    """WAF headers.  The weak ``server: cloudflare`` hint only counts when
    no stronger WAF header fired."""
    if response is None:
        return []
    try:
        headers = _read_headers(response)
    except Exception:
        logger.debug("Response headers unavailable", exc_info=True)
        return []

    mitigated = headers.get("cf-mitigated", "")
    if "challenge" in mitigated.lower():
        return [Signal("waf_header_cf_mitigated", W_CF_MITIGATED, f"cf-mitigated: {mitigated}", source)]

    server = headers.get("server", "")
    if "cloudflare" in server.lower():
        return [Signal("waf_header_cloudflare", W_SERVER_CLOUDFLARE, f"server: {server}", source)]
    return []


def detect_redirect_to_challenge(
    chain: Sequence[RedirectHop],
    final_url: str = "",
    source: Pass = Pass.FULL,
) -> Signal | None:
    """Fires once if any hop, or the final response URL, is a challenge host."""
    for hop in chain:
        if match_challenge_domain(hop.url):
            return Signal(
                "redirect_to_challenge",
                W_REDIRECT_CHALLENGE,
                f"Redirect through challenge domain: {hop.url}",
                source,
            )
    if match_challenge_domain(final_url):
        return Signal(
            "redirect_to_challenge",
            W_REDIRECT_CHALLENGE,
            f"Final URL is challenge domain: {final_url}",
            source,
        )
    return None


def read_response_url(response: Any) -> str:
    if response is None:
        return ""
    try:
        return response.url or ""
    except Exception:
        return ""


# ---------------------------------------------------------------------------
# Content detectors
# ---------------------------------------------------------------------------


async def detect_title_keywords(page: Any, table: KeywordTable) -> Signal | None:
    try:
        title = await page.title()
    except Exception:
        logger.debug("Title probe failed", exc_info=True)
        return None
    keyword = table.first_word_match(title or "")
    if keyword is None:
        return None
    return Signal("title_keyword", W_TITLE_KEYWORD, f'Title contains "{keyword}"', Pass.FULL)


async def detect_challenge_selectors(page: Any, selectors: Sequence[str]) -> Signal | None:
    if not selectors:
        return None
    try:
        found = await page.evaluate(_CHALLENGE_SELECTOR_JS, list(selectors))
    except Exception:
        logger.debug("Challenge selector probe failed", exc_info=True)
        return None
    if not found:
        return None
    return Signal("challenge_selector", W_CHALLENGE_SELECTOR, f"Challenge selector found: {found}", Pass.FULL)


async def detect_visible_text(
    page: Any,
    tables: DetectorTables,
    *,
    use_inner_text: bool = False,
) -> list[Signal]:
    """Short-page, strong-keyword and weak-keyword signals from body text.

    ``textContent`` by default; ``innerText`` (rendered, visible text only) on
    re-evaluation of a suspected result.
    """
    try:
        text = await page.evaluate(_INNER_TEXT_JS if use_inner_text else _TEXT_CONTENT_JS)
    except Exception:
        logger.debug("Visible text probe failed", exc_info=True)
        return []
    if not isinstance(text, str):
        text = ""

    signals: list[Signal] = []
    length = len(text)
    if length < SHORT_TEXT_CHARS:
        signals.append(
            Signal("visible_text_short", W_TEXT_SHORT, f"Visible text very short ({length} chars)", Pass.FULL)
        )

    if length < STRONG_KEYWORD_MAX_TEXT_CHARS:
        strong = tables.strong_text.first_substring_match(text)
        if strong is not None:
            signals.append(
                Signal(
                    "visible_text_keyword_strong",
                    W_TEXT_STRONG,
                    f'Strong keyword "{strong}" on short page',
                    Pass.FULL,
                )
            )

    weak = tables.weak_text.first_word_match(text)
    if weak is not None:
        signals.append(
            Signal(
                "visible_text_keyword_weak",
                W_TEXT_WEAK,
                f'Weak keyword "{weak}" found with word boundary',
                Pass.FULL,
            )
        )
    return signals


async def detect_text_to_html_ratio(page: Any) -> Signal | None:
    """Lengths are JS string lengths (UTF-16 code units) measured in-page."""
    try:
        raw = await page.evaluate(_HTML_RATIO_JS)
    except Exception:
        logger.debug("Text/HTML ratio probe failed", exc_info=True)
        return None
    if not isinstance(raw, dict):
        return None
    try:
        html_length = int(raw.get("htmlLength") or 0)
        text_length = int(raw.get("textLength") or 0)
    except (TypeError, ValueError):
        return None
    if html_length < RATIO_MIN_HTML_CHARS:
        return None
    if text_length / html_length >= RATIO_MAX:
        return None
    return Signal(
        "low_text_ratio",
        W_LOW_TEXT_RATIO,
        f"Low text/HTML ratio: {text_length}/{html_length}",
        Pass.FULL,
    )


def parse_meta_refresh_url(content: str) -> str | None:
    """Extract the target from a ``<meta http-equiv=refresh>`` content value.

    ``"5; url='https://x/'"`` → ``"https://x/"``.
    """
    m = _META_REFRESH_URL_RE.search(content or "")
    if not m:
        return None
    target = m.group(1).strip().strip("'\"").strip()
    return target or None


async def detect_meta_refresh(page: Any) -> Signal | None:
    try:
        content = await page.evaluate(_META_REFRESH_JS)
    except Exception:
        logger.debug("Meta refresh probe failed", exc_info=True)
        return None
    if not isinstance(content, str):
        return None
    target = parse_meta_refresh_url(content)
    if target is None or match_challenge_domain(target) is None:
        return None
    return Signal(
        "meta_refresh_challenge",
        W_META_REFRESH_CHALLENGE,
        f"Meta refresh to challenge URL: {target}",
        Pass.FULL,
    )
