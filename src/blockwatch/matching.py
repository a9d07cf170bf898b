# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Word-boundary-safe keyword matching for text-based detectors.

``"blocked"`` matches ``"you are blocked"`` but not ``"blockchain"`` or
``"ad-blocking"``; ``"forbidden"`` does not match ``"forbiddenly"``.

Boundaries are expressed as ``(?<!\\w)`` / ``(?!\\w)`` lookarounds rather than
``\\b`` so keywords that start or end with punctuation (``"just a moment..."``)
still anchor correctly.  Python's ``\\w`` is Unicode-aware, so a non-ASCII
letter is a word character too: ``"blocked"`` does not match ``"blockedé"``,
where an ASCII-only ``\\b`` would.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache


@lru_cache(maxsize=256)
def compile_keyword(keyword: str) -> re.Pattern[str]:
    """Compile *keyword* into a case-insensitive word-bounded pattern."""
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


def matches(text: str, keyword: str) -> bool:
    """Return True if *keyword* occurs in *text* as a whole word/phrase."""
    if not keyword:
        return False
    return compile_keyword(keyword).search(text) is not None


@dataclass(frozen=True, slots=True)
class KeywordTable:
    """Precompiled keyword list; built once per configuration update."""

    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def build(cls, keywords: Iterable[str]) -> KeywordTable:
        # dedupe case-insensitively, first spelling wins
        seen: set[str] = set()
        kept: list[str] = []
        for kw in keywords:
            key = kw.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            kept.append(kw.strip())
        return cls(keywords=tuple(kept), patterns=tuple(compile_keyword(k) for k in kept))

    def first_word_match(self, text: str) -> str | None:
        """First keyword found with word boundaries, in table order."""
        for kw, pattern in zip(self.keywords, self.patterns, strict=True):
            if pattern.search(text):
                return kw
        return None

    def first_substring_match(self, text: str) -> str | None:
        """First keyword found as a plain case-insensitive substring.

        Used for high-confidence keywords where partial hits are desirable
        (``"captcha"`` inside ``"reCAPTCHA"``).
        """
        lowered = text.lower()
        for kw in self.keywords:
            if kw.lower() in lowered:
                return kw
        return None

    def __len__(self) -> int:
        return len(self.keywords)
