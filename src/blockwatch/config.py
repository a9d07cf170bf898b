# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Engine configuration: immutable per analysis, replaced wholesale between calls.

Merge rules:

- ``challenge_selectors``: when supplied, replaces the default set entirely.
- ``extra_keywords``: appended to the built-in title/strong-text keywords.
- ``extra_status_codes``: appended to the built-in ``{403, 429}`` set.

Loaders (:meth:`EngineConfig.from_mapping`, :meth:`EngineConfig.from_env`,
:func:`load_config`) ignore unrecognized options and fall back to defaults
for missing ones.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_SELECTORS: tuple[str, ...] = (
    "#challenge-form",
    "#challenge-running",
    ".cf-browser-verification",
    'iframe[src*="recaptcha"]',
    ".g-recaptcha",
    "#px-captcha",
    'iframe[src*="hcaptcha"]',
    ".h-captcha",
)

BASE_STATUS_CODES: tuple[int, ...] = (403, 429)

DEFAULT_NETWORK_IDLE_TIMEOUT_MS = 3000

ENV_PREFIX = "BLOCKWATCH_"

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")

# camelCase spellings accepted by from_mapping (JSON/JS-style configs)
_CAMEL_ALIASES: dict[str, str] = {
    "challengeSelectors": "challenge_selectors",
    "extraKeywords": "extra_keywords",
    "extraStatusCodes": "extra_status_codes",
    "networkIdleTimeoutMs": "network_idle_timeout_ms",
    "autoReload": "auto_reload",
    "autoReloadOnSuspected": "auto_reload_on_suspected",
}


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Recognized block-detection options."""

    enabled: bool = True
    challenge_selectors: tuple[str, ...] = DEFAULT_CHALLENGE_SELECTORS
    extra_keywords: tuple[str, ...] = ()
    extra_status_codes: tuple[int, ...] = ()
    network_idle_timeout_ms: int = DEFAULT_NETWORK_IDLE_TIMEOUT_MS
    # Advisory for the caller; the engine never reloads anything itself.
    auto_reload: bool = False
    auto_reload_on_suspected: bool = False

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples so the config stays hashable.
        for name in ("challenge_selectors", "extra_keywords", "extra_status_codes"):
            value = getattr(self, name)
            if isinstance(value, str | bytes) or not isinstance(value, tuple | list | set | frozenset):
                raise ConfigError(f"{name} must be a sequence, got {type(value).__name__}", option=name)
            object.__setattr__(self, name, tuple(value))

        for sel in self.challenge_selectors:
            if not isinstance(sel, str) or not sel.strip():
                raise ConfigError(
                    f"challenge_selectors entries must be non-empty strings, got {sel!r}",
                    option="challenge_selectors",
                )
        for kw in self.extra_keywords:
            if not isinstance(kw, str) or not kw.strip():
                raise ConfigError(
                    f"extra_keywords entries must be non-empty strings, got {kw!r}",
                    option="extra_keywords",
                )
        for code in self.extra_status_codes:
            if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
                raise ConfigError(
                    f"extra_status_codes entries must be HTTP status codes, got {code!r}",
                    option="extra_status_codes",
                )
        if isinstance(self.network_idle_timeout_ms, bool) or not isinstance(self.network_idle_timeout_ms, int):
            raise ConfigError(
                f"network_idle_timeout_ms must be an int, got {self.network_idle_timeout_ms!r}",
                option="network_idle_timeout_ms",
            )
        if self.network_idle_timeout_ms < 0:
            raise ConfigError(
                f"network_idle_timeout_ms must be >= 0, got {self.network_idle_timeout_ms}",
                option="network_idle_timeout_ms",
            )
        for name in ("enabled", "auto_reload", "auto_reload_on_suspected"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be a bool, got {getattr(self, name)!r}", option=name)

    @property
    def blocking_status_codes(self) -> frozenset[int]:
        """High-confidence status codes: built-ins plus ``extra_status_codes``."""
        return frozenset((*BASE_STATUS_CODES, *self.extra_status_codes))

    @property
    def network_idle_timeout_s(self) -> float:
        return self.network_idle_timeout_ms / 1000

    # -- loaders ------------------------------------------------------------

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any] | None) -> EngineConfig:
        """Build a config from a plain mapping (snake_case or camelCase keys)."""
        if not options:
            return cls()
        if not isinstance(options, Mapping):
            raise ConfigError(f"block detection options must be a mapping, got {type(options).__name__}")

        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unrecognized block detection option: %s", key)
                continue
            if value is None:
                continue
            kwargs[name] = value

        try:
            return cls(**kwargs)
        except ConfigError as exc:
            raise ConfigError(f"Invalid block detection config: {exc}", option=exc.option) from exc
        except TypeError as exc:
            raise ConfigError(f"Invalid block detection config: {exc}") from exc

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build a config from ``BLOCKWATCH_*`` environment variables.

        Lists are comma-separated, except selectors which are ``;``-separated
        because CSS selector lists contain commas.  Malformed numbers are
        ignored.
        """
        env = os.environ if environ is None else environ
        options: dict[str, Any] = {}

        def _get(name: str) -> str:
            return env.get(ENV_PREFIX + name, "").strip()

        for name in ("ENABLED", "AUTO_RELOAD", "AUTO_RELOAD_ON_SUSPECTED"):
            raw = _get(name).lower()
            if raw in _TRUTHY:
                options[name.lower()] = True
            elif raw in _FALSY:
                options[name.lower()] = False

        selectors = _get("CHALLENGE_SELECTORS")
        if selectors:
            options["challenge_selectors"] = [s.strip() for s in selectors.split(";") if s.strip()]

        keywords = _get("EXTRA_KEYWORDS")
        if keywords:
            options["extra_keywords"] = [k.strip() for k in keywords.split(",") if k.strip()]

        codes = _get("EXTRA_STATUS_CODES")
        if codes:
            parsed: list[int] = []
            for part in codes.split(","):
                with suppress(ValueError):
                    parsed.append(int(part.strip()))
            options["extra_status_codes"] = parsed

        timeout = _get("NETWORK_IDLE_TIMEOUT_MS")
        if timeout:
            with suppress(ValueError):
                options["network_idle_timeout_ms"] = int(timeout)

        return cls.from_mapping(options)


def load_config(path: str | Path) -> EngineConfig:
    """Load a YAML config file.

    Uses the ``block_detection`` section when present, otherwise the whole
    document.  An empty file yields the defaults.
    """
    config_path = Path(path)
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if raw is None:
        return EngineConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    section = raw.get("block_detection", raw)
    return EngineConfig.from_mapping(section)
