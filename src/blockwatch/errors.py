# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""BlockWatch exception hierarchy.

The detection engine itself never raises for bad page state: probe failures
degrade to "no signal". These exceptions cover the caller-facing surfaces
(configuration loading and validation).
"""

from __future__ import annotations


class BlockWatchError(Exception):
    """Base exception for all BlockWatch errors."""


class ConfigError(BlockWatchError, ValueError):
    """Invalid configuration value or unreadable configuration file.

    ``option`` names the offending field when one is known.
    """

    def __init__(self, message: str, *, option: str = "") -> None:
        super().__init__(message)
        self.option = option
