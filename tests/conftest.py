# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import blockwatch  # noqa: F401
except ImportError:
    raise ImportError("blockwatch is not installed. Run: pip install -e '.[dev]'") from None

import logging

import pytest

from blockwatch.config import EngineConfig
from blockwatch.engine import BlockDetectionEngine


@pytest.fixture
def engine() -> BlockDetectionEngine:
    """Engine with default config and a fresh tracker."""
    return BlockDetectionEngine(EngineConfig())


@pytest.fixture
def recorded(engine):
    """Engine whose on_detection sink appends (result, page) pairs to a list."""
    calls: list = []
    engine.set_on_detection(lambda result, page: calls.append((result, page)))
    return calls


@pytest.fixture
def debug_logs(caplog):
    """Capture blockwatch DEBUG records."""
    caplog.set_level(logging.DEBUG, logger="blockwatch")
    return caplog
