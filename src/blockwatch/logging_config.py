# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging setup for processes that run the detection engine.

structlog + stdlib bridge for everything (ConsoleRenderer for humans,
JSONRenderer for log shippers), plus an optional calibration sink: a JSON
Lines file holding one ``detection_result`` payload per finalized analysis,
the raw material for re-tuning detector weights against real traffic::

    from blockwatch import configure_logging
    configure_logging(json_output=True, calibration_log="detections.jsonl")
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from .formatting import LOG_EVENT

# Emitted by BlockDetectionEngine._log
DETECTION_LOGGER = "blockwatch.engine"

_PREFIX = LOG_EVENT + " "


class _DetectionLineFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().startswith(_PREFIX)


class _PayloadFormatter(logging.Formatter):
    """Strips the event prefix, leaving the JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()[len(_PREFIX) :]


class _CalibrationHandler(logging.FileHandler):
    """Marker type so reconfiguring replaces the previous sink."""


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _install_calibration_sink(path: str | Path | None) -> None:
    detection_logger = logging.getLogger(DETECTION_LOGGER)
    previous = [h for h in detection_logger.handlers if isinstance(h, _CalibrationHandler)]
    for old in previous:
        detection_logger.removeHandler(old)
        old.close()
    if path is None:
        if previous:
            detection_logger.setLevel(logging.NOTSET)
        return

    sink = _CalibrationHandler(Path(path), encoding="utf-8")
    sink.addFilter(_DetectionLineFilter())
    sink.setFormatter(_PayloadFormatter())
    detection_logger.addHandler(sink)
    # Non-verbose engines log detection lines at DEBUG.
    detection_logger.setLevel(logging.DEBUG)


def configure(
    *,
    json_output: bool = False,
    level: str = "INFO",
    calibration_log: str | Path | None = None,
) -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines, False for human-readable.
        level: Level for the stderr handler (default INFO).  Detection lines
            reach stderr only when the engine is verbose or this is DEBUG.
        calibration_log: Path of a JSON Lines file receiving every
            ``detection_result`` payload regardless of ``level``.  Calling
            again without it removes a previously installed file.
    """
    shared = _shared_processors()
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=shared,
    )

    stderr_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    # The calibration sink lowers blockwatch.engine to DEBUG; records that
    # propagate from it must still respect the stderr level.
    handler.setLevel(stderr_level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(stderr_level)

    _install_calibration_sink(calibration_log)
