# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Capability shapes the engine needs from a browser-automation layer.

The protocols mirror Playwright's async Python API, so
``playwright.async_api.Page`` / ``Response`` / ``Request`` satisfy them
structurally.  Other drivers plug in through a thin adapter exposing the same
members.  Every member may raise; the engine treats failures as "no signal".
"""

from __future__ import annotations

from collections.abc import Awaitable, Mapping
from typing import Any, Protocol, runtime_checkable

from .models import DetectionResult


@runtime_checkable
class PageLike(Protocol):
    """Page capability: current URL, title, and in-page evaluation."""

    @property
    def url(self) -> str: ...

    async def title(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...


@runtime_checkable
class SettlingPage(PageLike, Protocol):
    """Page that can report a load-settled ("network idle") condition."""

    async def wait_for_load_state(self, state: str = ..., *, timeout: float | None = None) -> None: ...


class RequestLike(Protocol):
    """One request in a redirect chain."""

    @property
    def url(self) -> str: ...

    @property
    def redirected_from(self) -> RequestLike | None: ...

    async def response(self) -> ResponseLike | None: ...


class ResponseLike(Protocol):
    """Response capability: status, headers, and (optionally) its request."""

    @property
    def status(self) -> int: ...

    @property
    def headers(self) -> Mapping[str, str]: ...

    @property
    def url(self) -> str: ...


class DetectionSink(Protocol):
    """Observer invoked after every finalized analysis, including "clear" ones.

    May be a plain function or a coroutine function; the engine awaits the
    return value when it is awaitable.  The sink decides whether to act
    (add a routing rule, reload); the engine only reports.
    """

    def __call__(self, result: DetectionResult, page: Any) -> Awaitable[None] | None: ...
