"""
Pytest configuration for the aether test suite.

Shared fixtures for wire-level adapter tests: a recording ``httpx``
``MockTransport`` that replies with queued responses and keeps every request
it saw.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that answers from a queue and records requests.

    Queue entries are either ``httpx.Response`` objects, exceptions to raise,
    or callables ``(request) -> httpx.Response``.
    """

    def __init__(self, *responses: Any) -> None:
        self.requests: list[httpx.Request] = []
        self._queue: list[Any] = list(responses)
        super().__init__(self._handle)

    def queue(self, *responses: Any) -> None:
        self._queue.extend(responses)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def json_at(self, index: int) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture
def make_transport() -> Callable[..., RecordingTransport]:
    """Factory fixture: ``make_transport(resp1, resp2, ...)``."""
    return RecordingTransport
