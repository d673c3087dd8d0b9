"""Shared fixtures for memory plugin tests."""

import json
from typing import Callable, List

import httpx
import pytest

from core.memory_adapter.config import resolve_runtime_config


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def bodies(self) -> list:
        return [json.loads(request.content.decode("utf-8")) for request in self.requests]


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff never waits on the wall clock."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_transport():
    return RecordingTransport


@pytest.fixture
def raw_config():
    return {
        "baseUrl": "https://api.datagran.com",
        "apiKey": "sk_live_abc123",
        "http": {"timeoutMs": 5000, "retries": 2},
    }


@pytest.fixture
def runtime_config(raw_config):
    return resolve_runtime_config(raw_config)
