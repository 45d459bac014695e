import asyncio
from typing import Any

import pytest

from lps_driver.client.auth import CancellationToken, UnauthorizedError
from lps_driver.shared.events import CHANNELS, EventSink
from lps_driver.shared.models import LongPollEvent, ServerDescriptor


class FakeLocator:
    """
    Hands out scripted descriptors; `None` entries (and an exhausted script)
    behave like a failed acquisition.
    """

    def __init__(self, *results: dict | None) -> None:
        self.results = list(results)
        self.calls = 0

    async def acquire(self) -> ServerDescriptor | None:
        self.calls += 1
        result = self.results.pop(0) if self.results else None
        return ServerDescriptor.model_validate(result) if result is not None else None


class ScriptedTransport:
    """
    Answers each poll with the next scripted body, raising it instead when it
    is an exception. Once the script runs out every poll fails as unauthorized,
    which terminates the loop under test.
    """

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.urls: list[str] = []

    async def get(self, url: str, token: CancellationToken) -> Any:
        self.urls.append(url)
        if token.cancelled:
            raise UnauthorizedError("User unauthorized")
        step = self.steps.pop(0) if self.steps else UnauthorizedError("script exhausted")
        if isinstance(step, BaseException):
            raise step
        return step

    async def aclose(self) -> None:
        pass


class FakeSleep:
    """Records requested delays and returns right away."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class Recorder:
    """EventSink consumer collecting every event from every channel."""

    def __init__(self, sink: EventSink) -> None:
        self.events: list[LongPollEvent] = []
        for channel in CHANNELS:
            sink.subscribe(channel, self.record)

    async def record(self, event: LongPollEvent) -> None:
        self.events.append(event)

    @property
    def channels(self) -> list[str]:
        return [event.channel for event in self.events]


DESCRIPTOR = {"server": "h", "key": "k", "ts": 999}


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()
