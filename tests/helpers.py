"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``.

    Example:
        from tests.helpers import FakeClock

        clock = FakeClock()
        registry = InsertionPointRegistry(model, clock=clock)
        clock.advance(0.6)
    """

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingProducer:
    """Remark producer stub that records the sentence texts it was asked about.

    ``replies`` are returned in order and then repeated from the start. Set
    ``gate`` to an :class:`asyncio.Event` to hold every call until it is set,
    and ``error`` to make every call raise.
    """

    def __init__(self, *replies: str, error: Exception | None = None) -> None:
        self.replies = list(replies) or ["Consider tightening this."]
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, sentence_text: str) -> str:
        self.calls.append(sentence_text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.replies[(len(self.calls) - 1) % len(self.replies)]
