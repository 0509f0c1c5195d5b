"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from marginalia.editor.document_model import DocumentModel, default_document
from marginalia.ui.events import Event, EventBus
from tests.helpers import FakeClock, RecordingProducer


@pytest.fixture
def bus() -> EventBus[Event]:
    return EventBus()


@pytest.fixture
def model(bus: EventBus[Event]) -> DocumentModel:
    return DocumentModel(default_document(), bus=bus)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def producer() -> RecordingProducer:
    return RecordingProducer("First remark.", "Second remark.")


@pytest.fixture
def record(bus: EventBus[Event]) -> Callable[..., list[Any]]:
    """Return a helper that collects every published event of the given types."""

    def _record(*event_types: type[Event]) -> list[Any]:
        received: list[Any] = []
        for event_type in event_types:
            bus.subscribe(event_type, received.append)
        return received

    return _record
