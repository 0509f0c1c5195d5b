"""Asynchronous creation, cycling and resolution of sentence remarks."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import DefaultDict, Sequence

from ..ai.remark_producer import RemarkProducer
from ..editor.document_model import DocumentModel
from ..ui.events import Event, EventBus, RemarkDropped
from .cycling import next_remark_id

LOGGER = logging.getLogger(__name__)

DEFAULT_REMARK_DELAYS: tuple[float, ...] = (2.0, 5.0)
ERROR_REMARK_PREFIX = "Error generating remark"


class RemarkPhase(enum.Enum):
    """Lifecycle phase of a remark."""

    PENDING = "pending"
    VISIBLE = "visible"
    REJOINED = "rejoined"
    DROPPED = "dropped"


@dataclass(slots=True, eq=False)
class PendingRemark:
    """Ticket for one scheduled remark.

    Attributes:
        sentence_id: Sentence the remark will attach to.
        delay: Seconds between scheduling and asking the producer.
        phase: Current lifecycle phase.
        remark_id: Id of the materialized remark once visible.
    """

    sentence_id: str
    delay: float
    phase: RemarkPhase = RemarkPhase.PENDING
    remark_id: str | None = None
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class RemarkLifecycleManager:
    """Schedules remarks after sentence commits and resolves them later.

    Scheduled remarks are never cancelled when their sentence is edited,
    moved or deleted. Instead each task checks that the sentence still exists
    when it resumes and drops the remark otherwise. Tasks resolve in whatever
    order their delays and the producer dictate.
    """

    def __init__(
        self,
        model: DocumentModel,
        producer: RemarkProducer,
        *,
        bus: EventBus[Event] | None = None,
        delays: Sequence[float] = DEFAULT_REMARK_DELAYS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._model = model
        self._producer = producer
        self._bus = bus
        self._delays = tuple(max(0.0, float(delay)) for delay in delays)
        self._loop = loop
        self._queue: DefaultDict[str, list[PendingRemark]] = defaultdict(list)

    @property
    def delays(self) -> tuple[float, ...]:
        return self._delays

    @property
    def pending_count(self) -> int:
        return sum(len(tickets) for tickets in self._queue.values())

    def pending(self, sentence_id: str) -> tuple[PendingRemark, ...]:
        return tuple(self._queue.get(sentence_id, ()))

    def phase(self, remark_id: str) -> RemarkPhase | None:
        remark = self._model.find_remark(remark_id)
        if remark is None:
            return None
        return RemarkPhase.REJOINED if remark.rejoined else RemarkPhase.VISIBLE

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule_remarks(self, sentence_id: str) -> list[PendingRemark]:
        """Arm one delayed remark per configured delay for ``sentence_id``."""

        if self._model.find_sentence(sentence_id) is None:
            LOGGER.warning("Not scheduling remarks for unknown sentence %s", sentence_id)
            return []
        loop = self._resolve_loop()
        if loop is None:
            LOGGER.warning("No running event loop; remarks for %s were not scheduled", sentence_id)
            return []
        tickets: list[PendingRemark] = []
        for delay in self._delays:
            ticket = PendingRemark(sentence_id=sentence_id, delay=delay)
            ticket.task = loop.create_task(self._materialize(ticket))
            self._queue[sentence_id].append(ticket)
            tickets.append(ticket)
        LOGGER.debug("Scheduled %d remark(s) for sentence %s", len(tickets), sentence_id)
        return tickets

    async def drain(self) -> None:
        """Wait until every scheduled remark has resolved."""

        while True:
            tasks = [
                ticket.task
                for tickets in self._queue.values()
                for ticket in tickets
                if ticket.task is not None and not ticket.task.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding remark tasks, e.g. when the application exits."""

        tasks = [
            ticket.task
            for tickets in self._queue.values()
            for ticket in tickets
            if ticket.task is not None and not ticket.task.done()
        ]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._queue.clear()

    async def _materialize(self, ticket: PendingRemark) -> None:
        try:
            if ticket.delay:
                await asyncio.sleep(ticket.delay)
            sentence = self._model.find_sentence(ticket.sentence_id)
            if sentence is None:
                self._drop(ticket, "sentence removed before the producer was called")
                return
            text = await self._generate(sentence.text)
            if self._model.find_sentence(ticket.sentence_id) is None:
                self._drop(ticket, "sentence removed while the producer was running")
                return
            remark_id = self._model.append_remark(ticket.sentence_id, text)
            if remark_id is None:
                self._drop(ticket, "remark could not be attached")
                return
            ticket.remark_id = remark_id
            ticket.phase = RemarkPhase.VISIBLE
        finally:
            self._forget(ticket)

    async def _generate(self, sentence_text: str) -> str:
        try:
            return await self._producer.generate(sentence_text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Remark producer failed: %s", exc)
            return f"{ERROR_REMARK_PREFIX}: {exc}"

    def _drop(self, ticket: PendingRemark, reason: str) -> None:
        ticket.phase = RemarkPhase.DROPPED
        LOGGER.debug("Dropping remark for sentence %s: %s", ticket.sentence_id, reason)
        if self._bus is not None:
            self._bus.publish(RemarkDropped(sentence_id=ticket.sentence_id, reason=reason))

    def _forget(self, ticket: PendingRemark) -> None:
        tickets = self._queue.get(ticket.sentence_id)
        if not tickets:
            return
        with contextlib.suppress(ValueError):
            tickets.remove(ticket)
        if not tickets:
            self._queue.pop(ticket.sentence_id, None)

    def _resolve_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    # ------------------------------------------------------------------
    # Navigation & resolution
    # ------------------------------------------------------------------
    def cycle_emphasized_remark(
        self, sentence_id: str, emphasized_remark_id: str | None = None
    ) -> str | None:
        """Return the next open remark on ``sentence_id`` after the emphasized one."""

        sentence = self._model.find_sentence(sentence_id)
        if sentence is None:
            LOGGER.warning("Cannot cycle remarks of unknown sentence %s", sentence_id)
            return None
        return next_remark_id(sentence.remarks, emphasized_remark_id)

    def respond(self, remark_id: str, text: str) -> str | None:
        """Reply to a remark: new paragraph after its sentence, remark rejoined."""

        remark = self._model.find_remark(remark_id)
        if remark is None:
            LOGGER.warning("Cannot respond to unknown remark %s", remark_id)
            return None
        cleaned = text.strip()
        if not cleaned:
            return None
        return self._model.add_paragraph_after_sentence(
            remark.sentence_id, cleaned, rejoined_remark_id=remark_id
        )


__all__ = [
    "DEFAULT_REMARK_DELAYS",
    "ERROR_REMARK_PREFIX",
    "PendingRemark",
    "RemarkLifecycleManager",
    "RemarkPhase",
]
