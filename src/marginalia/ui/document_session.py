"""Coordinator wiring the editing core to the message panel.

A :class:`DocumentSession` owns one document and every piece of editing
state around it. Renderers drive it through the binding objects from
:mod:`marginalia.ui.surface`; the message panel drives it through its
submit handler and the shared emphasis state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from ..ai.remark_producer import RemarkProducer
from ..chat.message_model import MessageType
from ..chat.message_panel import MessagePanel
from ..editor.document_model import Document, DocumentModel, InsertedParagraph, new_id
from ..editor.drag_reorder import DragReorderCoordinator, DragSource, HoverTarget
from ..editor.insertion_points import (
    DEFAULT_COMMIT_DEBOUNCE_SECONDS,
    CommitResult,
    InsertionPoint,
    InsertionPointRegistry,
    iter_insertion_points,
)
from ..editor.sentence_editor import DEFAULT_DOUBLE_CLICK_SECONDS, EditOutcome, SentenceEditor
from ..remarks.cycling import next_remark_id
from ..remarks.lifecycle import DEFAULT_REMARK_DELAYS, RemarkLifecycleManager
from .emphasis import EmphasisSynchronizer, plan_submission
from .events import (
    Event,
    EventBus,
    RemarkAdded,
    RemarkRejoined,
    RemarksCleared,
    SentenceCreated,
    SentenceRemoved,
    SentenceTextUpdated,
)
from .surface import InsertionPointBinding, SentenceBinding

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionOptions:
    """Tunable timings for a session."""

    remark_delays: Sequence[float] = DEFAULT_REMARK_DELAYS
    commit_debounce_seconds: float = DEFAULT_COMMIT_DEBOUNCE_SECONDS
    double_click_seconds: float = DEFAULT_DOUBLE_CLICK_SECONDS
    live_drag: bool = False


class DocumentSession:
    """One open document plus its insertion points, remarks and emphasis."""

    def __init__(
        self,
        producer: RemarkProducer,
        *,
        document: Document | None = None,
        bus: EventBus[Event] | None = None,
        options: SessionOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        opts = options or SessionOptions()
        self.bus: EventBus[Event] = bus or EventBus()
        self.model = DocumentModel(document, bus=self.bus, id_factory=id_factory)
        self.registry = InsertionPointRegistry(
            self.model, bus=self.bus, debounce_seconds=opts.commit_debounce_seconds, clock=clock
        )
        self.editor = SentenceEditor(
            self.model,
            self.registry,
            bus=self.bus,
            double_click_seconds=opts.double_click_seconds,
            clock=clock,
        )
        self.remarks = RemarkLifecycleManager(
            self.model, producer, bus=self.bus, delays=opts.remark_delays
        )
        self.drag = DragReorderCoordinator(self.model, live=opts.live_drag)
        self.emphasis = EmphasisSynchronizer(bus=self.bus)
        self.panel = MessagePanel(self.emphasis, bus=self.bus, on_submit=self.submit_message)

        self.bus.subscribe(SentenceCreated, self._on_sentence_created)
        self.bus.subscribe(SentenceTextUpdated, self._on_sentence_text_updated)
        self.bus.subscribe(SentenceRemoved, self._on_sentence_removed)
        self.bus.subscribe(RemarkAdded, self._on_remark_added)
        self.bus.subscribe(RemarkRejoined, self._on_remark_rejoined)
        self.bus.subscribe(RemarksCleared, self._on_remarks_cleared)
        self._mirror_document()

    @property
    def document(self) -> Document:
        return self.model.document

    # ------------------------------------------------------------------
    # Insertion points
    # ------------------------------------------------------------------
    def focus(self, point: InsertionPoint) -> None:
        self.editor.cancel()
        self.registry.focus(point)

    def input(self, point: InsertionPoint, text: str) -> None:
        self.registry.input(point, text)

    def reset(self, point: InsertionPoint) -> None:
        self.registry.reset(point)

    def commit(self, point: InsertionPoint, text: str | None = None) -> CommitResult | None:
        result = self.registry.commit(point, text)
        if result is not None:
            self.remarks.schedule_remarks(result.sentence_id)
        return result

    def insert_paragraph(self, index: int, text: str) -> InsertedParagraph | None:
        inserted = self.model.insert_paragraph(index, text)
        if inserted is not None:
            self.remarks.schedule_remarks(inserted.sentence_id)
        return inserted

    # ------------------------------------------------------------------
    # Sentences
    # ------------------------------------------------------------------
    def click_sentence(self, sentence_id: str) -> bool:
        """Click a sentence: select it, and on a double click start editing."""

        if self.model.find_sentence(sentence_id) is None:
            LOGGER.warning("Click on unknown sentence %s", sentence_id)
            return False
        self.emphasis.select_sentence(sentence_id)
        return self.editor.click(sentence_id)

    def sentence_input(self, sentence_id: str, text: str) -> None:
        self.editor.input(sentence_id, text)

    def submit_sentence_edit(self, sentence_id: str, text: str) -> EditOutcome | None:
        outcome = self.editor.submit(sentence_id, text)
        if outcome is not None and not outcome.removed:
            self.remarks.schedule_remarks(sentence_id)
        return outcome

    def cancel_edit(self) -> None:
        self.editor.cancel()

    def click_empty_space(self) -> None:
        """Background click: drop emphasis, focus and any edit in progress."""

        self.editor.cancel()
        self.registry.blur()
        self.registry.reset_all()
        self.emphasis.clear()

    def set_title(self, title: str) -> None:
        self.model.set_title(title.strip())

    # ------------------------------------------------------------------
    # Remarks
    # ------------------------------------------------------------------
    def click_remark_marker(self, sentence_id: str) -> str | None:
        """Emphasize the next open remark of ``sentence_id``."""

        state = self.emphasis.state
        current = state.emphasized_remark_id if state.emphasized_sentence_id == sentence_id else None
        remark_id = self.remarks.cycle_emphasized_remark(sentence_id, current)
        if remark_id is not None:
            self.emphasis.select_remark(remark_id, sentence_id)
        return remark_id

    def hover_remark_marker(self, sentence_id: str, hovering: bool = True) -> str | None:
        if not hovering:
            self.emphasis.unhover_remark()
            return None
        sentence = self.model.find_sentence(sentence_id)
        if sentence is None:
            return None
        state = self.emphasis.state
        target = None
        if state.emphasized_sentence_id == sentence_id and state.emphasized_remark_id is not None:
            remark = self.model.find_remark(state.emphasized_remark_id)
            if remark is not None and not remark.rejoined:
                target = remark.id
        if target is None:
            target = next_remark_id(sentence.remarks, None)
        if target is not None:
            self.emphasis.hover_remark(target)
        return target

    def respond_to_remark(self, remark_id: str, text: str) -> str | None:
        sentence_id = self.remarks.respond(remark_id, text)
        if sentence_id is not None:
            self.remarks.schedule_remarks(sentence_id)
            self.emphasis.select_sentence(sentence_id)
        return sentence_id

    # ------------------------------------------------------------------
    # Message panel
    # ------------------------------------------------------------------
    def submit_message(self, text: str) -> str | None:
        """Insert panel text where the current emphasis says it belongs."""

        cleaned = text.strip()
        if not cleaned:
            return None
        plan = plan_submission(self.emphasis.state, self.document)
        if plan.kind == "after_sentence" and plan.anchor_sentence_id is not None:
            sentence_id = self.model.add_sentence_after(plan.anchor_sentence_id, cleaned)
        elif plan.kind == "reply_to_remark" and plan.remark_id is not None:
            sentence_id = self.model.add_paragraph_after_sentence(
                plan.anchor_sentence_id, cleaned, rejoined_remark_id=plan.remark_id
            )
        else:
            sentence_id = self.model.add_paragraph_after_sentence(None, cleaned)
        if sentence_id is None:
            return None
        self.remarks.schedule_remarks(sentence_id)
        self.emphasis.select_sentence(sentence_id)
        return sentence_id

    def click_message(self, message_id: str, message_type: MessageType) -> bool:
        return self.panel.on_message_click(message_id, message_type)

    # ------------------------------------------------------------------
    # Drag & drop
    # ------------------------------------------------------------------
    def begin_drag(self, sentence_id: str) -> DragSource | None:
        self.editor.cancel()
        return self.drag.begin(sentence_id)

    def drag_hover(self, target: HoverTarget) -> bool:
        return self.drag.hover(target)

    def drop(self) -> bool:
        return self.drag.drop()

    def cancel_drag(self) -> None:
        self.drag.cancel()

    # ------------------------------------------------------------------
    # Surface bindings
    # ------------------------------------------------------------------
    def insertion_point_binding(self, point: InsertionPoint) -> InsertionPointBinding:
        state = self.registry.view(point)
        return InsertionPointBinding(
            key=point.key,
            content=state.content,
            is_focused=state.is_focused,
            show_solid_cursor=state.show_solid_cursor,
            on_commit=lambda text: self.commit(point, text),
            on_input=lambda text: self.input(point, text),
            on_reset=lambda: self.reset(point),
            on_focus=lambda: self.focus(point),
        )

    def insertion_point_bindings(self) -> list[InsertionPointBinding]:
        return [self.insertion_point_binding(point) for point in iter_insertion_points(self.document)]

    def sentence_binding(self, sentence_id: str) -> SentenceBinding | None:
        sentence = self.model.find_sentence(sentence_id)
        if sentence is None:
            return None
        state = self.emphasis.state
        return SentenceBinding(
            sentence_id=sentence.id,
            text=sentence.text,
            remarks=sentence.remarks,
            has_open_remarks=sentence.has_open_remarks,
            is_editing=self.editor.is_editing(sentence.id),
            is_emphasized=state.emphasized_sentence_id == sentence.id,
            on_edit_submit=lambda text: self.submit_sentence_edit(sentence_id, text),
            on_input=lambda text: self.sentence_input(sentence_id, text),
            on_click=lambda: self.click_sentence(sentence_id),
            on_remark_marker_click=lambda: self.click_remark_marker(sentence_id),
            on_remark_marker_hover=lambda hovering: self.hover_remark_marker(sentence_id, hovering),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def drain(self) -> None:
        await self.remarks.drain()

    async def aclose(self) -> None:
        await self.remarks.aclose()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _mirror_document(self) -> None:
        for sentence in self.document.iter_sentences():
            self.panel.on_new_content(sentence.text, "user", "sentence", sentence.id, sentence.id)
            for remark in sentence.remarks:
                self.panel.on_new_content(remark.text, "ai", "remark", remark.id, sentence.id)
                if remark.rejoined:
                    self.panel.mark_resolved(remark.id)

    def _on_sentence_created(self, event: SentenceCreated) -> None:
        self.panel.on_new_content(event.text, "user", "sentence", event.sentence_id, event.sentence_id)

    def _on_sentence_text_updated(self, event: SentenceTextUpdated) -> None:
        self.panel.update_content(event.sentence_id, event.text)

    def _on_sentence_removed(self, event: SentenceRemoved) -> None:
        if self.emphasis.state.emphasized_sentence_id == event.sentence_id:
            self.emphasis.clear()

    def _on_remark_added(self, event: RemarkAdded) -> None:
        self.panel.on_new_content(event.text, "ai", "remark", event.remark_id, event.sentence_id)

    def _on_remark_rejoined(self, event: RemarkRejoined) -> None:
        self.panel.mark_resolved(event.remark_id)

    def _on_remarks_cleared(self, event: RemarksCleared) -> None:
        for remark_id in event.remark_ids:
            self.panel.mark_resolved(remark_id)
        state = self.emphasis.state
        if state.emphasized_remark_id in event.remark_ids or state.hovered_remark_id in event.remark_ids:
            self.emphasis.clear()


__all__ = ["DocumentSession", "SessionOptions"]
