"""Shared emphasis state linking the document to the message panel.

Both views read and write one :class:`EmphasisState`. Transitions are pure
functions of ``(state, action)``; :class:`EmphasisSynchronizer` only holds the
current value and announces changes. Whoever writes last wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Literal, Union

from ..editor.document_model import Document
from .events import EmphasisChanged, EmphasisType, Event, EventBus, MessageScrollRequested

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EmphasisState:
    emphasized_message_id: str | None = None
    emphasized_sentence_id: str | None = None
    emphasized_type: EmphasisType | None = None
    hovered_remark_id: str | None = None

    @property
    def emphasized_remark_id(self) -> str | None:
        return self.emphasized_message_id if self.emphasized_type == "remark" else None

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_EMPHASIS


EMPTY_EMPHASIS = EmphasisState()


# =============================================================================
# Actions
# =============================================================================


@dataclass(slots=True, frozen=True)
class SelectSentence:
    sentence_id: str


@dataclass(slots=True, frozen=True)
class SelectRemark:
    remark_id: str
    sentence_id: str


@dataclass(slots=True, frozen=True)
class HoverRemark:
    remark_id: str


@dataclass(slots=True, frozen=True)
class UnhoverRemark:
    pass


@dataclass(slots=True, frozen=True)
class ClearEmphasis:
    pass


EmphasisAction = Union[SelectSentence, SelectRemark, HoverRemark, UnhoverRemark, ClearEmphasis]


def reduce_emphasis(state: EmphasisState, action: EmphasisAction) -> EmphasisState:
    """Return the state that follows ``state`` after ``action``."""

    if isinstance(action, SelectSentence):
        return EmphasisState(
            emphasized_message_id=action.sentence_id,
            emphasized_sentence_id=action.sentence_id,
            emphasized_type="sentence",
        )
    if isinstance(action, SelectRemark):
        return EmphasisState(
            emphasized_message_id=action.remark_id,
            emphasized_sentence_id=action.sentence_id,
            emphasized_type="remark",
        )
    if isinstance(action, HoverRemark):
        return replace(state, hovered_remark_id=action.remark_id)
    if isinstance(action, UnhoverRemark):
        return replace(state, hovered_remark_id=None)
    if isinstance(action, ClearEmphasis):
        return EMPTY_EMPHASIS
    raise TypeError(f"Unsupported emphasis action: {action!r}")


class EmphasisSynchronizer:
    """Single source of truth for what is emphasized, hovered and selected."""

    def __init__(
        self,
        *,
        bus: EventBus[Event] | None = None,
        state: EmphasisState = EMPTY_EMPHASIS,
    ) -> None:
        self._bus = bus
        self._state = state

    @property
    def state(self) -> EmphasisState:
        return self._state

    def dispatch(self, action: EmphasisAction) -> EmphasisState:
        previous = self._state
        self._state = reduce_emphasis(previous, action)
        if self._state != previous:
            LOGGER.debug("Emphasis changed via %s: %s", type(action).__name__, self._state)
            self._publish_change()
        if isinstance(action, HoverRemark) and self._bus is not None:
            self._bus.publish(MessageScrollRequested(message_id=action.remark_id))
        return self._state

    def select_sentence(self, sentence_id: str) -> EmphasisState:
        return self.dispatch(SelectSentence(sentence_id))

    def select_remark(self, remark_id: str, sentence_id: str) -> EmphasisState:
        return self.dispatch(SelectRemark(remark_id, sentence_id))

    def hover_remark(self, remark_id: str) -> EmphasisState:
        return self.dispatch(HoverRemark(remark_id))

    def unhover_remark(self) -> EmphasisState:
        return self.dispatch(UnhoverRemark())

    def clear(self) -> EmphasisState:
        return self.dispatch(ClearEmphasis())

    def _publish_change(self) -> None:
        if self._bus is None:
            return
        state = self._state
        self._bus.publish(
            EmphasisChanged(
                message_id=state.emphasized_message_id,
                sentence_id=state.emphasized_sentence_id,
                emphasized_type=state.emphasized_type,
                hovered_remark_id=state.hovered_remark_id,
            )
        )


# =============================================================================
# Submission routing
# =============================================================================

SubmissionKind = Literal["after_sentence", "reply_to_remark", "append"]


@dataclass(slots=True, frozen=True)
class SubmissionPlan:
    """Where text submitted from the message panel should land.

    Attributes:
        kind: ``after_sentence`` inserts after ``anchor_sentence_id``;
            ``reply_to_remark`` opens a paragraph after ``anchor_sentence_id``
            and rejoins ``remark_id``; ``append`` adds a paragraph at the end.
    """

    kind: SubmissionKind
    anchor_sentence_id: str | None = None
    remark_id: str | None = None


def plan_submission(state: EmphasisState, document: Document) -> SubmissionPlan:
    """Route submitted text according to the current emphasis.

    Emphasized ids that no longer exist in ``document`` fall back to
    appending at the end.
    """

    if state.emphasized_type == "sentence" and state.emphasized_sentence_id:
        if document.find_sentence(state.emphasized_sentence_id) is not None:
            return SubmissionPlan("after_sentence", anchor_sentence_id=state.emphasized_sentence_id)
        LOGGER.debug("Emphasized sentence %s vanished; appending", state.emphasized_sentence_id)
    elif state.emphasized_type == "remark" and state.emphasized_message_id:
        remark = document.find_remark(state.emphasized_message_id)
        if remark is not None and document.find_sentence(remark.sentence_id) is not None:
            return SubmissionPlan(
                "reply_to_remark", anchor_sentence_id=remark.sentence_id, remark_id=remark.id
            )
        LOGGER.debug("Emphasized remark %s vanished; appending", state.emphasized_message_id)
    return SubmissionPlan("append")


__all__ = [
    "ClearEmphasis",
    "EMPTY_EMPHASIS",
    "EmphasisAction",
    "EmphasisState",
    "EmphasisSynchronizer",
    "HoverRemark",
    "SelectRemark",
    "SelectSentence",
    "SubmissionPlan",
    "UnhoverRemark",
    "plan_submission",
    "reduce_emphasis",
]
