"""Tests for the shared emphasis state and panel submission routing."""

from __future__ import annotations

import pytest

from marginalia.editor.document_model import DocumentModel
from marginalia.ui.emphasis import (
    EMPTY_EMPHASIS,
    ClearEmphasis,
    EmphasisState,
    EmphasisSynchronizer,
    HoverRemark,
    SelectRemark,
    SelectSentence,
    UnhoverRemark,
    plan_submission,
    reduce_emphasis,
)
from marginalia.ui.events import EmphasisChanged, MessageScrollRequested


class TestReducer:
    """Pure transitions of :func:`reduce_emphasis`."""

    def test_select_sentence(self) -> None:
        state = reduce_emphasis(EMPTY_EMPHASIS, SelectSentence("s1"))

        assert state == EmphasisState("s1", "s1", "sentence", None)
        assert state.emphasized_remark_id is None

    def test_select_remark_records_owner(self) -> None:
        state = reduce_emphasis(EMPTY_EMPHASIS, SelectRemark("r1", "s1"))

        assert state.emphasized_message_id == "r1"
        assert state.emphasized_sentence_id == "s1"
        assert state.emphasized_remark_id == "r1"

    def test_selection_clears_hover(self) -> None:
        hovered = reduce_emphasis(EMPTY_EMPHASIS, HoverRemark("r1"))

        assert reduce_emphasis(hovered, SelectSentence("s2")).hovered_remark_id is None

    def test_hover_keeps_selection(self) -> None:
        selected = reduce_emphasis(EMPTY_EMPHASIS, SelectSentence("s2"))

        hovered = reduce_emphasis(selected, HoverRemark("r9"))
        unhovered = reduce_emphasis(hovered, UnhoverRemark())

        assert hovered.emphasized_sentence_id == "s2"
        assert hovered.hovered_remark_id == "r9"
        assert unhovered == selected

    def test_clear(self) -> None:
        state = reduce_emphasis(EmphasisState("r1", "s1", "remark", "r1"), ClearEmphasis())

        assert state.is_empty

    def test_last_writer_wins(self) -> None:
        state = reduce_emphasis(EMPTY_EMPHASIS, SelectRemark("r1", "s1"))
        state = reduce_emphasis(state, SelectSentence("s4"))

        assert state == EmphasisState("s4", "s4", "sentence", None)

    def test_unknown_action(self) -> None:
        with pytest.raises(TypeError):
            reduce_emphasis(EMPTY_EMPHASIS, object())  # type: ignore[arg-type]


class TestSynchronizer:
    def test_publishes_only_real_changes(self, bus, record) -> None:
        changes = record(EmphasisChanged)
        emphasis = EmphasisSynchronizer(bus=bus)

        emphasis.select_sentence("s1")
        emphasis.select_sentence("s1")
        emphasis.clear()

        assert [(event.message_id, event.emphasized_type) for event in changes] == [
            ("s1", "sentence"),
            (None, None),
        ]

    def test_hover_requests_scroll(self, bus, record) -> None:
        scrolls = record(MessageScrollRequested)
        emphasis = EmphasisSynchronizer(bus=bus)

        emphasis.hover_remark("r2")
        emphasis.hover_remark("r2")

        assert [event.message_id for event in scrolls] == ["r2", "r2"]
        assert emphasis.state.hovered_remark_id == "r2"

    def test_works_without_bus(self) -> None:
        emphasis = EmphasisSynchronizer()

        emphasis.select_remark("r1", "s1")
        emphasis.unhover_remark()

        assert emphasis.state.emphasized_remark_id == "r1"


class TestPlanSubmission:
    def test_nothing_emphasized_appends(self, model: DocumentModel) -> None:
        assert plan_submission(EMPTY_EMPHASIS, model.document).kind == "append"

    def test_sentence_emphasized_inserts_after_it(self, model: DocumentModel) -> None:
        plan = plan_submission(EmphasisState("s3", "s3", "sentence"), model.document)

        assert (plan.kind, plan.anchor_sentence_id) == ("after_sentence", "s3")

    def test_remark_emphasized_replies(self, model: DocumentModel) -> None:
        remark_id = model.append_remark("s6", "Why?")
        assert remark_id is not None

        plan = plan_submission(EmphasisState(remark_id, "s6", "remark"), model.document)

        assert (plan.kind, plan.anchor_sentence_id, plan.remark_id) == ("reply_to_remark", "s6", remark_id)

    def test_stale_ids_fall_back_to_append(self, model: DocumentModel) -> None:
        assert plan_submission(EmphasisState("gone", "gone", "sentence"), model.document).kind == "append"
        assert plan_submission(EmphasisState("r-gone", "s1", "remark"), model.document).kind == "append"
