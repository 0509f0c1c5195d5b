"""End-to-end tests for :class:`DocumentSession` wiring."""

from __future__ import annotations

import pytest

from marginalia.editor.document_model import Document, default_document
from marginalia.editor.drag_reorder import HoverTarget
from marginalia.editor.insertion_points import InsertionPoint
from marginalia.ui.document_session import DocumentSession, SessionOptions
from tests.helpers import FakeClock, RecordingProducer

FAST = SessionOptions(remark_delays=(0.0, 0.01))


@pytest.fixture
def session(producer: RecordingProducer, clock: FakeClock) -> DocumentSession:
    return DocumentSession(producer, document=default_document(), options=FAST, clock=clock)


def _messages(session: DocumentSession) -> list[tuple[str, str, bool]]:
    return [(m.type, m.text, m.resolved) for m in session.panel.messages]


class TestRemarkFlow:
    @pytest.mark.asyncio
    async def test_first_paragraph_gets_two_remarks(self, producer: RecordingProducer) -> None:
        session = DocumentSession(producer, document=Document(), options=FAST)

        inserted = session.insert_paragraph(0, "Hello.")
        await session.drain()

        assert inserted is not None
        (paragraph,) = session.document.paragraphs
        (sentence,) = paragraph.sentences
        assert sentence.text == "Hello."
        assert [r.rejoined for r in sentence.remarks] == [False, False]
        assert _messages(session) == [
            ("sentence", "Hello.", False),
            ("remark", "First remark.", False),
            ("remark", "Second remark.", False),
        ]

    @pytest.mark.asyncio
    async def test_commit_at_insertion_point_schedules_remarks(self, session: DocumentSession) -> None:
        point = InsertionPoint.after("p1", 0)
        session.focus(point)
        session.input(point, "  Inserted here.  ")

        result = session.commit(point)
        await session.drain()

        assert result is not None
        assert session.document.paragraphs[0].sentences[1].text == "Inserted here."
        assert len(session.model.find_sentence(result.sentence_id).remarks) == 2  # type: ignore[union-attr]
        assert session.registry.focused == InsertionPoint.after("p1", 1)

    @pytest.mark.asyncio
    async def test_reply_rejoins_and_cycling_skips_it(self, session: DocumentSession) -> None:
        session.remarks.schedule_remarks("s2")
        await session.drain()
        first, second = (r.id for r in session.model.find_sentence("s2").remarks)  # type: ignore[union-attr]

        assert session.click_remark_marker("s2") == first
        reply_id = session.submit_message("This answers the first remark.")
        await session.drain()

        assert reply_id is not None
        assert [p.sentences[0].id for p in session.document.paragraphs][1] == reply_id
        assert session.model.find_remark(first).rejoined is True  # type: ignore[union-attr]
        assert session.panel.find(first, "remark").resolved is True  # type: ignore[union-attr]
        assert session.emphasis.state.emphasized_sentence_id == reply_id
        assert session.click_remark_marker("s2") == second
        assert session.click_remark_marker("s2") == second

    @pytest.mark.asyncio
    async def test_reply_slot_commit_clears_open_remarks(self, session: DocumentSession) -> None:
        remark_id = session.model.append_remark("s1", "Too vague.")
        assert remark_id is not None
        session.click_remark_marker("s1")

        session.commit(InsertionPoint.after("p1", 0), "Answering inline.")
        await session.drain()

        assert session.model.find_sentence("s1").remarks == ()  # type: ignore[union-attr]
        assert session.panel.find(remark_id, "remark").resolved is True  # type: ignore[union-attr]
        assert session.emphasis.state.is_empty

    def test_respond_to_remark_selects_reply(self, session: DocumentSession) -> None:
        remark_id = session.model.append_remark("s5", "Expand on this.")
        assert remark_id is not None

        reply_id = session.respond_to_remark(remark_id, "Expanded.")

        assert reply_id is not None
        assert session.emphasis.state.emphasized_sentence_id == reply_id
        assert session.model.find_remark(remark_id).rejoined is True  # type: ignore[union-attr]


class TestPanelRouting:
    def test_opening_document_is_mirrored(self, session: DocumentSession) -> None:
        assert [m.id for m in session.panel.messages] == [f"s{i}" for i in range(1, 9)]

    def test_submit_with_nothing_emphasized_appends_paragraph(self, session: DocumentSession) -> None:
        sentence_id = session.panel.on_new_message("A closing thought.")

        assert sentence_id is not None
        last = session.document.paragraphs[-1]
        assert [s.id for s in last.sentences] == [sentence_id]
        assert len(session.document.paragraphs) == 3

    def test_submit_after_emphasized_sentence(self, session: DocumentSession) -> None:
        session.click_sentence("s3")

        sentence_id = session.submit_message("Right after the third.")

        assert [s.id for s in session.document.paragraphs[0].sentences][3] == sentence_id
        assert session.emphasis.state.emphasized_sentence_id == sentence_id

    def test_blank_submission_is_ignored(self, session: DocumentSession) -> None:
        version = session.model.version

        assert session.submit_message("   ") is None
        assert session.model.version == version

    def test_message_click_emphasizes_sentence(self, session: DocumentSession) -> None:
        assert session.click_message("s6", "sentence") is True

        binding = session.sentence_binding("s6")
        assert binding is not None and binding.is_emphasized

    def test_live_edits_update_panel(self, session: DocumentSession, clock: FakeClock) -> None:
        session.click_sentence("s1")
        clock.advance(0.1)
        assert session.click_sentence("s1") is True

        session.sentence_input("s1", "Rewritten opener")

        assert session.panel.find("s1").text == "Rewritten opener"  # type: ignore[union-attr]


class TestInteraction:
    def test_marker_hover_scrolls_panel(self, session: DocumentSession) -> None:
        remark_id = session.model.append_remark("s4", "Cut this.")

        assert session.hover_remark_marker("s4") == remark_id
        assert session.panel.scroll_target == remark_id
        assert session.emphasis.state.hovered_remark_id == remark_id

        session.hover_remark_marker("s4", hovering=False)
        assert session.emphasis.state.hovered_remark_id is None

    def test_marker_hover_prefers_emphasized_remark(self, session: DocumentSession) -> None:
        session.model.append_remark("s4", "One.")
        second = session.model.append_remark("s4", "Two.")
        session.click_remark_marker("s4")
        session.click_remark_marker("s4")

        assert session.hover_remark_marker("s4") == second

    def test_marker_without_open_remarks(self, session: DocumentSession) -> None:
        assert session.click_remark_marker("s1") is None
        assert session.hover_remark_marker("s1") is None
        assert session.hover_remark_marker("ghost") is None

    def test_click_empty_space_resets_everything(self, session: DocumentSession, clock: FakeClock) -> None:
        point = InsertionPoint.start("p2")
        session.focus(point)
        session.input(point, "draft")
        session.click_sentence("s2")
        clock.advance(0.1)
        session.click_sentence("s2")
        session.sentence_input("s2", "half typed")

        session.click_empty_space()

        assert session.registry.focused is None
        assert session.registry.content(point) == ""
        assert session.editor.editing_id is None
        assert session.model.find_sentence("s2").text == "Here is the second sentence."  # type: ignore[union-attr]
        assert session.emphasis.state.is_empty

    def test_clicking_another_sentence_ends_the_edit(self, session: DocumentSession, clock: FakeClock) -> None:
        session.click_sentence("s1")
        clock.advance(0.1)
        session.click_sentence("s1")
        session.sentence_input("s1", "Draft text")
        clock.advance(1.0)

        session.click_sentence("s2")

        assert session.editor.editing_id is None
        assert session.registry.focused == InsertionPoint.after("p1", 1)
        assert session.model.find_sentence("s1").text == (  # type: ignore[union-attr]
            "This is the first sentence of the first paragraph."
        )

    @pytest.mark.asyncio
    async def test_edit_submission(self, session: DocumentSession, producer: RecordingProducer) -> None:
        session.click_sentence("s7")
        session.click_sentence("s7")

        outcome = session.submit_sentence_edit("s7", "Sharper.")
        await session.drain()

        assert outcome is not None and not outcome.removed
        assert producer.calls == ["Sharper.", "Sharper."]

    @pytest.mark.asyncio
    async def test_blank_edit_removes_sentence(self, session: DocumentSession, producer: RecordingProducer) -> None:
        session.click_sentence("s7")
        session.click_sentence("s7")

        outcome = session.submit_sentence_edit("s7", " ")
        await session.drain()

        assert outcome is not None and outcome.removed
        assert session.model.find_sentence("s7") is None
        assert session.emphasis.state.is_empty
        assert producer.calls == []

    def test_drag_moves_sentence(self, session: DocumentSession) -> None:
        session.begin_drag("s1")

        assert session.drag_hover(HoverTarget("p2", 0, top=0, bottom=10, pointer_y=2)) is True
        assert session.drop() is True
        assert session.document.paragraphs[1].sentences[0].id == "s1"

    def test_cancelled_drag_changes_nothing(self, session: DocumentSession) -> None:
        version = session.model.version
        session.begin_drag("s1")
        session.drag_hover(HoverTarget("p2", 0, top=0, bottom=10, pointer_y=2))

        session.cancel_drag()

        assert session.drop() is False
        assert session.model.version == version


class TestBindings:
    def test_insertion_point_bindings_follow_visual_order(self, session: DocumentSession) -> None:
        keys = [binding.key for binding in session.insertion_point_bindings()]

        assert keys[:3] == ["separator-before-p1", "p1-start", "p1-0"]
        assert keys[-1] == "separator-after-p2"
        assert len(keys) == 2 * (4 + 3)

    @pytest.mark.asyncio
    async def test_binding_callbacks_drive_the_session(self, session: DocumentSession) -> None:
        binding = session.insertion_point_binding(InsertionPoint.separator_after("p2"))
        binding.on_focus()
        binding.on_input("New paragraph.")

        refreshed = session.insertion_point_binding(InsertionPoint.separator_after("p2"))
        assert refreshed.is_focused and refreshed.content == "New paragraph."

        result = binding.on_commit("New paragraph.")
        await session.drain()

        assert result is not None
        assert session.document.paragraphs[-1].sentences[0].text == "New paragraph."

    def test_sentence_binding(self, session: DocumentSession) -> None:
        session.model.append_remark("s3", "Hmm.")

        binding = session.sentence_binding("s3")

        assert binding is not None
        assert binding.has_open_remarks
        assert not binding.is_editing
        assert binding.on_remark_marker_click() is not None
        assert session.sentence_binding("ghost") is None
