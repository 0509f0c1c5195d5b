"""Tests for insertion point addressing, focus and commits."""

from __future__ import annotations

import pytest

from marginalia.editor.document_model import Document, DocumentModel, Paragraph, Sentence
from marginalia.editor.insertion_points import (
    InsertionPoint,
    InsertionPointRegistry,
    iter_insertion_points,
)
from marginalia.ui.events import InsertionPointFocused
from tests.helpers import FakeClock


class _RecordingSurface:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def focus(self) -> None:
        self.calls.append("focus")

    def place_caret_at_end(self) -> None:
        self.calls.append("caret")


@pytest.fixture
def registry(model: DocumentModel, bus, clock: FakeClock) -> InsertionPointRegistry:
    return InsertionPointRegistry(model, bus=bus, clock=clock)


class TestInsertionPointKeys:
    @pytest.mark.parametrize(
        ("point", "key"),
        [
            (InsertionPoint.start("p1"), "p1-start"),
            (InsertionPoint.after("p1", 3), "p1-3"),
            (InsertionPoint.separator_before("p2"), "separator-before-p2"),
            (InsertionPoint.separator_after("p2"), "separator-after-p2"),
        ],
    )
    def test_key_format_and_parse(self, point: InsertionPoint, key: str) -> None:
        assert point.key == key
        assert InsertionPoint.from_key(key) == point

    @pytest.mark.parametrize("key", ["start", "p1-x", "-3"])
    def test_malformed_keys(self, key: str) -> None:
        with pytest.raises(ValueError):
            InsertionPoint.from_key(key)

    def test_sentence_index(self) -> None:
        assert InsertionPoint.start("p1").sentence_index() == 0
        assert InsertionPoint.after("p1", 2).sentence_index() == 3
        assert InsertionPoint.separator_after("p1").sentence_index() is None

    def test_iter_points_in_visual_order(self) -> None:
        document = Document(paragraphs=(Paragraph("a", (Sentence("x", "X."), Sentence("y", "Y."))),))

        keys = [point.key for point in iter_insertion_points(document)]

        assert keys == ["separator-before-a", "a-start", "a-0", "a-1", "separator-after-a"]


class TestFocus:
    def test_single_focus(self, registry: InsertionPointRegistry, record) -> None:
        focused = record(InsertionPointFocused)

        registry.focus(InsertionPoint.start("p1"))
        registry.focus(InsertionPoint.after("p2", 1))

        assert registry.focused_key == "p2-1"
        assert registry.view(InsertionPoint.start("p1")).is_focused is False
        assert [event.key for event in focused] == ["p1-start", "p2-1"]

    def test_focus_resets_other_buffers(self, registry: InsertionPointRegistry) -> None:
        first = InsertionPoint.after("p1", 0)
        second = InsertionPoint.after("p1", 1)
        registry.input(first, "Half typed")

        registry.focus(second)

        assert registry.content(first) == ""

    def test_input_only_keeps_one_buffer(self, registry: InsertionPointRegistry) -> None:
        first = InsertionPoint.after("p1", 0)
        second = InsertionPoint.after("p2", 0)

        registry.input(first, "one")
        registry.input(second, "two")

        assert registry.content(first) == ""
        assert registry.content(second) == "two"

    def test_focus_places_caret_on_attached_surface(self, registry: InsertionPointRegistry) -> None:
        point = InsertionPoint.start("p2")
        surface = _RecordingSurface()
        registry.attach_surface(point, surface)

        registry.focus(point)

        assert surface.calls == ["focus", "caret"]

    def test_blur(self, registry: InsertionPointRegistry, record) -> None:
        focused = record(InsertionPointFocused)
        registry.focus(InsertionPoint.start("p1"))

        registry.blur()
        registry.blur()

        assert registry.focused is None
        assert [event.key for event in focused] == ["p1-start", None]

    def test_solid_cursor_hint_hidden_on_focused_point(self, registry: InsertionPointRegistry) -> None:
        point = InsertionPoint.after("p1", 0)
        registry.show_solid_cursor(point)
        assert registry.view(point).show_solid_cursor is True

        registry.focus(point)

        assert registry.view(point).show_solid_cursor is False
        assert registry.solid_cursor is None

    def test_is_valid(self, registry: InsertionPointRegistry) -> None:
        assert registry.is_valid(InsertionPoint.after("p1", 3))
        assert not registry.is_valid(InsertionPoint.after("p1", 4))
        assert not registry.is_valid(InsertionPoint.start("ghost"))


class TestCommit:
    def test_sentence_commit_moves_focus_past_new_sentence(
        self, registry: InsertionPointRegistry, model: DocumentModel
    ) -> None:
        point = InsertionPoint.after("p1", 0)
        registry.focus(point)
        registry.input(point, "  A new thought.  ")

        result = registry.commit(point)

        assert result is not None
        assert model.document.paragraphs[0].sentences[1].text == "A new thought."
        assert result.focus == InsertionPoint.after("p1", 1)
        assert registry.focused == InsertionPoint.after("p1", 1)
        assert registry.content(point) == ""

    def test_commit_at_start(self, registry: InsertionPointRegistry, model: DocumentModel) -> None:
        result = registry.commit(InsertionPoint.start("p2"), "Opening.")

        assert result is not None
        assert model.document.paragraphs[1].sentences[0].id == result.sentence_id
        assert registry.focused == InsertionPoint.after("p2", 0)

    def test_blank_commit_is_ignored(self, registry: InsertionPointRegistry, model: DocumentModel) -> None:
        point = InsertionPoint.after("p1", 0)
        registry.focus(point)
        version = model.version

        assert registry.commit(point, "   ") is None
        assert model.version == version
        assert registry.focused == point

    def test_separator_commit_creates_paragraph(
        self, registry: InsertionPointRegistry, model: DocumentModel
    ) -> None:
        result = registry.commit(InsertionPoint.separator_after("p1"), "Fresh paragraph.")

        assert result is not None and result.new_paragraph
        assert model.document.paragraphs[1].id == result.paragraph_id
        assert registry.focused == InsertionPoint.after(result.paragraph_id, 0)

    def test_separator_before_first_paragraph(
        self, registry: InsertionPointRegistry, model: DocumentModel
    ) -> None:
        result = registry.commit(InsertionPoint.separator_before("p1"), "Preface.")

        assert result is not None
        assert model.document.paragraphs[0].id == result.paragraph_id

    def test_duplicate_separator_commit_is_debounced(
        self, registry: InsertionPointRegistry, model: DocumentModel, clock: FakeClock
    ) -> None:
        point = InsertionPoint.separator_after("p2")

        assert registry.commit(point, "Once.") is not None
        clock.advance(0.2)
        assert registry.commit(point, "Once.") is None
        assert len(model.document.paragraphs) == 3

        clock.advance(0.5)
        assert registry.commit(point, "Twice.") is not None
        assert len(model.document.paragraphs) == 4

    def test_commit_to_unknown_paragraph(self, registry: InsertionPointRegistry) -> None:
        assert registry.commit(InsertionPoint.start("ghost"), "Lost.") is None
        assert registry.commit(InsertionPoint.separator_after("ghost"), "Lost.") is None

    def test_buffers_of_pruned_paragraph_are_cleared(self, bus, clock: FakeClock) -> None:
        document = Document(
            paragraphs=(
                Paragraph("p1", (Sentence("a", "A."),)),
                Paragraph("p2", (Sentence("b", "B."),)),
            )
        )
        model = DocumentModel(document, bus=bus)
        registry = InsertionPointRegistry(model, bus=bus, clock=clock)
        point = InsertionPoint.after("p1", 0)
        registry.focus(point)
        registry.input(point, "draft")

        model.move_sentence("a", "p1", "p2", 1)

        assert registry.focused is None
        assert registry.content(point) == ""

    def test_separator_debounce_entries_are_dropped_with_paragraph(self, bus, clock: FakeClock) -> None:
        document = Document(
            paragraphs=(
                Paragraph("p1", (Sentence("a", "A."),)),
                Paragraph("p2", (Sentence("b", "B."),)),
            )
        )
        model = DocumentModel(document, bus=bus)
        registry = InsertionPointRegistry(model, bus=bus, clock=clock)
        registry.commit(InsertionPoint.separator_after("p1"), "Between.")

        model.move_sentence("a", "p1", "p2", 1)

        assert registry._last_separator_commit == {}  # type: ignore[attr-defined]

    def test_expired_separator_entries_are_forgotten(
        self, registry: InsertionPointRegistry, clock: FakeClock
    ) -> None:
        registry.commit(InsertionPoint.separator_after("p1"), "One.")
        clock.advance(1.0)
        registry.commit(InsertionPoint.separator_before("p1"), "Two.")

        assert list(registry._last_separator_commit) == ["separator-before-p1"]  # type: ignore[attr-defined]


class TestShortenedParagraphs:
    """Focus and hints stay on real gaps when sentences leave a paragraph."""

    def test_focus_past_end_is_pulled_back_after_removal(
        self, registry: InsertionPointRegistry, model: DocumentModel, record
    ) -> None:
        focused = record(InsertionPointFocused)
        registry.focus(InsertionPoint.after("p1", 3))
        registry.input(InsertionPoint.after("p1", 3), "draft")

        model.remove_sentence("s4")

        assert registry.focused == InsertionPoint.after("p1", 2)
        assert registry.is_valid(registry.focused)  # type: ignore[arg-type]
        assert registry.content(InsertionPoint.after("p1", 2)) == "draft"
        assert [event.key for event in focused] == ["p1-3", "p1-2"]

    def test_valid_focus_is_left_alone(self, registry: InsertionPointRegistry, model: DocumentModel) -> None:
        registry.focus(InsertionPoint.after("p1", 1))

        model.remove_sentence("s4")

        assert registry.focused == InsertionPoint.after("p1", 1)

    def test_emptied_paragraph_falls_back_to_start(self, bus, clock: FakeClock) -> None:
        document = Document(paragraphs=(Paragraph("p1", (Sentence("a", "A."),)),))
        model = DocumentModel(document, bus=bus)
        registry = InsertionPointRegistry(model, bus=bus, clock=clock)
        registry.focus(InsertionPoint.after("p1", 0))

        model.remove_sentence("a")

        assert registry.focused == InsertionPoint.start("p1")

    def test_move_out_clamps_focus(self, registry: InsertionPointRegistry, model: DocumentModel) -> None:
        registry.focus(InsertionPoint.after("p1", 3))

        model.move_sentence("s1", "p1", "p2", 0)

        assert registry.focused == InsertionPoint.after("p1", 2)

    def test_solid_cursor_hint_is_clamped(self, registry: InsertionPointRegistry, model: DocumentModel) -> None:
        registry.show_solid_cursor(InsertionPoint.after("p1", 3))

        model.remove_sentence("s2")

        assert registry.solid_cursor == InsertionPoint.after("p1", 2)
        assert registry.focused is None
