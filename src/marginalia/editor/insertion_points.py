"""Insertion point addresses and the single-focus registry that drives them."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Literal, Union

from ..ui.events import (
    Event,
    EventBus,
    InsertionPointFocused,
    ParagraphRemoved,
    SentenceMoved,
    SentenceRemoved,
)
from ..ui.surface import CaretSurface
from .document_model import Document, DocumentModel

LOGGER = logging.getLogger(__name__)

SlotName = Literal["start", "separator-before", "separator-after"]
Slot = Union[SlotName, int]

_SEPARATOR_PREFIXES: tuple[tuple[str, SlotName], ...] = (
    ("separator-before-", "separator-before"),
    ("separator-after-", "separator-after"),
)
DEFAULT_COMMIT_DEBOUNCE_SECONDS = 0.5


@dataclass(slots=True, frozen=True)
class InsertionPoint:
    """Computed address of a caret slot.

    ``slot`` is ``"start"`` (before the first sentence), an integer ``i``
    (the gap right after sentence ``i``) or one of the two paragraph
    separators.
    """

    paragraph_id: str
    slot: Slot

    @classmethod
    def start(cls, paragraph_id: str) -> "InsertionPoint":
        return cls(paragraph_id, "start")

    @classmethod
    def after(cls, paragraph_id: str, sentence_index: int) -> "InsertionPoint":
        return cls(paragraph_id, int(sentence_index))

    @classmethod
    def separator_before(cls, paragraph_id: str) -> "InsertionPoint":
        return cls(paragraph_id, "separator-before")

    @classmethod
    def separator_after(cls, paragraph_id: str) -> "InsertionPoint":
        return cls(paragraph_id, "separator-after")

    @classmethod
    def from_key(cls, key: str) -> "InsertionPoint":
        """Parse a key produced by :attr:`key`."""

        for prefix, slot in _SEPARATOR_PREFIXES:
            if key.startswith(prefix):
                return cls(key[len(prefix):], slot)
        paragraph_id, _, tail = key.rpartition("-")
        if not paragraph_id:
            raise ValueError(f"Malformed insertion point key: {key!r}")
        if tail == "start":
            return cls(paragraph_id, "start")
        try:
            return cls(paragraph_id, int(tail))
        except ValueError as exc:
            raise ValueError(f"Malformed insertion point key: {key!r}") from exc

    @property
    def key(self) -> str:
        if self.slot in ("separator-before", "separator-after"):
            return f"{self.slot}-{self.paragraph_id}"
        return f"{self.paragraph_id}-{self.slot}"

    @property
    def is_separator(self) -> bool:
        return self.slot in ("separator-before", "separator-after")

    def sentence_index(self) -> int | None:
        """Index a sentence committed here would occupy, or None for separators."""

        if self.slot == "start":
            return 0
        if isinstance(self.slot, int):
            return self.slot + 1
        return None


@dataclass(slots=True, frozen=True)
class InsertionPointState:
    content: str
    is_focused: bool
    show_solid_cursor: bool


@dataclass(slots=True, frozen=True)
class CommitResult:
    """Outcome of a successful commit."""

    point: InsertionPoint
    sentence_id: str
    paragraph_id: str
    focus: InsertionPoint
    new_paragraph: bool = False


def iter_insertion_points(document: Document) -> Iterator[InsertionPoint]:
    """Yield every insertion point of ``document`` in visual order."""

    for paragraph in document.paragraphs:
        yield InsertionPoint.separator_before(paragraph.id)
        yield InsertionPoint.start(paragraph.id)
        for index in range(len(paragraph.sentences)):
            yield InsertionPoint.after(paragraph.id, index)
        yield InsertionPoint.separator_after(paragraph.id)


class InsertionPointRegistry:
    """Tracks the focused insertion point and the text typed into it.

    Only one insertion point carries focus and only one carries uncommitted
    text: activating a point resets every other buffer.
    """

    def __init__(
        self,
        model: DocumentModel,
        *,
        bus: EventBus[Event] | None = None,
        debounce_seconds: float = DEFAULT_COMMIT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._model = model
        self._bus = bus
        self._debounce_seconds = max(0.0, float(debounce_seconds))
        self._clock = clock
        self._focused: InsertionPoint | None = None
        self._solid_cursor: InsertionPoint | None = None
        self._buffers: Dict[str, str] = {}
        self._surfaces: Dict[str, CaretSurface] = {}
        self._last_separator_commit: Dict[str, float] = {}
        if bus is not None:
            bus.subscribe(ParagraphRemoved, self._on_paragraph_removed)
            bus.subscribe(SentenceRemoved, self._on_sentence_removed)
            bus.subscribe(SentenceMoved, self._on_sentence_moved)

    @property
    def focused(self) -> InsertionPoint | None:
        return self._focused

    @property
    def focused_key(self) -> str | None:
        return self._focused.key if self._focused is not None else None

    @property
    def solid_cursor(self) -> InsertionPoint | None:
        return self._solid_cursor

    def attach_surface(self, point: InsertionPoint, surface: CaretSurface) -> None:
        self._surfaces[point.key] = surface

    def detach_surface(self, point: InsertionPoint) -> None:
        self._surfaces.pop(point.key, None)

    def content(self, point: InsertionPoint) -> str:
        return self._buffers.get(point.key, "")

    def view(self, point: InsertionPoint) -> InsertionPointState:
        return InsertionPointState(
            content=self.content(point),
            is_focused=self._focused == point,
            show_solid_cursor=self._solid_cursor == point and self._focused != point,
        )

    def points(self) -> Iterator[InsertionPoint]:
        return iter_insertion_points(self._model.document)

    def is_valid(self, point: InsertionPoint) -> bool:
        paragraph = self._model.find_paragraph(point.paragraph_id)
        if paragraph is None:
            return False
        if isinstance(point.slot, int):
            return 0 <= point.slot < len(paragraph.sentences)
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def focus(self, point: InsertionPoint) -> None:
        self._reset_others(point)
        self._solid_cursor = None
        if self._focused == point:
            return
        self._focused = point
        LOGGER.debug("Insertion point focused: %s", point.key)
        self._place_caret(point)
        if self._bus is not None:
            self._bus.publish(InsertionPointFocused(key=point.key))

    def blur(self) -> None:
        if self._focused is None:
            return
        self._focused = None
        if self._bus is not None:
            self._bus.publish(InsertionPointFocused(key=None))

    def input(self, point: InsertionPoint, text: str) -> None:
        self._reset_others(point)
        if text:
            self._buffers[point.key] = text
        else:
            self._buffers.pop(point.key, None)

    def reset(self, point: InsertionPoint) -> None:
        self._buffers.pop(point.key, None)

    def reset_all(self) -> None:
        self._buffers.clear()

    def show_solid_cursor(self, point: InsertionPoint) -> None:
        self._solid_cursor = point

    def hide_solid_cursor(self) -> None:
        self._solid_cursor = None

    def commit(self, point: InsertionPoint, text: str | None = None) -> CommitResult | None:
        """Turn the text at ``point`` into a sentence or a paragraph.

        Blank text is ignored and the point keeps focus. Duplicate commits at
        the same separator inside the debounce window are coalesced.
        """

        raw = self.content(point) if text is None else text
        cleaned = raw.strip()
        if not cleaned:
            LOGGER.debug("Ignoring blank commit at %s", point.key)
            return None

        if point.is_separator:
            result = self._commit_paragraph(point, cleaned)
        else:
            result = self._commit_sentence(point, cleaned)
        if result is None:
            return None

        self._buffers.pop(point.key, None)
        self.focus(result.focus)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _commit_sentence(self, point: InsertionPoint, text: str) -> CommitResult | None:
        index = point.sentence_index()
        assert index is not None
        sentence_id = self._model.add_sentence_at(point.paragraph_id, index, text)
        if sentence_id is None:
            return None
        return CommitResult(
            point=point,
            sentence_id=sentence_id,
            paragraph_id=point.paragraph_id,
            focus=InsertionPoint.after(point.paragraph_id, index),
        )

    def _commit_paragraph(self, point: InsertionPoint, text: str) -> CommitResult | None:
        now = self._clock()
        self._forget_stale_separator_commits(now)
        last = self._last_separator_commit.get(point.key)
        if last is not None and now - last < self._debounce_seconds:
            LOGGER.debug("Coalescing duplicate commit at %s", point.key)
            self._buffers.pop(point.key, None)
            return None

        paragraph_index = self._model.paragraph_index(point.paragraph_id)
        if paragraph_index is None:
            LOGGER.warning("Commit at %s targets an unknown paragraph", point.key)
            return None
        position = paragraph_index if point.slot == "separator-before" else paragraph_index + 1
        inserted = self._model.insert_paragraph(position, text)
        if inserted is None:
            return None
        self._last_separator_commit[point.key] = now
        return CommitResult(
            point=point,
            sentence_id=inserted.sentence_id,
            paragraph_id=inserted.paragraph_id,
            focus=InsertionPoint.after(inserted.paragraph_id, 0),
            new_paragraph=True,
        )

    def _reset_others(self, point: InsertionPoint) -> None:
        key = point.key
        for other in [name for name in self._buffers if name != key]:
            del self._buffers[other]

    def _place_caret(self, point: InsertionPoint) -> None:
        surface = self._surfaces.get(point.key)
        if surface is None:
            return
        try:
            surface.focus()
            surface.place_caret_at_end()
        except Exception:  # pragma: no cover - renderer bugs must not break editing
            LOGGER.warning("Caret surface for %s failed to take focus", point.key, exc_info=True)

    def _on_paragraph_removed(self, event: ParagraphRemoved) -> None:
        for key in [name for name in self._buffers if _belongs_to(name, event.paragraph_id)]:
            del self._buffers[key]
        for key in [name for name in self._last_separator_commit if _belongs_to(name, event.paragraph_id)]:
            del self._last_separator_commit[key]
        if self._solid_cursor is not None and self._solid_cursor.paragraph_id == event.paragraph_id:
            self._solid_cursor = None
        if self._focused is not None and self._focused.paragraph_id == event.paragraph_id:
            self.blur()

    def _on_sentence_removed(self, event: SentenceRemoved) -> None:
        self._revalidate(event.paragraph_id)

    def _on_sentence_moved(self, event: SentenceMoved) -> None:
        self._revalidate(event.from_paragraph_id)

    def _revalidate(self, paragraph_id: str) -> None:
        """Pull points left past the end of a shortened paragraph back onto its last gap."""

        for key in [name for name in self._buffers if _belongs_to(name, paragraph_id)]:
            if key != self.focused_key and not self.is_valid(InsertionPoint.from_key(key)):
                del self._buffers[key]
        if self._solid_cursor is not None and self._solid_cursor.paragraph_id == paragraph_id:
            self._solid_cursor = self._clamp(self._solid_cursor)
        focused = self._focused
        if focused is None or focused.paragraph_id != paragraph_id or self.is_valid(focused):
            return
        replacement = self._clamp(focused)
        draft = self._buffers.pop(focused.key, None)
        if replacement is None:
            self.blur()
            return
        LOGGER.debug("Focused insertion point %s moved to %s", focused.key, replacement.key)
        if draft:
            self._buffers[replacement.key] = draft
        self.focus(replacement)

    def _clamp(self, point: InsertionPoint) -> InsertionPoint | None:
        if self.is_valid(point):
            return point
        paragraph = self._model.find_paragraph(point.paragraph_id)
        if paragraph is None:
            return None
        if not paragraph.sentences:
            return InsertionPoint.start(paragraph.id)
        return InsertionPoint.after(paragraph.id, len(paragraph.sentences) - 1)

    def _forget_stale_separator_commits(self, now: float) -> None:
        expired = [key for key, at in self._last_separator_commit.items() if now - at >= self._debounce_seconds]
        for key in expired:
            del self._last_separator_commit[key]


def _belongs_to(key: str, paragraph_id: str) -> bool:
    try:
        return InsertionPoint.from_key(key).paragraph_id == paragraph_id
    except ValueError:
        return False


__all__ = [
    "CommitResult",
    "DEFAULT_COMMIT_DEBOUNCE_SECONDS",
    "InsertionPoint",
    "InsertionPointRegistry",
    "InsertionPointState",
    "Slot",
    "iter_insertion_points",
]
