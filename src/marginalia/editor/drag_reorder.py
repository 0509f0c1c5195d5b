"""Drag-and-drop relocation of sentences between positions and paragraphs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from .document_model import DocumentModel

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DragSource:
    sentence_id: str
    paragraph_id: str
    index: int


@dataclass(slots=True, frozen=True)
class HoverTarget:
    """The sentence currently under the pointer and where the pointer is.

    ``top`` and ``bottom`` are the hovered sentence's vertical bounds and
    ``pointer_y`` the pointer position, all in the same coordinate space.
    """

    paragraph_id: str
    index: int
    top: float
    bottom: float
    pointer_y: float


def should_reorder(source: DragSource, target: HoverTarget) -> bool:
    """Decide whether hovering ``target`` crosses the reorder threshold.

    Dragging downwards only counts once the pointer is below the hovered
    sentence's vertical midpoint, dragging upwards only while it is above it.
    """

    if source.index == target.index and source.paragraph_id == target.paragraph_id:
        return False
    hover_middle = (target.bottom - target.top) / 2
    hover_offset = target.pointer_y - target.top
    if source.index < target.index and hover_offset < hover_middle:
        return False
    if source.index > target.index and hover_offset > hover_middle:
        return False
    return True


class DragReorderCoordinator:
    """Computes the destination of a sentence drag and delegates the move.

    In ``live`` mode every qualifying hover moves the sentence immediately
    and the drag source follows it; otherwise the last qualifying hover is
    committed on :meth:`drop`.
    """

    def __init__(self, model: DocumentModel, *, live: bool = False) -> None:
        self._model = model
        self._live = live
        self._source: DragSource | None = None
        self._target: HoverTarget | None = None

    @property
    def drag_source(self) -> DragSource | None:
        return self._source

    @property
    def hover_target(self) -> HoverTarget | None:
        return self._target

    @property
    def is_dragging(self) -> bool:
        return self._source is not None

    def begin(self, sentence_id: str) -> DragSource | None:
        location = self._model.locate(sentence_id)
        if location is None:
            LOGGER.warning("Cannot drag unknown sentence %s", sentence_id)
            return None
        self._source = DragSource(sentence_id, location.paragraph_id, location.sentence_index)
        self._target = None
        return self._source

    def hover(self, target: HoverTarget) -> bool:
        """Register a hover; return True when it set (or applied) a new target."""

        if self._source is None:
            return False
        if not should_reorder(self._source, target):
            return False
        self._target = target
        if self._live:
            return self.commit_move()
        return True

    def commit_move(self) -> bool:
        source, target = self._source, self._target
        if source is None or target is None:
            return False
        moved = self._model.move_sentence(
            source.sentence_id, source.paragraph_id, target.paragraph_id, target.index
        )
        self._target = None
        if not moved:
            return False
        location = self._model.locate(source.sentence_id)
        if location is not None:
            self._source = replace(
                source, paragraph_id=location.paragraph_id, index=location.sentence_index
            )
        return True

    def drop(self) -> bool:
        moved = self.commit_move()
        self._source = None
        self._target = None
        return moved

    def cancel(self) -> None:
        self._source = None
        self._target = None


__all__ = ["DragReorderCoordinator", "DragSource", "HoverTarget", "should_reorder"]
