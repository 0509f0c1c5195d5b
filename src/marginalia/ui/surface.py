"""Contracts between the editing core and whatever renders it.

The core never touches a visual tree. A rendering layer implements
:class:`CaretSurface` for each insertion point it draws and consumes the
binding dataclasses produced by :class:`~marginalia.ui.document_session.DocumentSession`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..editor.document_model import Remark


class CaretSurface(Protocol):
    """Capability a renderer exposes so the core can move the visual caret."""

    def focus(self) -> None:
        ...

    def place_caret_at_end(self) -> None:
        ...


@dataclass(slots=True)
class InsertionPointBinding:
    """Everything a renderer needs to draw and drive one insertion point."""

    key: str
    content: str
    is_focused: bool
    show_solid_cursor: bool
    on_commit: Callable[[str], object]
    on_input: Callable[[str], None]
    on_reset: Callable[[], None]
    on_focus: Callable[[], None]


@dataclass(slots=True)
class SentenceBinding:
    """Everything a renderer needs to draw and drive one sentence."""

    sentence_id: str
    text: str
    remarks: tuple["Remark", ...]
    has_open_remarks: bool
    is_editing: bool
    is_emphasized: bool
    on_edit_submit: Callable[[str], object]
    on_input: Callable[[str], None]
    on_click: Callable[[], None]
    on_remark_marker_click: Callable[[], object]
    on_remark_marker_hover: Callable[[bool], None]


__all__ = ["CaretSurface", "InsertionPointBinding", "SentenceBinding"]
