"""Paging through the open remarks of a sentence."""

from __future__ import annotations

from typing import Sequence

from ..editor.document_model import Remark


def next_remark_id(remarks: Sequence[Remark], current_id: str | None) -> str | None:
    """Return the open remark that follows ``current_id``, wrapping around.

    Rejoined remarks are skipped. When ``current_id`` is None or not part of
    ``remarks`` the first open remark is returned. When ``current_id`` is the
    only open remark it is returned again. Returns None when no remark is
    open.
    """

    if not any(not remark.rejoined for remark in remarks):
        return None
    start = None
    if current_id is not None:
        for index, remark in enumerate(remarks):
            if remark.id == current_id:
                start = index
                break
    if start is None:
        return next(remark.id for remark in remarks if not remark.rejoined)
    count = len(remarks)
    for step in range(1, count + 1):
        candidate = remarks[(start + step) % count]
        if not candidate.rejoined:
            return candidate.id
    return None  # pragma: no cover - unreachable, an open remark exists


__all__ = ["next_remark_id"]
