"""Tests for the open-remark cycling order."""

from __future__ import annotations

from marginalia.editor.document_model import Remark
from marginalia.remarks.cycling import next_remark_id


def _remarks(*specs: tuple[str, bool]) -> tuple[Remark, ...]:
    return tuple(Remark(id=remark_id, text=remark_id, sentence_id="S", rejoined=rejoined) for remark_id, rejoined in specs)


def test_cycles_with_wraparound() -> None:
    remarks = _remarks(("R1", False), ("R2", False))

    first = next_remark_id(remarks, None)
    second = next_remark_id(remarks, first)
    third = next_remark_id(remarks, second)

    assert (first, second, third) == ("R1", "R2", "R1")


def test_rejoined_remarks_are_skipped() -> None:
    remarks = _remarks(("R1", True), ("R2", False), ("R3", True), ("R4", False))

    assert next_remark_id(remarks, None) == "R2"
    assert next_remark_id(remarks, "R2") == "R4"
    assert next_remark_id(remarks, "R4") == "R2"


def test_cycling_from_a_rejoined_remark_moves_on() -> None:
    remarks = _remarks(("R1", True), ("R2", False))

    assert next_remark_id(remarks, "R1") == "R2"


def test_single_open_remark_returns_itself() -> None:
    remarks = _remarks(("R1", False), ("R2", True))

    assert next_remark_id(remarks, "R1") == "R1"


def test_unknown_current_starts_over() -> None:
    remarks = _remarks(("R1", False), ("R2", False))

    assert next_remark_id(remarks, "stale") == "R1"


def test_none_when_nothing_is_open() -> None:
    assert next_remark_id((), None) is None
    assert next_remark_id(_remarks(("R1", True)), "R1") is None
