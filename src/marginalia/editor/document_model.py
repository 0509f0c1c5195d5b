"""Paragraph/sentence/remark tree and its structural mutations.

Model values are frozen dataclasses. Every mutation builds a new
:class:`Document` snapshot so renderers can compare snapshots by identity and
so focus changes that follow a mutation always observe the finished tree.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, Optional

from ..ui.events import (
    DocumentChanged,
    Event,
    EventBus,
    ParagraphCreated,
    ParagraphRemoved,
    RemarkAdded,
    RemarkRejoined,
    RemarksCleared,
    SentenceCreated,
    SentenceMoved,
    SentenceRemoved,
    SentenceTextUpdated,
    TitleChanged,
    publish_all,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_TITLE = "Document Title"
_MAX_ID_ATTEMPTS = 16


def new_id() -> str:
    """Return a fresh identifier for paragraphs, sentences and remarks."""

    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class Remark:
    """Feedback attached to a sentence.

    ``sentence_id`` is a back-reference only; the owning sentence holds the
    remark inside its ``remarks`` tuple.
    """

    id: str
    text: str
    sentence_id: str
    rejoined: bool = False


@dataclass(slots=True, frozen=True)
class Sentence:
    id: str
    text: str
    remarks: tuple[Remark, ...] = ()
    remark_color: Optional[str] = None

    @property
    def has_open_remarks(self) -> bool:
        """True when at least one remark has not been rejoined."""

        return any(not remark.rejoined for remark in self.remarks)

    def open_remarks(self) -> tuple[Remark, ...]:
        return tuple(remark for remark in self.remarks if not remark.rejoined)


@dataclass(slots=True, frozen=True)
class Paragraph:
    id: str
    sentences: tuple[Sentence, ...] = ()

    def index_of(self, sentence_id: str) -> int | None:
        for index, sentence in enumerate(self.sentences):
            if sentence.id == sentence_id:
                return index
        return None


@dataclass(slots=True, frozen=True)
class SentenceLocation:
    """Address of a sentence inside a document snapshot."""

    paragraph_id: str
    paragraph_index: int
    sentence_index: int


@dataclass(slots=True, frozen=True)
class InsertedParagraph:
    paragraph_id: str
    sentence_id: str


@dataclass(slots=True, frozen=True)
class Document:
    """Immutable snapshot of the whole document tree."""

    title: str = DEFAULT_TITLE
    paragraphs: tuple[Paragraph, ...] = field(default_factory=tuple)

    def paragraph_index(self, paragraph_id: str) -> int | None:
        for index, paragraph in enumerate(self.paragraphs):
            if paragraph.id == paragraph_id:
                return index
        return None

    def find_paragraph(self, paragraph_id: str) -> Paragraph | None:
        index = self.paragraph_index(paragraph_id)
        return None if index is None else self.paragraphs[index]

    def locate(self, sentence_id: str) -> SentenceLocation | None:
        for paragraph_index, paragraph in enumerate(self.paragraphs):
            sentence_index = paragraph.index_of(sentence_id)
            if sentence_index is not None:
                return SentenceLocation(paragraph.id, paragraph_index, sentence_index)
        return None

    def find_sentence(self, sentence_id: str) -> Sentence | None:
        location = self.locate(sentence_id)
        if location is None:
            return None
        return self.paragraphs[location.paragraph_index].sentences[location.sentence_index]

    def find_remark(self, remark_id: str) -> Remark | None:
        for sentence in self.iter_sentences():
            for remark in sentence.remarks:
                if remark.id == remark_id:
                    return remark
        return None

    def iter_sentences(self) -> Iterator[Sentence]:
        for paragraph in self.paragraphs:
            yield from paragraph.sentences

    def sentence_count(self) -> int:
        return sum(len(paragraph.sentences) for paragraph in self.paragraphs)

    def all_ids(self) -> set[str]:
        """Return every paragraph, sentence and remark id in the snapshot."""

        ids: set[str] = set()
        for paragraph in self.paragraphs:
            ids.add(paragraph.id)
            for sentence in paragraph.sentences:
                ids.add(sentence.id)
                ids.update(remark.id for remark in sentence.remarks)
        return ids

    def as_dict(self) -> Dict[str, Any]:
        """Serialize the snapshot for diagnostics and the CLI."""

        return asdict(self)


def default_document() -> Document:
    """Return the two-paragraph sample document the editor opens with."""

    first = (
        "This is the first sentence of the first paragraph.",
        "Here is the second sentence.",
        "The third sentence follows.",
        "This is the fourth and final sentence of the first paragraph.",
    )
    second = (
        "The second paragraph begins with this sentence.",
        "Here is the second sentence of the second paragraph.",
        "The third sentence continues the thought.",
        "This final sentence concludes the second paragraph.",
    )
    counter = iter(range(1, len(first) + len(second) + 1))
    paragraphs = tuple(
        Paragraph(
            id=f"p{paragraph_number}",
            sentences=tuple(Sentence(id=f"s{next(counter)}", text=text) for text in texts),
        )
        for paragraph_number, texts in enumerate((first, second), start=1)
    )
    return Document(title=DEFAULT_TITLE, paragraphs=paragraphs)


class DocumentModel:
    """Owns the current :class:`Document` snapshot and its mutation operations.

    Operations addressing ids that no longer exist leave the document
    unchanged, log a warning and return ``None``/``False``; they never raise.
    """

    def __init__(
        self,
        document: Document | None = None,
        *,
        bus: EventBus[Event] | None = None,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._document = document or Document()
        self._bus = bus
        self._id_factory = id_factory
        self._version = 0

    @property
    def document(self) -> Document:
        return self._document

    @property
    def version(self) -> int:
        return self._version

    @property
    def bus(self) -> EventBus[Event] | None:
        return self._bus

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_sentence(self, sentence_id: str) -> Sentence | None:
        return self._document.find_sentence(sentence_id)

    def find_paragraph(self, paragraph_id: str) -> Paragraph | None:
        return self._document.find_paragraph(paragraph_id)

    def paragraph_of(self, sentence_id: str) -> Paragraph | None:
        location = self._document.locate(sentence_id)
        if location is None:
            return None
        return self._document.paragraphs[location.paragraph_index]

    def paragraph_index(self, paragraph_id: str) -> int | None:
        return self._document.paragraph_index(paragraph_id)

    def locate(self, sentence_id: str) -> SentenceLocation | None:
        return self._document.locate(sentence_id)

    def find_remark(self, remark_id: str) -> Remark | None:
        return self._document.find_remark(remark_id)

    def iter_sentences(self) -> Iterator[Sentence]:
        return self._document.iter_sentences()

    def sentence_count(self) -> int:
        return self._document.sentence_count()

    def snapshot(self) -> Dict[str, Any]:
        payload = self._document.as_dict()
        payload["version"] = self._version
        return payload

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def set_title(self, title: str) -> None:
        if title == self._document.title:
            return
        self._commit(replace(self._document, title=title), [TitleChanged(title=title)])

    def insert_paragraph(
        self,
        index: int,
        text: str,
        *,
        paragraph_id: str | None = None,
        sentence_id: str | None = None,
    ) -> InsertedParagraph | None:
        """Insert a one-sentence paragraph at ``index``.

        Out-of-range indexes append; negative indexes insert at the top.
        """

        ids = self._claim_ids(paragraph_id, sentence_id)
        if ids is None:
            return None
        new_paragraph_id, new_sentence_id = ids
        paragraphs = list(self._document.paragraphs)
        position = _clamp(index, len(paragraphs))
        paragraphs.insert(
            position,
            Paragraph(id=new_paragraph_id, sentences=(Sentence(id=new_sentence_id, text=text),)),
        )
        self._commit(
            replace(self._document, paragraphs=tuple(paragraphs)),
            [
                ParagraphCreated(paragraph_id=new_paragraph_id, index=position),
                SentenceCreated(sentence_id=new_sentence_id, paragraph_id=new_paragraph_id, text=text),
            ],
        )
        return InsertedParagraph(paragraph_id=new_paragraph_id, sentence_id=new_sentence_id)

    def add_sentence_at(
        self,
        paragraph_id: str,
        index: int,
        text: str,
        *,
        sentence_id: str | None = None,
    ) -> str | None:
        """Splice a sentence into ``paragraph_id`` at ``index``.

        The slot right after a sentence doubles as that sentence's remark
        reply slot: committing there while the sentence still has open
        remarks clears its remark list in the same snapshot.
        """

        paragraph_index = self._document.paragraph_index(paragraph_id)
        if paragraph_index is None:
            LOGGER.warning("add_sentence_at: unknown paragraph %s", paragraph_id)
            return None
        ids = self._claim_ids(sentence_id)
        if ids is None:
            return None
        (new_sentence_id,) = ids
        paragraph = self._document.paragraphs[paragraph_index]
        sentences = list(paragraph.sentences)
        position = _clamp(index, len(sentences))
        events: list[Event] = []
        if position > 0:
            previous = sentences[position - 1]
            if previous.has_open_remarks:
                sentences[position - 1] = replace(previous, remarks=())
                events.append(
                    RemarksCleared(
                        sentence_id=previous.id,
                        remark_ids=tuple(remark.id for remark in previous.remarks),
                    )
                )
        sentences.insert(position, Sentence(id=new_sentence_id, text=text))
        events.append(SentenceCreated(sentence_id=new_sentence_id, paragraph_id=paragraph_id, text=text))
        self._replace_paragraph(paragraph_index, replace(paragraph, sentences=tuple(sentences)), events)
        return new_sentence_id

    def add_sentence_after(
        self, anchor_sentence_id: str, text: str, new_id: str | None = None
    ) -> str | None:
        location = self._document.locate(anchor_sentence_id)
        if location is None:
            LOGGER.warning("add_sentence_after: unknown anchor sentence %s", anchor_sentence_id)
            return None
        ids = self._claim_ids(new_id)
        if ids is None:
            return None
        (new_sentence_id,) = ids
        paragraph = self._document.paragraphs[location.paragraph_index]
        sentences = list(paragraph.sentences)
        sentences.insert(location.sentence_index + 1, Sentence(id=new_sentence_id, text=text))
        self._replace_paragraph(
            location.paragraph_index,
            replace(paragraph, sentences=tuple(sentences)),
            [SentenceCreated(sentence_id=new_sentence_id, paragraph_id=paragraph.id, text=text)],
        )
        return new_sentence_id

    def add_paragraph_after_sentence(
        self,
        anchor_sentence_id: str | None,
        text: str,
        rejoined_remark_id: str | None = None,
        new_id: str | None = None,
    ) -> str | None:
        """Insert a paragraph after the anchor's paragraph (or at the end).

        When ``rejoined_remark_id`` is given, the remark is marked rejoined in
        the same snapshot as the new paragraph.
        """

        paragraphs = list(self._document.paragraphs)
        if anchor_sentence_id is None:
            position = len(paragraphs)
        else:
            location = self._document.locate(anchor_sentence_id)
            if location is None:
                LOGGER.warning(
                    "add_paragraph_after_sentence: unknown anchor sentence %s", anchor_sentence_id
                )
                return None
            position = location.paragraph_index + 1
        ids = self._claim_ids(None, new_id)
        if ids is None:
            return None
        new_paragraph_id, new_sentence_id = ids

        events: list[Event] = []
        if rejoined_remark_id is not None:
            paragraphs, rejoin_event = _with_rejoined(paragraphs, rejoined_remark_id)
            if rejoin_event is not None:
                events.append(rejoin_event)

        paragraphs.insert(
            position,
            Paragraph(id=new_paragraph_id, sentences=(Sentence(id=new_sentence_id, text=text),)),
        )
        events.append(ParagraphCreated(paragraph_id=new_paragraph_id, index=position))
        events.append(
            SentenceCreated(sentence_id=new_sentence_id, paragraph_id=new_paragraph_id, text=text)
        )
        self._commit(replace(self._document, paragraphs=tuple(paragraphs)), events)
        return new_sentence_id

    def update_sentence_text(self, sentence_id: str, text: str) -> bool:
        location = self._document.locate(sentence_id)
        if location is None:
            LOGGER.warning("update_sentence_text: unknown sentence %s", sentence_id)
            return False
        paragraph = self._document.paragraphs[location.paragraph_index]
        sentence = paragraph.sentences[location.sentence_index]
        if sentence.text == text:
            return True
        sentences = list(paragraph.sentences)
        sentences[location.sentence_index] = replace(sentence, text=text)
        self._replace_paragraph(
            location.paragraph_index,
            replace(paragraph, sentences=tuple(sentences)),
            [SentenceTextUpdated(sentence_id=sentence_id, text=text)],
        )
        return True

    def remove_sentence(self, sentence_id: str) -> bool:
        """Delete a sentence; its paragraph stays even when left empty."""

        location = self._document.locate(sentence_id)
        if location is None:
            LOGGER.warning("remove_sentence: unknown sentence %s", sentence_id)
            return False
        paragraph = self._document.paragraphs[location.paragraph_index]
        sentences = list(paragraph.sentences)
        del sentences[location.sentence_index]
        self._replace_paragraph(
            location.paragraph_index,
            replace(paragraph, sentences=tuple(sentences)),
            [SentenceRemoved(sentence_id=sentence_id, paragraph_id=paragraph.id)],
        )
        return True

    def move_sentence(
        self,
        sentence_id: str,
        from_paragraph_id: str,
        to_paragraph_id: str,
        to_index: int,
    ) -> bool:
        """Relocate a sentence, pruning the source paragraph once it is empty."""

        paragraphs = list(self._document.paragraphs)
        source_index = self._document.paragraph_index(from_paragraph_id)
        target_index = self._document.paragraph_index(to_paragraph_id)
        if source_index is None or target_index is None:
            LOGGER.warning(
                "move_sentence: unknown paragraph (from=%s, to=%s)", from_paragraph_id, to_paragraph_id
            )
            return False
        source = paragraphs[source_index]
        position = source.index_of(sentence_id)
        if position is None:
            LOGGER.warning(
                "move_sentence: sentence %s is not in paragraph %s", sentence_id, from_paragraph_id
            )
            return False

        source_sentences = list(source.sentences)
        moving = source_sentences.pop(position)
        events: list[Event] = []

        if source_index == target_index:
            destination = _clamp(to_index, len(source_sentences))
            if destination == position:
                return True
            source_sentences.insert(destination, moving)
            paragraphs[source_index] = replace(source, sentences=tuple(source_sentences))
        else:
            target = paragraphs[target_index]
            target_sentences = list(target.sentences)
            destination = _clamp(to_index, len(target_sentences))
            target_sentences.insert(destination, moving)
            paragraphs[target_index] = replace(target, sentences=tuple(target_sentences))
            if source_sentences:
                paragraphs[source_index] = replace(source, sentences=tuple(source_sentences))
            else:
                del paragraphs[source_index]
                events.append(ParagraphRemoved(paragraph_id=from_paragraph_id))

        events.insert(
            0,
            SentenceMoved(
                sentence_id=sentence_id,
                from_paragraph_id=from_paragraph_id,
                to_paragraph_id=to_paragraph_id,
                index=destination,
            ),
        )
        self._commit(replace(self._document, paragraphs=tuple(paragraphs)), events)
        return True

    def append_remark(
        self, sentence_id: str, text: str, *, remark_id: str | None = None
    ) -> str | None:
        """Attach a new visible remark to ``sentence_id``."""

        location = self._document.locate(sentence_id)
        if location is None:
            LOGGER.warning("append_remark: unknown sentence %s", sentence_id)
            return None
        ids = self._claim_ids(remark_id)
        if ids is None:
            return None
        (new_remark_id,) = ids
        paragraph = self._document.paragraphs[location.paragraph_index]
        sentence = paragraph.sentences[location.sentence_index]
        remark = Remark(id=new_remark_id, text=text, sentence_id=sentence_id)
        sentences = list(paragraph.sentences)
        sentences[location.sentence_index] = replace(sentence, remarks=sentence.remarks + (remark,))
        self._replace_paragraph(
            location.paragraph_index,
            replace(paragraph, sentences=tuple(sentences)),
            [RemarkAdded(remark_id=new_remark_id, sentence_id=sentence_id, text=text)],
        )
        return new_remark_id

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _replace_paragraph(self, index: int, paragraph: Paragraph, events: list[Event]) -> None:
        paragraphs = list(self._document.paragraphs)
        paragraphs[index] = paragraph
        self._commit(replace(self._document, paragraphs=tuple(paragraphs)), events)

    def _commit(self, document: Document, events: list[Event]) -> None:
        self._document = document
        self._version += 1
        publish_all(self._bus, [*events, DocumentChanged(version=self._version)])

    def _claim_ids(self, *requested: str | None) -> tuple[str, ...] | None:
        """Return unused ids, honouring caller-supplied ones when they are free."""

        in_use = self._document.all_ids()
        claimed: list[str] = []
        for candidate in requested:
            if candidate is not None:
                if candidate in in_use:
                    LOGGER.warning("Rejecting duplicate id %s", candidate)
                    return None
                claimed.append(candidate)
                in_use.add(candidate)
                continue
            claimed.append(self._fresh_id(in_use))
        return tuple(claimed)

    def _fresh_id(self, in_use: set[str]) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in in_use:
                in_use.add(candidate)
                return candidate
        # The injected factory keeps colliding; fall back to uuid ids.
        candidate = new_id()
        in_use.add(candidate)
        return candidate


def _clamp(index: int, length: int) -> int:
    return max(0, min(int(index), length))


def _with_rejoined(
    paragraphs: list[Paragraph], remark_id: str
) -> tuple[list[Paragraph], RemarkRejoined | None]:
    """Return ``paragraphs`` with ``remark_id`` flagged as rejoined.

    Unknown or already rejoined remarks leave the paragraphs untouched.
    """

    for p_index, paragraph in enumerate(paragraphs):
        for s_index, sentence in enumerate(paragraph.sentences):
            for r_index, remark in enumerate(sentence.remarks):
                if remark.id != remark_id:
                    continue
                if remark.rejoined:
                    return paragraphs, None
                remarks = list(sentence.remarks)
                remarks[r_index] = replace(remark, rejoined=True)
                sentences = list(paragraph.sentences)
                sentences[s_index] = replace(sentence, remarks=tuple(remarks))
                updated = list(paragraphs)
                updated[p_index] = replace(paragraph, sentences=tuple(sentences))
                return updated, RemarkRejoined(remark_id=remark_id, sentence_id=sentence.id)
    LOGGER.warning("Cannot rejoin unknown remark %s", remark_id)
    return paragraphs, None


__all__ = [
    "DEFAULT_TITLE",
    "Document",
    "DocumentModel",
    "InsertedParagraph",
    "Paragraph",
    "Remark",
    "Sentence",
    "SentenceLocation",
    "default_document",
    "new_id",
]
