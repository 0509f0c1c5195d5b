"""Click and edit handling for existing sentences."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..ui.events import EditingChanged, Event, EventBus
from .document_model import DocumentModel
from .insertion_points import InsertionPoint, InsertionPointRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_DOUBLE_CLICK_SECONDS = 0.3


@dataclass(slots=True, frozen=True)
class EditOutcome:
    """Result of submitting an edited sentence.

    Attributes:
        sentence_id: The sentence that was edited.
        text: Final text written to the document.
        removed: True when a blank submission deleted the sentence.
    """

    sentence_id: str
    text: str
    removed: bool = False


class SentenceEditor:
    """Keeps at most one sentence in editing mode.

    A single click places the caret in the insertion point right after the
    sentence. A second click on the same sentence inside the double-click
    window switches that sentence into editing mode and drops insertion
    point focus.
    """

    def __init__(
        self,
        model: DocumentModel,
        registry: InsertionPointRegistry,
        *,
        bus: EventBus[Event] | None = None,
        double_click_seconds: float = DEFAULT_DOUBLE_CLICK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._model = model
        self._registry = registry
        self._bus = bus
        self._double_click_seconds = double_click_seconds
        self._clock = clock
        self._editing_id: str | None = None
        self._original_text: str | None = None
        self._last_click: tuple[str, float] | None = None

    @property
    def editing_id(self) -> str | None:
        return self._editing_id

    def is_editing(self, sentence_id: str) -> bool:
        return self._editing_id == sentence_id

    def click(self, sentence_id: str) -> bool:
        """Handle a click on a sentence; return True when editing started."""

        if self._editing_id == sentence_id:
            return False
        location = self._model.locate(sentence_id)
        if location is None:
            LOGGER.warning("Click on unknown sentence %s", sentence_id)
            return False
        if self._editing_id is not None:
            # Clicking elsewhere abandons the draft of the sentence being edited
            self.cancel()
        now = self._clock()
        previous = self._last_click
        self._last_click = (sentence_id, now)
        if previous is not None and previous[0] == sentence_id and now - previous[1] < self._double_click_seconds:
            self.begin(sentence_id)
            return True
        self._registry.focus(InsertionPoint.after(location.paragraph_id, location.sentence_index))
        return False

    def begin(self, sentence_id: str) -> bool:
        sentence = self._model.find_sentence(sentence_id)
        if sentence is None:
            LOGGER.warning("Cannot edit unknown sentence %s", sentence_id)
            return False
        if self._editing_id is not None and self._editing_id != sentence_id:
            self.cancel()
        self._editing_id = sentence_id
        self._original_text = sentence.text
        self._registry.blur()
        self._publish(sentence_id)
        return True

    def input(self, sentence_id: str, text: str) -> None:
        """Write a keystroke-level draft straight into the document."""

        if self._editing_id != sentence_id:
            LOGGER.debug("Ignoring input for sentence %s that is not being edited", sentence_id)
            return
        self._model.update_sentence_text(sentence_id, text)

    def submit(self, sentence_id: str, text: str) -> EditOutcome | None:
        """Finish editing ``sentence_id`` with ``text``.

        Blank text deletes the sentence.
        """

        if self._model.find_sentence(sentence_id) is None:
            LOGGER.warning("Submit for unknown sentence %s", sentence_id)
            self._finish()
            return None
        cleaned = text.strip()
        if not cleaned:
            self._model.remove_sentence(sentence_id)
            outcome = EditOutcome(sentence_id=sentence_id, text="", removed=True)
        else:
            self._model.update_sentence_text(sentence_id, cleaned)
            outcome = EditOutcome(sentence_id=sentence_id, text=cleaned)
        if self._editing_id == sentence_id:
            self._finish()
        return outcome

    def cancel(self) -> None:
        """Leave editing mode, restoring the text captured when it began."""

        if self._editing_id is None:
            return
        if self._original_text is not None and self._model.find_sentence(self._editing_id) is not None:
            self._model.update_sentence_text(self._editing_id, self._original_text)
        self._finish()

    def _finish(self) -> None:
        if self._editing_id is None:
            return
        self._editing_id = None
        self._original_text = None
        self._publish(None)

    def _publish(self, sentence_id: str | None) -> None:
        if self._bus is not None:
            self._bus.publish(EditingChanged(sentence_id=sentence_id))


__all__ = ["DEFAULT_DOUBLE_CLICK_SECONDS", "EditOutcome", "SentenceEditor"]
