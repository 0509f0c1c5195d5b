"""Message list that mirrors sentences and remarks next to the document."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..ui.emphasis import EmphasisSynchronizer
from ..ui.events import Event, EventBus, MessageScrollRequested
from .message_model import Message, MessageSender, MessageType

LOGGER = logging.getLogger(__name__)

SubmitHandler = Callable[[str], object]


class MessagePanel:
    """Headless model of the companion message panel.

    The panel owns its message list only. Selection is never stored here: it
    is derived from the shared :class:`EmphasisSynchronizer` so the document
    and the panel cannot disagree about what is selected.
    """

    def __init__(
        self,
        emphasis: EmphasisSynchronizer,
        *,
        bus: EventBus[Event] | None = None,
        on_submit: Optional[SubmitHandler] = None,
    ) -> None:
        self._emphasis = emphasis
        self._on_submit = on_submit
        self._messages: list[Message] = []
        self._scroll_target: str | None = None
        if bus is not None:
            bus.subscribe(MessageScrollRequested, self._on_scroll_requested)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def scroll_target(self) -> str | None:
        """Id of the message the document last asked to reveal."""

        return self._scroll_target

    def set_submit_handler(self, handler: Optional[SubmitHandler]) -> None:
        self._on_submit = handler

    def find(self, message_id: str, message_type: MessageType | None = None) -> Message | None:
        for message in self._messages:
            if message.id == message_id and (message_type is None or message.type == message_type):
                return message
        return None

    # ------------------------------------------------------------------
    # Inbound from the document
    # ------------------------------------------------------------------
    def on_new_content(
        self,
        text: str,
        sender: MessageSender,
        type: MessageType,
        id: str,
        sentence_id: str | None = None,
    ) -> Message:
        existing = self.find(id, type)
        if existing is not None:
            existing.text = text
            return existing
        message = Message(id=id, text=text, sender=sender, type=type, sentence_id=sentence_id)
        self._messages.append(message)
        LOGGER.debug("New %s message %s from %s", type, id, sender)
        return message

    def update_content(self, message_id: str, text: str) -> bool:
        message = self.find(message_id, "sentence")
        if message is None:
            return False
        message.text = text
        return True

    def mark_resolved(self, remark_id: str) -> bool:
        message = self.find(remark_id, "remark")
        if message is None:
            return False
        message.resolved = True
        return True

    # ------------------------------------------------------------------
    # Outbound user actions
    # ------------------------------------------------------------------
    def on_new_message(self, text: str) -> object:
        """Submit text typed into the panel; blank text is ignored."""

        cleaned = text.strip()
        if not cleaned:
            return None
        if self._on_submit is None:
            LOGGER.warning("Message submitted with no handler attached")
            return None
        return self._on_submit(cleaned)

    def on_message_click(self, message_id: str, message_type: MessageType) -> bool:
        message = self.find(message_id, message_type)
        if message is None:
            LOGGER.warning("Click on unknown %s message %s", message_type, message_id)
            return False
        if message_type == "remark":
            if message.sentence_id is None:
                LOGGER.warning("Remark message %s has no owning sentence", message_id)
                return False
            self._emphasis.select_remark(message.id, message.sentence_id)
        else:
            self._emphasis.select_sentence(message.id)
        return True

    # ------------------------------------------------------------------
    # Derived view state
    # ------------------------------------------------------------------
    def is_selected(self, message: Message) -> bool:
        state = self._emphasis.state
        return state.emphasized_message_id == message.id and state.emphasized_type == message.type

    def is_hovered(self, message: Message) -> bool:
        return message.type == "remark" and self._emphasis.state.hovered_remark_id == message.id

    def selected(self) -> Message | None:
        state = self._emphasis.state
        if state.emphasized_message_id is None or state.emphasized_type is None:
            return None
        return self.find(state.emphasized_message_id, state.emphasized_type)

    def _on_scroll_requested(self, event: MessageScrollRequested) -> None:
        if self.find(event.message_id) is None:
            LOGGER.debug("Scroll requested for unknown message %s", event.message_id)
            return
        self._scroll_target = event.message_id


__all__ = ["MessagePanel", "SubmitHandler"]
