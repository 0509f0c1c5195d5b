"""Event bus infrastructure for decoupled editor component communication.

The document model, the remark lifecycle manager, the emphasis synchronizer
and the message panel never call each other directly for notifications; they
publish and subscribe to the typed events defined here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]

EmphasisType = Literal["sentence", "remark"]


@dataclass(slots=True)
class Event:
    """Common base of every session event.

    Events are plain slotted dataclasses carrying ids and values, never
    snapshots of the document, so handlers re-read the model when they need
    more than the ids.
    """


# Published on every keystroke; not worth a debug line each
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Document Events
# =============================================================================


@dataclass(slots=True)
class DocumentChanged(Event):
    """Emitted after every structural or textual document mutation.

    Attributes:
        version: Monotonic snapshot counter of the document model.
    """

    version: int


@dataclass(slots=True)
class TitleChanged(Event):
    """Emitted when the document title is replaced."""

    title: str


@dataclass(slots=True)
class ParagraphCreated(Event):
    """Emitted when a paragraph is inserted.

    Attributes:
        paragraph_id: Identifier of the new paragraph.
        index: Position of the paragraph inside the document.
    """

    paragraph_id: str
    index: int


@dataclass(slots=True)
class ParagraphRemoved(Event):
    """Emitted when a paragraph is pruned after a drag emptied it."""

    paragraph_id: str


@dataclass(slots=True)
class SentenceCreated(Event):
    """Emitted when a sentence is added to the document.

    Attributes:
        sentence_id: Identifier of the new sentence.
        paragraph_id: Paragraph now holding the sentence.
        text: Initial sentence text.
    """

    sentence_id: str
    paragraph_id: str
    text: str


@dataclass(slots=True)
class SentenceTextUpdated(Event):
    """Emitted whenever a sentence's text is replaced (including keystrokes)."""

    sentence_id: str
    text: str


_QUIET_EVENT_TYPES.add(SentenceTextUpdated)


@dataclass(slots=True)
class SentenceRemoved(Event):
    """Emitted when a sentence is deleted; its paragraph is left in place."""

    sentence_id: str
    paragraph_id: str


@dataclass(slots=True)
class SentenceMoved(Event):
    """Emitted when a sentence is relocated by a drag-reorder.

    Attributes:
        sentence_id: The sentence that moved.
        from_paragraph_id: Paragraph the sentence was removed from.
        to_paragraph_id: Paragraph the sentence was inserted into.
        index: Final position inside ``to_paragraph_id``.
    """

    sentence_id: str
    from_paragraph_id: str
    to_paragraph_id: str
    index: int


# =============================================================================
# Remark Events
# =============================================================================


@dataclass(slots=True)
class RemarkAdded(Event):
    """Emitted when a remark becomes visible on a sentence."""

    remark_id: str
    sentence_id: str
    text: str


@dataclass(slots=True)
class RemarkRejoined(Event):
    """Emitted when a remark is resolved by a reply paragraph."""

    remark_id: str
    sentence_id: str


@dataclass(slots=True)
class RemarksCleared(Event):
    """Emitted when committing into a sentence's reply slot consumed its remarks.

    Attributes:
        sentence_id: The sentence whose remark list was emptied.
        remark_ids: Identifiers of the removed remarks.
    """

    sentence_id: str
    remark_ids: tuple[str, ...]


@dataclass(slots=True)
class RemarkDropped(Event):
    """Emitted when a scheduled remark resolves after its sentence disappeared."""

    sentence_id: str
    reason: str


# =============================================================================
# Editing Events
# =============================================================================


@dataclass(slots=True)
class InsertionPointFocused(Event):
    """Emitted when focus moves between insertion points.

    Attributes:
        key: Key of the focused insertion point, or None when focus dropped.
    """

    key: str | None


@dataclass(slots=True)
class EditingChanged(Event):
    """Emitted when a sentence enters or leaves editing mode.

    Attributes:
        sentence_id: The sentence being edited, or None when editing ended.
    """

    sentence_id: str | None


# =============================================================================
# Emphasis Events
# =============================================================================


@dataclass(slots=True)
class EmphasisChanged(Event):
    """Emitted whenever the shared emphasis state changes.

    Attributes:
        message_id: Emphasized message (sentence or remark id).
        sentence_id: Sentence that owns the emphasized element.
        emphasized_type: Kind of element emphasized.
        hovered_remark_id: Remark whose marker is hovered in the document.
    """

    message_id: str | None
    sentence_id: str | None
    emphasized_type: EmphasisType | None
    hovered_remark_id: str | None


@dataclass(slots=True)
class MessageScrollRequested(Event):
    """Emitted when the document asks the message panel to reveal a message."""

    message_id: str


class EventBus(Generic[E]):
    """Synchronous typed publish/subscribe hub shared by one document session.

    Handlers registered for an event class receive exactly that class (no
    subclass dispatch). Catch-all handlers registered with
    :meth:`subscribe_all` receive every event after the typed handlers, which
    is how the event trace log observes a session. Bound methods are held
    weakly and disappear with their owner.

    Example::

        bus = EventBus()
        bus.subscribe(SentenceCreated, panel_listener.on_sentence)
        bus.publish(SentenceCreated(sentence_id="s1", paragraph_id="p1", text="Hi."))

    Not thread-safe: publish from the thread running the asyncio loop.
    """

    __slots__ = ("_handlers", "_catch_all")

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)
        self._catch_all: list[_HandlerRef] = []

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Call ``handler`` for every published ``event_type``.

        Subscribing the same handler twice delivers each event twice.
        """
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def subscribe_all(self, handler: Handler[Event]) -> None:
        """Call ``handler`` for every event regardless of its type."""
        self._catch_all.append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to all events", _handler_name(handler))

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Drop the first registration of ``handler``; unknown handlers are ignored."""
        if _remove_first(self._handlers.get(event_type), handler):
            logger.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)

    def unsubscribe_all(self, handler: Handler[Event]) -> None:
        _remove_first(self._catch_all, handler)

    def publish(self, event: E) -> None:
        """Deliver ``event`` synchronously in registration order.

        A handler that raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers or ()) + len(self._catch_all),
            )
        if handlers:
            _deliver(handlers, event)
        if self._catch_all:
            _deliver(self._catch_all, event)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        self._catch_all.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Count typed handlers for ``event_type``, or every handler when None."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values()) + len(self._catch_all)


def _deliver(handlers: list[_HandlerRef], event: Event) -> None:
    dead: list[_HandlerRef] = []
    # Snapshot so handlers may subscribe while we iterate
    for handler_ref in list(handlers):
        handler = handler_ref.resolve()
        if handler is None:
            dead.append(handler_ref)
            continue
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Handler %s raised exception for event %s",
                _handler_name(handler),
                type(event).__name__,
            )
    for handler_ref in dead:
        if handler_ref in handlers:
            handlers.remove(handler_ref)


def _remove_first(handlers: list[_HandlerRef] | None, handler: Handler) -> bool:
    if not handlers:
        return False
    for index, handler_ref in enumerate(handlers):
        if handler_ref.matches(handler):
            del handlers[index]
            return True
    return False


class _HandlerRef:
    """A subscription entry: weak for bound methods, strong for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                # e.g. methods of objects without __weakref__
                pass

        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        """Return the handler, or None once its owner was collected."""
        return self._ref() if self._is_weak else self._ref  # type: ignore[operator,return-value]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


def publish_all(bus: EventBus[Any] | None, events: list[Event]) -> None:
    """Publish ``events`` in order when a bus is attached."""
    if bus is None:
        return
    for event in events:
        bus.publish(event)


__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    "EmphasisType",
    "publish_all",
    # Document events
    "DocumentChanged",
    "TitleChanged",
    "ParagraphCreated",
    "ParagraphRemoved",
    "SentenceCreated",
    "SentenceTextUpdated",
    "SentenceMoved",
    "SentenceRemoved",
    # Remark events
    "RemarkAdded",
    "RemarkRejoined",
    "RemarksCleared",
    "RemarkDropped",
    # Editing events
    "InsertionPointFocused",
    "EditingChanged",
    # Emphasis events
    "EmphasisChanged",
    "MessageScrollRequested",
]
