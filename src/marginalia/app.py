"""Application bootstrap and the line-oriented ``marginalia`` shell."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.remark_producer import AIRemarkProducer, CannedRemarkProducer, RemarkProducer
from .chat.message_model import Message
from .editor.document_model import Document, default_document
from .editor.drag_reorder import HoverTarget
from .editor.insertion_points import InsertionPoint
from .services.settings import Settings, SettingsStore, redact_secret
from .ui.document_session import DocumentSession, SessionOptions
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

LineReader = Callable[[], Awaitable[str]]

HELP_TEXT = """\
Commands (sentences are addressed as PARAGRAPH.SENTENCE, 1-based):
  show                      print the document
  type P.S TEXT             commit TEXT after sentence P.S (P.0 = paragraph start)
  at KEY TEXT               commit TEXT at a raw insertion point key
  para N TEXT               commit TEXT as a new paragraph before paragraph N
  say TEXT                  submit TEXT from the message panel
  click P.S                 click a sentence (twice quickly to edit)
  edit P.S TEXT             replace the text of a sentence (blank deletes it)
  marker P.S                cycle the open remarks of a sentence
  hover P.S [off]           hover the remark marker of a sentence
  reply N TEXT              reply to remark message N
  select N                  select message N in the panel
  move P.S P.S              drag a sentence onto another position
  title TEXT                rename the document
  clear                     click empty space
  messages                  list the message panel
  wait                      wait for pending remarks
  quit                      exit"""


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:  # pragma: no cover - depends on filesystem
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_producer(settings: Settings, *, debug_logging: bool = False) -> RemarkProducer:
    """Pick the remark producer the settings ask for.

    ``auto`` uses the OpenAI-compatible endpoint when an API key is
    configured and falls back to canned remarks otherwise.
    """

    choice = settings.producer
    if choice == "canned" or (choice == "auto" and not settings.api_key):
        _LOGGER.info("Using canned remark producer")
        return CannedRemarkProducer()
    client_settings = ClientSettings.from_settings(settings, debug_logging=debug_logging)
    _LOGGER.info("Using %s at %s for remarks", settings.model, settings.base_url)
    return AIRemarkProducer(
        AIClient(client_settings),
        temperature=settings.temperature,
        max_tokens=settings.remark_max_tokens,
    )


def session_options(settings: Settings) -> SessionOptions:
    return SessionOptions(
        remark_delays=tuple(settings.remark_delays),
        commit_debounce_seconds=settings.commit_debounce_seconds,
        double_click_seconds=settings.double_click_seconds,
        live_drag=settings.live_drag,
    )


def create_session(settings: Settings, *, producer: RemarkProducer | None = None) -> DocumentSession:
    return DocumentSession(
        producer or build_producer(settings),
        document=default_document(),
        options=session_options(settings),
    )


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------
def sentence_refs(document: Document) -> Dict[str, str]:
    """Map sentence ids to their ``P.S`` address."""

    refs: Dict[str, str] = {}
    for p_index, paragraph in enumerate(document.paragraphs, start=1):
        for s_index, sentence in enumerate(paragraph.sentences, start=1):
            refs[sentence.id] = f"{p_index}.{s_index}"
    return refs


def render_document(session: DocumentSession) -> str:
    document = session.document
    state = session.emphasis.state
    lines = [f"# {document.title}"]
    for p_index, paragraph in enumerate(document.paragraphs, start=1):
        lines.append(f"[{p_index}]")
        if not paragraph.sentences:
            lines.append("    (empty)")
        for s_index, sentence in enumerate(paragraph.sentences, start=1):
            flags = ""
            if state.emphasized_sentence_id == sentence.id:
                flags += "*"
            if session.editor.is_editing(sentence.id):
                flags += "~"
            marker = ""
            open_count = len(sentence.open_remarks())
            if open_count:
                marker = f" †{open_count}" if open_count > 1 else " †"
            lines.append(f"  {flags:<2}{p_index}.{s_index} {sentence.text}{marker}")
    return "\n".join(lines)


def render_messages(session: DocumentSession) -> str:
    refs = sentence_refs(session.document)
    panel = session.panel
    lines: list[str] = []
    for number, message in enumerate(panel.messages, start=1):
        lines.append(_render_message(number, message, refs, panel.is_selected(message), panel.is_hovered(message)))
    return "\n".join(lines) if lines else "(no messages)"


def _render_message(
    number: int, message: Message, refs: Mapping[str, str], selected: bool, hovered: bool
) -> str:
    sender = "you" if message.sender == "user" else "ai"
    where = refs.get(message.sentence_id or "", "gone")
    state = []
    if selected:
        state.append("selected")
    if hovered:
        state.append("hovered")
    if message.resolved:
        state.append("resolved")
    suffix = f" ({', '.join(state)})" if state else ""
    return f"{number:>3}. [{sender}@{where}] {message.text}{suffix}"


# ----------------------------------------------------------------------
# Shell
# ----------------------------------------------------------------------
class CommandError(ValueError):
    """Raised for malformed shell input."""


class CommandShell:
    """Interprets shell commands against a :class:`DocumentSession`."""

    def __init__(self, session: DocumentSession) -> None:
        self.session = session
        self.running = True

    async def execute(self, line: str) -> str | None:
        stripped = line.strip()
        if not stripped:
            return None
        command, _, rest = stripped.partition(" ")
        handler = getattr(self, f"_cmd_{command.lower()}", None)
        if handler is None:
            return f"Unknown command '{command}'. Type 'help' for a list."
        try:
            result = handler(rest.strip())
            if asyncio.iscoroutine(result):
                result = await result
        except CommandError as exc:
            return f"Error: {exc}"
        return result

    # -- commands ---------------------------------------------------------
    def _cmd_help(self, _: str) -> str:
        return HELP_TEXT

    def _cmd_show(self, _: str) -> str:
        return render_document(self.session)

    def _cmd_messages(self, _: str) -> str:
        return render_messages(self.session)

    def _cmd_type(self, rest: str) -> str:
        ref, text = _split_argument(rest)
        paragraph_index, sentence_index = self._parse_ref(ref, allow_start=True)
        paragraph = self.session.document.paragraphs[paragraph_index]
        if sentence_index < 0:
            point = InsertionPoint.start(paragraph.id)
        else:
            point = InsertionPoint.after(paragraph.id, sentence_index)
        return self._commit(point, text)

    def _cmd_at(self, rest: str) -> str:
        key, text = _split_argument(rest)
        try:
            point = InsertionPoint.from_key(key)
        except ValueError as exc:
            raise CommandError(str(exc)) from exc
        return self._commit(point, text)

    def _cmd_para(self, rest: str) -> str:
        number, text = _split_argument(rest)
        paragraphs = self.session.document.paragraphs
        index = _parse_int(number) - 1
        if not paragraphs:
            raise CommandError("document has no paragraphs to anchor to")
        if index < 0 or index > len(paragraphs):
            raise CommandError(f"paragraph must be between 1 and {len(paragraphs) + 1}")
        if index == len(paragraphs):
            point = InsertionPoint.separator_after(paragraphs[-1].id)
        else:
            point = InsertionPoint.separator_before(paragraphs[index].id)
        return self._commit(point, text)

    def _cmd_say(self, rest: str) -> str:
        sentence_id = self.session.panel.on_new_message(rest)
        if sentence_id is None:
            return "Nothing submitted."
        return f"Added {self._ref_of(sentence_id)}."

    def _cmd_click(self, rest: str) -> str:
        sentence_id = self._sentence_id(rest)
        if self.session.click_sentence(sentence_id):
            return f"Editing {rest}."
        return f"Selected {rest}."

    def _cmd_edit(self, rest: str) -> str:
        ref, _, text = rest.partition(" ")
        sentence_id = self._sentence_id(ref)
        outcome = self.session.submit_sentence_edit(sentence_id, text)
        if outcome is None:
            return "Nothing changed."
        return f"Removed {ref}." if outcome.removed else f"Updated {ref}."

    def _cmd_marker(self, rest: str) -> str:
        sentence_id = self._sentence_id(rest)
        remark_id = self.session.click_remark_marker(sentence_id)
        if remark_id is None:
            return f"No open remarks on {rest}."
        remark = self.session.model.find_remark(remark_id)
        return f"Remark: {remark.text if remark else remark_id}"

    def _cmd_hover(self, rest: str) -> str:
        ref, _, flag = rest.partition(" ")
        sentence_id = self._sentence_id(ref)
        hovering = flag.strip().lower() not in _FALSE_VALUES if flag.strip() else True
        remark_id = self.session.hover_remark_marker(sentence_id, hovering)
        if not hovering:
            return "Hover cleared."
        if remark_id is None:
            return f"No open remarks on {ref}."
        target = self.session.panel.scroll_target
        return f"Hovering remark {self._message_number(target) if target else '?'}."

    def _cmd_reply(self, rest: str) -> str:
        number, text = _split_argument(rest)
        message = self._message(number)
        if message.type != "remark":
            raise CommandError(f"message {number} is not a remark")
        sentence_id = self.session.respond_to_remark(message.id, text)
        if sentence_id is None:
            return "Nothing submitted."
        return f"Replied with {self._ref_of(sentence_id)}."

    def _cmd_select(self, rest: str) -> str:
        message = self._message(rest)
        self.session.click_message(message.id, message.type)
        return f"Selected message {rest}."

    def _cmd_move(self, rest: str) -> str:
        parts = rest.split()
        if len(parts) != 2:
            raise CommandError("usage: move P.S P.S")
        sentence_id = self._sentence_id(parts[0])
        paragraph_index, sentence_index = self._parse_ref(parts[1], allow_start=False, allow_end=True)
        paragraph = self.session.document.paragraphs[paragraph_index]
        if self.session.begin_drag(sentence_id) is None:
            return "Nothing to move."
        # Pointer exactly on the hovered sentence's midpoint always qualifies.
        self.session.drag_hover(HoverTarget(paragraph.id, sentence_index, top=0.0, bottom=2.0, pointer_y=1.0))
        if self.session.drop():
            return f"Moved to {self._ref_of(sentence_id)}."
        return "Nothing moved."

    def _cmd_title(self, rest: str) -> str:
        self.session.set_title(rest)
        return f"Title: {self.session.document.title}"

    def _cmd_clear(self, _: str) -> str:
        self.session.click_empty_space()
        return "Cleared."

    async def _cmd_wait(self, _: str) -> str:
        pending = self.session.remarks.pending_count
        await self.session.drain()
        return f"Resolved {pending} pending remark(s)."

    def _cmd_quit(self, _: str) -> str:
        self.running = False
        return "Bye."

    _cmd_exit = _cmd_quit

    # -- helpers ----------------------------------------------------------
    def _commit(self, point: InsertionPoint, text: str) -> str:
        if not self.session.registry.is_valid(point):
            raise CommandError(f"no insertion point '{point.key}'")
        self.session.focus(point)
        result = self.session.commit(point, text)
        if result is None:
            return "Nothing committed."
        return f"Added {self._ref_of(result.sentence_id)}."

    def _parse_ref(self, ref: str, *, allow_start: bool = False, allow_end: bool = False) -> tuple[int, int]:
        paragraph_part, dot, sentence_part = ref.partition(".")
        if not dot:
            raise CommandError(f"'{ref}' is not a P.S address")
        paragraph_index = _parse_int(paragraph_part) - 1
        sentence_index = _parse_int(sentence_part) - 1
        paragraphs = self.session.document.paragraphs
        if not 0 <= paragraph_index < len(paragraphs):
            raise CommandError(f"no paragraph {paragraph_part}")
        count = len(paragraphs[paragraph_index].sentences)
        lowest = -1 if allow_start else 0
        highest = count if allow_end else count - 1
        if not lowest <= sentence_index <= highest:
            raise CommandError(f"no sentence {ref}")
        return paragraph_index, sentence_index

    def _sentence_id(self, ref: str) -> str:
        paragraph_index, sentence_index = self._parse_ref(ref.strip())
        return self.session.document.paragraphs[paragraph_index].sentences[sentence_index].id

    def _ref_of(self, sentence_id: str) -> str:
        return sentence_refs(self.session.document).get(sentence_id, sentence_id)

    def _message(self, number: str) -> Message:
        messages = self.session.panel.messages
        index = _parse_int(number) - 1
        if not 0 <= index < len(messages):
            raise CommandError(f"no message {number}")
        return messages[index]

    def _message_number(self, message_id: str) -> int | None:
        for number, message in enumerate(self.session.panel.messages, start=1):
            if message.id == message_id:
                return number
        return None


def _split_argument(rest: str) -> tuple[str, str]:
    head, _, tail = rest.partition(" ")
    if not head:
        raise CommandError("missing argument")
    return head, tail.strip()


def _parse_int(value: str) -> int:
    try:
        return int(value.strip(), 10)
    except ValueError as exc:
        raise CommandError(f"'{value}' is not a number") from exc


async def run_shell(
    session: DocumentSession,
    *,
    reader: LineReader | None = None,
    stream: TextIO | None = None,
) -> None:
    """Read commands until ``quit`` or end of input."""

    destination = stream or sys.stdout
    read_line = reader or _stdin_reader
    shell = CommandShell(session)
    destination.write(render_document(session) + "\n")
    destination.write("Type 'help' for commands.\n")
    destination.flush()
    try:
        while shell.running:
            line = await read_line()
            if not line:
                break
            output = await shell.execute(line)
            if output:
                destination.write(output + "\n")
                destination.flush()
    finally:
        await session.aclose()


async def _stdin_reader() -> str:
    return await asyncio.to_thread(sys.stdin.readline)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `marginalia` console script."""

    args = _parse_cli_args(argv)

    debug = args.debug or _env_flag("MARGINALIA_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("MARGINALIA_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    session = create_session(settings, producer=build_producer(settings, debug_logging=debug))
    trace = None
    if args.trace_events or _env_flag("MARGINALIA_TRACE_EVENTS", default=False):
        trace = logging_utils.trace_events(session.bus)
    try:
        asyncio.run(run_shell(session))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        if trace is not None:
            trace.close()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="marginalia",
        description="Write a document sentence by sentence and collect remarks on it.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.marginalia/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--trace-events",
        action="store_true",
        help="Write every session event to events.log in the log directory.",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if _accepts_none(annotation) and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is type(None) or normalized.lower() in {"none", "null"}:
        return None
    if target is list:
        if normalized.startswith("["):
            try:
                return json.loads(normalized)
            except json.JSONDecodeError as exc:
                raise ValueError("List overrides must be valid JSON arrays") from exc
        return [item.strip() for item in normalized.split(",") if item.strip()]
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _accepts_none(annotation: Any) -> bool:
    return annotation is type(None) or type(None) in get_args(annotation)


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    first = args[0]
    # Literal choices arrive as plain strings.
    return type(first) if not isinstance(first, type) else first


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    api_key = payload.get("api_key", "")
    if isinstance(api_key, str):
        payload["api_key"] = redact_secret(api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("MARGINALIA_"))


if __name__ == "__main__":  # pragma: no cover
    main()
