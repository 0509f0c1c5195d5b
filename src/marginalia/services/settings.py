"""Persistent user settings for the Marginalia shell.

Settings live in ``~/.marginalia/settings.json``. The API key never touches
disk in plaintext: it is stored as ``fernet:<token>`` under
``api_key_ciphertext`` and the Fernet key sits next to the settings file.
Older files holding a plaintext ``api_key`` are rewritten on first load.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "PRODUCER_CHOICES",
    "ENV_OVERRIDES",
    "Settings",
    "SettingsStore",
    "SecretVault",
    "parse_delays",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

_SETTINGS_DIR = Path.home() / ".marginalia"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_CIPHERTEXT_FIELD = "api_key_ciphertext"
_VAULT_BACKEND = "fernet"

ProducerChoice = Literal["auto", "openai", "canned"]
PRODUCER_CHOICES: tuple[str, ...] = ("auto", "openai", "canned")


@dataclass(slots=True)
class Settings:
    """Everything the shell reads at startup.

    The transport fields feed :class:`~marginalia.ai.client.ClientSettings`;
    the remaining ones tune the editing session.
    """

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    organization: str | None = None
    request_timeout: float = 30.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)
    producer: ProducerChoice = "auto"
    remark_delays: list[float] = field(default_factory=lambda: [2.0, 5.0])
    remark_max_tokens: int = 100
    commit_debounce_seconds: float = 0.5
    double_click_seconds: float = 0.3
    live_drag: bool = False
    debug_logging: bool = False


def parse_delays(value: str | list[Any] | tuple[Any, ...]) -> list[float]:
    """Parse ``"2,5"`` (or a list) into non-negative delays in seconds."""

    items = value.split(",") if isinstance(value, str) else list(value)
    delays: list[float] = []
    for item in items:
        if isinstance(item, str):
            item = item.strip()
            if not item:
                continue
        delay = float(item)
        if delay < 0:
            raise ValueError(f"Remark delay must not be negative: {delay}")
        delays.append(delay)
    return delays


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on", "debug"}


# Environment variable -> (settings field, parser)
ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "MARGINALIA_API_KEY": ("api_key", str),
    "MARGINALIA_BASE_URL": ("base_url", str),
    "MARGINALIA_MODEL": ("model", str),
    "MARGINALIA_PRODUCER": ("producer", str),
    "MARGINALIA_ORGANIZATION": ("organization", str),
    "MARGINALIA_DEBUG_LOGGING": ("debug_logging", _env_bool),
    "MARGINALIA_REQUEST_TIMEOUT": ("request_timeout", float),
    "MARGINALIA_TEMPERATURE": ("temperature", float),
    "MARGINALIA_REMARK_DELAYS": ("remark_delays", parse_delays),
}


class SecretVault:
    """Fernet encryption for the stored API key.

    The key file is created lazily (mode 0600 on POSIX) the first time a
    secret is encrypted or decrypted. Tokens carry a ``fernet:`` prefix so a
    file written by some other backend is reported instead of misread.
    """

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def strategy(self) -> str:
        return _VAULT_BACKEND

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{_VAULT_BACKEND}:{token}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        backend, _, body = token.rpartition(":")
        if backend and backend != _VAULT_BACKEND:
            raise ValueError(f"Secret was stored with unknown backend '{backend}'")
        try:
            return self._cipher().decrypt(body.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            if self._key_path.exists():
                key = self._key_path.read_bytes().strip()
            else:
                key = Fernet.generate_key()
                _write_atomic(self._key_path, key, private=True)
                LOGGER.info("Created settings key at %s", self._key_path)
            self._fernet = Fernet(key)
        return self._fernet


class SettingsStore:
    """Loads and saves :class:`Settings` as JSON, layering overrides on load.

    Precedence, lowest first: file, ``overrides`` passed to :meth:`load`
    (the CLI ``--set`` values), then ``MARGINALIA_*`` environment variables.
    Overrides that fail validation are logged and skipped.
    """

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        payload = self._read_payload()
        settings, stale = self._decode(payload)
        if stale:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - depends on filesystem
                LOGGER.warning("Could not rewrite %s: %s", self._path, exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        env_values = _read_env_overrides()
        if env_values:
            settings = self._apply_overrides(settings, env_values, source="environment")
        return settings

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically, encrypting the API key."""

        data = asdict(settings)
        api_key = data.pop("api_key", "")
        if api_key:
            data[_CIPHERTEXT_FIELD] = self._vault.encrypt(api_key)
        data["version"] = _SETTINGS_VERSION
        data["secret_backend"] = self._vault.strategy
        _write_atomic(self._path, json.dumps(data, indent=2, sort_keys=True).encode("utf-8"))
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _decode(self, payload: Dict[str, Any]) -> tuple[Settings, bool]:
        """Build settings from a raw payload; the flag asks for a rewrite."""

        if not payload:
            return Settings(), False

        legacy_key = payload.pop("api_key", None)
        ciphertext = payload.pop(_CIPHERTEXT_FIELD, None)
        stale = payload.get("version") != _SETTINGS_VERSION

        api_key = ""
        if ciphertext:
            try:
                api_key = self._vault.decrypt(ciphertext)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
        elif legacy_key:
            LOGGER.info("Found a plaintext API key in %s; encrypting it.", self._path)
            api_key, stale = str(legacy_key), True

        known = {item.name for item in fields(Settings)} - {"api_key"}
        try:
            settings = _normalize(Settings(**{k: v for k, v in payload.items() if k in known}))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Settings payload contained unexpected data: %s", exc)
            settings = Settings()
        if api_key:
            settings = replace(settings, api_key=api_key)
        return settings, stale

    def _read_payload(self) -> Dict[str, Any]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(self, settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
        nullable = {item.name for item in fields(Settings) if item.default is None}
        known = {item.name for item in fields(Settings)}
        changes = {
            key: value
            for key, value in overrides.items()
            if key in known and (value is not None or key in nullable)
        }
        if not changes:
            return settings
        if isinstance(changes.get("metadata"), Mapping):
            changes["metadata"] = {**settings.metadata, **changes["metadata"]}
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(changes))
        try:
            return _normalize(replace(settings, **changes))
        except ValueError as exc:
            LOGGER.warning("Ignoring %s settings overrides: %s", source, exc)
            return settings


def _read_env_overrides() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_name, (field_name, parse) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring environment override %s=%r", env_name, raw)
    return values


def _normalize(settings: Settings) -> Settings:
    producer = str(settings.producer or "auto").strip().lower()
    if producer not in PRODUCER_CHOICES:
        LOGGER.warning("Unknown producer '%s'; defaulting to auto.", settings.producer)
        producer = "auto"
    return replace(
        settings,
        producer=producer,  # type: ignore[arg-type]
        remark_delays=parse_delays(settings.remark_delays),
    )


def _write_atomic(path: Path, data: bytes, *, private: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_bytes(data)
    if private and os.name != "nt":  # pragma: no cover - depends on OS
        os.chmod(tmp_path, 0o600)
    tmp_path.replace(path)


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of a secret."""

    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
