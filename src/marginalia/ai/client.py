"""Chat completion client for OpenAI-compatible endpoints.

Only the single-shot completion used for remarks is supported. Retries are
owned by ``tenacity``; the SDK's own retry loop is switched off so a failing
endpoint is attempted exactly ``max_retries`` times.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


class AIResponseError(RuntimeError):
    """Raised when the endpoint answers with a payload we cannot use."""


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry parameters for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 30.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, *, debug_logging: bool = False) -> ClientSettings:
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=settings.default_headers,
            metadata=settings.metadata,
            debug_logging=debug_logging or settings.debug_logging,
        )


class AIClient:
    """Issues chat completions and returns the first choice's text."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
            max_retries=0,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = 0.2,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> str:
        """Return the stripped text of the first choice for ``messages``.

        ``None`` for ``temperature`` or ``max_tokens`` leaves the parameter
        out of the request. ``metadata`` is merged over the configured
        metadata. Raises :class:`AIResponseError` when the reply is empty and
        re-raises the last transport error once retries are exhausted.
        """

        payload = self._payload(messages, temperature, max_tokens, metadata, extra_params)
        LOGGER.debug(
            "Requesting chat completion via %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            LOGGER.debug("Chat completion payload:\n%s", json.dumps(payload, indent=2, default=str))

        response: Any = None
        async for attempt in AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            before_sleep=_log_retry,
        ):
            with attempt:
                response = await self._client.chat.completions.create(**payload)
        return _first_choice_text(response)

    def _payload(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        temperature: float | None,
        max_tokens: int | None,
        metadata: Mapping[str, str] | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            try:
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            except (TypeError, ValueError) as exc:
                raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise ValueError("At least one message is required to start a chat")

        payload: Dict[str, Any] = {"model": self._settings.model, "messages": normalized}
        merged = {**(self._settings.metadata or {}), **(metadata or {})}
        if merged:
            payload["metadata"] = merged
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        payload.update(extra_params)
        return payload


def _first_choice_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise AIResponseError("Unexpected response format: no choices returned")
    content = getattr(getattr(choices[0], "message", None), "content", None)
    if not content:
        raise AIResponseError("Unexpected response format: empty message content")
    return str(content).strip()


def _log_retry(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome else None
    LOGGER.warning("Chat completion attempt %d failed (%s); retrying", state.attempt_number, error)


__all__ = ["AIClient", "AIResponseError", "ClientSettings"]
