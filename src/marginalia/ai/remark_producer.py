"""Sources of remark text for sentences."""

from __future__ import annotations

import logging
import random
from typing import Protocol, runtime_checkable

from .client import AIClient
from .prompts import REMARK_MAX_TOKENS, remark_messages

LOGGER = logging.getLogger(__name__)

_SUBJECTS = ("The cat", "A dog", "The bird", "An elephant", "The scientist")
_VERBS = ("jumped", "ran", "flew", "studied", "observed")
_OBJECTS = ("over the fence", "through the forest", "in the lab", "under the microscope", "across the field")


@runtime_checkable
class RemarkProducer(Protocol):
    """Asynchronously turns sentence text into remark text.

    Implementations may raise; the lifecycle manager turns failures into a
    visible error remark.
    """

    async def generate(self, sentence_text: str) -> str:
        ...


class AIRemarkProducer:
    """Asks an OpenAI-compatible model for brief constructive criticism."""

    def __init__(
        self,
        client: AIClient,
        *,
        temperature: float | None = None,
        max_tokens: int = REMARK_MAX_TOKENS,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate(self, sentence_text: str) -> str:
        LOGGER.debug("Requesting remark for %d-character sentence", len(sentence_text))
        return await self._client.complete_chat(
            remark_messages(sentence_text),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )


class CannedRemarkProducer:
    """Offline producer emitting random subject/verb/object sentences."""

    def __init__(self, *, seed: int | None = None) -> None:
        self._random = random.Random(seed)

    async def generate(self, sentence_text: str) -> str:
        subject = self._random.choice(_SUBJECTS)
        verb = self._random.choice(_VERBS)
        obj = self._random.choice(_OBJECTS)
        return f"{subject} {verb} {obj}."


__all__ = ["AIRemarkProducer", "CannedRemarkProducer", "RemarkProducer"]
