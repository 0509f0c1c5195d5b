"""Prompt templates for remark generation."""

from __future__ import annotations

from typing import Any

REMARK_MAX_TOKENS = 100

REMARK_SYSTEM_PROMPT = (
    "You are a helpful assistant that provides constructive criticism for sentences. "
    "Your feedback should be concise, specific, and aimed at improving the sentence."
)


def remark_user_prompt(sentence: str) -> str:
    return f'Please provide a brief constructive criticism for the following sentence: "{sentence}"'


def remark_messages(sentence: str) -> list[dict[str, Any]]:
    """Build the chat messages asking for one remark on ``sentence``."""

    return [
        {"role": "system", "content": REMARK_SYSTEM_PROMPT},
        {"role": "user", "content": remark_user_prompt(sentence)},
    ]


__all__ = ["REMARK_MAX_TOKENS", "REMARK_SYSTEM_PROMPT", "remark_messages", "remark_user_prompt"]
