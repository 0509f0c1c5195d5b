"""Headless UI layer: events, emphasis and the document session."""

from .events import EventBus

__all__ = ["EventBus"]
