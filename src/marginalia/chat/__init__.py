"""Message panel model."""

from .message_model import Message
from .message_panel import MessagePanel

__all__ = ["Message", "MessagePanel"]
