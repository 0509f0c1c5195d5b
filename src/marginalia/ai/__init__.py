"""AI client and remark producers."""

from .client import AIClient, AIResponseError, ClientSettings
from .remark_producer import AIRemarkProducer, CannedRemarkProducer, RemarkProducer

__all__ = [
    "AIClient",
    "AIRemarkProducer",
    "AIResponseError",
    "CannedRemarkProducer",
    "ClientSettings",
    "RemarkProducer",
]
