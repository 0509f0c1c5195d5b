"""Remark scheduling, cycling and resolution."""

from .cycling import next_remark_id
from .lifecycle import PendingRemark, RemarkLifecycleManager, RemarkPhase

__all__ = ["PendingRemark", "RemarkLifecycleManager", "RemarkPhase", "next_remark_id"]
