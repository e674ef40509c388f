"""Batch analysis of many packages."""

from .runner import analyze_all, unreachable_report
from .work_queue import QueuedPackage, WorkQueue, WorkQueueStats

__all__ = ["QueuedPackage", "WorkQueue", "WorkQueueStats", "analyze_all", "unreachable_report"]
