"""Work queue shared by the batch workers."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from pkganalyzer.models.schemas import PackageDescriptor

logger = logging.getLogger(__name__)


@dataclass
class QueuedPackage:
    """A package awaiting analysis, tagged with its input position."""

    index: int
    descriptor: PackageDescriptor

    @property
    def label(self) -> str:
        return self.descriptor.label


@dataclass
class WorkQueueStats:
    """Statistics about the work queue."""

    total: int = 0
    completed: int = 0
    reachable: int = 0
    unreachable: int = 0
    kinds: dict[str, int] = field(default_factory=dict)


class WorkQueue:
    """FIFO of descriptors, drained concurrently by several workers.

    Usage:
        queue = WorkQueue(descriptors)

        while (item := queue.get_next_package()) is not None:
            report = analyze(item.descriptor)
            queue.mark_completed(item, report.reachable)
    """

    def __init__(self, descriptors: Iterable[PackageDescriptor] = ()) -> None:
        self._lock = threading.Lock()
        self._pending: deque[QueuedPackage] = deque()
        self._stats = WorkQueueStats()
        for descriptor in descriptors:
            self.enqueue(descriptor)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def enqueue(self, descriptor: PackageDescriptor) -> QueuedPackage:
        with self._lock:
            item = QueuedPackage(index=self._stats.total, descriptor=descriptor)
            self._pending.append(item)
            self._stats.total += 1
            kinds = self._stats.kinds
            kinds[descriptor.kind] = kinds.get(descriptor.kind, 0) + 1
            return item

    def get_next_package(self) -> QueuedPackage | None:
        """Pop the next package, or None once the queue is empty."""
        with self._lock:
            if not self._pending:
                return None
            return self._pending.popleft()

    def mark_completed(self, item: QueuedPackage, reachable: bool) -> int:
        """Record a finished package; returns how many have finished so far."""
        with self._lock:
            self._stats.completed += 1
            if reachable:
                self._stats.reachable += 1
            else:
                self._stats.unreachable += 1
            logger.debug(f"Finished {item.label} ({self._stats.completed}/{self._stats.total})")
            return self._stats.completed

    def get_stats(self) -> WorkQueueStats:
        with self._lock:
            return WorkQueueStats(
                total=self._stats.total,
                completed=self._stats.completed,
                reachable=self._stats.reachable,
                unreachable=self._stats.unreachable,
                kinds=dict(self._stats.kinds),
            )
