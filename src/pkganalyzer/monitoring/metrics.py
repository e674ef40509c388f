"""Thread-safe metrics collector for acquisition and analysis runs."""

from __future__ import annotations

import copy
import json
import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RECENT_ERRORS = 10


@dataclass
class ErrorEntry:
    """A recorded per-package failure."""

    timestamp: datetime
    package: str
    error_type: str
    message: str


@dataclass
class RunMetrics:
    """Counters describing what a run did."""

    total_packages: int = 0
    completed_packages: int = 0
    start_time: datetime | None = None

    # Results
    reachable_count: int = 0
    unreachable_count: int = 0
    error_count: int = 0

    # Acquisition
    strategy_invocations: dict[str, int] = field(default_factory=dict)
    depot_hits: int = 0
    cache_hits: int = 0
    cache_evictions: int = 0
    hash_mismatches: int = 0

    # Running averages, in seconds, keyed by stage name
    stage_timings: dict[str, float] = field(default_factory=dict)
    stage_counts: dict[str, int] = field(default_factory=dict)

    recent_errors: deque[ErrorEntry] = field(default_factory=lambda: deque(maxlen=RECENT_ERRORS))

    @property
    def progress_percent(self) -> float:
        if not self.total_packages:
            return 0.0
        return 100 * self.completed_packages / self.total_packages

    @property
    def elapsed_seconds(self) -> float:
        if not self.start_time:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready snapshot, timestamps as ISO strings."""
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["recent_errors"] = [
            {**asdict(e), "timestamp": e.timestamp.isoformat()} for e in self.recent_errors
        ]
        data["elapsed_seconds"] = round(self.elapsed_seconds, 1)
        data["progress_percent"] = round(self.progress_percent, 1)
        return data


class MetricsCollector:
    """Thread-safe metrics collector.

    Every worker of a batch shares one collector. When `metrics_file` is
    given, a snapshot is written there after each completed package.
    """

    def __init__(self, metrics_file: Path | None = None):
        self._lock = threading.Lock()
        self._metrics_file = metrics_file
        self._metrics = RunMetrics()

    def start_batch(self, total: int) -> None:
        with self._lock:
            self._metrics.total_packages = total
            self._metrics.completed_packages = 0
            self._metrics.start_time = datetime.now()
            self._save()

    def record_strategy(self, strategy: str) -> None:
        """Count one invocation of an acquisition strategy."""
        with self._lock:
            counts = self._metrics.strategy_invocations
            counts[strategy] = counts.get(strategy, 0) + 1

    def record_depot_hit(self) -> None:
        with self._lock:
            self._metrics.depot_hits += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._metrics.cache_hits += 1

    def record_cache_eviction(self) -> None:
        with self._lock:
            self._metrics.cache_evictions += 1

    def record_hash_mismatch(self) -> None:
        with self._lock:
            self._metrics.hash_mismatches += 1

    def complete_package(self, name: str, reachable: bool) -> None:
        """Record the completion of one package analysis."""
        with self._lock:
            self._metrics.completed_packages += 1
            if reachable:
                self._metrics.reachable_count += 1
            else:
                self._metrics.unreachable_count += 1
            self._save()

    def record_error(self, package: str, error_type: str, message: str) -> None:
        entry = ErrorEntry(datetime.now(), package, error_type, message)
        with self._lock:
            self._metrics.error_count += 1
            self._metrics.recent_errors.append(entry)

    def record_stage_timing(self, stage: str, duration: float) -> None:
        """Fold one stage duration into that stage's running average."""
        with self._lock:
            n = self._metrics.stage_counts.get(stage, 0) + 1
            mean = self._metrics.stage_timings.get(stage, 0.0)
            self._metrics.stage_counts[stage] = n
            self._metrics.stage_timings[stage] = mean + (duration - mean) / n

    def strategy_count(self, strategy: str | None = None) -> int:
        """Invocations of one strategy, or of all strategies when None."""
        with self._lock:
            counts = self._metrics.strategy_invocations
            if strategy is None:
                return sum(counts.values())
            return counts.get(strategy, 0)

    def get_metrics(self) -> RunMetrics:
        """Snapshot of the counters, safe to read without the lock."""
        with self._lock:
            return copy.deepcopy(self._metrics)

    def _save(self) -> None:
        # Caller holds the lock
        if self._metrics_file is None:
            return
        tmp = self._metrics_file.with_name(self._metrics_file.name + ".tmp")
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._metrics.to_dict(), indent=2))
            tmp.replace(self._metrics_file)
        except OSError as e:
            logger.warning(f"Could not write metrics to {self._metrics_file}: {e}")


class StageTimer:
    """Times a ``with`` block and reports it to a collector under ``stage``."""

    def __init__(self, collector: MetricsCollector, stage: str):
        self.collector = collector
        self.stage = stage
        self._started = 0.0

    def __enter__(self) -> StageTimer:
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.collector.record_stage_timing(self.stage, time.perf_counter() - self._started)
