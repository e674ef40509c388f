"""Run monitoring and metrics collection."""

from .metrics import MetricsCollector, RunMetrics, StageTimer

__all__ = ["MetricsCollector", "RunMetrics", "StageTimer"]
