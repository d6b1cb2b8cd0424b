"""
Operation timing collection for CHAT_TELEMETRY.

Aggregates durations of closed spans and analytics queries per operation
name, so the cost of tracing and reporting can itself be monitored.
"""

import functools
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..constants import DEFAULT_MAX_OPERATION_METRICS

logger = logging.getLogger(__name__)


@dataclass
class OperationMetrics:
    """Aggregated timings for one operation key."""

    operation_name: str
    count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0
    error_count: int = 0
    last_execution: datetime | None = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count > 0 else 0.0

    @property
    def error_rate(self) -> float:
        """Error rate as a percentage."""
        return (self.error_count / self.count * 100) if self.count > 0 else 0.0

    def record(self, duration_ms: float, success: bool = True) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if not success:
            self.error_count += 1
        self.last_execution = datetime.now(timezone.utc)

    def merge(self, other: "OperationMetrics") -> None:
        """Fold another key's timings into this one."""
        self.count += other.count
        self.total_duration_ms += other.total_duration_ms
        self.min_duration_ms = min(self.min_duration_ms, other.min_duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, other.max_duration_ms)
        self.error_count += other.error_count
        if other.last_execution and (
            not self.last_execution or other.last_execution > self.last_execution
        ):
            self.last_execution = other.last_execution

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation_name,
            "count": self.count,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": (
                round(self.min_duration_ms, 2) if self.min_duration_ms != float("inf") else 0.0
            ),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_rate, 2),
            "last_execution": (self.last_execution.isoformat() if self.last_execution else None),
        }


class MetricsCollector:
    """
    Thread-safe collector of operation timings.

    Fed by the tracer (one record per closed span, keyed ``span.<name>``)
    and by EngagementMetrics (keyed ``analytics.<operation>``). Storage is
    bounded; the least recently used key is evicted first.
    """

    def __init__(self, max_metrics: int = DEFAULT_MAX_OPERATION_METRICS):
        """
        Initialize the metrics collector.

        Args:
            max_metrics: Maximum number of operation keys kept before evicting
                         the least recently used one.
        """
        self._metrics: OrderedDict[str, OperationMetrics] = OrderedDict()
        self._lock = threading.Lock()
        self._max_metrics = max_metrics

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Record one execution of an operation.

        Args:
            operation_name: Name of the operation (e.g., "span.llm.generate")
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            **tags: Extra dimensions; each distinct tag set gets its own key
        """
        key = operation_name
        if tags:
            tag_str = "_".join(f"{k}={v}" for k, v in sorted(tags.items()))
            key = f"{operation_name}[{tag_str}]"

        with self._lock:
            is_new = key not in self._metrics
            if is_new and len(self._metrics) >= self._max_metrics:
                self._metrics.popitem(last=False)

            if is_new:
                self._metrics[key] = OperationMetrics(operation_name=operation_name)
            else:
                self._metrics.move_to_end(key)

            self._metrics[key].record(duration_ms, success)

    def get_metrics(self, prefix: str | None = None) -> dict[str, Any]:
        """
        Get per-key metrics, optionally restricted to keys starting with ``prefix``.
        """
        with self._lock:
            keys = [k for k in self._metrics if prefix is None or k.startswith(prefix)]
            metrics = {k: self._metrics[k].to_dict() for k in keys}
            for key in keys:
                self._metrics.move_to_end(key)
            total_operations = len(self._metrics)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": metrics,
            "total_operations": total_operations,
        }

    def get_summary(self) -> dict[str, Any]:
        """Aggregate all keys by base operation name (tags folded together)."""
        with self._lock:
            aggregated: dict[str, OperationMetrics] = {}
            for metric in self._metrics.values():
                base_name = metric.operation_name
                if base_name not in aggregated:
                    aggregated[base_name] = OperationMetrics(operation_name=base_name)
                aggregated[base_name].merge(metric)

            for key in list(self._metrics.keys()):
                self._metrics.move_to_end(key)

            total_operations = len(self._metrics)
            summary = {name: m.to_dict() for name, m in aggregated.items()}

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_operations": total_operations,
            "summary": summary,
        }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()

    def get_operation_count(self, operation_name: str) -> int:
        """Total executions of ``operation_name`` across all tag sets."""
        with self._lock:
            return sum(
                m.count for m in self._metrics.values() if m.operation_name == operation_name
            )


def timed_operation(operation_name: str) -> Callable:
    """
    Decorator timing an async method into ``self._collector``.

    Methods on objects without a collector run untimed.

    Usage:
        class Reports:
            def __init__(self, collector=None):
                self._collector = collector

            @timed_operation("analytics.retention")
            async def retention(self, ...):
                ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            collector: MetricsCollector | None = getattr(self, "_collector", None)
            if collector is None:
                return await func(self, *args, **kwargs)

            start_time = time.perf_counter()
            success = True
            try:
                return await func(self, *args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                collector.record_operation(operation_name, duration_ms, success)

        return wrapper

    return decorator
