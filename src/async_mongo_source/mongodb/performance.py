# src/async_mongo_source/mongodb/performance.py

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

log = logging.getLogger(__name__)

Complexity = Literal["simple", "complex", "aggregation"]


@dataclass
class PerformanceMetric:
    operation: str
    resource: str
    duration_ms: float
    complexity: Complexity
    success: bool
    timestamp: datetime
    item_count: Optional[int] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceSummary:
    total_operations: int = 0
    average_duration: float = 0.0
    slow_operations: int = 0
    # Percentage of failed operations, 0-100
    error_rate: float = 0.0
    operations_by_type: Dict[str, int] = field(default_factory=dict)
    average_duration_by_type: Dict[str, float] = field(default_factory=dict)


class PerformanceConfig(BaseModel):
    enabled: bool = True
    detailed: bool = True
    slow_query_threshold: float = Field(default=1000, ge=0, description="Milliseconds")
    max_metrics: int = Field(default=1000, gt=0)
    metrics_collector: Optional[Callable[[PerformanceMetric], None]] = None


@dataclass
class _ActiveOperation:
    operation: str
    resource: str
    started: float
    timestamp: datetime
    metadata: Optional[Dict[str, Any]]


class PerformanceMonitor(ABC):
    """Times operations between `start_operation` and `end_operation`."""

    @abstractmethod
    def start_operation(
        self, operation: str, resource: str, metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        pass

    @abstractmethod
    def end_operation(
        self,
        operation_id: str,
        item_count: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        pass

    @abstractmethod
    def get_metrics(self) -> List[PerformanceMetric]:
        pass

    @abstractmethod
    def get_slow_queries(self) -> List[PerformanceMetric]:
        pass

    @abstractmethod
    def clear_metrics(self) -> None:
        pass

    @abstractmethod
    def get_summary(self) -> PerformanceSummary:
        pass


def estimate_complexity(operation: str, metadata: Optional[Dict[str, Any]]) -> Complexity:
    metadata = metadata or {}
    if operation == "aggregate":
        return "aggregation"
    if operation in ("find", "count", "remove") and metadata.get("has_where"):
        return "complex"
    if operation == "update" and (
        metadata.get("is_update_many") or metadata.get("is_batch")
    ):
        return "complex"
    if operation == "insert" and metadata.get("is_batch"):
        return "complex"
    return "simple"


class MongoPerformanceMonitor(PerformanceMonitor):
    """
    Keeps the most recent `max_metrics` operation metrics in memory.

    Older metrics are dropped once the window is full, so a burst of
    operations can evict entries before anyone reads them.
    """

    def __init__(self, config: Optional[PerformanceConfig] = None):
        self.config = config or PerformanceConfig()
        self._metrics: Deque[PerformanceMetric] = deque(maxlen=self.config.max_metrics)
        self._active: Dict[str, _ActiveOperation] = {}

    def start_operation(
        self, operation: str, resource: str, metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        if not self.config.enabled:
            return ""
        operation_id = f"{operation}_{resource}_{uuid.uuid4().hex}"
        self._active[operation_id] = _ActiveOperation(
            operation=operation,
            resource=resource,
            started=time.perf_counter(),
            timestamp=datetime.now(timezone.utc),
            metadata=metadata,
        )
        return operation_id

    def end_operation(
        self,
        operation_id: str,
        item_count: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if not self.config.enabled or not operation_id:
            return
        active = self._active.pop(operation_id, None)
        if active is None:
            log.debug(f"Ignoring end of unknown operation '{operation_id}'")
            return

        duration_ms = (time.perf_counter() - active.started) * 1000
        metric = PerformanceMetric(
            operation=active.operation,
            resource=active.resource,
            duration_ms=duration_ms,
            item_count=item_count,
            complexity=estimate_complexity(active.operation, active.metadata),
            success=error is None,
            error=str(error) if error is not None else None,
            timestamp=active.timestamp,
            metadata=active.metadata if self.config.detailed else None,
        )
        self._metrics.append(metric)

        if self.config.metrics_collector is not None:
            self.config.metrics_collector(metric)

        if duration_ms > self.config.slow_query_threshold:
            log.warning(
                f"Slow MongoDB operation detected: {metric.operation} on "
                f"{metric.resource} took {duration_ms:.1f}ms"
            )

    def get_metrics(self) -> List[PerformanceMetric]:
        return list(self._metrics)

    def get_slow_queries(self) -> List[PerformanceMetric]:
        threshold = self.config.slow_query_threshold
        return [m for m in self._metrics if m.duration_ms > threshold]

    def clear_metrics(self) -> None:
        self._metrics.clear()
        self._active.clear()

    def get_summary(self) -> PerformanceSummary:
        metrics = list(self._metrics)
        if not metrics:
            return PerformanceSummary()

        total = len(metrics)
        durations_by_type: Dict[str, List[float]] = {}
        for metric in metrics:
            durations_by_type.setdefault(metric.operation, []).append(metric.duration_ms)

        return PerformanceSummary(
            total_operations=total,
            average_duration=sum(m.duration_ms for m in metrics) / total,
            slow_operations=len(self.get_slow_queries()),
            error_rate=sum(1 for m in metrics if not m.success) / total * 100,
            operations_by_type={op: len(d) for op, d in durations_by_type.items()},
            average_duration_by_type={
                op: sum(d) / len(d) for op, d in durations_by_type.items()
            },
        )


class BlankPerformanceMonitor(PerformanceMonitor):
    """Monitor used when metrics are disabled. Records nothing."""

    def start_operation(self, operation, resource, metadata=None) -> str:
        return ""

    def end_operation(self, operation_id, item_count=None, error=None) -> None:
        pass

    def get_metrics(self) -> List[PerformanceMetric]:
        return []

    def get_slow_queries(self) -> List[PerformanceMetric]:
        return []

    def clear_metrics(self) -> None:
        pass

    def get_summary(self) -> PerformanceSummary:
        return PerformanceSummary()


def create_performance_monitor(config: Optional[PerformanceConfig]) -> PerformanceMonitor:
    if config is None or not config.enabled:
        return BlankPerformanceMonitor()
    return MongoPerformanceMonitor(config)
