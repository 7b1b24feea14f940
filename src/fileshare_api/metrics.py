"""In-process request metrics, summarized by `GET /metrics`.

Each Lambda container (or uvicorn worker) keeps its own store; nothing is
shared or persisted.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Optional

MAX_DATA_POINTS = 1000


class MetricType(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class DataPoint:
    timestamp: float
    value: float
    labels: Optional[Dict[str, str]] = None


@dataclass
class Metric:
    name: str
    type: MetricType
    data: Deque[DataPoint] = field(default_factory=lambda: deque(maxlen=MAX_DATA_POINTS))


class MetricsStore:
    """Keeps the latest 1000 data points of each metric."""

    def __init__(self):
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def record(self, name: str, value: float, metric_type: MetricType, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            metric = self._metrics.setdefault(name, Metric(name=name, type=metric_type))
            metric.data.append(DataPoint(timestamp=time.time(), value=value, labels=labels))

    def record_counter(self, name: str, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self.record(name, value, MetricType.COUNTER, labels)

    def record_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.record(name, value, MetricType.GAUGE, labels)

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.record(name, value, MetricType.HISTOGRAM, labels)

    def get_metric(self, name: str) -> Optional[Metric]:
        return self._metrics.get(name)

    def get_summary(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            snapshot = {name: [point.value for point in metric.data] for name, metric in self._metrics.items()}
            types = {name: metric.type for name, metric in self._metrics.items()}

        summary: Dict[str, Dict[str, Any]] = {}
        for name, values in snapshot.items():
            if not values:
                continue
            total = sum(values)
            count = len(values)
            metric_type = types[name]

            if metric_type is MetricType.COUNTER:
                summary[name] = {"type": "counter", "total": total, "count": count}
            elif metric_type is MetricType.GAUGE:
                summary[name] = {
                    "type": "gauge",
                    "current": values[-1],
                    "min": min(values),
                    "max": max(values),
                    "avg": total / count,
                }
            else:
                ordered = sorted(values)
                summary[name] = {
                    "type": "histogram",
                    "count": count,
                    "sum": total,
                    "min": ordered[0],
                    "max": ordered[-1],
                    "avg": total / count,
                    "p50": ordered[int(count * 0.5)],
                    "p95": ordered[min(int(count * 0.95), count - 1)],
                    "p99": ordered[min(int(count * 0.99), count - 1)],
                }
        return summary

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()


metrics_store = MetricsStore()


def get_metrics_store() -> MetricsStore:
    return metrics_store
