"""Prometheus-style histogram metrics and a registry for them."""

from __future__ import annotations

import bisect
import logging
import math
import threading
from dataclasses import dataclass
from typing import Iterable

METRIC_LABEL_REJECTED = "Rejected"
METRICS_LABEL_VERB_GET = "Get"
METRICS_LABEL_VERB_LIST = "List"

METRICS_PREFIX = "sandbox_"
DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 10.0)

_log = logging.getLogger("registration_metrics")


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


@dataclass(frozen=True)
class HistogramMetric:
    """Snapshot of one labelled histogram; bucket counts are cumulative."""

    labels: tuple[tuple[str, str], ...]
    sample_count: int
    sample_sum: float
    buckets: tuple[tuple[float, int], ...]


@dataclass(frozen=True)
class MetricFamily:
    """All labelled histograms sharing a name."""

    name: str
    help: str
    metrics: tuple[HistogramMetric, ...]
    type: str = "histogram"


class Histogram:
    """Counts observations into upper-bounded buckets."""

    def __init__(self, buckets: Iterable[float] = DEFAULT_BUCKETS):
        self.buckets = tuple(sorted(float(b) for b in buckets))
        self._counts = [0] * len(self.buckets)
        self._count = 0
        self._sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            if index < len(self._counts):
                self._counts[index] += 1
            self._count += 1
            self._sum += value

    def _snapshot(self, labels: tuple[tuple[str, str], ...]) -> HistogramMetric:
        with self._lock:
            cumulative = []
            running = 0
            for bound, count in zip(self.buckets, self._counts):
                running += count
                cumulative.append((bound, running))
            return HistogramMetric(labels, self._count, self._sum, tuple(cumulative))


class HistogramVec:
    """A family of histograms partitioned by label values."""

    def __init__(self, name: str, help_text: str, label_names: Iterable[str],
                 buckets: Iterable[float] = DEFAULT_BUCKETS):
        self.name = name
        self.help = help_text
        self.label_names = tuple(label_names)
        self.buckets = tuple(buckets)
        self._children: dict[tuple[str, ...], Histogram] = {}
        self._lock = threading.Lock()

    def with_label_values(self, *args: str) -> Histogram:
        """Return the histogram for the given label values, creating it on first use."""
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values "
                f"but got {len(args)}"
            )
        key = tuple(args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = Histogram(self.buckets)
            return child

    def collect(self) -> MetricFamily:
        """Snapshot every child, labels sorted by name and metrics by labels."""
        with self._lock:
            children = list(self._children.items())
        metrics = [
            child._snapshot(tuple(sorted(zip(self.label_names, values))))
            for values, child in children
        ]
        metrics.sort(key=lambda m: m.labels)
        return MetricFamily(self.name, self.help, tuple(metrics))

    def to_text(self) -> str:
        """Render the family in the Prometheus text exposition format."""
        family = self.collect()
        lines = [f"# HELP {family.name} {family.help}", f"# TYPE {family.name} {family.type}"]
        for metric in family.metrics:
            base = [f'{name}="{_escape_label(value)}"' for name, value in metric.labels]
            for bound, count in (*metric.buckets, (math.inf, metric.sample_count)):
                labels = ",".join([*base, f'le="{_format_float(bound)}"'])
                lines.append(f"{family.name}_bucket{{{labels}}} {count}")
            labels = ",".join(base)
            suffix = f"{{{labels}}}" if labels else ""
            lines.append(f"{family.name}_sum{suffix} {_format_float(metric.sample_sum)}")
            lines.append(f"{family.name}_count{suffix} {metric.sample_count}")
        return "\n".join(lines) + "\n"


class Registry:
    """Holds collectors by name and gathers their current values."""

    def __init__(self) -> None:
        self._collectors: dict[str, HistogramVec] = {}
        self._lock = threading.Lock()

    def register(self, collector: HistogramVec) -> None:
        with self._lock:
            if collector.name in self._collectors:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {collector.name}"
                )
            self._collectors[collector.name] = collector

    def unregister(self, collector: HistogramVec) -> bool:
        with self._lock:
            if self._collectors.get(collector.name) is collector:
                del self._collectors[collector.name]
                return True
            return False

    def gather(self) -> list[MetricFamily]:
        """Families that hold at least one metric, sorted by name."""
        with self._lock:
            collectors = sorted(self._collectors.values(), key=lambda c: c.name)
        families = (c.collect() for c in collectors)
        return [family for family in families if family.metrics]


registry: Registry | None = None
all_histogram_vecs: list[HistogramVec] = []
reg_serv_proxy_api_histogram_vec: HistogramVec
reg_serv_workspace_histogram_vec: HistogramVec


def new_histogram_vec(name: str, help_text: str, *args: str) -> HistogramVec:
    """Create a prefixed histogram vector with the given label names and track it."""
    vec = HistogramVec(METRICS_PREFIX + name, help_text, args)
    all_histogram_vecs.append(vec)
    return vec


def _init_metrics() -> None:
    global reg_serv_proxy_api_histogram_vec, reg_serv_workspace_histogram_vec
    _log.info("initializing custom metrics")
    reg_serv_proxy_api_histogram_vec = new_histogram_vec(
        "proxy_api_http_request_time",
        "time taken by proxy to route to a target cluster",
        "status_code",
        "route_to",
    )
    reg_serv_workspace_histogram_vec = new_histogram_vec(
        "proxy_workspace_http_request_time",
        "time for response of a request to proxy ",
        "status_code",
        "kube_verb",
    )
    _log.info("custom metrics initialized")


def reset() -> None:
    """Discard all tracked metrics and create the custom ones afresh."""
    _log.info("resetting custom metrics")
    all_histogram_vecs.clear()
    _init_metrics()


def register_custom_metrics() -> Registry:
    """Create a new registry holding every tracked histogram vector."""
    global registry
    new_registry = Registry()
    for vec in all_histogram_vecs:
        new_registry.register(vec)
    registry = new_registry
    _log.info("custom metrics registered")
    return new_registry


_init_metrics()