"""In-process workflow metrics with Prometheus text exposition."""

import threading
import time
from typing import Any, Dict, List, Optional, Tuple

_LabelKey = Tuple[Tuple[str, str], ...]

DEFAULT_BUCKETS_MS = (10.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0, 30000.0)

_HELP = {
    "trip_workflow_runs_total": "Workflow invocations by terminal status.",
    "trip_node_executions_total": "Node executions by node and status.",
    "trip_node_duration_ms": "Node execution time in milliseconds.",
    "trip_budget_outcomes_total": "Budget critic outcomes.",
    "trip_interrupts_total": "Interrupt lifecycle transitions by type and status.",
    "trip_llm_tokens_total": "LLM tokens consumed by model.",
}


def _label_key(labels: Optional[Dict[str, Any]]) -> _LabelKey:
    return tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))


def _sanitize_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")


def _render_labels(key: _LabelKey, extra: Optional[Tuple[str, str]] = None) -> str:
    pairs = list(key) + ([extra] if extra else [])
    if not pairs:
        return ""
    rendered = ",".join(f'{k}="{_sanitize_label_value(v)}"' for k, v in pairs)
    return "{" + rendered + "}"


class _Histogram:
    def __init__(self, buckets: Tuple[float, ...]):
        self.buckets = buckets
        self.counts = [0] * len(buckets)
        self.total = 0.0
        self.count = 0

    def observe(self, value: float) -> None:
        self.total += value
        self.count += 1
        for i, bound in enumerate(self.buckets):
            if value <= bound:
                self.counts[i] += 1


class MetricsCollector:
    """
    Thread-safe counters and histograms keyed by metric name and labels.

    The executor records run and node outcomes here; export_prometheus()
    renders the current values for a scrape endpoint.
    """

    def __init__(self, buckets: Tuple[float, ...] = DEFAULT_BUCKETS_MS):
        self._buckets = buckets
        self._counters: Dict[str, Dict[_LabelKey, float]] = {}
        self._histograms: Dict[str, Dict[_LabelKey, _Histogram]] = {}
        self._lock = threading.Lock()
        self._started_at = time.time()

    def inc(self, name: str, labels: Optional[Dict[str, Any]] = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        with self._lock:
            series = self._counters.setdefault(name, {})
            series[key] = series.get(key, 0.0) + value

    def observe(self, name: str, value: float, labels: Optional[Dict[str, Any]] = None) -> None:
        key = _label_key(labels)
        with self._lock:
            series = self._histograms.setdefault(name, {})
            if key not in series:
                series[key] = _Histogram(self._buckets)
            series[key].observe(value)

    def get_counter(self, name: str, labels: Optional[Dict[str, Any]] = None) -> float:
        with self._lock:
            return self._counters.get(name, {}).get(_label_key(labels), 0.0)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of every series, for JSON endpoints."""
        with self._lock:
            counters = {
                name: [{"labels": dict(key), "value": value} for key, value in series.items()]
                for name, series in self._counters.items()
            }
            histograms = {
                name: [
                    {"labels": dict(key), "count": h.count, "sum": round(h.total, 3)}
                    for key, h in series.items()
                ]
                for name, series in self._histograms.items()
            }
        return {
            "uptime_seconds": round(time.time() - self._started_at, 3),
            "counters": counters,
            "histograms": histograms,
        }

    def export_prometheus(self) -> str:
        lines: List[str] = [
            "# HELP trip_uptime_seconds Process uptime in seconds.",
            "# TYPE trip_uptime_seconds gauge",
            f"trip_uptime_seconds {max(0.0, time.time() - self._started_at)}",
            "",
        ]
        with self._lock:
            for name in sorted(self._counters):
                lines.append(f"# HELP {name} {_HELP.get(name, 'Counter.')}")
                lines.append(f"# TYPE {name} counter")
                for key, value in sorted(self._counters[name].items()):
                    lines.append(f"{name}{_render_labels(key)} {float(value)}")
                lines.append("")

            for name in sorted(self._histograms):
                lines.append(f"# HELP {name} {_HELP.get(name, 'Histogram.')}")
                lines.append(f"# TYPE {name} histogram")
                for key, hist in sorted(self._histograms[name].items(), key=lambda item: item[0]):
                    for bound, count in zip(hist.buckets, hist.counts):
                        lines.append(f"{name}_bucket{_render_labels(key, ('le', str(bound)))} {count}")
                    lines.append(f"{name}_bucket{_render_labels(key, ('le', '+Inf'))} {hist.count}")
                    lines.append(f"{name}_sum{_render_labels(key)} {hist.total}")
                    lines.append(f"{name}_count{_render_labels(key)} {hist.count}")
                lines.append("")
        return "\n".join(lines)
