"""
Start/end span interface used around every node execution.

A trace is one workflow invocation (keyed by thread id); a span is one
node run inside it. The executor only depends on the Tracer interface, so
the sink can be swapped through configuration.
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from trip_agents.shared.logging.debug_logger import get_or_create_logger, remove_logger


logger = logging.getLogger(__name__)


@dataclass
class Span:
    trace_id: str
    span_id: str
    name: str
    start_time: float
    end_time: Optional[float] = None
    status: str = "ok"
    error: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000


class Tracer(ABC):
    """Narrow tracing interface: traces contain spans, both opened and closed explicitly."""

    def start_trace(self, trace_id: str, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        return self.start_span(trace_id, name, attributes)

    def end_trace(self, span: Span, status: str = "ok", error: Optional[str] = None) -> None:
        self.end_span(span, status=status, error=error)

    @abstractmethod
    def start_span(self, trace_id: str, name: str, attributes: Optional[Dict[str, Any]] = None) -> Span:
        ...

    @abstractmethod
    def end_span(self, span: Span, status: str = "ok", error: Optional[str] = None) -> None:
        ...

    def get_trace(self, trace_id: str) -> List[Span]:
        return []

    def record_llm_call(
        self, trace_id: str, model: str, duration_ms: float, input_tokens: int, output_tokens: int
    ) -> None:
        """Attach LLM usage to a trace. Ignored by default."""


def _new_span(trace_id: str, name: str, attributes: Optional[Dict[str, Any]]) -> Span:
    return Span(
        trace_id=trace_id,
        span_id=secrets.token_hex(8),
        name=name,
        start_time=time.time(),
        attributes=dict(attributes or {}),
    )


def _close(span: Span, status: str, error: Optional[str]) -> None:
    span.end_time = time.time()
    span.status = status
    span.error = error


class NoopTracer(Tracer):
    def start_span(self, trace_id, name, attributes=None) -> Span:
        return _new_span(trace_id, name, attributes)

    def end_span(self, span, status="ok", error=None) -> None:
        _close(span, status, error)


class InMemoryTracer(Tracer):
    """Keeps finished spans per trace in memory."""

    def __init__(self):
        self._spans: Dict[str, List[Span]] = {}
        self._lock = threading.Lock()

    def start_span(self, trace_id, name, attributes=None) -> Span:
        return _new_span(trace_id, name, attributes)

    def end_span(self, span, status="ok", error=None) -> None:
        _close(span, status, error)
        with self._lock:
            self._spans.setdefault(span.trace_id, []).append(span)

    def get_trace(self, trace_id: str) -> List[Span]:
        with self._lock:
            return list(self._spans.get(trace_id, []))


class LoggingTracer(Tracer):
    """Writes one log line per finished span."""

    def start_span(self, trace_id, name, attributes=None) -> Span:
        return _new_span(trace_id, name, attributes)

    def end_span(self, span, status="ok", error=None) -> None:
        _close(span, status, error)
        _log = f"[thread={span.trace_id}] [graph=trip] [span={span.name}] "
        if error:
            logger.warning(f"{_log}Span finished | status={status}, duration={span.duration_ms:.1f}ms, error={error}")
        else:
            logger.info(f"{_log}Span finished | status={status}, duration={span.duration_ms:.1f}ms")


class JsonTracer(Tracer):
    """Appends spans to the per-thread JSON-lines debug log."""

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = logs_dir

    def start_span(self, trace_id, name, attributes=None) -> Span:
        return _new_span(trace_id, name, attributes)

    def end_span(self, span, status="ok", error=None) -> None:
        _close(span, status, error)
        get_or_create_logger(span.trace_id, self.logs_dir).log_span(
            trace_id=span.trace_id,
            span_id=span.span_id,
            name=span.name,
            duration_ms=span.duration_ms,
            status=status,
            attributes=span.attributes,
            error=error,
        )

    def end_trace(self, span, status="ok", error=None) -> None:
        self.end_span(span, status=status, error=error)
        get_or_create_logger(span.trace_id, self.logs_dir).log_run_summary(
            status=status, duration_ms=span.duration_ms
        )
        # a suspended thread keeps its logger so resumes accumulate into it
        if status != "interrupt":
            remove_logger(span.trace_id)

    def record_llm_call(self, trace_id, model, duration_ms, input_tokens, output_tokens) -> None:
        get_or_create_logger(trace_id, self.logs_dir).log_llm_call(
            model=model, duration_ms=duration_ms, input_tokens=input_tokens, output_tokens=output_tokens
        )


def create_tracer(kind: str = "logging", logs_dir: str = "logs") -> Tracer:
    """Build the tracer named by WorkflowConfig.tracer."""
    if kind == "memory":
        return InMemoryTracer()
    if kind == "json":
        return JsonTracer(logs_dir)
    if kind == "none":
        return NoopTracer()
    if kind != "logging":
        logger.warning(f"Unknown tracer kind '{kind}', using logging tracer")
    return LoggingTracer()
