"""Tracing and metrics for workflow runs."""

from trip_agents.observability.tracer import (
    Span,
    Tracer,
    NoopTracer,
    InMemoryTracer,
    LoggingTracer,
    JsonTracer,
    create_tracer,
)
from trip_agents.observability.metrics import MetricsCollector

__all__ = [
    "Span",
    "Tracer",
    "NoopTracer",
    "InMemoryTracer",
    "LoggingTracer",
    "JsonTracer",
    "create_tracer",
    "MetricsCollector",
]
