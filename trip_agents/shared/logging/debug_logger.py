"""
Debug logger for tracking node spans, LLM calls, and costs.

Writes per-thread JSON log files to the logs/ directory.
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


# Token pricing per 1M tokens
MODEL_COSTS = {
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "gpt-5-mini": {"input": 0.25, "output": 2.00},
}

# Thread-based logger registry to ensure same instance is reused
_logger_registry: Dict[str, "DebugLogger"] = {}
_registry_lock = threading.Lock()


def get_or_create_logger(thread_id: str, logs_dir: str = "logs") -> "DebugLogger":
    """
    Get an existing logger for the workflow thread or create a new one.

    The same instance is used across the initial run and every resume of
    a thread, so token counts and costs accumulate per thread.

    Args:
        thread_id: Workflow thread identifier
        logs_dir: Directory to store log files (default: "logs")

    Returns:
        DebugLogger instance for this thread
    """
    with _registry_lock:
        if thread_id not in _logger_registry:
            _logger_registry[thread_id] = DebugLogger(thread_id, logs_dir)
        return _logger_registry[thread_id]


def remove_logger(thread_id: str) -> None:
    """Remove a logger from the registry (e.g., after the thread completes)."""
    with _registry_lock:
        _logger_registry.pop(thread_id, None)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """
    Calculate the cost of an LLM call based on token usage.

    Args:
        model: Model identifier (e.g., "gpt-4.1-mini")
        input_tokens: Number of input/prompt tokens
        output_tokens: Number of output/completion tokens

    Returns:
        Cost in USD
    """
    costs = MODEL_COSTS.get(model, {"input": 0.0, "output": 0.0})
    input_cost = (input_tokens / 1_000_000) * costs["input"]
    output_cost = (output_tokens / 1_000_000) * costs["output"]
    return input_cost + output_cost


class DebugLogger:
    """
    Debug logger that writes per-thread JSON log files.

    Tracks node spans, LLM calls, token usage, and costs. Log files are
    written in JSON Lines format (one JSON object per line), one folder
    per workflow thread.
    """

    def __init__(self, thread_id: str, logs_dir: str = "logs"):
        self.thread_id = thread_id
        self.base_logs_dir = Path(logs_dir)
        self.thread_dir = self.base_logs_dir / thread_id
        self.log_file = self.thread_dir / "run_log.jsonl"

        self.thread_dir.mkdir(parents=True, exist_ok=True)

        self._write_lock = threading.Lock()
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._total_cost = 0.0
        self._total_llm_duration_ms = 0.0
        self._llm_call_count = 0
        self._span_count = 0
        self._failed_span_count = 0

    def _get_timestamp(self) -> str:
        """Get current UTC timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    def _append_to_log(self, entry: Dict[str, Any]) -> None:
        with self._write_lock:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

    def log_llm_call(
        self,
        model: str,
        duration_ms: float,
        input_tokens: int,
        output_tokens: int,
        node: Optional[str] = None,
    ) -> None:
        """
        Log an LLM call with timing and token usage.

        Args:
            model: Model identifier
            duration_ms: Time taken for the LLM call in milliseconds
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            node: Node that issued the call, when known
        """
        cost = calculate_cost(model, input_tokens, output_tokens)

        self._total_input_tokens += input_tokens
        self._total_output_tokens += output_tokens
        self._total_cost += cost
        self._total_llm_duration_ms += duration_ms
        self._llm_call_count += 1

        self._append_to_log({
            "type": "llm_call",
            "timestamp": self._get_timestamp(),
            "thread_id": self.thread_id,
            "node": node,
            "model": model,
            "duration_ms": round(duration_ms, 2),
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "cost_usd": round(cost, 6),
        })

    def log_span(
        self,
        trace_id: str,
        span_id: str,
        name: str,
        duration_ms: float,
        status: str,
        attributes: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log a finished tracer span (one node execution)."""
        self._span_count += 1
        if status != "ok":
            self._failed_span_count += 1

        self._append_to_log({
            "type": "node_span",
            "timestamp": self._get_timestamp(),
            "thread_id": self.thread_id,
            "trace_id": trace_id,
            "span_id": span_id,
            "name": name,
            "duration_ms": round(duration_ms, 2),
            "status": status,
            "attributes": attributes or {},
            "error": error,
        })

    def log_run_summary(self, status: str, duration_ms: float) -> Dict[str, Any]:
        """
        Log the accumulated totals when a run reaches a terminal status.

        Args:
            status: Workflow status (complete, interrupt, error, ...)
            duration_ms: Wall time of the run in milliseconds

        Returns:
            The summary entry that was written
        """
        summary = {
            "type": "run_summary",
            "timestamp": self._get_timestamp(),
            "thread_id": self.thread_id,
            "status": status,
            "duration_ms": round(duration_ms, 2),
            **self.get_accumulated_stats(),
        }
        self._append_to_log(summary)
        return summary

    def get_accumulated_stats(self) -> Dict[str, Any]:
        return {
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "total_tokens": self._total_input_tokens + self._total_output_tokens,
            "total_cost_usd": round(self._total_cost, 6),
            "total_llm_duration_ms": round(self._total_llm_duration_ms, 2),
            "llm_call_count": self._llm_call_count,
            "span_count": self._span_count,
            "failed_span_count": self._failed_span_count,
        }
