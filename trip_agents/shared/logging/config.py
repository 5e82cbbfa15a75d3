"""
Structured logging configuration.

JSON log lines for the trip workflow. Workflow fields (thread, graph,
node) come either from `extra=` on the log call or from the
`[thread=...] [node=...]` prefix every module puts on its messages, so
plain logger.info calls are searchable by thread without changes.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes copied from `extra=` into the JSON entry
WORKFLOW_FIELDS = ("thread_id", "graph", "node", "event", "state_summary", "context")

_PREFIX_FIELDS = {"thread": "thread_id", "graph": "graph", "node": "node"}
_PREFIX_RE = re.compile(r"\[(thread|graph|node)=([^\]]+)\]\s*")


class StructuredFormatter(logging.Formatter):
    """
    Formats log records as one JSON object per line.

    Fields: timestamp, level, logger, message, any WORKFLOW_FIELDS found on
    the record or in the message prefix, and exception when present. The
    prefix is stripped from the message once its fields are extracted.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        fields: Dict[str, Any] = {}

        for match in _PREFIX_RE.finditer(message):
            fields[_PREFIX_FIELDS[match.group(1)]] = match.group(2)
        if fields:
            message = _PREFIX_RE.sub("", message)

        for name in WORKFLOW_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                fields[name] = value

        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
            **fields,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    logger_name: str = "trip_agents",
) -> logging.Logger:
    """
    Send the package's logs to stdout (and optionally a file) as JSON lines.

    Handlers are replaced, not added, so repeated calls do not duplicate
    output.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers = []
    logger.propagate = False

    formatter = StructuredFormatter()
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def summarize_state(state: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the TripState fields that describe workflow progress."""
    budget_result = state.get("budget_result") or {}
    pending = state.get("pending_interrupt") or {}
    meta = state.get("meta") or {}
    return {
        "retry_count": state.get("retry_count", 0),
        "budget_outcome": budget_result.get("outcome"),
        "total_cost": budget_result.get("total_cost"),
        "pending_interrupt": pending.get("interrupt_type"),
        "has_final_itinerary": state.get("final_itinerary") is not None,
        "error_count": len(meta.get("errors", [])),
    }


def log_state_transition(
    event: str,
    state: Dict[str, Any],
    context: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a workflow state transition (workflow_suspended, workflow_complete).

    The thread id, event name and state summary travel as record
    attributes and become top-level fields under StructuredFormatter.
    """
    logger = logger or logging.getLogger("trip_agents")
    logger.info(
        f"State transition: {event}",
        extra={
            "thread_id": state.get("thread_id"),
            "event": event,
            "state_summary": summarize_state(state),
            "context": context,
        },
    )
