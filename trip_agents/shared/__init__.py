"""
Shared infrastructure for all agent nodes.

Modules:
- llm: OpenAI client with retry logic
- logging: Structured JSON logging and per-thread debug logs
- contracts: Node output contracts for handoffs through TripState
- response_parser: Typed LLM response parsing
- errors: Workflow exception taxonomy
"""

from trip_agents.shared.llm.client import get_cached_client, make_llm_caller
from trip_agents.shared.logging.config import setup_logging, log_state_transition

__all__ = [
    "get_cached_client",
    "make_llm_caller",
    "setup_logging",
    "log_state_transition",
]
