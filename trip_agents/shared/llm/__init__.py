"""LLM client utilities."""

from trip_agents.shared.llm.client import (
    get_cached_client,
    call_llm_with_usage,
    acall_llm,
    make_llm_caller,
    LLMCaller,
)

__all__ = ["get_cached_client", "call_llm_with_usage", "acall_llm", "make_llm_caller", "LLMCaller"]
