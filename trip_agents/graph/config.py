"""
Graph configuration for the trip workflow.

Centralizes all configuration options for the LangGraph workflow, making
it easy to tune retry, human-in-the-loop and persistence behavior without
modifying the graph wiring.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

from dotenv import load_dotenv


@dataclass
class HITLConfig:
    """
    Human-in-the-loop configuration.

    Attributes:
        enabled: Master switch; when False the workflow never suspends
        enable_itinerary_review: Suspend after the planner for draft review
        enable_budget_decision: Suspend after an over-budget audit
        budget_overage_threshold: Minimum overage (fraction of budget) that
            triggers a budget decision instead of an automatic retry
        enable_final_confirm: Suspend before finalize for a last confirmation
        review_on_retry: Also ask for review on planner reruns
        interrupt_ttl_hours: How long a pending interrupt stays answerable
    """

    enabled: bool = False
    enable_itinerary_review: bool = True
    enable_budget_decision: bool = True
    budget_overage_threshold: float = 0.1
    enable_final_confirm: bool = False
    review_on_retry: bool = False
    interrupt_ttl_hours: float = 24.0


@dataclass
class WorkflowConfig:
    """
    Configuration for the trip graph.

    Attributes:
        max_retries: Budget-driven planner reruns before a forced finalize
        recursion_limit: Maximum graph supersteps; derived from max_retries when None
        external_call_timeout: Seconds allowed for one weather/map call
        use_llm: Call the LLM in planner and weather nodes (rules otherwise)
        model: LLM model identifier
        llm_timeout: Seconds allowed for one LLM call, retries included
        hitl: Human-in-the-loop settings
        checkpoint_db: SQLite path for checkpoints; in-memory store when None
        tracer: Span sink: 'logging', 'memory', 'json' or 'none'
        debug_logs_dir: Directory for per-thread JSON-lines logs
    """

    # Retry loop
    max_retries: int = 3

    # Graph execution limits
    recursion_limit: Optional[int] = None

    # External calls
    external_call_timeout: float = 10.0

    # LLM configuration
    use_llm: bool = False
    model: str = "gpt-4.1-mini"
    llm_timeout: float = 60.0  # seconds

    # Human-in-the-loop configuration
    hitl: HITLConfig = field(default_factory=HITLConfig)

    # Persistence
    checkpoint_db: Optional[str] = None

    # Observability
    tracer: str = "logging"
    debug_logs_dir: str = "logs"

    def effective_recursion_limit(self) -> int:
        """
        Supersteps needed for a full run.

        Each pass costs four supersteps (planner, enricher, fan-out,
        critic); weather and finalize add two.
        """
        if self.recursion_limit is not None:
            return self.recursion_limit
        return 10 + 4 * (self.max_retries + 1)


# Default configuration instance
DEFAULT_CONFIG = WorkflowConfig()


def get_config(
    max_retries: Optional[int] = None,
    recursion_limit: Optional[int] = None,
    external_call_timeout: Optional[float] = None,
    use_llm: Optional[bool] = None,
    model: Optional[str] = None,
    llm_timeout: Optional[float] = None,
    hitl: Optional[HITLConfig] = None,
    checkpoint_db: Optional[str] = None,
    tracer: Optional[str] = None,
) -> WorkflowConfig:
    """
    Create a configuration with optional overrides.

    Args:
        max_retries: Override for the retry cap (0 is a valid override)
        recursion_limit: Override for recursion limit
        external_call_timeout: Override for external call timeout
        use_llm: Override for LLM usage
        model: Override for LLM model
        llm_timeout: Override for the LLM call timeout
        hitl: Override for human-in-the-loop settings
        checkpoint_db: Override for the SQLite checkpoint path
        tracer: Override for the tracer kind

    Returns:
        WorkflowConfig with specified overrides applied
    """
    return WorkflowConfig(
        max_retries=max_retries if max_retries is not None else DEFAULT_CONFIG.max_retries,
        recursion_limit=recursion_limit or DEFAULT_CONFIG.recursion_limit,
        external_call_timeout=external_call_timeout or DEFAULT_CONFIG.external_call_timeout,
        use_llm=use_llm if use_llm is not None else DEFAULT_CONFIG.use_llm,
        model=model or DEFAULT_CONFIG.model,
        llm_timeout=llm_timeout or DEFAULT_CONFIG.llm_timeout,
        hitl=hitl if hitl is not None else replace(DEFAULT_CONFIG.hitl),
        checkpoint_db=checkpoint_db or DEFAULT_CONFIG.checkpoint_db,
        tracer=tracer or DEFAULT_CONFIG.tracer,
    )


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> WorkflowConfig:
    """
    Build a configuration from environment variables (.env is loaded first).

    Recognized variables: TRIP_MAX_RETRIES, TRIP_EXTERNAL_TIMEOUT,
    TRIP_USE_LLM, TRIP_LLM_MODEL, TRIP_LLM_TIMEOUT, TRIP_HITL_ENABLED,
    TRIP_HITL_FINAL_CONFIRM, TRIP_BUDGET_OVERAGE_THRESHOLD,
    TRIP_INTERRUPT_TTL_HOURS, TRIP_CHECKPOINT_DB, TRIP_TRACER.
    """
    load_dotenv()

    hitl = HITLConfig(
        enabled=_env_bool("TRIP_HITL_ENABLED", False),
        enable_final_confirm=_env_bool("TRIP_HITL_FINAL_CONFIRM", False),
        budget_overage_threshold=float(os.environ.get("TRIP_BUDGET_OVERAGE_THRESHOLD", "0.1")),
        interrupt_ttl_hours=float(os.environ.get("TRIP_INTERRUPT_TTL_HOURS", "24")),
    )

    return get_config(
        max_retries=int(os.environ.get("TRIP_MAX_RETRIES", DEFAULT_CONFIG.max_retries)),
        external_call_timeout=float(
            os.environ.get("TRIP_EXTERNAL_TIMEOUT", DEFAULT_CONFIG.external_call_timeout)
        ),
        use_llm=_env_bool("TRIP_USE_LLM", False),
        model=os.environ.get("TRIP_LLM_MODEL"),
        llm_timeout=float(os.environ.get("TRIP_LLM_TIMEOUT", DEFAULT_CONFIG.llm_timeout)),
        hitl=hitl,
        checkpoint_db=os.environ.get("TRIP_CHECKPOINT_DB"),
        tracer=os.environ.get("TRIP_TRACER"),
    )
