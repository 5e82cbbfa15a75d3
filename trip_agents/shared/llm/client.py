"""
OpenAI client with retry logic.

Provides a cached client instance, a chat completion call with automatic
retries using tenacity and token usage reporting, and the async caller
that agent nodes await under a timeout.
"""

import asyncio
import logging
import os
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from openai import OpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from dotenv import load_dotenv
load_dotenv()


logger = logging.getLogger(__name__)

# Module-level cache for OpenAI client
_client: Optional[OpenAI] = None

# Async signature agent nodes depend on: messages in, raw text out
LLMCaller = Callable[[List[Dict[str, str]]], Awaitable[str]]


def get_cached_client() -> OpenAI:
    """
    Returns a cached instance of the OpenAI client.

    Uses OPENAI_API_KEY_1 environment variable for authentication.
    The client is created once and reused for all subsequent calls.
    """
    global _client
    if _client is None:
        api_key = os.environ.get("OPENAI_API_KEY_1")
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEY_1 environment variable is not set. "
                "Please set it to your OpenAI API key."
            )
        _client = OpenAI(api_key=api_key)
    return _client


def has_api_key() -> bool:
    return bool(os.environ.get("OPENAI_API_KEY_1"))


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((Exception,)),
    reraise=True,
)
def call_llm_with_usage(
    messages: List[Dict[str, str]],
    model: str = "gpt-4.1-mini",
    client: Optional[OpenAI] = None,
) -> Tuple[str, Dict[str, int]]:
    """
    Call the OpenAI Chat Completion API and return content with token usage.

    Args:
        messages: List of message dicts with 'role' and 'content' keys
        model: Model identifier to use (default: gpt-4.1-mini)
        client: Optional OpenAI client instance. If not provided, uses cached client.

    Returns:
        Tuple of (response content, usage dict with input/output/total tokens)

    Raises:
        Exception: If all retry attempts fail.
    """
    if client is None:
        client = get_cached_client()

    response = client.chat.completions.create(
        model=model,
        messages=messages,
    )

    content = response.choices[0].message.content.strip()
    usage = {
        "input_tokens": response.usage.prompt_tokens,
        "output_tokens": response.usage.completion_tokens,
        "total_tokens": response.usage.total_tokens,
    }

    return content, usage


async def acall_llm(
    messages: List[Dict[str, str]],
    model: str = "gpt-4.1-mini",
    timeout: float = 60.0,
    client: Optional[OpenAI] = None,
) -> Tuple[str, Dict[str, int]]:
    """
    Run call_llm_with_usage in a worker thread, bounded by a timeout.

    Raises:
        asyncio.TimeoutError: If the call (including retries) exceeds timeout.
    """
    return await asyncio.wait_for(
        asyncio.to_thread(call_llm_with_usage, messages, model, client),
        timeout=timeout,
    )


def make_llm_caller(
    model: str = "gpt-4.1-mini",
    timeout: float = 60.0,
    on_usage: Optional[Callable[[str, float, Dict[str, int]], None]] = None,
) -> LLMCaller:
    """
    Build the async caller injected into agent nodes.

    Args:
        model: Model identifier
        timeout: Per-call timeout in seconds
        on_usage: Optional hook receiving (model, duration_ms, usage) after
            every successful call, used for cost tracking

    Returns:
        Coroutine function taking chat messages and returning response text.
    """

    async def _caller(messages: List[Dict[str, str]]) -> str:
        start = time.perf_counter()
        content, usage = await acall_llm(messages, model=model, timeout=timeout)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"LLM call finished | model={model}, duration={duration_ms:.0f}ms, "
            f"tokens={usage.get('total_tokens')}"
        )
        if on_usage is not None:
            on_usage(model, duration_ms, usage)
        return content

    return _caller
