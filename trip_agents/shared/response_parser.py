"""
Response parser for LLM-backed agent nodes.

Handles JSON extraction from various formats (raw JSON, markdown code
blocks, etc.) and typed parsing into contracts. Parsers never raise: they
return a ParseResult holding either the value or the ParseError, and the
calling node falls back to its rule-based generator on failure.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from trip_agents.shared.contracts.draft_itinerary import DraftItinerary
from trip_agents.shared.contracts.weather_output import StrategyTag


logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class ParseError(Exception):
    """Raised when response parsing fails."""

    pass


@dataclass
class ParseResult(Generic[T]):
    """Either a parsed value or the reason parsing failed."""

    value: Optional[T] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "ParseResult[T]":
        return cls(error=ParseError(message))


def extract_json_from_response(raw_response: str) -> str:
    """
    Extract JSON content from LLM response.

    Handles multiple formats:
    - Raw JSON
    - JSON in markdown code blocks (```json ... ```)
    - JSON with leading/trailing whitespace

    Args:
        raw_response: Raw LLM response string

    Returns:
        Cleaned JSON string ready for parsing
    """
    content = raw_response.strip()

    code_block_pattern = r"```(?:json)?\s*([\s\S]*?)```"
    match = re.search(code_block_pattern, content)
    if match:
        content = match.group(1).strip()

    # Find JSON object or array boundaries
    if content.startswith("{"):
        brace_count = 0
        for i, char in enumerate(content):
            if char == "{":
                brace_count += 1
            elif char == "}":
                brace_count -= 1
                if brace_count == 0:
                    return content[: i + 1]
    elif content.startswith("["):
        bracket_count = 0
        for i, char in enumerate(content):
            if char == "[":
                bracket_count += 1
            elif char == "]":
                bracket_count -= 1
                if bracket_count == 0:
                    return content[: i + 1]

    return content


def parse_model(raw_response: Optional[str], model_cls: Type[M]) -> ParseResult[M]:
    """
    Parse an LLM response into a pydantic contract.

    Args:
        raw_response: Raw LLM response string (None counts as a failure)
        model_cls: Contract class to validate against

    Returns:
        ParseResult with the validated model, or the ParseError
    """
    if not raw_response or not raw_response.strip():
        return ParseResult.failure("Empty LLM response")

    json_str = extract_json_from_response(raw_response)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"Failed to parse response JSON: {e}")

    if not isinstance(data, dict):
        return ParseResult.failure(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return ParseResult.success(model_cls.model_validate(data))
    except ValidationError as e:
        return ParseResult.failure(
            f"{model_cls.__name__} validation failed: {e.error_count()} error(s)"
        )


def parse_draft_itinerary(
    raw_response: Optional[str],
    expected_days: Optional[int] = None,
) -> ParseResult[DraftItinerary]:
    """
    Parse the planner's LLM response into a DraftItinerary.

    Totals are recomputed from the days instead of trusting the model.

    Args:
        raw_response: Raw LLM response string
        expected_days: When given, the draft must contain exactly this many days

    Returns:
        ParseResult with the draft, or the ParseError
    """
    result = parse_model(raw_response, DraftItinerary)
    if not result.ok:
        return result

    draft = result.value
    if not draft.days:
        return ParseResult.failure("Draft itinerary has no days")
    if expected_days is not None and len(draft.days) != expected_days:
        return ParseResult.failure(
            f"Draft itinerary has {len(draft.days)} days, expected {expected_days}"
        )

    draft = draft.recount().model_copy(update={"source": "llm"})
    return ParseResult.success(draft)


class WeatherAnalysis(BaseModel):
    """Structured fields the weather scout asks the LLM for."""

    strategy_tags: List[StrategyTag] = Field(min_length=1)
    clothing_advice: str
    warnings: List[str] = Field(default_factory=list)


def parse_weather_analysis(raw_response: Optional[str]) -> ParseResult[WeatherAnalysis]:
    return parse_model(raw_response, WeatherAnalysis)
