"""Recovery and validation of the repair plan returned by the model.

parse_model_response() pulls one JSON object out of whatever text the model
produced (bare JSON, fenced code block, or JSON surrounded by prose),
validate_model_output() checks it against the closed RepairAnalysis schema,
and create_fallback_response() is the plan substituted by callers whenever
either of them fails. Nothing here recovers from a failure; it only reports it.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List

from pydantic import ValidationError

from ..log import get_logger
from ..schemas.analysis import RepairAnalysis

logger = get_logger("model_output")

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")
# Greedy: first "{" to last "}"
_JSON_SPAN_RE = re.compile(r"\{[\s\S]*\}")


class ModelOutputError(ValueError):
    """Base class for model output that could not be turned into a RepairAnalysis."""


class NoJsonFound(ModelOutputError):
    def __init__(self, excerpt: str = ""):
        super().__init__("Model returned text instead of JSON")
        self.excerpt = excerpt


class MalformedJson(ModelOutputError):
    def __init__(self, message: str):
        super().__init__(f"Failed to parse JSON: {message}")
        self.message = message


class SchemaViolation(ModelOutputError):
    def __init__(self, violations: List[str]):
        joined = ", ".join(violations) or "Unknown validation error"
        super().__init__(f"Model output validation failed: {joined}")
        self.violations = violations


def clamp_probability(value: float) -> float:
    """Map a model-supplied confidence into [0, 1]; values above 1 are read as percentages."""
    try:
        value = float(value)
    except OverflowError:
        # Integers too large for a float still clamp to the nearest bound
        value = math.inf if value > 0 else -math.inf
    if value > 1:
        value = value / 100
    return float(min(1.0, max(0.0, value)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_likelihood(candidate: Any) -> Any:
    """Return candidate with every numeric likelihood value clamped. Other values are left alone."""
    if not isinstance(candidate, dict):
        return candidate
    likelihood = candidate.get("likelihood")
    if not isinstance(likelihood, dict):
        return candidate

    normalized = {
        key: clamp_probability(value) if _is_number(value) else value
        for key, value in likelihood.items()
    }
    return {**candidate, "likelihood": normalized}


def _pointer(loc) -> str:
    parts = [str(p).replace("~", "~0").replace("/", "~1") for p in loc]
    return "/" + "/".join(parts) if parts else "root"


_TYPE_REASONS = {
    "model_type": "must be object",
    "model_attributes_type": "must be object",
    "dict_type": "must be object",
    "list_type": "must be array",
    "string_type": "must be string",
    "float_type": "must be number",
    "float_parsing": "must be number",
}


def format_violations(error: ValidationError) -> List[str]:
    """Render pydantic errors as '<path>: <reason>' strings, in pydantic's (deterministic) order."""
    violations = []
    for err in error.errors():
        loc = tuple(err.get("loc", ()))
        kind = err.get("type", "")
        ctx = err.get("ctx") or {}

        if kind == "missing":
            violations.append(f"{_pointer(loc[:-1])}: must have required property '{loc[-1]}'")
        elif kind == "extra_forbidden":
            violations.append(f"{_pointer(loc[:-1])}: must NOT have additional property '{loc[-1]}'")
        elif kind in _TYPE_REASONS:
            violations.append(f"{_pointer(loc)}: {_TYPE_REASONS[kind]}")
        elif kind == "less_than_equal":
            violations.append(f"{_pointer(loc)}: must be <= {ctx.get('le')}")
        elif kind == "greater_than_equal":
            violations.append(f"{_pointer(loc)}: must be >= {ctx.get('ge')}")
        else:
            violations.append(f"{_pointer(loc)}: {err.get('msg', 'invalid value').lower()}")
    return violations


def validate_model_output(candidate: Any) -> RepairAnalysis:
    """
    Normalize likelihood values, then validate against the closed schema.
    Raises SchemaViolation listing every broken rule.
    """
    candidate = normalize_likelihood(candidate)
    try:
        return RepairAnalysis.model_validate(candidate)
    except ValidationError as e:
        raise SchemaViolation(format_violations(e)) from e


def _reject_constant(name: str):
    raise ValueError(f"Invalid JSON constant {name}")


def parse_model_response(response: str) -> RepairAnalysis:
    """
    Recover a RepairAnalysis from raw completion text.

    Raises NoJsonFound, MalformedJson or SchemaViolation.
    """
    json_str = response.strip()

    if json_str.startswith("```"):
        json_str = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", json_str, count=1), count=1)

    if not json_str.startswith("{"):
        match = _JSON_SPAN_RE.search(json_str)
        if not match:
            logger.warning(f"No JSON found in model response: {response[:200]!r}")
            raise NoJsonFound(response[:200])
        json_str = match.group(0)

    try:
        parsed = json.loads(json_str, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        logger.warning(f"JSON parsing failed for response: {json_str[:200]!r}")
        raise MalformedJson(str(e)) from e

    return validate_model_output(parsed)


_FALLBACK_ANALYSIS: Dict[str, Any] = {
    "materials": [
        {
            "name": "Assessment required",
            "spec": "Unable to determine specific materials without more information",
            "qty": "Varies by issue",
            "description": "More information needed to recommend specific materials for your repair",
            "alt": ["Professional inspection recommended", "Upload photo for better analysis"],
        }
    ],
    "tools": [
        {
            "name": "Assessment tools",
            "purpose": "Inspect and measure the problem area before selecting repair tools",
            "description": "Basic measuring and inspection tools to properly assess the repair requirements",
        }
    ],
    "steps": [
        "Take clear photos of the issue from multiple angles",
        "Measure the affected area (length, width, depth of damage)",
        "Check for underlying causes (moisture, movement, structural issues)",
        "Research specific repair methods for your exact situation",
        "Gather appropriate materials based on your specific conditions",
        "Consider consulting a professional for complex or structural issues",
    ],
    "likelihood": {"needs_more_information": 1.0},
    "safety": [
        "Stop if you discover structural damage or safety hazards",
        "For electrical, plumbing, or gas issues, consult licensed professionals",
        "Use proper personal protective equipment",
        "Ensure work area is well-ventilated and stable",
        "Follow all local building codes and permit requirements",
    ],
}


def create_fallback_response() -> RepairAnalysis:
    """The generic 'tell us more' plan. A new object every call, since enrichment mutates it."""
    return RepairAnalysis.model_validate(_FALLBACK_ANALYSIS)
