"""Keyword heuristics that describe a repair before it is sent to the model.

The rule tables live in data/domain_rules.yaml; this module only walks them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel

from ..config import load_domain_rules


class RepairContext(BaseModel):
    repair_type: str = "general"
    location: str = "indoor"
    materials: str = "mixed/unknown"
    environment: str = "standard"
    system_type: str = "none"


def _first_match(text: str, rules: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for rule in rules:
        if any(keyword in text for keyword in rule.get("keywords", [])):
            return rule
    return None


def extract_repair_context(description: str) -> RepairContext:
    text = description.lower()
    rules = load_domain_rules()
    context = RepairContext()

    repair = _first_match(text, rules.get("repair_types", []))
    if repair:
        context.repair_type = repair["name"]
        context.location = repair.get("location", context.location)
        context.environment = repair.get("environment", context.environment)

    # Location overrides the environment picked by repair type
    location = _first_match(text, rules.get("locations", []))
    if location:
        context.location = location["name"]
        context.environment = location.get("environment", context.environment)

    material = _first_match(text, rules.get("materials", []))
    if material:
        context.materials = material["name"]

    system = _first_match(text, rules.get("systems", []))
    if system:
        context.system_type = system["name"]

    return context


def get_domain_guidance(repair_type: str) -> str:
    guidance = load_domain_rules().get("guidance", {})
    return guidance.get(repair_type) or guidance.get(
        "general", "Provide specific materials, tools, and procedures appropriate for this repair type."
    )
