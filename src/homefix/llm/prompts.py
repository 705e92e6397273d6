"""Prompt texts, kept as YAML files under homefix/prompts."""

from functools import lru_cache
from pathlib import Path

import yaml

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


@lru_cache()
def load_prompt(name: str) -> str:
    path = PROMPTS_DIR / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt {name!r} not found in {PROMPTS_DIR}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    content = data.get("content")
    if not content:
        raise ValueError(f"Prompt {name!r} has no content")
    return content
