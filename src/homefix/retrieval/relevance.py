"""Decides whether a scraped product matches the item we searched for.

Rules live in data/relevance_rules.yaml and data/search_enhancements.yaml.
"""

import re
from functools import lru_cache
from typing import List, Tuple

from ..config import load_data_table

_WORD_SPLIT_RE = re.compile(r"[\s\-_]+")


def _rules() -> dict:
    return load_data_table("relevance_rules")


@lru_cache()
def _sorted_enhancements() -> List[Tuple[str, str]]:
    table = load_data_table("search_enhancements").get("enhancements", {})
    pairs = [(str(k).lower(), str(v)) for k, v in table.items()]
    # Longest keyword first; sorted() is stable so file order breaks ties
    return sorted(pairs, key=lambda kv: len(kv[0]), reverse=True)


def query_keywords(query: str) -> List[str]:
    stop_words = set(_rules().get("stop_words", []))
    return [w for w in _WORD_SPLIT_RE.split(query.lower()) if len(w) > 2 and w not in stop_words]


def is_product_relevant(query: str, product_name: str) -> bool:
    """
    True if a product name plausibly answers the query.

    Category rules are consulted first for any category keyword in the query:
    a conflicting term the query does not mention rejects, a synonym accepts.
    Otherwise at least half of the query keywords must appear in the product
    name, where a long word also earns half a point for its leading 70%.
    """
    query_lower = query.lower()
    product_lower = product_name.lower()
    words = query_keywords(query)

    for category, rule in _rules().get("categories", {}).items():
        if category not in words:
            continue
        for conflict in rule.get("conflicts", []):
            if conflict in product_lower and conflict not in query_lower:
                return False
        if any(synonym in product_lower for synonym in rule.get("synonyms", [])):
            return True

    score = 0.0
    for word in words:
        if word in product_lower:
            score += 1
        if len(word) > 4 and word[: int(len(word) * 0.7)] in product_lower:
            score += 0.5

    return score >= max(1, len(words) * 0.5)


def enhance_search_query(item_name: str) -> str:
    """Append the enhancement text of the longest keyword found in the item name."""
    item_lower = item_name.lower()
    for keyword, enhancement in _sorted_enhancements():
        if keyword in item_lower:
            return f"{item_name} {enhancement}"
    return item_name


def image_search_suffix(query: str) -> str:
    rules = _rules()
    query_lower = query.lower()
    for entry in rules.get("image_search_suffixes", []):
        if any(trigger in query_lower for trigger in entry.get("triggers", [])):
            return entry["suffix"]
    return rules.get("default_image_search_suffix", "hardware store product")


def is_irrelevant_image(image_url: str, query: str) -> bool:
    url_lower = image_url.lower()
    query_lower = query.lower()
    return any(
        term in url_lower and term not in query_lower
        for term in _rules().get("irrelevant_image_terms", [])
    )
