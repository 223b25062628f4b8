"""Ingredient tagging for food entries.

Flags are derived once at ingestion by substring search of the lower-cased
``"<name> <brand>"`` against fixed English/German keyword lists. There is no
tokenization, so short keywords can over-match (``"oat"`` tags oat milk as
gluten); the analyzers treat flags as hints, not facts.
"""

from __future__ import annotations

from dataclasses import dataclass

DAIRY_KEYWORDS = (
    "milk", "milch", "cheese", "käse", "yogurt", "joghurt", "cream", "sahne",
    "butter", "ice cream", "eis", "latte", "cappuccino", "whey", "casein",
    "lactose", "laktose", "dairy", "quark", "skyr", "kefir", "molke",
)

GLUTEN_KEYWORDS = (
    "bread", "brot", "pasta", "nudel", "wheat", "weizen", "flour", "mehl",
    "cereal", "müsli", "oat", "hafer", "barley", "gerste", "rye", "roggen",
    "pizza", "bagel", "muffin", "cake", "kuchen", "cookie", "keks", "cracker",
    "brötchen", "semmel",
)

CAFFEINE_KEYWORDS = (
    "coffee", "kaffee", "espresso", "latte", "cappuccino", "tea", "tee",
    "energy drink", "red bull", "monster", "cola", "pepsi", "coke", "matcha",
)


@dataclass(frozen=True)
class IngredientFlags:
    contains_dairy: bool
    contains_gluten: bool
    contains_caffeine: bool


def _matches(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def tag_ingredients(name: str, brand: str | None = None) -> IngredientFlags:
    """Derive dairy/gluten/caffeine flags from a food's name and brand."""
    text = f"{name} {brand or ''}".lower()
    return IngredientFlags(
        contains_dairy=_matches(text, DAIRY_KEYWORDS),
        contains_gluten=_matches(text, GLUTEN_KEYWORDS),
        contains_caffeine=_matches(text, CAFFEINE_KEYWORDS),
    )
