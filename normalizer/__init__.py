"""
Normalizer package initialization.
"""

from .engine import (
    CuisineNormalizer,
    IngredientParser,
    normalize_text,
    parse_iso_duration,
    parse_servings,
    parse_time_minutes,
    tokenize,
)

__all__ = [
    "CuisineNormalizer",
    "IngredientParser",
    "normalize_text",
    "parse_iso_duration",
    "parse_servings",
    "parse_time_minutes",
    "tokenize",
]
