"""
AI module for recipe field extraction.
"""

from .field_extractor import (
    RECIPE_FIELDS,
    FieldExtractor,
    GeminiFieldExtractor,
    WebScrapingAIFieldExtractor,
    get_field_extractor,
)

__all__ = [
    "RECIPE_FIELDS",
    "FieldExtractor",
    "GeminiFieldExtractor",
    "WebScrapingAIFieldExtractor",
    "get_field_extractor",
]
