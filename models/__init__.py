"""
Models package initialization.
"""

from .enums import (
    ConfidenceClass,
    Difficulty,
    ErrorKind,
    ExtractionMethod,
    PipelineState,
    ProgressStage,
    SourceTier,
)
from .schema import (
    CacheEntry,
    ConfidenceScore,
    DiscoveredUrl,
    ErrorRecord,
    ExtractedRecord,
    Ingredient,
    PartialRecord,
    SearchRequest,
)

__all__ = [
    "ConfidenceClass",
    "Difficulty",
    "ErrorKind",
    "ExtractionMethod",
    "PipelineState",
    "ProgressStage",
    "SourceTier",
    "CacheEntry",
    "ConfidenceScore",
    "DiscoveredUrl",
    "ErrorRecord",
    "ExtractedRecord",
    "Ingredient",
    "PartialRecord",
    "SearchRequest",
]
