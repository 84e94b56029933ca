"""
Enumerations for recipe discovery data models.
"""

from enum import Enum


class ExtractionMethod(str, Enum):
    """How a record was produced."""
    FIELD_EXTRACTION = "field-extraction"
    STRUCTURED_MARKUP = "structured-markup"
    GENERATED_FALLBACK = "generated-fallback"
    STATIC_DATASET = "static-dataset"


class ConfidenceClass(str, Enum):
    """Coarse confidence bucket used to pick a cache lifetime."""
    VERIFIED = "verified"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    RAW = "raw"  # unvalidated provider response


class Difficulty(str, Enum):
    """Requested recipe difficulty."""
    EASY = "easy"
    MODERATE = "moderate"
    ADVANCED = "advanced"


class PipelineState(str, Enum):
    """States of the fallback orchestrator."""
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    SUFFICIENT = "sufficient"
    ESCALATING = "escalating"
    CACHE_ONLY = "cache_only"
    STATIC_DATASET = "static_dataset"
    SYNTHESIZED = "synthesized"
    DONE = "done"


class ProgressStage(str, Enum):
    """Stage names on the progress channel."""
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    ESCALATING = "escalating"
    DONE = "done"


class ErrorKind(str, Enum):
    """Error taxonomy surfaced alongside results."""
    TRANSIENT_PROVIDER = "transient-provider"
    PROVIDER_FAILURE = "provider-failure"
    STRUCTURAL_INVALID = "structural-invalid"
    EXTRACTION_FAILURE = "extraction-failure"
    TIMEOUT = "timeout"
    EXHAUSTION = "exhaustion"


class SourceTier(str, Enum):
    """Which tier produced the final records of a run."""
    CACHE = "cache"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CACHE_ONLY = "cache_only"
    STATIC_DATASET = "static_dataset"
    SYNTHESIZED = "synthesized"
    NONE = "none"
