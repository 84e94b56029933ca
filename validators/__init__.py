"""
Validators package initialization.
"""

from .rules import RecordValidator, ValidationResult, ValidationIssue
from .confidence import ConfidenceScorer, SourceLedger

__all__ = [
    "RecordValidator",
    "ValidationResult",
    "ValidationIssue",
    "ConfidenceScorer",
    "SourceLedger",
]
