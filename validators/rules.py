"""
Validation rules for extracted recipe records.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from models.schema import ExtractedRecord, Ingredient, SearchRequest
from normalizer.engine import normalize_text


@dataclass
class ValidationIssue:
    """A single validation issue."""
    severity: str  # "error" or "warning"
    message: str
    field: Optional[str] = None
    source_url: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of validation; ``record`` is None when the record was rejected."""
    record: Optional[ExtractedRecord]
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if validation passed (no errors, warnings allowed)."""
        return self.record is not None and len(self.errors) == 0

    @property
    def issues(self) -> List[ValidationIssue]:
        return self.errors + self.warnings

    @property
    def reasons(self) -> List[str]:
        """Rejection reasons, for error reporting."""
        return [e.message for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "is_valid": self.is_valid,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": [
                {"message": e.message, "field": e.field, "source_url": e.source_url}
                for e in self.errors
            ],
            "warnings": [
                {"message": w.message, "field": w.field, "source_url": w.source_url}
                for w in self.warnings
            ],
        }


class RecordValidator:
    """
    Clean up an extracted record and enforce the validity invariant:
    non-empty title and source URL, at least one ingredient and one step.
    """

    MIN_STEP_LENGTH = 3

    def validate(
        self,
        record: ExtractedRecord,
        request: Optional[SearchRequest] = None,
    ) -> ValidationResult:
        """
        Validate a record.

        Args:
            record: Record produced by an extraction strategy
            request: Optional request, used for exclusion warnings

        Returns:
            ValidationResult with the cleaned record, or record=None
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        url = record.source_url

        cleaned = record.model_copy(
            update={
                "title": normalize_text(record.title),
                "description": normalize_text(record.description),
                "ingredients": self._clean_ingredients(record.ingredients),
                "instructions": self._clean_steps(record.instructions),
                "source_url": record.source_url.strip(),
            }
        )

        if not cleaned.title:
            errors.append(ValidationIssue("error", "Missing title", "title", url))
        if not cleaned.source_url:
            errors.append(ValidationIssue("error", "Missing source URL", "source_url", url))
        if not cleaned.ingredients:
            errors.append(ValidationIssue("error", "No ingredients", "ingredients", url))
        if not cleaned.instructions:
            errors.append(ValidationIssue("error", "No instructions", "instructions", url))

        if errors:
            return ValidationResult(record=None, errors=errors, warnings=warnings)

        # Soft checks
        if not cleaned.image_url:
            warnings.append(ValidationIssue("warning", "No image", "image_url", url))
        if cleaned.servings is None:
            warnings.append(ValidationIssue("warning", "Servings unknown", "servings", url))
        if (
            cleaned.total_time_minutes is not None
            and cleaned.prep_time_minutes is not None
            and cleaned.cook_time_minutes is not None
            and cleaned.total_time_minutes
            < cleaned.prep_time_minutes + cleaned.cook_time_minutes
        ):
            warnings.append(
                ValidationIssue(
                    "warning",
                    "Total time shorter than prep + cook time",
                    "total_time_minutes",
                    url,
                )
            )

        if request is not None:
            names = " ".join(i.name.lower() for i in cleaned.ingredients)
            for term in sorted(request.exclude_ingredients):
                if term in names:
                    warnings.append(
                        ValidationIssue(
                            "warning",
                            f"Contains excluded ingredient '{term}'",
                            "ingredients",
                            url,
                        )
                    )

        return ValidationResult(record=cleaned, errors=errors, warnings=warnings)

    def _clean_ingredients(self, ingredients: List[Ingredient]) -> List[Ingredient]:
        out: List[Ingredient] = []
        for ing in ingredients:
            name = normalize_text(ing.name)
            if not name:
                continue
            out.append(ing.model_copy(update={"name": name}))
        return out

    def _clean_steps(self, steps: List[str]) -> List[str]:
        out: List[str] = []
        for step in steps:
            text = normalize_text(step)
            if len(text) >= self.MIN_STEP_LENGTH:
                out.append(text)
        return out
