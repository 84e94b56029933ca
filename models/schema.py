"""
Pydantic data models for the recipe discovery canonical schema.
"""

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import ConfidenceClass, Difficulty, ErrorKind, ExtractionMethod

MIN_RESULT_COUNT = 1
MAX_RESULT_COUNT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_terms(value: Any) -> FrozenSet[str]:
    """Lower-case, strip and de-duplicate a collection of tags/terms."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, Iterable):
        raise ValueError(f"Expected a collection of strings, got {type(value).__name__}")
    terms = set()
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Expected string term, got {type(item).__name__}")
        cleaned = " ".join(item.lower().split())
        if cleaned:
            terms.add(cleaned)
    return frozenset(terms)


class SearchRequest(BaseModel):
    """
    Immutable description of what the caller is looking for.

    Tag sets are normalized on construction so that two requests differing
    only in ordering or casing compare (and hash) equal.
    """
    model_config = ConfigDict(frozen=True)

    topic: str = Field("", description="Free-text dish or topic")
    cuisine: Optional[str] = Field(None, description="Cultural/cuisine tag")
    country: Optional[str] = Field(None, description="Country or region")
    dietary_restrictions: FrozenSet[str] = Field(default_factory=frozenset)
    include_ingredients: FrozenSet[str] = Field(default_factory=frozenset)
    exclude_ingredients: FrozenSet[str] = Field(default_factory=frozenset)
    max_time_minutes: Optional[int] = Field(None, ge=1, description="Time budget")
    difficulty: Optional[Difficulty] = None
    count: int = Field(3, description="Desired result count (clamped 1-10)")

    @field_validator("topic", mode="before")
    @classmethod
    def _clean_topic(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("topic must be a string")
        return " ".join(v.split())

    @field_validator("cuisine", "country", mode="before")
    @classmethod
    def _clean_tag(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("cuisine/country must be strings")
        cleaned = " ".join(v.lower().split())
        return cleaned or None

    @field_validator(
        "dietary_restrictions", "include_ingredients", "exclude_ingredients",
        mode="before",
    )
    @classmethod
    def _clean_terms(cls, v: Any) -> FrozenSet[str]:
        return _normalize_terms(v)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _clean_difficulty(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower() or None
        return v

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, v: Any) -> int:
        if v is None:
            return 3
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            raise ValueError("count must be a number")
        try:
            count = int(v)
        except OverflowError as exc:
            raise ValueError("count must be a finite number") from exc
        return max(MIN_RESULT_COUNT, min(MAX_RESULT_COUNT, count))

    @model_validator(mode="after")
    def _require_subject(self) -> "SearchRequest":
        if not self.topic and not self.cuisine:
            raise ValueError("SearchRequest needs a topic or a cuisine")
        return self

    def normalized(self) -> Dict[str, Any]:
        """Order-independent, lower-cased representation used for cache keys."""
        return {
            "topic": self.topic.lower(),
            "cuisine": self.cuisine,
            "country": self.country,
            "dietary_restrictions": sorted(self.dietary_restrictions),
            "include_ingredients": sorted(self.include_ingredients),
            "exclude_ingredients": sorted(self.exclude_ingredients),
            "max_time_minutes": self.max_time_minutes,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "count": self.count,
        }

    def broadened(self) -> Optional["SearchRequest"]:
        """
        Drop the least important remaining constraint.

        Order: difficulty, time budget, required ingredients, country,
        extra topic words. Dietary restrictions and exclusions are never
        dropped. Returns None when nothing is left to relax.
        """
        if self.difficulty is not None:
            return self.model_copy(update={"difficulty": None})
        if self.max_time_minutes is not None:
            return self.model_copy(update={"max_time_minutes": None})
        if self.include_ingredients:
            return self.model_copy(update={"include_ingredients": frozenset()})
        if self.country:
            return self.model_copy(update={"country": None})
        words = self.topic.split()
        if len(words) > 2:
            return self.model_copy(update={"topic": " ".join(words[:2])})
        return None


class DiscoveredUrl(BaseModel):
    """A candidate source found by a search provider."""
    url: str
    provider: str
    score: float = Field(0.0, ge=0.0, le=1.0, description="Coarse relevance/quality")
    title: str = ""
    snippet: str = ""


class Ingredient(BaseModel):
    """A single ingredient line."""
    name: str
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    original: Optional[str] = Field(None, description="Raw ingredient line")


class ConfidenceScore(BaseModel):
    """Overall confidence plus the weighted signals it was built from."""
    overall: float = Field(..., ge=0.0, le=1.0)
    source_reliability: float = Field(..., ge=0.0, le=1.0)
    structural_completeness: float = Field(..., ge=0.0, le=1.0)
    freshness: float = Field(..., ge=0.0, le=1.0)
    domain_relevance: float = Field(..., ge=0.0, le=1.0)
    confidence_class: ConfidenceClass = ConfidenceClass.MEDIUM


class PartialRecord(BaseModel):
    """Output of a single extraction strategy; every field may be missing."""
    title: Optional[str] = None
    description: Optional[str] = None
    ingredients: List[Ingredient] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    servings: Optional[int] = None
    total_time_minutes: Optional[int] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    cuisines: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    source_url: Optional[str] = None

    @property
    def has_ingredients(self) -> bool:
        return len(self.ingredients) > 0


class ExtractedRecord(BaseModel):
    """Structured recipe record produced by the pipeline."""
    title: str
    description: str = ""
    ingredients: List[Ingredient] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    servings: Optional[int] = Field(None, ge=1)
    total_time_minutes: Optional[int] = Field(None, ge=0)
    prep_time_minutes: Optional[int] = Field(None, ge=0)
    cook_time_minutes: Optional[int] = Field(None, ge=0)
    cuisines: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    source_url: str
    extraction_method: ExtractionMethod
    dietary_tags: List[str] = Field(default_factory=list)
    confidence: Optional[ConfidenceScore] = None
    low_confidence: bool = False
    retrieved_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_valid(self) -> bool:
        """Non-empty title and source, at least one ingredient and step."""
        return bool(
            self.title.strip()
            and self.source_url.strip()
            and self.ingredients
            and self.instructions
        )

    @classmethod
    def from_partial(
        cls,
        partial: PartialRecord,
        source_url: str,
        method: ExtractionMethod,
    ) -> "ExtractedRecord":
        """Promote a strategy result to a record (validity is checked later)."""
        return cls(
            title=partial.title or "",
            description=partial.description or "",
            ingredients=list(partial.ingredients),
            instructions=list(partial.instructions),
            servings=partial.servings if partial.servings and partial.servings > 0 else None,
            total_time_minutes=partial.total_time_minutes,
            prep_time_minutes=partial.prep_time_minutes,
            cook_time_minutes=partial.cook_time_minutes,
            cuisines=list(partial.cuisines),
            image_url=partial.image_url,
            source_url=partial.source_url or source_url,
            extraction_method=method,
        )


class CacheEntry(BaseModel):
    """A cached payload with an expiry fixed at write time."""
    key: str
    payload: Union[List[Dict[str, Any]], Dict[str, Any]]
    confidence_class: ConfidenceClass
    created_at: datetime
    expires_at: datetime
    request: Optional[Dict[str, Any]] = Field(
        None, description="Normalized request this entry answers"
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def records(self) -> List[ExtractedRecord]:
        """Decode a record-list payload."""
        if not isinstance(self.payload, list):
            return []
        return [ExtractedRecord.model_validate(item) for item in self.payload]


class ErrorRecord(BaseModel):
    """A collected (non-fatal) error from one stage of a run."""
    stage: str
    kind: ErrorKind
    message: str
    url: Optional[str] = None
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
