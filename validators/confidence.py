"""
Confidence scoring for validated recipe records.

overall = Σ weight × signal over four signals, each in [0, 1]:
  - source_reliability       domain reputation tier
  - structural_completeness  optional fields present, bonus for full lists
  - freshness                how recently this source last extracted cleanly
  - domain_relevance         overlap with the requested cuisine / topic
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from config import ScoringConfig
from models.enums import ConfidenceClass, ExtractionMethod
from models.schema import ConfidenceScore, ExtractedRecord, SearchRequest
from normalizer.engine import tokenize
from search.domain_trust import DomainTrustModel
from utils.urls import sanitize_url

NEVER_SEEN_FRESHNESS = 0.6
STALE_FRESHNESS = 0.3
FRESH_WINDOW = timedelta(hours=24)
STALE_AFTER = timedelta(days=30)


class SourceLedger:
    """Last successful extraction time per source URL."""

    def __init__(self):
        self._seen: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def record_success(self, url: str, at: Optional[datetime] = None) -> None:
        key = sanitize_url(url) or url
        with self._lock:
            self._seen[key] = at or datetime.now(timezone.utc)

    def last_success(self, url: str) -> Optional[datetime]:
        key = sanitize_url(url) or url
        with self._lock:
            return self._seen.get(key)

    def __len__(self) -> int:
        return len(self._seen)


class ConfidenceScorer:
    """Weighted confidence model; weights come from ScoringConfig."""

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        trust_model: Optional[DomainTrustModel] = None,
    ):
        self.config = config or ScoringConfig()
        self._trust = trust_model or DomainTrustModel()

    def score(
        self,
        record: ExtractedRecord,
        request: Optional[SearchRequest] = None,
        last_success_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ConfidenceScore:
        signals = {
            "source_reliability": self._trust.reliability(record.source_url),
            "structural_completeness": self.completeness(record),
            "freshness": self.freshness(last_success_at, now),
            "domain_relevance": self.relevance(record, request),
        }
        overall = sum(self.config.weights[name] * value for name, value in signals.items())
        overall = round(min(1.0, max(0.0, overall)), 4)

        return ConfidenceScore(
            overall=overall,
            confidence_class=self.classify(overall, record),
            **signals,
        )

    def apply(
        self,
        record: ExtractedRecord,
        request: Optional[SearchRequest] = None,
        ledger: Optional[SourceLedger] = None,
    ) -> ExtractedRecord:
        """Return a copy of the record carrying its score and low-confidence flag."""
        last = ledger.last_success(record.source_url) if ledger else None
        score = self.score(record, request, last)
        return record.model_copy(
            update={
                "confidence": score,
                "low_confidence": score.overall < self.config.low_confidence_floor,
            }
        )

    def classify(self, overall: float, record: Optional[ExtractedRecord] = None) -> ConfidenceClass:
        if record is not None and record.extraction_method == ExtractionMethod.STATIC_DATASET:
            return ConfidenceClass.VERIFIED
        if overall >= self.config.high_threshold:
            return ConfidenceClass.HIGH
        if overall >= self.config.medium_threshold:
            return ConfidenceClass.MEDIUM
        return ConfidenceClass.LOW

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @staticmethod
    def completeness(record: ExtractedRecord) -> float:
        has_time = any(
            t is not None
            for t in (record.total_time_minutes, record.prep_time_minutes, record.cook_time_minutes)
        )
        optional = [
            has_time,
            record.servings is not None,
            bool(record.image_url),
            bool(record.description),
        ]
        value = 0.8 * sum(optional) / len(optional)
        if len(record.ingredients) >= 3 and len(record.instructions) >= 3:
            value += 0.2
        return round(min(1.0, value), 4)

    @staticmethod
    def freshness(
        last_success_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> float:
        """1.0 within a day, linear decay to 0.3 at 30 days, 0.6 if never seen."""
        if last_success_at is None:
            return NEVER_SEEN_FRESHNESS
        now = now or datetime.now(timezone.utc)
        if last_success_at.tzinfo is None:
            last_success_at = last_success_at.replace(tzinfo=timezone.utc)
        age = now - last_success_at
        if age <= FRESH_WINDOW:
            return 1.0
        if age >= STALE_AFTER:
            return STALE_FRESHNESS
        span = (STALE_AFTER - FRESH_WINDOW).total_seconds()
        progress = (age - FRESH_WINDOW).total_seconds() / span
        return round(1.0 - progress * (1.0 - STALE_FRESHNESS), 4)

    @staticmethod
    def relevance(
        record: ExtractedRecord,
        request: Optional[SearchRequest] = None,
    ) -> float:
        """Token overlap with the request; 1.0 when no cuisine was asked for."""
        if request is None or not request.cuisine:
            return 1.0

        record_tokens = set(tokenize(" ".join(record.cuisines)))
        record_tokens.update(tokenize(record.title))
        record_tokens.update(tokenize(record.description))

        cuisine_tokens = set(tokenize(request.cuisine))
        cuisine_hit = 1.0 if cuisine_tokens and cuisine_tokens <= record_tokens else 0.0

        topic_tokens = set(tokenize(request.topic)) - {"recipe", "recipes"}
        if topic_tokens:
            topic_hit = len(topic_tokens & record_tokens) / len(topic_tokens)
        else:
            topic_hit = 1.0

        return round(0.6 * cuisine_hit + 0.4 * topic_hit, 4)
