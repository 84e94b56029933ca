"""
Tests for record validation and confidence scoring.
"""

from datetime import datetime, timedelta, timezone

import pytest

from config import ScoringConfig
from models.enums import ConfidenceClass, ExtractionMethod
from models.schema import ExtractedRecord, Ingredient, SearchRequest
from validators.confidence import ConfidenceScorer, SourceLedger
from validators.rules import RecordValidator

from conftest import make_record

URL = "https://www.allrecipes.com/recipe/1/black-bean-tacos/"


def minimal_record(**overrides):
    fields = dict(
        title="Plain Rice",
        ingredients=[Ingredient(name="rice")],
        instructions=["Boil the rice."],
        source_url="https://randomsite.xyz/rice",
        extraction_method=ExtractionMethod.STRUCTURED_MARKUP,
    )
    fields.update(overrides)
    return ExtractedRecord(**fields)


# ===================================================================
# Record Validator
# ===================================================================


class TestRecordValidator:

    @pytest.fixture
    def validator(self):
        return RecordValidator()

    def test_valid_record(self, validator):
        result = validator.validate(make_record(URL, "  Black   Bean Tacos "))
        assert result.is_valid
        assert result.record.title == "Black Bean Tacos"
        assert result.errors == []

    def test_missing_ingredients_rejected(self, validator):
        result = validator.validate(make_record(URL, "Tacos", ingredients=[]))
        assert result.record is None
        assert not result.is_valid
        assert "No ingredients" in result.reasons

    def test_missing_title_rejected(self, validator):
        result = validator.validate(make_record(URL, "   "))
        assert "Missing title" in result.reasons

    def test_short_steps_dropped(self, validator):
        record = make_record(URL, "Tacos", instructions=["ok", "Warm the beans."])
        assert validator.validate(record).record.instructions == ["Warm the beans."]

    def test_only_short_steps_rejected(self, validator):
        record = make_record(URL, "Tacos", instructions=["a", " "])
        assert "No instructions" in validator.validate(record).reasons

    def test_blank_ingredient_names_dropped(self, validator):
        record = make_record(
            URL, "Tacos", ingredients=[Ingredient(name="  "), Ingredient(name="lime")]
        )
        assert [i.name for i in validator.validate(record).record.ingredients] == ["lime"]

    def test_soft_warnings(self, validator):
        record = make_record(URL, "Tacos", image_url=None, servings=None)
        result = validator.validate(record)
        assert result.is_valid
        fields = {w.field for w in result.warnings}
        assert {"image_url", "servings"} <= fields

    def test_time_inconsistency_warning(self, validator):
        record = make_record(
            URL, "Tacos", total_time_minutes=10, prep_time_minutes=10, cook_time_minutes=15
        )
        messages = [w.message for w in validator.validate(record).warnings]
        assert "Total time shorter than prep + cook time" in messages

    def test_excluded_ingredient_warning(self, validator):
        request = SearchRequest(topic="tacos", exclude_ingredients=["lime"])
        result = validator.validate(make_record(URL, "Tacos"), request)
        assert result.is_valid
        assert any("lime" in w.message for w in result.warnings)

    def test_to_dict(self, validator):
        data = validator.validate(make_record(URL, "Tacos", ingredients=[])).to_dict()
        assert data["is_valid"] is False
        assert data["error_count"] == 1


# ===================================================================
# Confidence Scorer
# ===================================================================


class TestConfidenceScorer:

    @pytest.fixture
    def scorer(self):
        return ConfidenceScorer()

    def test_completeness_full(self, scorer):
        assert scorer.completeness(make_record(URL, "Tacos")) == 1.0

    def test_completeness_bare(self, scorer):
        assert scorer.completeness(minimal_record()) == 0.0

    def test_freshness_curve(self, scorer):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert scorer.freshness(None, now) == 0.6
        assert scorer.freshness(now - timedelta(hours=1), now) == 1.0
        assert scorer.freshness(now - timedelta(days=40), now) == 0.3
        midway = now - timedelta(days=1) - timedelta(days=14.5)
        assert scorer.freshness(midway, now) == pytest.approx(0.65, abs=1e-3)

    def test_relevance(self, scorer, mexican_vegan_request):
        assert scorer.relevance(make_record(URL, "Tacos"), None) == 1.0
        assert scorer.relevance(make_record(URL, "Black Bean Tacos"), mexican_vegan_request) == 1.0
        off_topic = make_record(URL, "Pasta", cuisine="italian", description="")
        assert scorer.relevance(off_topic, mexican_vegan_request) == 0.0

    def test_classify(self, scorer):
        assert scorer.classify(0.8) == ConfidenceClass.HIGH
        assert scorer.classify(0.6) == ConfidenceClass.MEDIUM
        assert scorer.classify(0.3) == ConfidenceClass.LOW
        static = make_record("static://curated/x", "X", method=ExtractionMethod.STATIC_DATASET)
        assert scorer.classify(0.1, static) == ConfidenceClass.VERIFIED

    def test_weighted_overall(self, scorer, mexican_vegan_request):
        score = scorer.score(make_record(URL, "Black Bean Tacos"), mexican_vegan_request)
        # 0.35*0.9 + 0.25*1.0 + 0.15*0.6 + 0.25*1.0
        assert score.overall == pytest.approx(0.905)
        assert score.confidence_class == ConfidenceClass.HIGH

    def test_low_confidence_flag(self, scorer, mexican_vegan_request):
        scored = scorer.apply(minimal_record(), mexican_vegan_request)
        assert scored.confidence.overall == pytest.approx(0.265)
        assert scored.low_confidence

    def test_ledger_drives_freshness(self, scorer):
        ledger = SourceLedger()
        ledger.record_success(URL + "?utm_source=x")
        scored = scorer.apply(make_record(URL, "Tacos"), ledger=ledger)
        assert scored.confidence.freshness == 1.0
        assert len(ledger) == 1


class TestScoringConfig:

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ScoringConfig(weights={
                "source_reliability": 0.5,
                "structural_completeness": 0.5,
                "freshness": 0.5,
                "domain_relevance": 0.5,
            })

    def test_no_dominant_weight(self):
        with pytest.raises(ValueError):
            ScoringConfig(weights={
                "source_reliability": 0.6,
                "structural_completeness": 0.2,
                "freshness": 0.1,
                "domain_relevance": 0.1,
            })
