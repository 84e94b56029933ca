"""
Pipeline configuration.

All tuning tables (confidence weights, cache lifetimes, timeouts) live here
so they can be adjusted in one place. Values are read from the environment
(optionally via a .env file) by the ``from_env`` constructors.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from dotenv import load_dotenv

from models.enums import ConfidenceClass


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


# ------------------------------------------------------------------
# Search / discovery
# ------------------------------------------------------------------

@dataclass
class SearchConfig:
    """Search provider configuration."""

    providers: List[str] = field(default_factory=lambda: ["tavily", "serpapi"])
    tavily_api_key: str = ""
    serpapi_key: str = ""
    bing_search_key: str = ""
    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_cap: float = 8.0

    def __post_init__(self):
        if not self.providers:
            raise ValueError("At least one search provider must be configured")
        if not 1 <= self.max_retries <= 10:
            raise ValueError("max_retries must be between 1 and 10")
        if self.backoff_base < 0 or self.backoff_cap < self.backoff_base:
            raise ValueError("backoff_cap must be >= backoff_base >= 0")

    @classmethod
    def from_env(cls) -> SearchConfig:
        providers = [
            p.strip() for p in os.getenv("SEARCH_PROVIDERS", "tavily,serpapi").split(",")
            if p.strip()
        ]
        return cls(
            providers=providers,
            tavily_api_key=os.getenv("TAVILY_API_KEY", ""),
            serpapi_key=os.getenv("SERPAPI_KEY", ""),
            bing_search_key=os.getenv("BING_SEARCH_KEY", ""),
            timeout_seconds=_env_float("SEARCH_TIMEOUT", 15.0),
            max_retries=_env_int("SEARCH_MAX_RETRIES", 3),
        )


# ------------------------------------------------------------------
# Extraction
# ------------------------------------------------------------------

@dataclass
class ExtractionConfig:
    """Extraction engine configuration."""

    field_extractor: str = "webscraping_ai"  # webscraping_ai | gemini
    webscraping_ai_key: str = ""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    # seconds; connect and read deadlines are applied separately
    connect_timeout: float = 3.0
    read_timeout: float = 10.0
    per_url_timeout: float = 15.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    def __post_init__(self):
        if min(self.connect_timeout, self.read_timeout, self.per_url_timeout) <= 0:
            raise ValueError("Timeouts must be positive")

    @classmethod
    def from_env(cls) -> ExtractionConfig:
        return cls(
            field_extractor=os.getenv("FIELD_EXTRACTOR", "webscraping_ai"),
            webscraping_ai_key=os.getenv("WEBSCRAPING_AI_API_KEY", ""),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_model=os.getenv("AI_SCRAPER_MODEL", "gemini-2.5-flash"),
            connect_timeout=_env_float("EXTRACT_CONNECT_TIMEOUT", 3.0),
            read_timeout=_env_float("EXTRACT_READ_TIMEOUT", 10.0),
            per_url_timeout=_env_float("EXTRACT_PER_URL_TIMEOUT", 15.0),
        )


# ------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------

DEFAULT_WEIGHTS: Dict[str, float] = {
    "source_reliability": 0.35,
    "structural_completeness": 0.25,
    "freshness": 0.15,
    "domain_relevance": 0.25,
}

MAX_SINGLE_WEIGHT = 0.5


@dataclass
class ScoringConfig:
    """Confidence weights and thresholds."""

    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    low_confidence_floor: float = 0.45
    high_threshold: float = 0.75
    medium_threshold: float = 0.55

    def __post_init__(self):
        if set(self.weights) != set(DEFAULT_WEIGHTS):
            raise ValueError(
                f"weights must define exactly: {sorted(DEFAULT_WEIGHTS)}"
            )
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"weights must sum to 1.0 (got {total:.3f})")
        heaviest = max(self.weights.values())
        if heaviest > MAX_SINGLE_WEIGHT:
            raise ValueError(
                f"no single weight may exceed {MAX_SINGLE_WEIGHT} (got {heaviest})"
            )
        if not 0 <= self.low_confidence_floor <= 1:
            raise ValueError("low_confidence_floor must be within [0, 1]")
        if self.medium_threshold > self.high_threshold:
            raise ValueError("medium_threshold must not exceed high_threshold")

    @classmethod
    def from_env(cls) -> ScoringConfig:
        return cls(
            low_confidence_floor=_env_float("CONFIDENCE_FLOOR", 0.45),
        )


# ------------------------------------------------------------------
# Cache
# ------------------------------------------------------------------

DEFAULT_LIFETIMES: Dict[ConfidenceClass, timedelta] = {
    ConfidenceClass.VERIFIED: timedelta(days=14),
    ConfidenceClass.HIGH: timedelta(hours=12),
    ConfidenceClass.MEDIUM: timedelta(hours=8),
    ConfidenceClass.LOW: timedelta(hours=4),
    ConfidenceClass.RAW: timedelta(hours=2),
}


@dataclass
class CacheConfig:
    """Cache backend and lifetime table."""

    enabled: bool = True
    backend: str = "memory"  # memory | file
    cache_dir: str = ".cache/recipes"
    lifetimes: Dict[ConfidenceClass, timedelta] = field(
        default_factory=lambda: dict(DEFAULT_LIFETIMES)
    )

    def __post_init__(self):
        missing = set(ConfidenceClass) - set(self.lifetimes)
        if missing:
            raise ValueError(
                f"lifetime table missing classes: {sorted(c.value for c in missing)}"
            )
        if self.lifetimes[ConfidenceClass.RAW] > self.lifetimes[ConfidenceClass.LOW]:
            raise ValueError("raw provider responses must expire before validated results")

    @classmethod
    def from_env(cls) -> CacheConfig:
        return cls(
            enabled=_env_bool("ENABLE_CACHING", True),
            backend=os.getenv("CACHE_BACKEND", "memory"),
            cache_dir=os.getenv("CACHE_DIR", ".cache/recipes"),
        )


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------

@dataclass
class PipelineConfig:
    """Top-level configuration for one pipeline instance."""

    search: SearchConfig = field(default_factory=SearchConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    max_concurrent: int = 3
    run_budget_seconds: float = 45.0
    max_results: int = 10
    min_results: int = 3
    max_broadenings: int = 2
    enable_fallbacks: bool = True

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if self.run_budget_seconds <= 0:
            raise ValueError("run_budget_seconds must be positive")
        if self.min_results > self.max_results:
            raise ValueError("min_results must not exceed max_results")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> PipelineConfig:
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv(env_file)
        return cls(
            search=SearchConfig.from_env(),
            extraction=ExtractionConfig.from_env(),
            scoring=ScoringConfig.from_env(),
            cache=CacheConfig.from_env(),
            max_concurrent=_env_int("PIPELINE_MAX_CONCURRENT", 3),
            run_budget_seconds=_env_float("PIPELINE_BUDGET_SECONDS", 45.0),
            max_results=_env_int("PIPELINE_MAX_RESULTS", 10),
            min_results=_env_int("PIPELINE_MIN_RESULTS", 3),
            max_broadenings=_env_int("PIPELINE_MAX_BROADENINGS", 2),
            enable_fallbacks=_env_bool("ENABLE_FALLBACKS", True),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
