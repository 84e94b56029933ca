"""
Result Ranking: score, deduplicate, and select the best URLs to extract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Set

from models.schema import DiscoveredUrl, SearchRequest
from utils.urls import sanitize_url

from .client import SearchResult
from .domain_trust import DomainTier, DomainTrustModel


@dataclass
class RankedResult:
    """A search result with scoring metadata."""

    result: SearchResult
    url: str  # sanitized
    tier: DomainTier
    score: float
    reasons: List[str] = field(default_factory=list)


class ResultRanker:
    """
    Rank and select the best search results.

    Scoring (raw points, scaled to 0–1):
      - Domain tier:    Tier1 +100, Tier2 +40, Unknown +10
      - Topic match:    topic words in title/snippet +30
      - Cuisine match:  cuisine in title/snippet +20
      - Recipe cues:    ingredients / instructions / prep time +10
      - Freshness:      published within a year +10
    """

    TIER_SCORES = {
        DomainTier.TIER1: 100,
        DomainTier.TIER2: 40,
        DomainTier.UNKNOWN: 10,
    }
    MAX_POINTS = 170.0

    RECIPE_CUES = ["ingredients", "instructions", "prep time", "cook time", "servings"]

    def __init__(self, trust_model: DomainTrustModel):
        self._trust = trust_model

    def rank(
        self,
        results: List[SearchResult],
        request: SearchRequest,
    ) -> List[RankedResult]:
        """
        Score, drop denylisted and unparsable URLs, return sorted list (best first).
        """
        ranked: List[RankedResult] = []
        topic_words = [w for w in request.topic.lower().split() if len(w) > 2]

        for r in results:
            url = sanitize_url(r.url)
            if url is None:
                continue

            tier = self._trust.classify(url)
            if tier == DomainTier.DENY:
                continue

            score = 0.0
            reasons: List[str] = []

            tier_score = self.TIER_SCORES.get(tier, 0)
            score += tier_score
            reasons.append(f"domain={tier.value}(+{tier_score})")

            text = f"{r.title} {r.snippet}".lower()

            if topic_words and all(w in text for w in topic_words):
                score += 30
                reasons.append("topic_match(+30)")

            if request.cuisine and request.cuisine in text:
                score += 20
                reasons.append("cuisine_match(+20)")

            if any(cue in text for cue in self.RECIPE_CUES):
                score += 10
                reasons.append("recipe_cue(+10)")

            if r.published_at:
                published = r.published_at
                if published.tzinfo is None:
                    published = published.replace(tzinfo=timezone.utc)
                if (datetime.now(timezone.utc) - published).days < 365:
                    score += 10
                    reasons.append("fresh(+10)")

            ranked.append(
                RankedResult(
                    result=r,
                    url=url,
                    tier=tier,
                    score=min(1.0, score / self.MAX_POINTS),
                    reasons=reasons,
                )
            )

        ranked.sort(key=lambda x: x.score, reverse=True)
        return ranked

    def select_urls(
        self,
        ranked: List[RankedResult],
        provider: str,
        max_results: int = 10,
    ) -> List[DiscoveredUrl]:
        """Top unique URLs as DiscoveredUrl objects, capped at max_results."""
        selected: List[DiscoveredUrl] = []
        seen: Set[str] = set()

        for r in ranked:
            if r.url in seen:
                continue
            seen.add(r.url)
            selected.append(
                DiscoveredUrl(
                    url=r.url,
                    provider=provider,
                    score=r.score,
                    title=r.result.title,
                    snippet=r.result.snippet,
                )
            )
            if len(selected) >= max_results:
                break

        return selected
