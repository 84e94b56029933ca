"""
Domain Trust Model: tiered reputation table for recipe sources.

Tier 1 = established recipe publishers (tested recipes, editorial review)
Tier 2 = reputable blogs and regional outlets
Deny   = video, social and pin-board sites that never carry a full recipe
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set

from utils.urls import extract_domain


class DomainTier(str, Enum):
    TIER1 = "tier1"
    TIER2 = "tier2"
    DENY = "deny"
    UNKNOWN = "unknown"


@dataclass
class DomainTrustConfig:
    """Trust configuration; callers may extend the built-in sets."""

    tier1: Set[str] = field(default_factory=set)
    tier2: Set[str] = field(default_factory=set)
    deny: Set[str] = field(default_factory=set)


# ------------------------------------------------------------------
# Built-in tables
# ------------------------------------------------------------------

GLOBAL_DENYLIST: Set[str] = {
    "youtube.com",
    "youtu.be",
    "tiktok.com",
    "instagram.com",
    "facebook.com",
    "pinterest.com",
    "twitter.com",
    "x.com",
    "reddit.com",
    "quora.com",
    "vimeo.com",
}

TRUSTED_RECIPE_DOMAINS: Set[str] = {
    "allrecipes.com",
    "food.com",
    "epicurious.com",
    "foodnetwork.com",
    "bonappetit.com",
    "seriouseats.com",
    "thekitchn.com",
    "tasteofhome.com",
    "simplyrecipes.com",
    "foodandwine.com",
    "eatingwell.com",
    "bbcgoodfood.com",
    "bbc.co.uk",
    "cooking.nytimes.com",
    "recipetineats.com",
    "budgetbytes.com",
    "taste.com.au",
    "jamieoliver.com",
    "marthastewart.com",
}

SECONDARY_RECIPE_DOMAINS: Set[str] = {
    "delish.com",
    "myrecipes.com",
    "cookinglight.com",
    "minimalistbaker.com",
    "loveandlemons.com",
    "mexicoinmykitchen.com",
    "maangchi.com",
    "hebbarskitchen.com",
    "justonecookbook.com",
    "hot-thai-kitchen.com",
    "themediterraneandish.com",
    "cookieandkate.com",
    "ohsheglows.com",
    "rainbowplantlife.com",
    "indianhealthyrecipes.com",
    "woksoflife.com",
}

TIER_RELIABILITY: Dict[DomainTier, float] = {
    DomainTier.TIER1: 0.9,
    DomainTier.TIER2: 0.7,
    DomainTier.UNKNOWN: 0.5,
    DomainTier.DENY: 0.1,
}


class DomainTrustModel:
    """
    Classify source domains into tiers.

    Resolution order:
      1. Caller-supplied tier1 / deny
      2. Global denylist
      3. Built-in trusted publishers
      4. Caller-supplied and built-in tier2
      5. Unknown
    """

    def __init__(
        self,
        extra_tier1: Optional[Set[str]] = None,
        extra_tier2: Optional[Set[str]] = None,
        extra_deny: Optional[Set[str]] = None,
    ):
        self._config = DomainTrustConfig(
            tier1=set(extra_tier1 or ()),
            tier2=set(extra_tier2 or ()),
            deny=set(extra_deny or ()),
        )

    @property
    def tier1_domains(self) -> Set[str]:
        return TRUSTED_RECIPE_DOMAINS | self._config.tier1

    def classify(self, url: str) -> DomainTier:
        """Classify a URL's domain into a tier."""
        domain = extract_domain(url)
        if not domain:
            return DomainTier.DENY

        if self._domain_matches(domain, self._config.tier1):
            return DomainTier.TIER1
        if self._domain_matches(domain, self._config.deny):
            return DomainTier.DENY
        if self._domain_matches(domain, GLOBAL_DENYLIST):
            return DomainTier.DENY
        if self._domain_matches(domain, TRUSTED_RECIPE_DOMAINS):
            return DomainTier.TIER1
        if self._domain_matches(domain, self._config.tier2):
            return DomainTier.TIER2
        if self._domain_matches(domain, SECONDARY_RECIPE_DOMAINS):
            return DomainTier.TIER2

        return DomainTier.UNKNOWN

    def is_allowed(self, url: str) -> bool:
        """Return True if URL is not denylisted."""
        return self.classify(url) != DomainTier.DENY

    def reliability(self, url: str) -> float:
        """Source-reliability signal; unknown domains get a neutral 0.5."""
        return TIER_RELIABILITY[self.classify(url)]

    # ------------------------------------------------------------------

    @staticmethod
    def _domain_matches(domain: str, domain_set: Set[str]) -> bool:
        """
        Suffix match, so "sub.allrecipes.com" matches "allrecipes.com".
        """
        for d in domain_set:
            if domain == d or domain.endswith("." + d):
                return True
        return False
