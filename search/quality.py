"""
Quality Filter: rejects low-value search hits before extraction.

Rejects:
  - denylisted domains (video, social, pin boards)
  - collection / category / search / tag pages (URL path patterns)
  - listicle titles ("25 best ...", "roundup", "recipes for ...")
  - hits whose title or snippet is too short to be a real recipe page
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from .client import SearchResult
from .domain_trust import DomainTrustModel

DEFAULT_EXCLUDE_PATTERNS = [
    "/collection/",
    "/collections/",
    "/category/",
    "/categories/",
    "/search/",
    "/search?",
    "/tag/",
    "/tags/",
    "/gallery/",
    "/galleries/",
    "/video/",
    "/videos/",
    "recipe-collection",
    "best-recipes",
    "top-recipes",
    "recipe-index",
    "cooking-tips",
    "kitchen-hacks",
]

LISTICLE_TITLE = re.compile(
    r"\b(?:\d+\s+(?:best|easy|quick|delicious|healthy)\b|best\s+\w+\s+recipes"
    r"|top\s+\d+|roundup|round-up|recipes\s+for\b|collection\s+of|gallery)",
    re.IGNORECASE,
)


@dataclass
class QualityFilterConfig:
    """Tunable quality heuristics."""

    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    min_title_length: int = 10
    min_content_length: int = 100
    reject_listicles: bool = True


class QualityFilter:
    """Predicate set applied to candidate hits."""

    def __init__(
        self,
        config: Optional[QualityFilterConfig] = None,
        trust_model: Optional[DomainTrustModel] = None,
    ):
        self.config = config or QualityFilterConfig()
        self._trust = trust_model or DomainTrustModel()

    def accept(self, hit: SearchResult) -> Tuple[bool, str]:
        """Return (accepted, reason)."""
        url = (hit.url or "").strip()
        if not url:
            return False, "empty url"

        if not self._trust.is_allowed(url):
            return False, "denylisted domain"

        try:
            parsed = urlparse(url.lower())
        except ValueError:
            return False, "unparsable url"
        path = parsed.path + (("?" + parsed.query) if parsed.query else "")
        if path in ("", "/"):
            return False, "site home page"
        for pattern in self.config.exclude_patterns:
            if pattern.lower() in path:
                return False, f"excluded pattern {pattern}"

        title = (hit.title or "").strip()
        if len(title) < self.config.min_title_length:
            return False, "title too short"
        if self.config.reject_listicles and LISTICLE_TITLE.search(title):
            return False, "collection-style title"

        if len((hit.snippet or "").strip()) < self.config.min_content_length:
            return False, "content too short"

        return True, "ok"

    def filter(
        self, hits: List[SearchResult]
    ) -> Tuple[List[SearchResult], List[Tuple[SearchResult, str]]]:
        """Split hits into (kept, [(rejected, reason)])."""
        kept: List[SearchResult] = []
        rejected: List[Tuple[SearchResult, str]] = []
        for hit in hits:
            ok, reason = self.accept(hit)
            if ok:
                kept.append(hit)
            else:
                rejected.append((hit, reason))
        return kept, rejected
