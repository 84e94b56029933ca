"""
Search module: discovers candidate recipe pages through web search
providers and ranks them by source trust and relevance.

The extraction engine and the orchestrator live in ``search.extractor``
and ``search.orchestrator``; import them from there.
"""

from .client import SearchClient, SearchResult, get_search_client
from .discovery import DiscoveryClient, DiscoveryOptions, DiscoveryResult
from .domain_trust import DomainTier, DomainTrustModel
from .errors import InvalidRequestError, ProviderError
from .quality import QualityFilter, QualityFilterConfig
from .query_gen import QueryGenerator
from .ranking import ResultRanker
from .usage import UsageTracker

__all__ = [
    "SearchClient",
    "SearchResult",
    "get_search_client",
    "DiscoveryClient",
    "DiscoveryOptions",
    "DiscoveryResult",
    "DomainTrustModel",
    "DomainTier",
    "InvalidRequestError",
    "ProviderError",
    "QualityFilter",
    "QualityFilterConfig",
    "QueryGenerator",
    "ResultRanker",
    "UsageTracker",
]
