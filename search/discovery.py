"""
Discovery Client: turns a SearchRequest into a ranked list of recipe URLs.

For one provider:
  1. build the primary query (QueryGenerator)
  2. call the provider, retrying transient errors with backoff + jitter
  3. drop low-value hits (QualityFilter), rank and deduplicate survivors
  4. if fewer than ``min_results`` survive, broaden the request and retry

Provider failures are converted into a DiscoveryResult with a
``failure_reason``; nothing raises past ``discover``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import httpx

from models.enums import ConfidenceClass, ErrorKind
from models.schema import DiscoveredUrl, ErrorRecord, SearchRequest

from .client import SearchClient, SearchResult
from .domain_trust import DomainTrustModel
from .errors import ProviderError, TransientProviderError
from .quality import QualityFilter, QualityFilterConfig
from .query_gen import QueryGenerator
from .ranking import ResultRanker

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryOptions:
    """Per-call discovery tuning."""

    max_results: int = 10
    min_results: int = 3
    quality: QualityFilterConfig = field(default_factory=QualityFilterConfig)
    max_broadenings: int = 2


@dataclass
class DiscoveryResult:
    """URLs found for a request, or the reason none were."""

    urls: List[DiscoveredUrl] = field(default_factory=list)
    failure_reason: Optional[str] = None
    attempts: int = 0
    query_used: Optional[str] = None
    provider: Optional[str] = None
    request_used: Optional[SearchRequest] = None
    errors: List[ErrorRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.urls) and self.failure_reason is None


class DiscoveryClient:
    """
    Discovery against a single search provider.

    Usage:
        client = DiscoveryClient(TavilyClient(api_key="..."))
        result = await client.discover(request, DiscoveryOptions(min_results=3))
    """

    def __init__(
        self,
        search_client: SearchClient,
        trust_model: Optional[DomainTrustModel] = None,
        query_generator: Optional[QueryGenerator] = None,
        cache=None,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_cap: float = 8.0,
    ):
        self._client = search_client
        self._trust = trust_model or DomainTrustModel()
        self._qgen = query_generator or QueryGenerator()
        self._ranker = ResultRanker(trust_model=self._trust)
        self._cache = cache  # RecipeCache for raw provider responses
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap

    @property
    def provider_name(self) -> str:
        return self._client.provider_name

    async def discover(
        self,
        request: SearchRequest,
        options: Optional[DiscoveryOptions] = None,
    ) -> DiscoveryResult:
        """Discover candidate URLs, broadening the request when yield is low."""
        options = options or DiscoveryOptions()
        quality = QualityFilter(config=options.quality, trust_model=self._trust)
        result = DiscoveryResult(provider=self.provider_name, request_used=request)

        found: List[DiscoveredUrl] = []
        seen: Set[str] = set()
        tried_queries: Set[str] = set()
        current: Optional[SearchRequest] = request
        broadenings = 0

        while current is not None:
            query = self._qgen.primary_query(current)
            if query in tried_queries:
                current = current.broadened()
                continue
            tried_queries.add(query)
            result.query_used = query
            result.request_used = current

            hits, error = await self._search_with_retry(query, options.max_results, result)
            if error is not None:
                result.urls = found
                result.failure_reason = f"{self.provider_name}: {error}"
                return result

            kept, rejected = quality.filter(hits)
            for hit, reason in rejected:
                logger.debug("Rejected %s (%s)", hit.url, reason)

            ranked = self._ranker.rank(kept, current)
            for url in self._ranker.select_urls(ranked, self.provider_name, options.max_results):
                if url.url not in seen and len(found) < options.max_results:
                    seen.add(url.url)
                    found.append(url)

            logger.info(
                "Discovery via %s: %d hits, %d kept, %d total for query %r",
                self.provider_name, len(hits), len(kept), len(found), query,
            )

            if len(found) >= options.min_results:
                result.urls = found
                return result

            if broadenings >= options.max_broadenings:
                break
            current = current.broadened()
            broadenings += 1
            if current is not None:
                logger.info("Broadening request (%d/%d)", broadenings, options.max_broadenings)

        result.urls = found
        result.failure_reason = (
            f"{self.provider_name}: only {len(found)} usable results "
            f"(wanted {options.min_results})"
        )
        return result

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    async def _search_with_retry(
        self,
        query: str,
        max_results: int,
        result: DiscoveryResult,
    ) -> Tuple[List[SearchResult], Optional[str]]:
        """
        Call the provider, retrying transient failures on the same query.

        Returns (hits, error_message); error_message is None on success.
        """
        cached = self._cached_hits(query)
        if cached is not None:
            logger.debug("Raw response cache hit for %r", query)
            return cached, None

        last_error = ""
        for attempt in range(self._max_retries):
            result.attempts += 1
            try:
                hits = await self._client.search(query, max_results=max_results)
            except (TransientProviderError, httpx.TransportError) as exc:
                last_error = str(exc) or type(exc).__name__
                result.errors.append(
                    ErrorRecord(
                        stage="discovering",
                        kind=ErrorKind.TRANSIENT_PROVIDER,
                        message=last_error,
                        provider=self.provider_name,
                    )
                )
                if attempt == self._max_retries - 1:
                    break
                delay = self._backoff_delay(attempt)
                logger.info(
                    "Transient error from %s (%s), retry %d in %.2fs",
                    self.provider_name, last_error, attempt + 1, delay,
                )
                await asyncio.sleep(delay)
                continue
            except ProviderError as exc:
                message = str(exc) or type(exc).__name__
                logger.warning("Provider %s failed: %s", self.provider_name, message)
                result.errors.append(
                    ErrorRecord(
                        stage="discovering",
                        kind=ErrorKind.PROVIDER_FAILURE,
                        message=message,
                        provider=self.provider_name,
                    )
                )
                return [], message
            except Exception as exc:
                logger.exception("Unexpected error from %s", self.provider_name)
                result.errors.append(
                    ErrorRecord(
                        stage="discovering",
                        kind=ErrorKind.PROVIDER_FAILURE,
                        message=f"{type(exc).__name__}: {exc}",
                        provider=self.provider_name,
                    )
                )
                return [], str(exc)

            self._store_hits(query, hits)
            return hits, None

        logger.warning(
            "Provider %s exhausted %d attempts: %s",
            self.provider_name, self._max_retries, last_error,
        )
        return [], f"retries exhausted ({last_error})"

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self._backoff_cap, self._backoff_base * (2 ** attempt))
        return delay + random.uniform(0, self._backoff_base)

    def _raw_key(self, query: str) -> str:
        return self._cache.raw_key(self.provider_name, query)

    def _cached_hits(self, query: str) -> Optional[List[SearchResult]]:
        if self._cache is None:
            return None
        entry = self._cache.get(self._raw_key(query))
        if entry is None or not isinstance(entry.payload, dict):
            return None
        return [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                snippet=item.get("snippet", ""),
                provider_score=item.get("provider_score"),
            )
            for item in entry.payload.get("results", [])
        ]

    def _store_hits(self, query: str, hits: List[SearchResult]) -> None:
        if self._cache is None or not hits:
            return
        payload: Dict[str, object] = {
            "provider": self.provider_name,
            "query": query,
            "results": [
                {
                    "title": h.title,
                    "url": h.url,
                    "snippet": h.snippet,
                    "provider_score": h.provider_score,
                }
                for h in hits
            ],
        }
        self._cache.put(self._raw_key(query), payload, ConfidenceClass.RAW)


async def discover_with_fallback(
    clients: Sequence[DiscoveryClient],
    request: SearchRequest,
    options: Optional[DiscoveryOptions] = None,
) -> DiscoveryResult:
    """
    Try each provider in order; return the first result meeting
    ``min_results``, otherwise the best partial result.
    """
    options = options or DiscoveryOptions()
    best: Optional[DiscoveryResult] = None
    errors: List[ErrorRecord] = []
    attempts = 0

    for client in clients:
        result = await client.discover(request, options)
        errors.extend(result.errors)
        attempts += result.attempts
        if len(result.urls) >= options.min_results:
            result.errors = errors
            result.attempts = attempts
            return result
        if best is None or len(result.urls) > len(best.urls):
            best = result
        logger.info(
            "Provider %s yielded %d urls, trying next provider",
            client.provider_name, len(result.urls),
        )

    if best is None:
        return DiscoveryResult(failure_reason="no search providers configured")
    best.errors = errors
    best.attempts = attempts
    if best.failure_reason is None:
        best.failure_reason = "all providers below minimum yield"
    return best
