"""
SearchClient ABC and provider implementations.

Supports:
  - Tavily (default primary, returns page content with each hit)
  - SerpAPI (wraps Google)
  - Bing Web Search API

Every provider failure is translated into the ProviderError hierarchy so
the Discovery Client can tell retryable errors from permanent ones.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from dateutil import parser as date_parser

from .errors import (
    MalformedResponseError,
    PermanentProviderError,
    ProviderAuthError,
    ProviderError,
    ProviderServerError,
    ProviderTimeout,
    RateLimited,
    TransientProviderError,
)
from .usage import UsageTracker

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Data classes
# ------------------------------------------------------------------

@dataclass
class SearchResult:
    """Single search hit."""

    title: str
    url: str
    snippet: str
    published_at: Optional[datetime] = None
    provider_score: Optional[float] = None


# ------------------------------------------------------------------
# Abstract client
# ------------------------------------------------------------------

class SearchClient(ABC):
    """Abstract async search interface."""

    def __init__(
        self,
        timeout: float = 15.0,
        rate_limit: float = 0.0,
        usage: Optional[UsageTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._rate_limit = rate_limit  # seconds between calls
        self._last_request: float = 0
        self._lock = asyncio.Lock()
        self._usage = usage
        self._transport = transport

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def _do_search(self, query: str, count: int) -> List[SearchResult]:
        """Provider-specific search implementation."""
        ...

    async def search(self, query: str, max_results: int = 10) -> List[SearchResult]:
        """
        Public search entry point with rate limiting and error translation.

        Raises:
            ProviderError: any provider-side failure (typed)
        """
        await self._wait_rate_limit()

        started = time.monotonic()
        success = False
        try:
            results = await self._do_search(query, max_results)
            success = True
            return results
        except ProviderError:
            raise
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(
                f"{self.provider_name} timed out: {exc}", self.provider_name
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise self._translate_status(exc) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(
                f"{self.provider_name} transport error: {exc}", self.provider_name
            ) from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise MalformedResponseError(
                f"{self.provider_name} returned an unreadable payload: {exc}",
                self.provider_name,
            ) from exc
        finally:
            if self._usage is not None:
                self._usage.record(
                    self.provider_name,
                    (time.monotonic() - started) * 1000,
                    success=success,
                )

    async def _wait_rate_limit(self) -> None:
        if self._rate_limit <= 0:
            return
        async with self._lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self._rate_limit:
                await asyncio.sleep(self._rate_limit - elapsed)
            self._last_request = time.monotonic()

    def _translate_status(self, exc: httpx.HTTPStatusError) -> ProviderError:
        status = exc.response.status_code
        name = self.provider_name
        if status == 429:
            return RateLimited(f"{name} rate limited (429)", name)
        if status >= 500:
            return ProviderServerError(f"{name} server error ({status})", name)
        if status in (401, 403):
            return ProviderAuthError(f"{name} rejected credentials ({status})", name)
        return PermanentProviderError(f"{name} request failed ({status})", name)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)


# ------------------------------------------------------------------
# Tavily provider
# ------------------------------------------------------------------

class TavilyClient(SearchClient):
    """Search via Tavily (https://tavily.com)."""

    API_URL = "https://api.tavily.com/search"

    def __init__(
        self,
        api_key: Optional[str] = None,
        search_depth: str = "basic",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._api_key = api_key or ""
        self._search_depth = search_depth

    @property
    def provider_name(self) -> str:
        return "tavily"

    async def _do_search(self, query: str, count: int) -> List[SearchResult]:
        if not self._api_key:
            raise ProviderAuthError("TAVILY_API_KEY not set.", self.provider_name)

        payload: Dict[str, Any] = {
            "api_key": self._api_key,
            "query": query,
            "max_results": min(count, 20),
            "search_depth": self._search_depth,
            "include_images": False,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        async with self._http() as client:
            resp = await client.post(self.API_URL, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        results: List[SearchResult] = []
        for item in data.get("results", []):
            results.append(
                SearchResult(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    snippet=item.get("content") or "",
                    published_at=_parse_date(item.get("published_date")),
                    provider_score=item.get("score"),
                )
            )
        return results


# ------------------------------------------------------------------
# SerpAPI provider (wraps Google)
# ------------------------------------------------------------------

class SerpAPIClient(SearchClient):
    """Search via SerpAPI (https://serpapi.com)."""

    API_URL = "https://serpapi.com/search"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key or ""

    @property
    def provider_name(self) -> str:
        return "serpapi"

    async def _do_search(self, query: str, count: int) -> List[SearchResult]:
        if not self._api_key:
            raise ProviderAuthError("SERPAPI_KEY not set.", self.provider_name)

        params: dict = {
            "q": query,
            "api_key": self._api_key,
            "engine": "google",
            "num": min(count, 20),
        }

        async with self._http() as client:
            resp = await client.get(self.API_URL, params=params)
            resp.raise_for_status()
            data = resp.json()

        results: List[SearchResult] = []
        for item in data.get("organic_results", []):
            results.append(
                SearchResult(
                    title=item.get("title", ""),
                    url=item.get("link", ""),
                    snippet=item.get("snippet", ""),
                    published_at=_parse_date(item.get("date")),
                )
            )
        return results


# ------------------------------------------------------------------
# Bing Web Search API provider
# ------------------------------------------------------------------

class BingSearchClient(SearchClient):
    """Search via Bing Web Search v7."""

    API_URL = "https://api.bing.microsoft.com/v7.0/search"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key or ""

    @property
    def provider_name(self) -> str:
        return "bing"

    async def _do_search(self, query: str, count: int) -> List[SearchResult]:
        if not self._api_key:
            raise ProviderAuthError("BING_SEARCH_KEY not set.", self.provider_name)

        headers = {"Ocp-Apim-Subscription-Key": self._api_key}
        params: dict = {"q": query, "count": min(count, 50)}

        async with self._http() as client:
            resp = await client.get(self.API_URL, params=params, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        results: List[SearchResult] = []
        for item in data.get("webPages", {}).get("value", []):
            results.append(
                SearchResult(
                    title=item.get("name", ""),
                    url=item.get("url", ""),
                    snippet=item.get("snippet", ""),
                    published_at=_parse_date(item.get("dateLastCrawled")),
                )
            )
        return results


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _parse_date(raw: Optional[str]) -> Optional[datetime]:
    """Best-effort date parsing."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        pass
    try:
        return date_parser.parse(raw)
    except (ValueError, OverflowError):
        return None


PROVIDERS = {
    "tavily": TavilyClient,
    "serpapi": SerpAPIClient,
    "bing": BingSearchClient,
}


def get_search_client(
    provider: str = "tavily",
    api_key: Optional[str] = None,
    **kwargs,
) -> SearchClient:
    """Create a search client by provider name."""
    cls = PROVIDERS.get(provider)
    if not cls:
        raise ValueError(
            f"Unknown provider '{provider}'. Choose from: {list(PROVIDERS.keys())}"
        )
    return cls(api_key=api_key, **kwargs)
