"""
Extraction Engine: turns one URL into a recipe record.

Strategies run in order and the first one returning at least one
ingredient wins:
  1. generative field extraction (WebScraping.AI or Gemini)
  2. schema.org markup in the fetched page (JSON-LD, then microdata)

Rules:
  - Never silently invent data: a strategy that finds no ingredients
    yields nothing.
  - A missing image is looked up from meta tags; failing that, the record
    simply has no image.
  - Every strategy failure is caught, logged and returned as an
    ErrorRecord; one bad URL never aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ai.field_extractor import RECIPE_FIELDS, FieldExtractor
from models.enums import ErrorKind, ExtractionMethod
from models.schema import ErrorRecord, ExtractedRecord, PartialRecord
from normalizer.engine import (
    CuisineNormalizer,
    IngredientParser,
    normalize_text,
    parse_servings,
    parse_time_minutes,
)
from parsers.meta_tags import MetaTagImageResolver
from parsers.recipe_markup import parse_recipe_markup
from utils.urls import sanitize_url

from .errors import ExtractionError
from .usage import UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass
class ExtractionOutcome:
    """Result of extracting one URL."""

    url: str
    record: Optional[ExtractedRecord] = None
    method: Optional[ExtractionMethod] = None
    errors: List[ErrorRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None


# ------------------------------------------------------------------
# Page fetching
# ------------------------------------------------------------------

class PageFetcher:
    """
    Fetch pages over HTTP, caching by URL for the lifetime of the engine.

    Concurrent requests for the same URL share one download.
    """

    def __init__(
        self,
        connect_timeout: float = 3.0,
        read_timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        usage: Optional[UsageTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = httpx.Timeout(
            read_timeout, connect=connect_timeout, read=read_timeout
        )
        self._headers = {"User-Agent": user_agent, "Accept": "text/html,*/*"}
        self._usage = usage
        self._transport = transport
        self._pages: Dict[str, asyncio.Task] = {}
        self.fetch_count = 0

    async def fetch(self, url: str) -> str:
        """Fetch a single page; raises ExtractionError on failure."""
        task = self._pages.get(url)
        if task is None or task.cancelled():
            task = asyncio.ensure_future(self._download(url))
            self._pages[url] = task
        return await asyncio.shield(task)

    async def close(self) -> None:
        """Cancel unfinished downloads and forget cached pages."""
        pending = [t for t in self._pages.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pages.clear()

    async def _download(self, url: str) -> str:
        self.fetch_count += 1
        started = time.monotonic()
        success = False
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                success = True
                return resp.text
        except httpx.TimeoutException as exc:
            raise ExtractionError(f"Timed out fetching page: {exc}", url) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                f"Page returned {exc.response.status_code}", url
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Page fetch failed: {exc}", url) from exc
        finally:
            if self._usage is not None:
                self._usage.record(
                    "page_fetch", (time.monotonic() - started) * 1000, success=success
                )


# ------------------------------------------------------------------
# Strategies
# ------------------------------------------------------------------

class ExtractionStrategy(ABC):
    """One way of getting a recipe out of a URL."""

    method: ExtractionMethod

    @abstractmethod
    async def try_extract(self, url: str) -> Optional[PartialRecord]:
        """Return a partial record, or None when this strategy finds nothing."""
        ...


class FieldExtractionStrategy(ExtractionStrategy):
    """Generative extraction with a fixed field schema."""

    method = ExtractionMethod.FIELD_EXTRACTION

    def __init__(
        self,
        extractor: FieldExtractor,
        schema: Optional[Dict[str, str]] = None,
    ):
        self._extractor = extractor
        self._schema = schema or RECIPE_FIELDS
        self._ingredients = IngredientParser()

    async def try_extract(self, url: str) -> Optional[PartialRecord]:
        data = await self._extractor.extract_fields(url, self._schema)
        return self.to_partial(data, url)

    def to_partial(self, data: Dict[str, Any], url: str) -> Optional[PartialRecord]:
        """Map an extractor answer onto a PartialRecord."""
        if not data:
            return None

        ingredients = self._ingredients.parse_all(_as_lines(data.get("ingredients")))
        if not ingredients:
            return None

        return PartialRecord(
            title=normalize_text(_as_str(data.get("title"))) or None,
            description=normalize_text(_as_str(data.get("description"))) or None,
            ingredients=ingredients,
            instructions=[normalize_text(s) for s in _as_lines(data.get("instructions"))],
            servings=parse_servings(data.get("servings")),
            prep_time_minutes=parse_time_minutes(data.get("prepTimeMinutes")),
            cook_time_minutes=parse_time_minutes(data.get("cookTimeMinutes")),
            total_time_minutes=parse_time_minutes(data.get("totalTimeMinutes")),
            cuisines=CuisineNormalizer.normalize_all(data.get("cuisine") or []),
            image_url=sanitize_url(_as_str(data.get("imageUrl"))),
            source_url=sanitize_url(_as_str(data.get("sourceUrl"))) or url,
        )


class StructuredMarkupStrategy(ExtractionStrategy):
    """schema.org Recipe markup in the page itself."""

    method = ExtractionMethod.STRUCTURED_MARKUP

    def __init__(self, fetcher: PageFetcher):
        self._fetcher = fetcher

    async def try_extract(self, url: str) -> Optional[PartialRecord]:
        html = await self._fetcher.fetch(url)
        return parse_recipe_markup(html, url)


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------

class ExtractionEngine:
    """
    Run strategies in order for a URL.

    Usage:
        fetcher = PageFetcher()
        engine = ExtractionEngine(
            strategies=[FieldExtractionStrategy(extractor),
                        StructuredMarkupStrategy(fetcher)],
            image_resolver=MetaTagImageResolver(fetcher.fetch),
        )
        outcome = await engine.extract(url)
    """

    def __init__(
        self,
        strategies: List[ExtractionStrategy],
        image_resolver: Optional[MetaTagImageResolver] = None,
    ):
        self._strategies = list(strategies)
        self._image_resolver = image_resolver

    @classmethod
    def with_defaults(
        cls,
        fetcher: PageFetcher,
        field_extractor: Optional[FieldExtractor] = None,
    ) -> "ExtractionEngine":
        """Field extraction (when configured), then markup; meta-tag images."""
        strategies: List[ExtractionStrategy] = []
        if field_extractor is not None:
            strategies.append(FieldExtractionStrategy(field_extractor))
        strategies.append(StructuredMarkupStrategy(fetcher))
        return cls(strategies, image_resolver=MetaTagImageResolver(fetcher.fetch))

    async def extract(self, url: str) -> ExtractionOutcome:
        outcome = ExtractionOutcome(url=url)

        for strategy in self._strategies:
            try:
                partial = await strategy.try_extract(url)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "%s failed for %s: %s", strategy.method.value, url, exc
                )
                outcome.errors.append(
                    ErrorRecord(
                        stage="extracting",
                        kind=ErrorKind.EXTRACTION_FAILURE,
                        message=f"{strategy.method.value}: {exc}",
                        url=url,
                    )
                )
                continue

            if partial is None or not partial.has_ingredients:
                logger.debug("%s found nothing at %s", strategy.method.value, url)
                continue

            record = ExtractedRecord.from_partial(partial, url, strategy.method)
            if not record.image_url and self._image_resolver is not None:
                record.image_url = await self._image_resolver.resolve_image(url)

            outcome.record = record
            outcome.method = strategy.method
            logger.info("Extracted %s via %s", url, strategy.method.value)
            return outcome

        if not outcome.errors:
            outcome.errors.append(
                ErrorRecord(
                    stage="extracting",
                    kind=ErrorKind.EXTRACTION_FAILURE,
                    message="No strategy found a recipe",
                    url=url,
                )
            )
        return outcome


def _as_str(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    return value if isinstance(value, str) else ""


def _as_lines(value: Any) -> List[str]:
    """Accept a list or a newline-separated block."""
    if isinstance(value, str):
        return [line for line in value.splitlines() if line.strip()]
    if isinstance(value, list):
        lines = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("text") or item.get("name") or ""
            if isinstance(item, (int, float)):
                item = str(item)
            if isinstance(item, str) and item.strip():
                lines.append(item)
        return lines
    return []
