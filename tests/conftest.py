"""
Shared fixtures and fakes for the test suite.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from models.enums import ErrorKind, ExtractionMethod
from models.schema import DiscoveredUrl, ErrorRecord, ExtractedRecord, SearchRequest
from normalizer.engine import IngredientParser
from search.discovery import DiscoveryResult
from search.extractor import ExtractionOutcome


_parser = IngredientParser()


def make_record(
    url: str,
    title: str,
    cuisine: str = "mexican",
    method: ExtractionMethod = ExtractionMethod.STRUCTURED_MARKUP,
    **overrides,
) -> ExtractedRecord:
    """A complete, valid record."""
    fields = dict(
        title=title,
        description=f"A weeknight {cuisine} dish.",
        ingredients=_parser.parse_all(
            ["2 cups black beans", "8 corn tortillas", "1 lime"]
        ),
        instructions=[
            "Warm the beans with spices.",
            "Heat the tortillas.",
            "Assemble and serve with lime.",
        ],
        servings=4,
        total_time_minutes=25,
        cuisines=[cuisine],
        image_url="https://images.example.com/dish.jpg",
        source_url=url,
        extraction_method=method,
    )
    fields.update(overrides)
    return ExtractedRecord(**fields)


class FakeDiscovery:
    """Stands in for DiscoveryClient; returns a fixed URL list."""

    def __init__(
        self,
        name: str,
        urls: List[str],
        errors: Optional[List[ErrorRecord]] = None,
        failure_reason: Optional[str] = None,
    ):
        self.provider_name = name
        self._urls = urls
        self._errors = errors or []
        self._failure_reason = failure_reason
        self.requests: List[SearchRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def discover(self, request, options=None) -> DiscoveryResult:
        self.requests.append(request)
        return DiscoveryResult(
            urls=[DiscoveredUrl(url=u, provider=self.provider_name, score=0.5) for u in self._urls],
            failure_reason=self._failure_reason,
            provider=self.provider_name,
            request_used=request,
            errors=list(self._errors),
        )


class FakeEngine:
    """
    Stands in for ExtractionEngine.

    ``records`` maps URL -> record; URLs in ``slow`` hang; anything else
    fails with an extraction error.
    """

    def __init__(
        self,
        records: Dict[str, ExtractedRecord],
        slow: Optional[List[str]] = None,
        delay: float = 0.0,
    ):
        self._records = records
        self._slow = set(slow or [])
        self._delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, url: str) -> ExtractionOutcome:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if url in self._slow:
                await asyncio.sleep(30)
            await asyncio.sleep(self._delay)
            record = self._records.get(url)
            if record is None:
                return ExtractionOutcome(
                    url=url,
                    errors=[
                        ErrorRecord(
                            stage="extracting",
                            kind=ErrorKind.EXTRACTION_FAILURE,
                            message="structured-markup: no recipe markup",
                            url=url,
                        )
                    ],
                )
            return ExtractionOutcome(url=url, record=record, method=record.extraction_method)
        finally:
            self.in_flight -= 1


@pytest.fixture
def mexican_vegan_request():
    return SearchRequest(
        topic="tacos", cuisine="mexican", dietary_restrictions=["vegan"], count=3
    )
