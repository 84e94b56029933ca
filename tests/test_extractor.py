"""
Tests for the extraction engine, page fetcher and field extractors.
"""

import asyncio
import json

import httpx
import pytest

from ai.field_extractor import (
    RECIPE_FIELDS,
    WebScrapingAIFieldExtractor,
    _parse_json_response,
    get_field_extractor,
)
from models.enums import ErrorKind, ExtractionMethod
from models.schema import Ingredient, PartialRecord
from search.errors import ExtractionError
from search.extractor import (
    ExtractionEngine,
    ExtractionStrategy,
    FieldExtractionStrategy,
    PageFetcher,
)
from search.usage import UsageTracker

URL = "https://example.com/recipes/tacos"


def partial(**overrides):
    fields = dict(
        title="Black Bean Tacos",
        ingredients=[Ingredient(name="black beans", quantity=2, unit="cup")],
        instructions=["Warm the beans.", "Fill the tortillas."],
        source_url=URL,
    )
    fields.update(overrides)
    return PartialRecord(**fields)


class StubStrategy(ExtractionStrategy):

    def __init__(self, method, result=None, error=None):
        self.method = method
        self._result = result
        self._error = error
        self.calls = 0

    async def try_extract(self, url):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._result


class StubImageResolver:

    def __init__(self, image):
        self._image = image
        self.calls = 0

    async def resolve_image(self, url):
        self.calls += 1
        return self._image


# ===================================================================
# Extraction Engine
# ===================================================================


class TestExtractionEngine:

    @pytest.mark.asyncio
    async def test_first_strategy_with_ingredients_wins(self):
        first = StubStrategy(ExtractionMethod.FIELD_EXTRACTION, result=None)
        second = StubStrategy(ExtractionMethod.STRUCTURED_MARKUP, result=partial())
        outcome = await ExtractionEngine([first, second]).extract(URL)

        assert outcome.ok
        assert outcome.method == ExtractionMethod.STRUCTURED_MARKUP
        assert outcome.record.extraction_method == ExtractionMethod.STRUCTURED_MARKUP
        assert (first.calls, second.calls) == (1, 1)

    @pytest.mark.asyncio
    async def test_later_strategies_skipped_after_success(self):
        first = StubStrategy(ExtractionMethod.FIELD_EXTRACTION, result=partial())
        second = StubStrategy(ExtractionMethod.STRUCTURED_MARKUP, result=partial())
        await ExtractionEngine([first, second]).extract(URL)
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_partial_without_ingredients_ignored(self):
        empty = StubStrategy(ExtractionMethod.FIELD_EXTRACTION, result=partial(ingredients=[]))
        outcome = await ExtractionEngine([empty]).extract(URL)
        assert not outcome.ok
        assert outcome.errors[0].message == "No strategy found a recipe"

    @pytest.mark.asyncio
    async def test_strategy_failure_captured(self):
        broken = StubStrategy(
            ExtractionMethod.FIELD_EXTRACTION, error=ExtractionError("webscraping.ai returned 500", URL)
        )
        markup = StubStrategy(ExtractionMethod.STRUCTURED_MARKUP, result=partial())
        outcome = await ExtractionEngine([broken, markup]).extract(URL)

        assert outcome.ok
        assert len(outcome.errors) == 1
        assert outcome.errors[0].kind == ErrorKind.EXTRACTION_FAILURE
        assert "returned 500" in outcome.errors[0].message

    @pytest.mark.asyncio
    async def test_all_strategies_fail(self):
        strategies = [
            StubStrategy(ExtractionMethod.FIELD_EXTRACTION, error=RuntimeError("boom")),
            StubStrategy(ExtractionMethod.STRUCTURED_MARKUP, error=ExtractionError("Page returned 404")),
        ]
        outcome = await ExtractionEngine(strategies).extract(URL)
        assert outcome.record is None
        assert len(outcome.errors) == 2

    @pytest.mark.asyncio
    async def test_image_fallback(self):
        resolver = StubImageResolver("https://cdn.example.com/tacos.jpg")
        engine = ExtractionEngine(
            [StubStrategy(ExtractionMethod.STRUCTURED_MARKUP, result=partial())],
            image_resolver=resolver,
        )
        outcome = await engine.extract(URL)
        assert outcome.record.image_url == "https://cdn.example.com/tacos.jpg"

    @pytest.mark.asyncio
    async def test_image_lookup_skipped_when_present(self):
        resolver = StubImageResolver("https://cdn.example.com/other.jpg")
        engine = ExtractionEngine(
            [StubStrategy(
                ExtractionMethod.STRUCTURED_MARKUP,
                result=partial(image_url="https://example.com/own.jpg"),
            )],
            image_resolver=resolver,
        )
        outcome = await engine.extract(URL)
        assert outcome.record.image_url == "https://example.com/own.jpg"
        assert resolver.calls == 0

    @pytest.mark.asyncio
    async def test_with_defaults_reads_markup_and_meta_image(self):
        page = (
            '<html><head><meta property="og:image" content="/hero.jpg">'
            '<script type="application/ld+json">'
            + json.dumps({
                "@type": "Recipe",
                "name": "Calabacitas",
                "recipeIngredient": ["3 zucchini", "1 cup corn kernels"],
                "recipeInstructions": ["Saute the squash.", "Add the corn."],
            })
            + "</script></head><body></body></html>"
        )
        requests = []

        def handler(request):
            requests.append(str(request.url))
            return httpx.Response(200, text=page)

        fetcher = PageFetcher(transport=httpx.MockTransport(handler))
        outcome = await ExtractionEngine.with_defaults(fetcher).extract(URL)

        assert outcome.method == ExtractionMethod.STRUCTURED_MARKUP
        assert outcome.record.title == "Calabacitas"
        assert outcome.record.image_url == "https://example.com/hero.jpg"
        # markup and image lookup share one download
        assert len(requests) == 1
        await fetcher.close()


# ===================================================================
# Field extraction mapping
# ===================================================================


class TestFieldExtractionStrategy:

    def test_to_partial(self):
        strategy = FieldExtractionStrategy(extractor=None)
        data = {
            "title": "Chana Masala",
            "ingredients": "2 cans chickpeas\n1 onion, chopped\n",
            "instructions": ["Fry the onion.", {"text": "Add chickpeas."}],
            "servings": "Serves 4",
            "prepTimeMinutes": "PT10M",
            "cookTimeMinutes": "25 mins",
            "cuisine": "Indian",
            "imageUrl": ["https://cdn.example.com/chana.jpg"],
            "sourceUrl": "",
        }
        rec = strategy.to_partial(data, URL)

        assert rec.title == "Chana Masala"
        assert [i.name for i in rec.ingredients] == ["chickpeas", "onion, chopped"]
        assert rec.instructions == ["Fry the onion.", "Add chickpeas."]
        assert rec.servings == 4
        assert rec.prep_time_minutes == 10
        assert rec.cook_time_minutes == 25
        assert rec.cuisines == ["indian"]
        assert rec.image_url == "https://cdn.example.com/chana.jpg"
        assert rec.source_url == URL

    def test_no_ingredients_means_nothing(self):
        strategy = FieldExtractionStrategy(extractor=None)
        assert strategy.to_partial({"title": "Tacos", "ingredients": []}, URL) is None
        assert strategy.to_partial({}, URL) is None


# ===================================================================
# Page fetcher
# ===================================================================


class TestPageFetcher:

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_download(self):
        calls = []

        async def handler(request):
            calls.append(request.url)
            await asyncio.sleep(0.01)
            return httpx.Response(200, text="<html>ok</html>")

        usage = UsageTracker()
        fetcher = PageFetcher(usage=usage, transport=httpx.MockTransport(handler))
        pages = await asyncio.gather(fetcher.fetch(URL), fetcher.fetch(URL))

        assert pages == ["<html>ok</html>", "<html>ok</html>"]
        assert len(calls) == 1
        assert fetcher.fetch_count == 1
        assert usage.calls("page_fetch") == 1

    @pytest.mark.asyncio
    async def test_http_error(self):
        fetcher = PageFetcher(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        with pytest.raises(ExtractionError, match="404"):
            await fetcher.fetch(URL)

    @pytest.mark.asyncio
    async def test_close_forgets_pages(self):
        fetcher = PageFetcher(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="x"))
        )
        await fetcher.fetch(URL)
        await fetcher.close()
        await fetcher.fetch(URL)
        assert fetcher.fetch_count == 2


# ===================================================================
# Field extractors
# ===================================================================


class TestWebScrapingAI:

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"title": "Tacos", "ingredients": ["1 lime"]})

        extractor = WebScrapingAIFieldExtractor(
            api_key="k", transport=httpx.MockTransport(handler)
        )
        data = await extractor.extract_fields(URL, RECIPE_FIELDS)

        assert data["title"] == "Tacos"
        assert seen["params"]["url"] == URL
        assert json.loads(seen["params"]["fields"]) == RECIPE_FIELDS

    @pytest.mark.asyncio
    async def test_server_error(self):
        extractor = WebScrapingAIFieldExtractor(
            api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        with pytest.raises(ExtractionError, match="500"):
            await extractor.extract_fields(URL, RECIPE_FIELDS)

    @pytest.mark.asyncio
    async def test_non_object_payload(self):
        extractor = WebScrapingAIFieldExtractor(
            api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[1, 2]))
        )
        with pytest.raises(ExtractionError):
            await extractor.extract_fields(URL, RECIPE_FIELDS)

    def test_missing_key(self):
        with pytest.raises(ValueError):
            WebScrapingAIFieldExtractor(api_key="")

    def test_factory(self):
        assert isinstance(get_field_extractor("webscraping_ai", api_key="k"), WebScrapingAIFieldExtractor)
        with pytest.raises(ValueError):
            get_field_extractor("gemini", api_key="k")
        with pytest.raises(ValueError):
            get_field_extractor("clippy")


def test_parse_json_response_handles_fences():
    text = '```json\n{"title": "Tacos", "ingredients": ["1 lime",],}\n```'
    assert _parse_json_response(text) == {"title": "Tacos", "ingredients": ["1 lime"]}
