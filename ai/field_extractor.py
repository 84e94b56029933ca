"""
Generative field extraction for recipe pages.

Two backends behind one interface:
  - WebScraping.AI ``/ai/fields`` (renders the page and answers per-field
    questions in a single call)
  - Google Gemini over page HTML fetched by the caller
"""

import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from search.errors import ExtractionError
from search.usage import UsageTracker

logger = logging.getLogger(__name__)

# Field name -> question asked of the extractor.
RECIPE_FIELDS: Dict[str, str] = {
    "title": "recipe title",
    "description": "short recipe description or summary",
    "ingredients": "recipe ingredients list, one entry per ingredient with quantities",
    "instructions": "cooking instructions or directions, one entry per step",
    "servings": "number of servings",
    "prepTimeMinutes": "preparation time in minutes",
    "cookTimeMinutes": "cooking time in minutes",
    "totalTimeMinutes": "total cooking time in minutes",
    "cuisine": "cuisine of the recipe, e.g. Mexican",
    "imageUrl": "main recipe image from og:image",
    "sourceUrl": "canonical URL from rel=canonical",
}


def _clean_html(html: str, max_chars: int = 120_000) -> str:
    """Strip non-content elements from HTML and truncate to max_chars."""
    html = re.sub(r"<script(?![^>]*ld\+json)[\s\S]*?</script>", "", html, flags=re.IGNORECASE)
    html = re.sub(r"<style[\s\S]*?</style>", "", html, flags=re.IGNORECASE)
    html = re.sub(r"<!--[\s\S]*?-->", "", html)
    html = re.sub(r"\s{2,}", " ", html)

    if len(html) > max_chars:
        logger.warning("HTML truncated from %d to %d chars", len(html), max_chars)
        html = html[:max_chars] + "\n... (truncated)"
    return html


def _parse_json_response(text: str) -> Any:
    """Parse JSON from an AI response, handling markdown fences and fixups."""
    text = text.strip()

    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:])
        if text.endswith("```"):
            text = text[: text.rfind("```")]
        if text.startswith("json"):
            text = text[4:]

    first_brace = text.find("{")
    first_bracket = text.find("[")

    if first_bracket != -1 and (first_brace == -1 or first_bracket < first_brace):
        last = text.rfind("]")
        if last != -1:
            text = text[first_bracket : last + 1]
    elif first_brace != -1:
        last = text.rfind("}")
        if last != -1:
            text = text[first_brace : last + 1]

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        fixed = re.sub(r",(\s*[}\]])", r"\1", text)
        try:
            return json.loads(fixed)
        except json.JSONDecodeError as exc:
            raise ValueError(f"AI returned invalid JSON: {exc}") from exc


class FieldExtractor(ABC):
    """Answers a fixed set of field questions about a URL."""

    name = "field_extractor"

    @abstractmethod
    async def extract_fields(
        self, url: str, schema: Dict[str, str]
    ) -> Dict[str, Any]:
        """
        Return a dict keyed by the schema's field names.

        Raises:
            ExtractionError: the backend failed or answered garbage
        """
        ...


# ---------------------------------------------------------------------------
# WebScraping.AI
# ---------------------------------------------------------------------------

class WebScrapingAIFieldExtractor(FieldExtractor):
    """Field extraction via https://webscraping.ai."""

    name = "webscraping_ai"
    API_URL = "https://api.webscraping.ai/ai/fields"

    def __init__(
        self,
        api_key: Optional[str] = None,
        connect_timeout: float = 3.0,
        read_timeout: float = 10.0,
        usage: Optional[UsageTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("WEBSCRAPING_AI_API_KEY not set. Add it to your .env file.")
        self._api_key = api_key
        # connect and read deadlines are enforced separately
        self._timeout = httpx.Timeout(
            read_timeout, connect=connect_timeout, read=read_timeout
        )
        self._usage = usage
        self._transport = transport

    async def extract_fields(
        self, url: str, schema: Dict[str, str]
    ) -> Dict[str, Any]:
        params = {
            "api_key": self._api_key,
            "url": url,
            "format": "json",
            "timeout": "10000",
            "js": "true",
            "js_timeout": "2000",
            "fields": json.dumps(schema),
        }

        started = time.monotonic()
        success = False
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    self.API_URL, params=params, headers={"Accept": "application/json"}
                )
                resp.raise_for_status()
                data = resp.json()
            success = True
        except httpx.TimeoutException as exc:
            raise ExtractionError(f"webscraping.ai timed out: {exc}", url) from exc
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                f"webscraping.ai returned {exc.response.status_code}", url
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(f"webscraping.ai request failed: {exc}", url) from exc
        except ValueError as exc:
            raise ExtractionError(f"webscraping.ai returned invalid JSON: {exc}", url) from exc
        finally:
            if self._usage is not None:
                self._usage.record(
                    self.name, (time.monotonic() - started) * 1000, success=success
                )

        if not isinstance(data, dict):
            raise ExtractionError("webscraping.ai returned a non-object payload", url)
        return data


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

_FIELDS_PROMPT = """You are an expert at extracting recipe data from web pages.

From the following HTML of {page_url}, answer each field below.

Fields:
{fields}

Return ONLY a valid JSON object with exactly these keys. Use arrays of strings
for "ingredients" and "instructions", numbers for servings and times, and null
for anything the page does not state. Do not invent ingredients or steps.

HTML Content:
{html}"""


class GeminiFieldExtractor(FieldExtractor):
    """Field extraction from fetched HTML using Gemini."""

    name = "gemini"

    def __init__(
        self,
        page_fetcher: Callable[[str], Awaitable[str]],
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash",
        usage: Optional[UsageTracker] = None,
    ):
        if not api_key:
            raise ValueError("GEMINI_API_KEY not set. Add it to your .env file.")

        try:
            import google.generativeai as genai
            genai.configure(api_key=api_key)
            self._model = genai.GenerativeModel(model_name)
            logger.info("GeminiFieldExtractor initialised with model %s", model_name)
        except ImportError as exc:
            raise ImportError(
                "google-generativeai not installed. "
                "Run: pip install google-generativeai"
            ) from exc

        self.model_name = model_name
        self._fetch = page_fetcher
        self._usage = usage

    def _call_ai(self, prompt: str) -> str:
        """Call Gemini and return raw text response."""
        response = self._model.generate_content(
            prompt,
            generation_config={
                "temperature": 0.1,
                "top_p": 0.95,
                "max_output_tokens": 4096,
            },
        )
        return response.text

    async def extract_fields(
        self, url: str, schema: Dict[str, str]
    ) -> Dict[str, Any]:
        html = await self._fetch(url)
        prompt = _FIELDS_PROMPT.format(
            page_url=url,
            fields="\n".join(f"- {k}: {v}" for k, v in schema.items()),
            html=_clean_html(html),
        )

        started = time.monotonic()
        success = False
        try:
            raw = await asyncio.to_thread(self._call_ai, prompt)
            data = _parse_json_response(raw)
            success = True
        except ValueError as exc:
            raise ExtractionError(str(exc), url) from exc
        finally:
            if self._usage is not None:
                self._usage.record(
                    self.name, (time.monotonic() - started) * 1000, success=success
                )

        if isinstance(data, list):
            data = data[0] if data and isinstance(data[0], dict) else {}
        return data


def get_field_extractor(
    backend: str,
    api_key: Optional[str] = None,
    page_fetcher: Optional[Callable[[str], Awaitable[str]]] = None,
    **kwargs,
) -> FieldExtractor:
    """Create a field extractor by backend name."""
    if backend == "webscraping_ai":
        return WebScrapingAIFieldExtractor(api_key=api_key, **kwargs)
    if backend == "gemini":
        if page_fetcher is None:
            raise ValueError("The gemini backend needs a page_fetcher")
        return GeminiFieldExtractor(page_fetcher=page_fetcher, api_key=api_key, **kwargs)
    raise ValueError(
        f"Unknown field extractor '{backend}'. Choose from: ['webscraping_ai', 'gemini']"
    )
