"""
Fallback Orchestrator.

Ties together the Discovery Client, Extraction Engine, Validator,
Confidence Scorer and Cache into one run that:

  1. answers from the cache when the same request was served recently
  2. discovers candidate URLs (primary provider first)
  3. extracts them with bounded concurrency, each under its own timeout
  4. validates and scores every record as its extraction completes
  5. escalates on low yield: secondary provider, then overlapping cache
     entries, then the bundled dataset, then synthesized placeholders

Only the coordinator (``FallbackOrchestrator.run``) mutates the
PipelineRun; extraction tasks hand their outcomes back through
``asyncio.as_completed``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Set

from pydantic import ValidationError

from ai.field_extractor import FieldExtractor, get_field_extractor
from cache.store import RecipeCache
from config import PipelineConfig
from models.enums import (
    ConfidenceClass,
    ErrorKind,
    ExtractionMethod,
    PipelineState,
    ProgressStage,
    SourceTier,
)
from models.schema import DiscoveredUrl, ErrorRecord, ExtractedRecord, SearchRequest
from utils.urls import sanitize_url
from validators.confidence import ConfidenceScorer, SourceLedger
from validators.rules import RecordValidator

from .client import get_search_client
from .discovery import DiscoveryClient, DiscoveryOptions
from .domain_trust import DomainTrustModel
from .errors import InvalidRequestError
from .extractor import ExtractionEngine, ExtractionOutcome, PageFetcher
from .progress import ProgressChannel, ProgressEvent
from .quality import QualityFilterConfig
from .static_dataset import StaticDataset, synthesize_records
from .usage import UsageTracker

logger = logging.getLogger(__name__)

# lowest first
CLASS_ORDER = [
    ConfidenceClass.LOW,
    ConfidenceClass.MEDIUM,
    ConfidenceClass.HIGH,
    ConfidenceClass.VERIFIED,
]

# methods whose records may be cached under the request key
LIVE_METHODS = frozenset({
    ExtractionMethod.FIELD_EXTRACTION,
    ExtractionMethod.STRUCTURED_MARKUP,
})


def _url_key(url: str) -> str:
    return sanitize_url(url) or url


# ------------------------------------------------------------------
# Run state
# ------------------------------------------------------------------

class RunBudget:
    """Wall-clock budget for one run."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed)

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0


@dataclass
class UrlOutcome:
    """What happened to one discovered URL."""

    url: str
    success: bool
    reason: str = ""
    method: Optional[ExtractionMethod] = None


@dataclass
class PipelineRun:
    """Mutable state of one run; owned by the coordinator."""

    request: SearchRequest
    state: PipelineState = PipelineState.DISCOVERING
    transitions: List[PipelineState] = field(default_factory=list)
    discovered: List[DiscoveredUrl] = field(default_factory=list)
    outcomes: List[UrlOutcome] = field(default_factory=list)
    records: List[ExtractedRecord] = field(default_factory=list)
    # records extracted by this run's own providers, excluding fallback tiers
    live_records: List[ExtractedRecord] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    source_tier: SourceTier = SourceTier.NONE
    from_cache: bool = False
    budget_exhausted: bool = False

    def transition(self, state: PipelineState) -> None:
        logger.info("Pipeline state %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    @property
    def attempted_urls(self) -> Set[str]:
        return {o.url for o in self.outcomes}

    @property
    def real_record_count(self) -> int:
        return sum(
            1 for r in self.records
            if r.extraction_method != ExtractionMethod.GENERATED_FALLBACK
        )

    def has_record(self, record: ExtractedRecord) -> bool:
        key = _url_key(record.source_url)
        return any(_url_key(r.source_url) == key for r in self.records)


@dataclass
class PipelineResult:
    """What a caller gets back from a run."""

    records: List[ExtractedRecord]
    insufficient_yield: bool
    errors: List[ErrorRecord] = field(default_factory=list)
    source_tier: SourceTier = SourceTier.NONE
    from_cache: bool = False
    final_state: PipelineState = PipelineState.DONE
    usage: Dict[str, Dict[str, float]] = field(default_factory=dict)
    run: Optional[PipelineRun] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": [r.model_dump(mode="json") for r in self.records],
            "insufficient_yield": self.insufficient_yield,
            "errors": [e.to_dict() for e in self.errors],
            "source_tier": self.source_tier.value,
            "from_cache": self.from_cache,
            "final_state": self.final_state.value,
            "usage": self.usage,
        }


# ------------------------------------------------------------------
# Orchestrator
# ------------------------------------------------------------------

class FallbackOrchestrator:
    """
    Main coordinator for discovery runs.

    Usage:
        orchestrator = FallbackOrchestrator.from_config(PipelineConfig.from_env())
        result = await orchestrator.run(SearchRequest(topic="tacos", cuisine="mexican"))
    """

    def __init__(
        self,
        discovery_clients: Sequence[DiscoveryClient],
        engine: ExtractionEngine,
        config: Optional[PipelineConfig] = None,
        cache: Optional[RecipeCache] = None,
        validator: Optional[RecordValidator] = None,
        scorer: Optional[ConfidenceScorer] = None,
        ledger: Optional[SourceLedger] = None,
        static_dataset: Optional[StaticDataset] = None,
        usage: Optional[UsageTracker] = None,
        fetcher: Optional[PageFetcher] = None,
    ):
        self.config = config or PipelineConfig()
        self._discovery = list(discovery_clients)
        self._engine = engine
        self._cache = cache
        self._validator = validator or RecordValidator()
        self._scorer = scorer or ConfidenceScorer(self.config.scoring)
        self._ledger = ledger or SourceLedger()
        self._static = static_dataset or StaticDataset()
        self.usage = usage or UsageTracker()
        self._fetcher = fetcher

        # instrumentation
        self.in_flight = 0
        self.max_in_flight = 0

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        usage: Optional[UsageTracker] = None,
        cache: Optional[RecipeCache] = None,
    ) -> FallbackOrchestrator:
        """Wire real providers and extractors from configuration."""
        usage = usage or UsageTracker()
        if cache is None and config.cache.enabled:
            cache = RecipeCache.from_config(config.cache)
        trust = DomainTrustModel()

        keys = {
            "tavily": config.search.tavily_api_key,
            "serpapi": config.search.serpapi_key,
            "bing": config.search.bing_search_key,
        }
        clients: List[DiscoveryClient] = []
        for provider in config.search.providers:
            if not keys.get(provider):
                logger.warning("No API key for search provider %s; skipping", provider)
                continue
            search_client = get_search_client(
                provider,
                api_key=keys[provider],
                timeout=config.search.timeout_seconds,
                usage=usage,
            )
            clients.append(
                DiscoveryClient(
                    search_client,
                    trust_model=trust,
                    cache=cache,
                    max_retries=config.search.max_retries,
                    backoff_base=config.search.backoff_base,
                    backoff_cap=config.search.backoff_cap,
                )
            )

        ext = config.extraction
        fetcher = PageFetcher(
            connect_timeout=ext.connect_timeout,
            read_timeout=ext.read_timeout,
            user_agent=ext.user_agent,
            usage=usage,
        )
        field_extractor: Optional[FieldExtractor] = None
        if ext.field_extractor == "webscraping_ai" and ext.webscraping_ai_key:
            field_extractor = get_field_extractor(
                "webscraping_ai",
                api_key=ext.webscraping_ai_key,
                connect_timeout=ext.connect_timeout,
                read_timeout=ext.read_timeout,
                usage=usage,
            )
        elif ext.field_extractor == "gemini" and ext.gemini_api_key:
            field_extractor = get_field_extractor(
                "gemini",
                api_key=ext.gemini_api_key,
                page_fetcher=fetcher.fetch,
                model_name=ext.gemini_model,
                usage=usage,
            )
        else:
            logger.info("No field extractor configured; using page markup only")

        return cls(
            discovery_clients=clients,
            engine=ExtractionEngine.with_defaults(fetcher, field_extractor),
            config=config,
            cache=cache,
            scorer=ConfidenceScorer(config.scoring, trust),
            usage=usage,
            fetcher=fetcher,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        request: SearchRequest,
        progress: Optional[ProgressChannel] = None,
    ) -> PipelineResult:
        """Execute one run. Provider and extraction failures never raise."""
        progress = progress or ProgressChannel()
        run = PipelineRun(request=request)
        budget = RunBudget(self.config.run_budget_seconds)

        try:
            if not self._serve_from_cache(run, progress):
                await self._discover_and_extract(run, budget, progress)
                self._fallback_tiers(run, progress)
                self._write_cache(run)
        except Exception as exc:
            logger.exception("Pipeline run failed")
            progress.error(f"{type(exc).__name__}: {exc}")
            raise
        finally:
            if self._fetcher is not None:
                await self._fetcher.close()

        return self._finish(run, progress)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _serve_from_cache(self, run: PipelineRun, progress: ProgressChannel) -> bool:
        if self._cache is None:
            return False
        records = self._cache.get_records(run.request)
        if not records:
            return False
        if len(records) < run.request.count:
            logger.info(
                "Cached entry holds %d of %d records; treating as a miss",
                len(records), run.request.count,
            )
            return False

        logger.info("Cache hit: %d records", len(records))
        run.from_cache = True
        run.source_tier = SourceTier.CACHE
        for record in records[: run.request.count]:
            run.records.append(record)
            progress.record(record)
        return True

    async def _discover_and_extract(
        self,
        run: PipelineRun,
        budget: RunBudget,
        progress: ProgressChannel,
    ) -> None:
        options = DiscoveryOptions(
            max_results=self.config.max_results,
            min_results=min(self.config.min_results, self.config.max_results),
            quality=QualityFilterConfig(),
            max_broadenings=self.config.max_broadenings,
        )

        for index, client in enumerate(self._discovery):
            if budget.exhausted:
                run.budget_exhausted = True
                break

            request = run.request
            if index > 0:
                run.transition(PipelineState.ESCALATING)
                progress.stage(
                    ProgressStage.ESCALATING,
                    len(run.records),
                    run.request.count,
                    self._messages(run.errors),
                )
                request = run.request.broadened() or run.request

            run.transition(PipelineState.DISCOVERING)
            progress.stage(ProgressStage.DISCOVERING, 0, 0)

            try:
                result = await asyncio.wait_for(
                    client.discover(request, options),
                    timeout=max(budget.remaining, 0.01),
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Discovery via %s exceeded the run budget", client.provider_name
                )
                run.errors.append(
                    ErrorRecord(
                        stage="discovering",
                        kind=ErrorKind.TIMEOUT,
                        message="discovery cancelled: run budget exhausted",
                        provider=client.provider_name,
                    )
                )
                run.budget_exhausted = True
                break
            run.errors.extend(result.errors)
            if not result.urls and result.failure_reason and not result.errors:
                run.errors.append(
                    ErrorRecord(
                        stage="discovering",
                        kind=ErrorKind.EXHAUSTION,
                        message=result.failure_reason,
                        provider=client.provider_name,
                    )
                )

            fresh = [u for u in result.urls if u.url not in run.attempted_urls]
            run.discovered.extend(fresh)
            if not fresh:
                logger.info("No new candidates from %s", client.provider_name)
                continue

            before = run.real_record_count
            await self._extract_batch(run, fresh, budget, progress)
            if run.real_record_count > before:
                run.source_tier = SourceTier.PRIMARY if index == 0 else SourceTier.SECONDARY

            run.transition(PipelineState.VALIDATING)
            progress.stage(
                ProgressStage.VALIDATING,
                len(run.records),
                len(run.attempted_urls),
                self._messages(run.errors),
            )
            if run.real_record_count >= run.request.count:
                run.transition(PipelineState.SUFFICIENT)
                return
            if budget.exhausted:
                run.budget_exhausted = True
                break

    def _fallback_tiers(self, run: PipelineRun, progress: ProgressChannel) -> None:
        count = run.request.count
        if run.real_record_count >= count:
            return

        if run.budget_exhausted:
            if run.records:
                logger.info("Run budget exhausted; finalizing with %d records", len(run.records))
                return
            logger.info("Run budget exhausted with no records; using offline tiers")
        elif not self.config.enable_fallbacks:
            return
        else:
            run.transition(PipelineState.ESCALATING)
            progress.stage(ProgressStage.ESCALATING, len(run.records), count, self._messages(run.errors))

            if self._cache is not None:
                run.transition(PipelineState.CACHE_ONLY)
                added = self._add_records(run, self._cache.find_overlapping(run.request), progress)
                if added:
                    run.source_tier = SourceTier.CACHE_ONLY
                if run.real_record_count >= count:
                    return

        run.transition(PipelineState.STATIC_DATASET)
        static = [
            self._scorer.apply(r, run.request, self._ledger)
            for r in self._static.find(run.request)
        ]
        if self._add_records(run, static, progress):
            run.source_tier = SourceTier.STATIC_DATASET
        if run.real_record_count >= count:
            return

        run.transition(PipelineState.SYNTHESIZED)
        missing = count - len(run.records)
        if missing > 0:
            self._add_records(run, synthesize_records(run.request, missing), progress)
            run.source_tier = SourceTier.SYNTHESIZED

    def _add_records(
        self,
        run: PipelineRun,
        records: List[ExtractedRecord],
        progress: ProgressChannel,
    ) -> int:
        added = 0
        for record in records:
            if len(run.records) >= run.request.count:
                break
            if run.has_record(record):
                continue
            run.records.append(record)
            progress.record(record)
            added += 1
        if added:
            progress.stage(
                ProgressStage.ESCALATING, len(run.records), run.request.count
            )
        return added

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def _extract_batch(
        self,
        run: PipelineRun,
        urls: List[DiscoveredUrl],
        budget: RunBudget,
        progress: ProgressChannel,
    ) -> None:
        run.transition(PipelineState.EXTRACTING)
        total = len(urls)
        processed = 0
        progress.stage(ProgressStage.EXTRACTING, 0, total)

        semaphore = asyncio.Semaphore(self.config.max_concurrent)
        per_url_timeout = self.config.extraction.per_url_timeout

        async def worker(url: str) -> ExtractionOutcome:
            async with semaphore:
                if budget.exhausted:
                    return ExtractionOutcome(
                        url=url,
                        errors=[self._error(url, ErrorKind.TIMEOUT, "run budget exhausted")],
                    )
                self.in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self.in_flight)
                try:
                    return await asyncio.wait_for(
                        self._engine.extract(url),
                        timeout=min(per_url_timeout, max(budget.remaining, 0.01)),
                    )
                except asyncio.TimeoutError:
                    logger.warning("Extraction timed out for %s", url)
                    return ExtractionOutcome(
                        url=url,
                        errors=[self._error(url, ErrorKind.TIMEOUT, "extraction timed out")],
                    )
                finally:
                    self.in_flight -= 1

        tasks = [asyncio.ensure_future(worker(u.url)) for u in urls]
        try:
            for next_done in asyncio.as_completed(tasks, timeout=budget.remaining or 0.01):
                try:
                    outcome = await next_done
                except asyncio.TimeoutError:
                    run.budget_exhausted = True
                    logger.warning("Run budget exhausted during extraction")
                    break
                processed += 1
                self._handle_outcome(run, outcome, progress, processed, total)
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        handled = run.attempted_urls
        for u in urls:
            if u.url not in handled:
                run.outcomes.append(UrlOutcome(u.url, False, "cancelled: run budget exhausted"))
                run.errors.append(self._error(u.url, ErrorKind.TIMEOUT, "cancelled: run budget exhausted"))

    def _handle_outcome(
        self,
        run: PipelineRun,
        outcome: ExtractionOutcome,
        progress: ProgressChannel,
        processed: int,
        total: int,
    ) -> None:
        """Validate, score and accumulate one outcome (coordinator only)."""
        url = outcome.url

        if outcome.record is None:
            kinds = {e.kind for e in outcome.errors}
            kind = ErrorKind.TIMEOUT if ErrorKind.TIMEOUT in kinds else ErrorKind.EXTRACTION_FAILURE
            message = "; ".join(e.message for e in outcome.errors) or "extraction failed"
            error = self._error(url, kind, message)
            run.outcomes.append(UrlOutcome(url, False, message))
            run.errors.append(error)
            progress.stage(ProgressStage.EXTRACTING, processed, total, [message])
            return

        validation = self._validator.validate(outcome.record, run.request)
        if validation.record is None:
            message = "; ".join(validation.reasons)
            logger.warning("Discarding invalid record from %s: %s", url, message)
            run.outcomes.append(UrlOutcome(url, False, message, outcome.method))
            run.errors.append(
                ErrorRecord(
                    stage="validating",
                    kind=ErrorKind.STRUCTURAL_INVALID,
                    message=message,
                    url=url,
                )
            )
            progress.stage(ProgressStage.EXTRACTING, processed, total, [message])
            return

        record = self._scorer.apply(validation.record, run.request, self._ledger)
        self._ledger.record_success(url)
        run.outcomes.append(UrlOutcome(url, True, "ok", outcome.method))

        if run.has_record(record):
            logger.debug("Duplicate record from %s skipped", url)
        else:
            run.records.append(record)
            run.live_records.append(record)
            progress.record(record)
        progress.stage(ProgressStage.EXTRACTING, processed, total)

    # ------------------------------------------------------------------
    # Finish
    # ------------------------------------------------------------------

    def _write_cache(self, run: PipelineRun) -> None:
        """Cache the run only when live extraction alone met the requested count."""
        if self._cache is None or run.from_cache:
            return
        cacheable = [
            r for r in run.live_records[: run.request.count]
            if r.extraction_method in LIVE_METHODS
        ]
        if len(cacheable) < run.request.count:
            logger.info(
                "Not caching run: %d live records for %d requested",
                len(cacheable), run.request.count,
            )
            return
        self._cache.put_records(run.request, cacheable, self._aggregate_class(cacheable))

    @staticmethod
    def _aggregate_class(records: List[ExtractedRecord]) -> ConfidenceClass:
        """Lowest confidence class among the records."""
        classes = [
            r.confidence.confidence_class if r.confidence else ConfidenceClass.LOW
            for r in records
        ]
        return min(classes, key=CLASS_ORDER.index)

    def _finish(self, run: PipelineRun, progress: ProgressChannel) -> PipelineResult:
        records = run.records[: run.request.count]
        insufficient = run.real_record_count < run.request.count

        if not records:
            run.errors.append(
                ErrorRecord(
                    stage="done",
                    kind=ErrorKind.EXHAUSTION,
                    message="All tiers exhausted without producing a record",
                )
            )

        final_state = PipelineState.DONE if insufficient else PipelineState.SUFFICIENT
        if run.state != final_state:
            run.transition(final_state)

        progress.stage(
            ProgressStage.DONE, len(records), run.request.count, self._messages(run.errors)
        )
        progress.complete(len(records))

        logger.info(
            "Run finished: %d records (tier=%s, insufficient=%s, errors=%d)",
            len(records), run.source_tier.value, insufficient, len(run.errors),
        )
        return PipelineResult(
            records=records,
            insufficient_yield=insufficient,
            errors=list(run.errors),
            source_tier=run.source_tier,
            from_cache=run.from_cache,
            final_state=final_state,
            usage=self.usage.snapshot(),
            run=run,
        )

    @staticmethod
    def _error(url: str, kind: ErrorKind, message: str) -> ErrorRecord:
        return ErrorRecord(stage="extracting", kind=kind, message=message, url=url)

    @staticmethod
    def _messages(errors: List[ErrorRecord]) -> List[str]:
        return [e.message for e in errors]


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------

@dataclass
class PipelineOptions:
    """Per-call options for the pipeline entry points."""

    config: PipelineConfig = field(default_factory=PipelineConfig)
    orchestrator: Optional[FallbackOrchestrator] = None
    usage: Optional[UsageTracker] = None

    def build_orchestrator(self) -> FallbackOrchestrator:
        if self.orchestrator is not None:
            return self.orchestrator
        return FallbackOrchestrator.from_config(self.config, usage=self.usage)


def _coerce_request(request: Any) -> SearchRequest:
    """Accept a SearchRequest or a plain dict; anything else is a caller bug."""
    if isinstance(request, SearchRequest):
        return request
    if isinstance(request, dict):
        try:
            return SearchRequest.model_validate(request)
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid search request: {exc}") from exc
    raise InvalidRequestError(
        f"Expected SearchRequest or dict, got {type(request).__name__}"
    )


async def run_discovery_pipeline(
    request: Any,
    options: Optional[PipelineOptions] = None,
) -> PipelineResult:
    """
    Run the full pipeline and return the aggregate result.

    Raises:
        InvalidRequestError: malformed request
    """
    req = _coerce_request(request)
    orchestrator = (options or PipelineOptions()).build_orchestrator()
    return await orchestrator.run(req)


def stream_discovery_pipeline(
    request: Any,
    options: Optional[PipelineOptions] = None,
) -> AsyncIterator[ProgressEvent]:
    """
    Run the pipeline, yielding progress events as they happen.

    The request is validated before the iterator is returned, so a malformed
    request raises InvalidRequestError here rather than on first iteration.
    """
    req = _coerce_request(request)
    orchestrator = (options or PipelineOptions()).build_orchestrator()
    return _stream(orchestrator, req)


async def _stream(
    orchestrator: FallbackOrchestrator,
    request: SearchRequest,
) -> AsyncIterator[ProgressEvent]:
    channel = ProgressChannel()
    task = asyncio.ensure_future(orchestrator.run(request, progress=channel))
    try:
        async for event in channel:
            yield event
        await task
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
