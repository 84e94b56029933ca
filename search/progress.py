"""
Progress Reporter: one ordered channel of run events.

Event order guarantees:
  - a RecordEvent is never emitted before the "extracting" StageEvent
  - exactly one terminal event (CompleteEvent or ErrorEvent), always last
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from models.enums import ProgressStage
from models.schema import ExtractedRecord

logger = logging.getLogger(__name__)


@dataclass
class StageEvent:
    stage: ProgressStage
    processed: int = 0
    total: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "progress",
            "stage": self.stage.value,
            "processed": self.processed,
            "total": self.total,
            "errors": list(self.errors),
        }


@dataclass
class RecordEvent:
    record: ExtractedRecord

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "record", "record": self.record.model_dump(mode="json")}


@dataclass
class CompleteEvent:
    record_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "complete", "record_count": self.record_count}


@dataclass
class ErrorEvent:
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "error", "message": self.message}


ProgressEvent = Union[StageEvent, RecordEvent, CompleteEvent, ErrorEvent]


class ProgressChannel:
    """
    Ordered event queue written by the pipeline coordinator.

    Consumers iterate with ``async for event in channel``; iteration stops
    after the terminal event.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
        self._closed = False
        self._extracting_seen = False
        self.history: List[ProgressEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def stage(
        self,
        stage: ProgressStage,
        processed: int = 0,
        total: int = 0,
        errors: Optional[List[str]] = None,
    ) -> None:
        if stage == ProgressStage.EXTRACTING:
            self._extracting_seen = True
        self._emit(StageEvent(stage, processed, total, list(errors or [])))

    def record(self, record: ExtractedRecord) -> None:
        if not self._extracting_seen:
            # records from cache or fallback tiers still follow an extracting stage
            self.stage(ProgressStage.EXTRACTING)
        self._emit(RecordEvent(record))

    def complete(self, record_count: int) -> None:
        self._emit(CompleteEvent(record_count))
        self._closed = True

    def error(self, message: str) -> None:
        self._emit(ErrorEvent(message))
        self._closed = True

    def _emit(self, event: ProgressEvent) -> None:
        if self._closed:
            logger.debug("Dropping event after close: %r", event)
            return
        self.history.append(event)
        self._queue.put_nowait(event)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, (CompleteEvent, ErrorEvent)):
                return
