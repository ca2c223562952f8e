"""Ordered progress events and the sinks that consume them.

One engine publishes to a ProgressSink: batch callers collect silently,
streaming callers forward to a queue drained by the push channel.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from eot.models import EventType, ParticipantResponse, ProgressEvent, ReasoningResult, Stage

logger = logging.getLogger(__name__)

# Stages share this much of the bar; the rest belongs to the summary.
_STAGES_SHARE = 95.0
# Fraction of a stage's span filled by participant resolutions.
_RESOLVE_SHARE = 0.9


class ProgressSink(Protocol):
    def publish(self, event: ProgressEvent) -> None: ...


class CollectingSink:
    """Accumulates events in order (batch mode)."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)


class QueueSink:
    """Forwards events to an asyncio.Queue (streaming mode)."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self.queue = queue

    def publish(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)


class CallbackSink:
    """Calls a function for each event (console progress)."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback

    def publish(self, event: ProgressEvent) -> None:
        self._callback(event)


class ProgressChannel:
    """Numbers events, keeps progress monotonic, and hands them to a sink."""

    def __init__(self, sink: ProgressSink, total_stages: int) -> None:
        if total_stages < 1:
            raise ValueError("total_stages must be positive")
        self._sink = sink
        self._span = _STAGES_SHARE / total_stages
        self._sequence = 0
        self._progress = 0.0
        self._closed = False
        self._resolved: dict[int, int] = {}
        self._expected: dict[int, int] = {}

    @property
    def progress(self) -> int:
        return int(self._progress)

    @property
    def closed(self) -> bool:
        return self._closed

    def _emit(
        self,
        event_type: EventType,
        progress: float,
        *,
        stage: int | None = None,
        participant: str | None = None,
        message: str = "",
        payload=None,
    ) -> ProgressEvent:
        if self._closed:
            raise RuntimeError("Progress channel is closed")
        self._progress = min(100.0, max(self._progress, progress))
        self._sequence += 1
        event = ProgressEvent(
            type=event_type,
            sequence=self._sequence,
            progress=int(self._progress),
            stage=stage,
            participant=participant,
            message=message,
            payload=payload,
        )
        logger.debug("event #%d %s stage=%s %d%%", event.sequence, event_type.value, stage, event.progress)
        self._sink.publish(event)
        return event

    def _base(self, stage: int) -> float:
        return (stage - 1) * self._span

    def stage_start(self, stage: int, title: str, participant_count: int) -> ProgressEvent:
        self._expected[stage] = max(participant_count, 1)
        self._resolved[stage] = 0
        return self._emit(EventType.STAGE_START, self._base(stage), stage=stage, message=title)

    def participant_invoked(self, stage: int, participant: str) -> ProgressEvent:
        return self._emit(
            EventType.PARTICIPANT_INVOKED, self._progress, stage=stage, participant=participant,
        )

    def participant_resolved(self, stage: int, response: ParticipantResponse) -> ProgressEvent:
        self._resolved[stage] = self._resolved.get(stage, 0) + 1
        done = self._resolved[stage] / self._expected.get(stage, 1)
        progress = self._base(stage) + self._span * _RESOLVE_SHARE * min(done, 1.0)
        return self._emit(
            EventType.PARTICIPANT_RESOLVED,
            progress,
            stage=stage,
            participant=response.participant,
            message="failed" if response.failed else "ok",
            payload=response,
        )

    def stage_complete(self, stage: Stage) -> ProgressEvent:
        return self._emit(
            EventType.STAGE_COMPLETE,
            self._base(stage.number) + self._span,
            stage=stage.number,
            message=stage.title,
            payload=stage,
        )

    def result_complete(self, result: ReasoningResult) -> ProgressEvent:
        event = self._emit(EventType.RESULT_COMPLETE, 100.0, payload=result)
        self._closed = True
        return event

    def error(self, message: str) -> ProgressEvent:
        event = self._emit(EventType.ERROR, self._progress, message=message)
        self._closed = True
        return event
