"""Request validation and the batch / streaming outbound protocols.

Transport is left to the caller: ``run_batch`` returns a JSON-ready envelope,
``stream`` yields ``(event_name, data)`` pairs and ``format_sse`` renders
them as server-sent-event frames.
"""

import asyncio
import dataclasses
import json
import logging
from collections.abc import AsyncIterator, Collection, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from config.config_loader import EngineConfig
from eot.errors import ErrorCode, ReasoningError
from eot.healthcheck import run_health_checks
from eot.models import CallOptions, EventType, ProgressEvent, ReasoningRequest
from eot.progress import CollectingSink, QueueSink
from eot.sessions import SessionRegistry
from eot.topology import ReasoningEngine, parse_strategy

logger = logging.getLogger(__name__)

MAX_TOKENS_LIMIT = 8192


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize(value: Any) -> Any:
    """Convert dataclasses, enums and datetimes into JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def _invalid(message: str, **details: Any) -> ReasoningError:
    return ReasoningError(ErrorCode.VALIDATION_ERROR, message, details=details)


def _number(options: Mapping, key: str, low: float, high: float) -> float | None:
    value = options.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _invalid(f"{key} must be a number", field=key)
    if not low <= value <= high:
        raise _invalid(f"{key} must be between {low} and {high}", field=key, value=value)
    return float(value)


def _parse_options(raw: Any) -> CallOptions:
    if raw is None:
        return CallOptions()
    if not isinstance(raw, Mapping):
        raise _invalid("options must be an object")

    max_tokens = raw.get("maxTokens", raw.get("max_tokens"))
    if max_tokens is not None:
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            raise _invalid("maxTokens must be an integer", field="maxTokens")
        if not 1 <= max_tokens <= MAX_TOKENS_LIMIT:
            raise _invalid(f"maxTokens must be between 1 and {MAX_TOKENS_LIMIT}",
                           field="maxTokens", value=max_tokens)

    top_p_key = "topP" if "topP" in raw else "top_p"
    return CallOptions(
        temperature=_number(raw, "temperature", 0.0, 2.0),
        max_tokens=max_tokens,
        top_p=_number(raw, top_p_key, 0.0, 1.0),
    )


def validate_request(
    payload: Mapping[str, Any],
    providers: Mapping[str, Any],
    known_participants: Collection[str] | None = None,
    limits: EngineConfig | None = None,
) -> ReasoningRequest:
    """Turn an inbound payload into an immutable ReasoningRequest.

    Raises:
        ReasoningError: VALIDATION_ERROR for shape/size/strategy problems,
            MODEL_UNAVAILABLE when a participant has no usable provider.
    """
    limits = limits or EngineConfig()
    if not isinstance(payload, Mapping):
        raise _invalid("Request body must be an object")

    question = payload.get("question")
    if not isinstance(question, str) or not question.strip():
        raise _invalid("Question is required and cannot be empty", field="question")
    question = question.strip()
    if len(question) > limits.max_question_chars:
        raise _invalid(f"Question too long (max {limits.max_question_chars} characters)",
                       field="question", length=len(question))

    participants = payload.get("participants", payload.get("models"))
    if not isinstance(participants, list) or not participants:
        raise _invalid("At least one participant must be selected", field="participants")
    if not all(isinstance(p, str) and p for p in participants):
        raise _invalid("Participants must be non-empty strings", field="participants")
    if len(participants) > limits.max_participants:
        raise _invalid(f"Maximum {limits.max_participants} participants allowed", field="participants")
    if len(set(participants)) != len(participants):
        raise _invalid("Participants must be distinct", field="participants")
    if known_participants is not None:
        unknown = [p for p in participants if p not in known_participants]
        if unknown:
            raise _invalid(f"Unknown participants: {', '.join(unknown)}", field="participants",
                           unknown=unknown)

    strategy_raw = payload.get("strategy", payload.get("eotStrategy"))
    if not isinstance(strategy_raw, str):
        raise _invalid("strategy is required", field="strategy")
    strategy = parse_strategy(strategy_raw)

    options = _parse_options(payload.get("options", payload.get("config")))

    personas = payload.get("personas") or {}
    if not isinstance(personas, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in personas.items()
    ):
        raise _invalid("personas must map participant names to persona ids", field="personas")

    unavailable = [p for p in participants if p not in providers or not providers[p].is_available()]
    if unavailable:
        raise ReasoningError(
            ErrorCode.MODEL_UNAVAILABLE,
            f"Models not available: {', '.join(unavailable)}",
            details={"unavailable": unavailable, "available": sorted(providers)},
        )

    return ReasoningRequest(
        question=question,
        participants=tuple(participants),
        strategy=strategy,
        options=options,
        personas=dict(personas),
    )


def error_envelope(exc: ReasoningError) -> dict[str, Any]:
    return {
        "success": False,
        "error": exc.message,
        "code": exc.code,
        "status": exc.status_code,
        "timestamp": _now(),
    }


def event_to_wire(event: ProgressEvent) -> tuple[str, dict[str, Any]]:
    """Map an internal ProgressEvent to the named push-protocol event."""
    if event.type is EventType.STAGE_START:
        return "stage_start", {"stage": event.stage, "title": event.message, "progress": event.progress}
    if event.type is EventType.PARTICIPANT_INVOKED:
        return "model_start", {"stage": event.stage, "model": event.participant, "progress": event.progress}
    if event.type is EventType.PARTICIPANT_RESOLVED:
        name = "model_error" if event.payload.failed else "model_complete"
        return name, {
            "stage": event.stage,
            "model": event.participant,
            "progress": event.progress,
            "response": serialize(event.payload),
        }
    if event.type is EventType.STAGE_COMPLETE:
        return "stage_complete", {
            "stage": event.stage,
            "stageData": serialize(event.payload),
            "progress": event.progress,
        }
    if event.type is EventType.RESULT_COMPLETE:
        return "complete", {"data": serialize(event.payload), "progress": 100}
    return "error", {"message": event.message, "progress": event.progress}


def format_sse(name: str, data: Mapping[str, Any]) -> str:
    return f"event: {name}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class ReasoningService:
    """Entry point for callers: validation, batch runs, session-based streaming."""

    def __init__(
        self,
        engine: ReasoningEngine,
        registry: SessionRegistry | None = None,
        limits: EngineConfig | None = None,
        known_participants: Collection[str] | None = None,
    ) -> None:
        self.engine = engine
        self.limits = limits or EngineConfig()
        self.registry = registry or SessionRegistry(ttl_sec=self.limits.session_ttl_sec)
        self.known_participants = known_participants
        self._background: set[asyncio.Task] = set()

    def validate(self, payload: Mapping[str, Any]) -> ReasoningRequest:
        return validate_request(payload, self.engine.providers, self.known_participants, self.limits)

    async def run_batch(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Run to completion and return either the full result or a structured error."""
        try:
            request = self.validate(payload)
            result = await asyncio.wait_for(
                self.engine.run(request, CollectingSink()),
                timeout=self.limits.request_timeout_sec,
            )
        except ReasoningError as exc:
            logger.warning("Request rejected: %s", exc)
            return error_envelope(exc)
        except TimeoutError:
            return error_envelope(ReasoningError(
                ErrorCode.REQUEST_TIMEOUT,
                f"Request exceeded {self.limits.request_timeout_sec}s",
                status_code=504,
            ))
        except Exception as exc:
            logger.exception("Batch run failed")
            return error_envelope(ReasoningError(ErrorCode.INTERNAL_ERROR, str(exc), status_code=500))

        return {"success": True, "data": serialize(result), "timestamp": _now()}

    def register_stream(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Validate and register a streaming session; the run starts on attach."""
        try:
            request = self.validate(payload)
        except ReasoningError as exc:
            logger.warning("Stream registration rejected: %s", exc)
            return error_envelope(exc)
        return {"success": True, "sessionId": self.registry.register(request), "timestamp": _now()}

    async def health(self) -> dict[str, Any]:
        results = await run_health_checks(self.engine.providers)
        return {
            "success": True,
            "data": {
                "availableModels": sorted(self.engine.providers),
                "healthStatus": {name: ok for name, (ok, _) in results.items()},
                "errors": {name: err for name, (ok, err) in results.items() if not ok},
            },
            "timestamp": _now(),
        }

    def start_sweeper(self) -> asyncio.Task:
        task = asyncio.create_task(self.registry.run_sweeper(self.limits.session_sweep_interval_sec))
        self._keep(task)
        return task

    def _keep(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._release)

    def _release(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Detached run ended with error: %s", task.exception())

    async def stream(self, session_id: str, deadline_sec: float | None = None) -> AsyncIterator[tuple[str, dict]]:
        """Attach to a session and yield push-protocol events until the run ends.

        Raises SessionNotFoundError on the first iteration when the session is
        unknown, expired or already consumed. On deadline expiry a terminal
        ``error`` event is yielded and the run is cancelled; stages closed
        before that are unaffected. A subscriber that stops iterating early
        does not stop the run.
        """
        session = self.registry.attach(session_id)
        deadline_sec = self.limits.request_timeout_sec if deadline_sec is None else deadline_sec
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        run_task = asyncio.create_task(self.engine.run(session.request, QueueSink(queue)))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + deadline_sec

        try:
            yield "connected", {"sessionId": session_id, "progress": 0}
            while True:
                if queue.empty():
                    if run_task.done():
                        exc = None if run_task.cancelled() else run_task.exception()
                        yield "error", {"message": str(exc) if exc else "Run ended without a result"}
                        return

                    remaining = deadline - loop.time()
                    getter = asyncio.ensure_future(queue.get())
                    done, _ = await asyncio.wait(
                        {getter, run_task},
                        timeout=max(remaining, 0),
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                    if getter not in done:
                        getter.cancel()
                        if not done:
                            logger.warning("Session %s exceeded %ss deadline", session_id, deadline_sec)
                            run_task.cancel()
                            yield "error", {
                                "message": f"Request exceeded {deadline_sec}s",
                                "code": ErrorCode.REQUEST_TIMEOUT,
                            }
                            return
                        continue
                    event = getter.result()
                else:
                    event = queue.get_nowait()

                yield event_to_wire(event)
                if event.type in (EventType.RESULT_COMPLETE, EventType.ERROR):
                    return
        finally:
            if not run_task.done():
                self._keep(run_task)
            elif not run_task.cancelled():
                # Mark the exception retrieved; it was reported as an error event.
                run_task.exception()
