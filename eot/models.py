"""Pure dataclasses for the Exchange-of-Thought pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Strategy(str, Enum):
    DEBATE = "debate"    # complete graph
    MEMORY = "memory"    # bus
    REPORT = "report"    # star
    RELAY = "relay"      # ring


class ExecutionMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    SINGLE = "single"


class EventType(str, Enum):
    STAGE_START = "stage_start"
    PARTICIPANT_INVOKED = "participant_invoked"
    PARTICIPANT_RESOLVED = "participant_resolved"
    STAGE_COMPLETE = "stage_complete"
    RESULT_COMPLETE = "result_complete"
    ERROR = "error"


@dataclass(frozen=True)
class CallOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


@dataclass(frozen=True)
class ReasoningRequest:
    question: str
    participants: tuple[str, ...]
    strategy: Strategy
    options: CallOptions = field(default_factory=CallOptions)
    personas: dict[str, str] = field(default_factory=dict)  # participant -> persona id


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ParticipantResponse:
    participant: str       # "claude", "openai", "deepseek", ...
    model: str             # actual model string used
    content: str
    usage: Usage
    timestamp: datetime
    latency_sec: float
    failed: bool = False
    error: str | None = None


@dataclass
class Stage:
    number: int
    title: str
    description: str
    mode: ExecutionMode
    participants: list[str]
    responses: list[ParticipantResponse] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_sec: float = 0.0


@dataclass
class ReasoningResult:
    question: str
    participants: list[str]
    strategy: Strategy
    stages: list[Stage]
    summary: str
    timestamp: datetime
    duration_sec: float


@dataclass
class ProgressEvent:
    type: EventType
    sequence: int
    progress: int
    stage: int | None = None
    participant: str | None = None
    message: str = ""
    payload: Any = None    # ParticipantResponse, Stage or ReasoningResult


@dataclass
class StreamingSession:
    session_id: str
    request: ReasoningRequest
    created_at: float      # monotonic seconds
