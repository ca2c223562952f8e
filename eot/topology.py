"""Topology coordination: strategy -> stage plan -> ordered stage execution.

Four fixed communication patterns:

- debate (complete graph): every participant sees every prior response.
- memory (bus): every participant reads a compacted shared pool.
- report (star): the first participant is the center; it reads all
  reports and its guidance is folded into the final stage.
- relay (ring): one participant per stage, each reading only the
  previous link, followed by a verification stage over the whole chain.

Stages run strictly in order because each prompt is built from closed
earlier stages.
"""

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from config.config_loader import PromptsConfig
from eot.compactor import Compactor, Section
from eot.errors import ErrorCode, ReasoningError
from eot.models import (
    ExecutionMode,
    ParticipantResponse,
    ReasoningRequest,
    ReasoningResult,
    Stage,
    Strategy,
)
from eot.progress import ProgressChannel, ProgressSink
from eot.providers.base import AIProvider
from eot.resilience import RetryPolicy
from eot.stage import StageExecutor
from eot.synthesis import synthesize

logger = logging.getLogger(__name__)

# (closed stages so far, responses already gathered in this stage) -> prompt
PromptBuilder = Callable[[list[Stage], list[ParticipantResponse]], str]


@dataclass(frozen=True)
class StageSpec:
    number: int
    title: str
    description: str
    participants: tuple[str, ...]
    mode: ExecutionMode
    build_prompt: PromptBuilder


def parse_strategy(value: str | Strategy) -> Strategy:
    try:
        return Strategy(value)
    except ValueError:
        valid = ", ".join(s.value for s in Strategy)
        raise ReasoningError(
            ErrorCode.VALIDATION_ERROR,
            f"Invalid strategy '{value}', expected one of: {valid}",
            details={"strategy": str(value)},
        ) from None


def stage_plan_length(strategy: str | Strategy, participant_count: int) -> int:
    if parse_strategy(strategy) is Strategy.RELAY:
        return participant_count + 1
    return 3


def _group_mode(sequential: bool) -> ExecutionMode:
    return ExecutionMode.SEQUENTIAL if sequential else ExecutionMode.PARALLEL


def _plan_debate(question, everyone, templates, compactor, mode) -> list[StageSpec]:
    def opening(history, partial):
        return templates["opening"].format(question=question)

    def cross_examination(history, partial):
        block = compactor.render([Section("Initial positions", history[0].responses)])
        return templates["cross_examination"].format(question=question, responses=block)

    def closing(history, partial):
        block = compactor.render([
            Section("Initial positions", history[0].responses),
            Section("Refined positions", history[1].responses),
        ])
        return templates["closing"].format(question=question, responses=block)

    return [
        StageSpec(1, "Opening positions", "Each participant states an initial position", everyone, mode, opening),
        StageSpec(2, "Cross-examination", "Participants challenge and refine each other's positions",
                  everyone, mode, cross_examination),
        StageSpec(3, "Closing statements", "Participants give final positions from the whole discussion",
                  everyone, mode, closing),
    ]


def _plan_memory(question, everyone, templates, compactor, mode) -> list[StageSpec]:
    def independent(history, partial):
        return templates["independent"].format(question=question)

    def shared_pool(history, partial):
        block = compactor.render([Section("Initial analyses", history[0].responses)])
        return templates["shared_pool"].format(question=question, responses=block)

    def decision(history, partial):
        block = compactor.render([
            Section("Initial analyses", history[0].responses),
            Section("Deeper reasoning", history[1].responses),
        ])
        return templates["decision"].format(question=question, responses=block)

    return [
        StageSpec(1, "Independent analysis", "Each node analyses the question on its own", everyone, mode, independent),
        StageSpec(2, "Shared memory reasoning", "Nodes reason over the shared pool of initial analyses",
                  everyone, mode, shared_pool),
        StageSpec(3, "Collective decision", "Nodes decide from the full shared memory", everyone, mode, decision),
    ]


def _plan_report(question, everyone, templates, compactor, mode) -> list[StageSpec]:
    center = everyone[0]

    def report(history, partial):
        return templates["report"].format(question=question)

    def center_analysis(history, partial):
        block = compactor.render([Section("Team reports", history[0].responses)])
        return templates["center"].format(question=question, responses=block)

    def guided(history, partial):
        guidance = "\n\n".join(compactor.compact(r.content) for r in history[1].responses)
        return templates["guided"].format(question=question, guidance=guidance)

    return [
        StageSpec(1, "Reports to center", "Participants report their analysis to the center", everyone, mode, report),
        StageSpec(2, "Center analysis", f"{center} consolidates the reports into guidance",
                  (center,), ExecutionMode.SINGLE, center_analysis),
        StageSpec(3, "Guided conclusions", "Participants conclude following the center's guidance",
                  everyone, mode, guided),
    ]


def _plan_relay(question, everyone, templates, compactor, mode) -> list[StageSpec]:
    count = len(everyone)

    def link(position: int) -> PromptBuilder:
        def build(history, partial):
            if position == 1:
                return templates["first"].format(question=question)
            previous = compactor.compact(history[-1].responses[0].content)
            key = "last" if position == count else "middle"
            return templates[key].format(question=question, previous=previous)
        return build

    def verification(history, partial):
        links = [
            Section(f"Link {s.number}", s.responses[:1])
            for s in history[:count]
        ]
        return templates["verification"].format(question=question, chain=compactor.render(links))

    specs: list[StageSpec] = []
    for position, participant in enumerate(everyone, start=1):
        if position == 1:
            description = "Starts the reasoning chain"
        elif position == count:
            description = "Completes the reasoning chain"
        else:
            description = "Continues the reasoning chain"
        specs.append(StageSpec(
            position, f"Relay - {participant}", description, (participant,), ExecutionMode.SINGLE, link(position),
        ))
    specs.append(StageSpec(
        count + 1, "Chain verification", "All participants verify the complete chain", everyone, mode, verification,
    ))
    return specs


_PLANNERS = {
    Strategy.DEBATE: _plan_debate,
    Strategy.MEMORY: _plan_memory,
    Strategy.REPORT: _plan_report,
    Strategy.RELAY: _plan_relay,
}


def plan(
    strategy: str | Strategy,
    participants: list[str] | tuple[str, ...],
    question: str,
    prompts: PromptsConfig,
    compactor: Compactor,
    sequential: bool = False,
) -> list[StageSpec]:
    """Resolve a strategy to its ordered stage specifications.

    Raises:
        ReasoningError: VALIDATION_ERROR for unknown strategies or an empty panel.
    """
    resolved = parse_strategy(strategy)
    if not participants:
        raise ReasoningError(ErrorCode.VALIDATION_ERROR, "At least one participant is required")
    templates = prompts.strategies[resolved.value]
    planner = _PLANNERS[resolved]
    return planner(question, tuple(participants), templates, compactor, _group_mode(sequential))


class ReasoningEngine:
    """Drives one request through its stage plan and closes it with a summary.

    The same engine serves batch and streaming callers; only the sink differs.
    """

    def __init__(
        self,
        providers: Mapping[str, AIProvider],
        prompts: PromptsConfig,
        compactor: Compactor | None = None,
        policy: RetryPolicy | None = None,
        sequential: bool = False,
    ) -> None:
        self.providers = providers
        self.prompts = prompts
        self.compactor = compactor or Compactor()
        self.policy = policy or RetryPolicy()
        self.sequential = sequential

    def _check_participants(self, participants: tuple[str, ...]) -> None:
        missing = [p for p in participants if p not in self.providers or not self.providers[p].is_available()]
        if missing:
            raise ReasoningError(
                ErrorCode.MODEL_UNAVAILABLE,
                f"Models not available: {', '.join(missing)}",
                details={"unavailable": missing, "available": sorted(self.providers)},
            )

    async def run(self, request: ReasoningRequest, sink: ProgressSink) -> ReasoningResult:
        """Execute every stage in order, synthesize, and return the closed result.

        Raises:
            ReasoningError: before any invocation, for unknown strategies or
                unavailable participants.
        """
        accepted_at = datetime.now(timezone.utc)
        start = time.monotonic()

        specs = plan(
            request.strategy, request.participants, request.question,
            self.prompts, self.compactor, self.sequential,
        )
        self._check_participants(request.participants)

        channel = ProgressChannel(sink, total_stages=len(specs))
        executor = StageExecutor(
            self.providers,
            self.policy,
            channel,
            options=request.options,
            personas=request.personas,
            persona_templates=self.prompts.personas,
        )

        logger.info(
            "Starting %s run with %d participants (%d stages)",
            request.strategy.value, len(request.participants), len(specs),
        )

        history: list[Stage] = []
        try:
            for spec in specs:
                channel.stage_start(spec.number, spec.title, len(spec.participants))
                closed = list(history)
                stage = await executor.execute(
                    spec.number,
                    spec.title,
                    spec.description,
                    list(spec.participants),
                    spec.mode,
                    lambda partial, _spec=spec, _closed=closed: _spec.build_prompt(_closed, partial),
                )
                history.append(stage)
                channel.stage_complete(stage)

            summary = await synthesize(
                request,
                history,
                self.providers[request.participants[0]],
                self.prompts,
                self.compactor,
                self.policy,
            )
        except Exception as exc:
            logger.exception("Run failed after %d closed stages", len(history))
            if not channel.closed:
                channel.error(str(exc))
            raise

        result = ReasoningResult(
            question=request.question,
            participants=list(request.participants),
            strategy=request.strategy,
            stages=history,
            summary=summary,
            timestamp=accepted_at,
            duration_sec=time.monotonic() - start,
        )
        channel.result_complete(result)
        logger.info("Run complete in %.1fs", result.duration_sec)
        return result
