"""Stage execution: invoke a participant subset and close a Stage record.

Per-participant failures are converted into placeholder responses here and
never propagate to the coordinator.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone

from eot.models import CallOptions, ExecutionMode, ParticipantResponse, Stage, Usage
from eot.personas import decorate
from eot.progress import ProgressChannel
from eot.providers.base import AIProvider
from eot.resilience import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

ERROR_PLACEHOLDER = "[No response: this participant failed to answer in this stage]"

# Receives the responses already gathered in the current stage (always empty
# for parallel stages) and returns the prompt for the next invocation.
StagePromptBuilder = Callable[[list[ParticipantResponse]], str]


def failed_response(participant: str, model: str, error: BaseException | str) -> ParticipantResponse:
    return ParticipantResponse(
        participant=participant,
        model=model,
        content=ERROR_PLACEHOLDER,
        usage=Usage(),
        timestamp=datetime.now(timezone.utc),
        latency_sec=0.0,
        failed=True,
        error=str(error),
    )


class StageExecutor:
    """Runs one stage at a time for a single request."""

    def __init__(
        self,
        providers: Mapping[str, AIProvider],
        policy: RetryPolicy,
        channel: ProgressChannel,
        options: CallOptions | None = None,
        personas: Mapping[str, str] | None = None,
        persona_templates: Mapping[str, str] | None = None,
    ) -> None:
        self._providers = providers
        self._policy = policy
        self._channel = channel
        self._options = options
        self._personas = dict(personas or {})
        self._persona_templates = dict(persona_templates or {})

    async def invoke(self, stage_number: int, participant: str, prompt: str) -> ParticipantResponse:
        """Invoke one participant through the resilience layer. Never raises for call failures."""
        provider = self._providers[participant]
        self._channel.participant_invoked(stage_number, participant)
        try:
            response = await call_with_retry(
                lambda: provider.generate(prompt, self._options),
                provider.timeout_sec,
                self._policy,
                name=f"{participant} (stage {stage_number})",
            )
        except Exception as exc:
            logger.warning("Participant %s failed in stage %d: %s", participant, stage_number, exc)
            response = failed_response(participant, provider.model_string(), exc)
        else:
            response = dataclasses.replace(
                response,
                participant=participant,
                content=decorate(
                    response.content,
                    self._personas.get(participant),
                    self._persona_templates,
                ),
            )
        self._channel.participant_resolved(stage_number, response)
        return response

    async def execute(
        self,
        number: int,
        title: str,
        description: str,
        participants: list[str],
        mode: ExecutionMode,
        build_prompt: StagePromptBuilder,
    ) -> Stage:
        stage = Stage(
            number=number,
            title=title,
            description=description,
            mode=mode,
            participants=list(participants),
            started_at=datetime.now(timezone.utc),
        )
        start = time.monotonic()

        if mode is ExecutionMode.PARALLEL:
            prompt = build_prompt([])
            responses = await asyncio.gather(
                *(self.invoke(number, p, prompt) for p in participants)
            )
            stage.responses = list(responses)
        else:
            for participant in participants:
                prompt = build_prompt(list(stage.responses))
                stage.responses.append(await self.invoke(number, participant, prompt))

        stage.ended_at = datetime.now(timezone.utc)
        stage.duration_sec = time.monotonic() - start

        failures = sum(1 for r in stage.responses if r.failed)
        logger.info(
            "Stage %d complete: %d/%d participants succeeded",
            number,
            len(stage.responses) - failures,
            len(stage.responses),
        )
        return stage
