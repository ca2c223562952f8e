"""Closing synthesis: build transcript, call the first participant, return summary text."""

import logging

from config.config_loader import PromptsConfig
from eot.compactor import Compactor, Section
from eot.models import ReasoningRequest, Stage
from eot.providers.base import AIProvider
from eot.resilience import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "Summary generation failed; please review the stage-by-stage reasoning above."


def _format_full_transcript(stages: list[Stage], compactor: Compactor) -> str:
    """Format all stages into a single bounded transcript string for synthesis."""
    sections = [Section(f"Stage {s.number}: {s.title}", s.responses) for s in stages]
    return compactor.render(sections)


async def synthesize(
    request: ReasoningRequest,
    stages: list[Stage],
    synthesizer: AIProvider,
    prompts: PromptsConfig,
    compactor: Compactor,
    policy: RetryPolicy,
) -> str:
    """Ask the synthesizer for a closing summary over the whole transcript.

    Never raises for provider failures: the transcript is the primary
    deliverable, so a failed or empty synthesis yields SUMMARY_FALLBACK.
    """
    transcript = _format_full_transcript(stages, compactor)
    summary_prompt = prompts.summary.format(
        strategy=request.strategy.value,
        question=request.question,
        transcript=transcript,
    )

    logger.info("Running synthesis via %s", synthesizer.name())

    try:
        response = await call_with_retry(
            lambda: synthesizer.generate(summary_prompt, request.options),
            synthesizer.timeout_sec,
            policy,
            name=f"{synthesizer.name()} (summary)",
        )
    except Exception as exc:
        logger.error("Synthesis via %s failed: %s", synthesizer.name(), exc)
        return SUMMARY_FALLBACK

    if not response.content.strip():
        logger.error("Synthesizer %s returned empty content", synthesizer.name())
        return SUMMARY_FALLBACK
    return response.content
