"""Deterministic, length-bounded compaction of prior-stage text.

Two levels:

1. Each response is cut to ``per_response_chars`` by keeping a head and a
   tail of the budget around a truncation marker.
2. If the rendered block still exceeds ``total_chars``, every response is
   reduced to its first ``digest_chars`` characters, grouped by participant,
   and the digest is hard-capped at ``total_chars``.

The output size therefore never exceeds ``total_chars`` whatever the number
of participants or stages.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from config.config_loader import CompactionConfig
from eot.models import ParticipantResponse

DEFAULT_MARKER = "\n...[truncated]...\n"

_HEAD_RANGE = (0.6, 0.7)
_TAIL_RANGE = (0.2, 0.3)


def compact(
    text: str,
    max_length: int,
    head_ratio: float = 0.6,
    tail_ratio: float = 0.3,
    marker: str = DEFAULT_MARKER,
) -> str:
    """Return ``text`` unchanged if it fits, else head + marker + tail within ``max_length``."""
    if max_length < 0:
        raise ValueError("max_length must be non-negative")
    if len(text) <= max_length:
        return text
    if max_length <= len(marker):
        return text[:max_length]

    budget = max_length - len(marker)
    head = int(budget * head_ratio)
    tail = int(budget * tail_ratio)
    tail_text = text[len(text) - tail:] if tail > 0 else ""
    return text[:head] + marker + tail_text


@dataclass(frozen=True)
class Section:
    """A titled group of responses folded into a prompt (e.g. one prior stage)."""

    title: str
    responses: Sequence[ParticipantResponse]


class Compactor:
    def __init__(self, config: CompactionConfig | None = None) -> None:
        config = config or CompactionConfig()
        if not _HEAD_RANGE[0] <= config.head_ratio <= _HEAD_RANGE[1]:
            raise ValueError(f"head_ratio must be within {_HEAD_RANGE}, got {config.head_ratio}")
        if not _TAIL_RANGE[0] <= config.tail_ratio <= _TAIL_RANGE[1]:
            raise ValueError(f"tail_ratio must be within {_TAIL_RANGE}, got {config.tail_ratio}")
        if config.per_response_chars > config.total_chars:
            raise ValueError("per_response_chars cannot exceed total_chars")
        self.config = config

    def compact(self, text: str, max_length: int | None = None) -> str:
        limit = self.config.per_response_chars if max_length is None else max_length
        return compact(text, limit, self.config.head_ratio, self.config.tail_ratio, self.config.marker)

    def render(self, sections: Sequence[Section]) -> str:
        """Render sections for a prompt, falling back to a digest when over budget."""
        parts: list[str] = []
        for section in sections:
            if section.title:
                parts.append(f"=== {section.title} ===")
            for resp in section.responses:
                parts.append(f"[{resp.participant}]\n{self.compact(resp.content)}")
        block = "\n\n".join(parts)
        if len(block) <= self.config.total_chars:
            return block
        return self._digest(sections)

    def _digest(self, sections: Sequence[Section]) -> str:
        by_participant: dict[str, list[str]] = {}
        for section in sections:
            for resp in section.responses:
                snippet = resp.content[: self.config.digest_chars].strip()
                by_participant.setdefault(resp.participant, []).append(snippet)

        lines = ["=== Key points digest ==="]
        for participant, snippets in by_participant.items():
            lines.append(f"[{participant}] " + " -> ".join(snippets))
        return self.compact("\n\n".join(lines), self.config.total_chars)
