"""Persona decoration of participant output before it is folded into later prompts."""

import logging

logger = logging.getLogger(__name__)


def decorate(text: str, persona_id: str | None, personas: dict[str, str]) -> str:
    """Wrap ``text`` in the persona template registered under ``persona_id``.

    Templates carry a ``{content}`` placeholder. Unknown or missing persona
    ids leave the text untouched.
    """
    if not persona_id:
        return text
    template = personas.get(persona_id)
    if template is None:
        logger.debug("Unknown persona '%s', leaving text unchanged", persona_id)
        return text
    return template.replace("{content}", text)
