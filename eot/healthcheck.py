"""Provider health checks — ping each API before starting a run."""

import asyncio
import logging
from collections.abc import Mapping

from eot.providers.base import AIProvider

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def _check_one(name: str, provider: AIProvider) -> tuple[str, bool, str]:
    """Ping a single provider. Returns (name, ok, error_message)."""
    try:
        ok = await asyncio.wait_for(provider.health_check(), timeout=_TIMEOUT_SEC)
    except Exception as exc:
        logger.warning("Health check failed for %s: %s", name, exc)
        return name, False, str(exc) or type(exc).__name__
    return name, ok, "" if ok else "empty response"


async def run_health_checks(
    providers: Mapping[str, AIProvider],
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p) for n, p in providers.items()))
    return {name: (ok, err) for name, ok, err in results}
