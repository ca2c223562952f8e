"""Abstract base for all AI model providers."""

import os
from abc import ABC, abstractmethod

from config.config_loader import ModelConfig
from eot.models import CallOptions, ParticipantResponse

_HEALTH_PROMPT = "Reply with the word OK only."

# HTTP statuses worth another attempt: request timeout, rate limit, server side.
RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})


class ProviderError(Exception):
    """Raised when a provider call fails.

    ``retryable`` tells the resilience layer whether another attempt may help.
    """

    def __init__(
        self,
        provider_name: str,
        message: str,
        *,
        retryable: bool = False,
        status: int | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.retryable = retryable
        self.status = status
        super().__init__(f"[{provider_name}] {message}")


class ProviderTimeoutError(ProviderError):
    """A single attempt exceeded its timeout."""

    def __init__(self, provider_name: str, timeout_sec: float) -> None:
        super().__init__(provider_name, f"Request timed out after {timeout_sec}s", retryable=True)


def is_retryable_status(status: int | None) -> bool:
    return status is not None and (status in RETRYABLE_STATUSES or status >= 500)


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @property
    def timeout_sec(self) -> float:
        """Per-attempt timeout enforced by the resilience layer."""
        return 60.0

    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def generate(self, prompt: str, options: CallOptions | None = None) -> ParticipantResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The full prompt text to send.
            options: Optional per-call tuning (temperature, max tokens, top-p).

        Returns:
            ParticipantResponse with content, usage and latency.

        Raises:
            ProviderError: On API failure or invalid response. ``retryable``
                is set for rate limits, network errors and 5xx statuses.
        """
        ...

    async def health_check(self) -> bool:
        """Send a tiny prompt and report whether non-empty content came back.

        Raises:
            ProviderError: When the ping itself fails.
        """
        response = await self.generate(_HEALTH_PROMPT, CallOptions(max_tokens=10))
        return bool(response.content.strip())


class ConfiguredProvider(AIProvider):
    """Shared plumbing for providers built from a ModelConfig and an env API key."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._api_key = os.environ.get(config.api_key_env, "").strip()
        if not self._api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    @property
    def timeout_sec(self) -> float:
        return float(self._config.timeout_sec)

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _max_tokens(self, options: CallOptions | None) -> int:
        if options is not None and options.max_tokens is not None:
            return options.max_tokens
        return self._config.max_tokens
