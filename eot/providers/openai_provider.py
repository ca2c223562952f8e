"""OpenAI provider using openai SDK with native async.

Also serves OpenAI-compatible vendors (xAI Grok, DeepSeek, Qwen) when the
model config carries a ``base_url``.
"""

import logging
import time
from datetime import datetime, timezone

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from eot.models import CallOptions, ParticipantResponse, Usage
from eot.providers.base import ConfiguredProvider, ProviderError, is_retryable_status

logger = logging.getLogger(__name__)


class OpenAIProvider(ConfiguredProvider):
    """OpenAI (or OpenAI-compatible) provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        if config.base_url:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=config.base_url, max_retries=0)
        else:
            self._client = AsyncOpenAI(api_key=self._api_key, max_retries=0)

    async def generate(self, prompt: str, options: CallOptions | None = None) -> ParticipantResponse:
        kwargs: dict = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._max_tokens(options),
        }
        if options is not None:
            if options.temperature is not None:
                kwargs["temperature"] = options.temperature
            if options.top_p is not None:
                kwargs["top_p"] = options.top_p

        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.status_code}): {exc.message}",
                retryable=is_retryable_status(exc.status_code),
                status=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", retryable=True) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        usage = Usage()
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        logger.info(
            "%s: %.2fs, %d tokens",
            self._config.name,
            latency,
            usage.total_tokens,
        )

        return ParticipantResponse(
            participant=self._config.name,
            model=self._config.model,
            content=choice.message.content.strip(),
            usage=usage,
            timestamp=datetime.now(timezone.utc),
            latency_sec=latency,
        )
