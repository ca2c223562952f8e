"""Anthropic Claude provider using anthropic SDK with native async."""

import logging
import time
from datetime import datetime, timezone

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from eot.models import CallOptions, ParticipantResponse, Usage
from eot.providers.base import ConfiguredProvider, ProviderError, is_retryable_status

logger = logging.getLogger(__name__)


class AnthropicProvider(ConfiguredProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=self._api_key, max_retries=0)

    async def generate(self, prompt: str, options: CallOptions | None = None) -> ParticipantResponse:
        kwargs: dict = {
            "model": self._config.model,
            "max_tokens": self._max_tokens(options),
            "messages": [{"role": "user", "content": prompt}],
        }
        if options is not None:
            # Anthropic caps temperature at 1.0
            if options.temperature is not None:
                kwargs["temperature"] = min(options.temperature, 1.0)
            if options.top_p is not None:
                kwargs["top_p"] = options.top_p

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.status_code}): {exc.message}",
                retryable=is_retryable_status(exc.status_code),
                status=exc.status_code,
            ) from exc
        except anthropic_sdk.APIConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", retryable=True) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        content = "\n".join(text_blocks)

        usage = Usage()
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info(
            "Anthropic: %.2fs, %d tokens",
            latency,
            usage.total_tokens,
        )

        return ParticipantResponse(
            participant=self._config.name,
            model=self._config.model,
            content=content.strip(),
            usage=usage,
            timestamp=datetime.now(timezone.utc),
            latency_sec=latency,
        )
