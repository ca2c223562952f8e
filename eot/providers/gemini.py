"""Gemini provider using google-genai SDK with native async."""

import logging
import time
from datetime import datetime, timezone

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from eot.models import CallOptions, ParticipantResponse, Usage
from eot.providers.base import ConfiguredProvider, ProviderError, is_retryable_status

logger = logging.getLogger(__name__)


class GeminiProvider(ConfiguredProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = genai.Client(api_key=self._api_key)

    async def generate(self, prompt: str, options: CallOptions | None = None) -> ParticipantResponse:
        generation_config = genai_types.GenerateContentConfig(
            max_output_tokens=self._max_tokens(options),
            temperature=options.temperature if options else None,
            top_p=options.top_p if options else None,
        )

        start = time.monotonic()
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=prompt,
                config=generation_config,
            )
        except genai_errors.APIError as exc:
            raise ProviderError(
                self._config.name,
                f"API call failed ({exc.code}): {exc.message}",
                retryable=is_retryable_status(exc.code),
                status=exc.code,
            ) from exc
        except ConnectionError as exc:
            raise ProviderError(self._config.name, f"Connection failed: {exc}", retryable=True) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        usage = Usage()
        meta = response.usage_metadata
        if meta:
            usage = Usage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )

        logger.info(
            "Gemini: %.2fs, %d tokens",
            latency,
            usage.total_tokens,
        )

        return ParticipantResponse(
            participant=self._config.name,
            model=self._config.model,
            content=response.text.strip(),
            usage=usage,
            timestamp=datetime.now(timezone.utc),
            latency_sec=latency,
        )
