"""Shared pytest fixtures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    REQUIRED_TEMPLATES,
    AppConfig,
    CompactionConfig,
    DefaultsConfig,
    ModelConfig,
    PromptsConfig,
)
from eot.compactor import Compactor
from eot.models import CallOptions, ExecutionMode, ParticipantResponse, ReasoningRequest, Stage, Strategy, Usage
from eot.providers.base import AIProvider
from eot.resilience import RetryPolicy


def make_response(
    participant: str,
    content: str,
    model: str = "mock-model",
    tokens: int = 10,
) -> ParticipantResponse:
    return ParticipantResponse(
        participant=participant,
        model=model,
        content=content,
        usage=Usage(prompt_tokens=tokens // 2, completion_tokens=tokens - tokens // 2, total_tokens=tokens),
        timestamp=datetime.now(timezone.utc),
        latency_sec=0.1,
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


def _template(strategy: str, key: str) -> str:
    placeholders = {
        "cross_examination": "{responses}",
        "closing": "{responses}",
        "shared_pool": "{responses}",
        "decision": "{responses}",
        "center": "{responses}",
        "guided": "{guidance}",
        "middle": "{previous}",
        "last": "{previous}",
        "verification": "{chain}",
    }
    extra = placeholders.get(key, "")
    return f"<{strategy}.{key}> Q: {{question}}\n{extra}".rstrip()


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        strategies={
            strategy: {key: _template(strategy, key) for key in keys}
            for strategy, keys in REQUIRED_TEMPLATES.items()
        },
        summary="<summary> {strategy} Q: {question}\n{transcript}",
        personas={"coach": "(coach) {content}"},
    )


@pytest.fixture
def sample_defaults_config() -> DefaultsConfig:
    return DefaultsConfig(strategy="debate", panel=["claude", "openai"])


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        available_providers={"claude"},
    )


@pytest.fixture
def compactor() -> Compactor:
    return Compactor(CompactionConfig(per_response_chars=200, total_chars=1200, digest_chars=40))


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with no real waiting."""
    return RetryPolicy(max_retries=2, base_delay_sec=0.0, backoff_factor=2.0, max_delay_sec=0.0)


@pytest.fixture
def sample_request() -> ReasoningRequest:
    return ReasoningRequest(
        question="Should we use YAML or JSON for config?",
        participants=("provider_a", "provider_b"),
        strategy=Strategy.DEBATE,
        options=CallOptions(temperature=0.7),
    )


@pytest.fixture
def sample_response() -> ParticipantResponse:
    return make_response(
        "claude",
        "Use YAML for human-editable config, JSON for machine interchange.",
        model="claude-sonnet-4-20250514",
        tokens=42,
    )


@pytest.fixture
def sample_stage(sample_response: ParticipantResponse) -> Stage:
    return Stage(
        number=1,
        title="Opening positions",
        description="Each participant states an initial position",
        mode=ExecutionMode.PARALLEL,
        participants=["claude"],
        responses=[sample_response],
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(
        self,
        provider_name: str = "mock",
        response_content: str = "Mock response",
        timeout: float = 5.0,
    ) -> None:
        self._name = provider_name
        self._response_content = response_content
        self._timeout = timeout
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=make_response(provider_name, response_content)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    @property
    def timeout_sec(self) -> float:
        return self._timeout

    async def generate(self, prompt: str, options: CallOptions | None = None) -> ParticipantResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return make_response(self._name, self._response_content)


def prompts_sent(provider: MockProvider) -> list[str]:
    """Prompts passed to a MockProvider's generate, in call order."""
    return [c.args[0] for c in provider.generate.call_args_list]


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def two_mock_providers() -> dict[str, MockProvider]:
    return {
        "provider_a": MockProvider("provider_a", "Response from A"),
        "provider_b": MockProvider("provider_b", "Response from B"),
    }
