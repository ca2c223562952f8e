"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# Template keys every strategy must provide, in stage order.
REQUIRED_TEMPLATES: dict[str, tuple[str, ...]] = {
    "debate": ("opening", "cross_examination", "closing"),
    "memory": ("independent", "shared_pool", "decision"),
    "report": ("report", "center", "guided"),
    "relay": ("first", "middle", "last", "verification"),
}


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    strategies: dict[str, dict[str, str]]
    summary: str
    personas: dict[str, str] = field(default_factory=dict)


@dataclass
class RetryConfig:
    max_retries: int = 2
    base_delay_sec: float = 1.0
    backoff_factor: float = 2.0
    max_delay_sec: float = 30.0


@dataclass
class CompactionConfig:
    per_response_chars: int = 1000
    total_chars: int = 6000
    digest_chars: int = 250
    head_ratio: float = 0.6
    tail_ratio: float = 0.3
    marker: str = "\n...[truncated]...\n"


@dataclass
class EngineConfig:
    max_question_chars: int = 1000
    max_participants: int = 6
    request_timeout_sec: float = 300.0
    session_ttl_sec: float = 900.0
    session_sweep_interval_sec: float = 300.0


@dataclass
class DefaultsConfig:
    strategy: str
    panel: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    engine: EngineConfig = field(default_factory=EngineConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)
    available_providers: set[str] = field(default_factory=set)


def _load_prompts(raw: dict) -> PromptsConfig:
    prompts_raw = raw["prompts"]
    strategies: dict[str, dict[str, str]] = {}
    for strategy, keys in REQUIRED_TEMPLATES.items():
        section = prompts_raw.get(strategy)
        if not isinstance(section, dict):
            raise ValueError(f"Missing prompt templates for strategy '{strategy}'")
        missing = [k for k in keys if k not in section]
        if missing:
            raise ValueError(f"Strategy '{strategy}' is missing templates: {', '.join(missing)}")
        strategies[strategy] = {k: str(section[k]) for k in keys}

    personas_raw = raw.get("personas") or {}
    return PromptsConfig(
        strategies=strategies,
        summary=str(prompts_raw["summary"]),
        personas={k: str(v) for k, v in personas_raw.items()},
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ValueError when a
    strategy lacks one of its prompt templates.
    Logs which providers lack API keys but does not raise; the request
    validator reports them as MODEL_UNAVAILABLE.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        strategy=str(defaults_raw.get("strategy", "debate")),
        panel=list(defaults_raw.get("panel", [])),
    )

    engine = EngineConfig(**(raw.get("engine") or {}))
    retry = RetryConfig(**(raw.get("retry") or {}))
    compaction = CompactionConfig(**(raw.get("compaction") or {}))

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=_load_prompts(raw),
        engine=engine,
        retry=retry,
        compaction=compaction,
        available_providers=available_providers,
    )
