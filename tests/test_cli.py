"""Tests for CLI helpers and command wiring in eot/cli.py."""

from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from eot.api import ReasoningService
from eot.cli import (
    _build_payload,
    _build_service,
    _check_and_filter_providers,
    _determine_panel,
    _parse_personas,
    _run_streaming,
    main,
)
from tests.conftest import MockProvider


def test_determine_panel_default(sample_app_config):
    assert _determine_panel(sample_app_config, models_arg=None) == ["claude", "openai"]


def test_determine_panel_custom_models_arg(sample_app_config):
    assert _determine_panel(sample_app_config, models_arg="claude, grok") == ["claude", "grok"]


def test_determine_panel_file_models(sample_app_config):
    assert _determine_panel(sample_app_config, None, ["gemini", "qwen"]) == ["gemini", "qwen"]


def test_determine_panel_models_arg_overrides_file(sample_app_config):
    assert _determine_panel(sample_app_config, "openai", ["gemini"]) == ["openai"]


def test_parse_personas():
    assert _parse_personas(("claude=socratic", " openai = coach ")) == {"claude": "socratic", "openai": "coach"}


@pytest.mark.parametrize("value", ["claude", "=coach", "claude="])
def test_parse_personas_rejects_malformed(value):
    with pytest.raises(click.BadParameter):
        _parse_personas((value,))


def test_build_payload_omits_unset_options():
    payload = _build_payload("Q?", ["claude"], "memory", None, None, None, {})
    assert payload == {"question": "Q?", "participants": ["claude"], "strategy": "memory"}


def test_build_payload_options_and_personas():
    payload = _build_payload("Q?", ["claude"], "debate", 0.4, 300, None, {"claude": "coach"})
    assert payload["options"] == {"temperature": 0.4, "maxTokens": 300}
    assert payload["personas"] == {"claude": "coach"}


def test_build_service_uses_config(sample_app_config):
    providers = {"claude": MockProvider("claude")}
    service = _build_service(sample_app_config, providers, sequential=True)
    assert isinstance(service, ReasoningService)
    assert service.engine.sequential is True
    assert service.known_participants == {"claude"}
    assert service.limits is sample_app_config.engine


def test_check_and_filter_all_pass():
    providers = {"claude": MockProvider("claude", "OK"), "openai": MockProvider("openai", "OK")}
    assert _check_and_filter_providers(providers) == providers


def test_check_and_filter_drops_failed_after_confirm():
    providers = {"claude": MockProvider("claude", "OK"), "grok": MockProvider("grok", " ")}
    with patch("eot.cli.click.confirm", return_value=True):
        working = _check_and_filter_providers(providers)
    assert list(working) == ["claude"]


def test_check_and_filter_exits_when_none_pass():
    providers = {"grok": MockProvider("grok", " ")}
    with pytest.raises(SystemExit) as exc_info:
        _check_and_filter_providers(providers)
    assert exc_info.value.code == 1


def _run_cli(sample_app_config, args):
    providers = {"claude": MockProvider("claude", "Mock answer")}
    sample_app_config.models = {"claude": sample_app_config.models["claude"]}
    with patch("eot.cli.load_config", return_value=sample_app_config), \
            patch("eot.cli.build_providers", return_value=providers), \
            patch("eot.cli.load_dotenv"):
        return CliRunner().invoke(main, args)


def test_cli_json_batch(sample_app_config):
    result = _run_cli(sample_app_config, ["Q?", "--models", "claude", "--json", "--skip-health-check"])
    assert result.exit_code == 0, result.output
    assert '"success": true' in result.output
    assert '"summary": "Mock answer"' in result.output


def test_cli_json_validation_error_exits_nonzero(sample_app_config):
    result = _run_cli(sample_app_config, ["Q?", "--models", "claude,ghost", "--json", "--skip-health-check"])
    assert result.exit_code == 1
    assert "VALIDATION_ERROR" in result.output


def test_cli_stream(sample_app_config):
    result = _run_cli(
        sample_app_config,
        ["Q?", "--models", "claude", "--strategy", "relay", "--stream", "--skip-health-check"],
    )
    assert result.exit_code == 0, result.output
    assert "Chain verification" in result.output
    assert "Mock answer" in result.output


def test_cli_requires_question(sample_app_config):
    result = _run_cli(sample_app_config, ["--skip-health-check"])
    assert result.exit_code == 1


class _ErroringStreamService:
    """Streams one error event and records whether the stream was closed."""

    def __init__(self) -> None:
        self.closed = False
        self.sweeper_cancelled = False

    def register_stream(self, payload):
        return {"success": True, "sessionId": "eot_test"}

    def start_sweeper(self):
        service = self

        class _Sweeper:
            def cancel(self):
                service.sweeper_cancelled = True

        return _Sweeper()

    async def stream(self, session_id):
        try:
            yield "connected", {"sessionId": session_id}
            yield "error", {"message": "boom", "progress": 20}
            yield "complete", {"data": {"summary": "never reached"}}
        finally:
            self.closed = True


async def test_run_streaming_closes_stream_before_exiting_on_error():
    service = _ErroringStreamService()
    with pytest.raises(SystemExit) as exc_info:
        await _run_streaming(service, {"question": "Q?"})
    assert exc_info.value.code == 1
    assert service.closed is True
    assert service.sweeper_cancelled is True
