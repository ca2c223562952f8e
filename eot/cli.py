"""Click CLI — orchestrates config loading, provider selection, reasoning run, and output."""

import asyncio
import json
import logging
import sys
from contextlib import aclosing
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.rule import Rule

from config.config_loader import AppConfig, load_config
from eot.api import ReasoningService
from eot.compactor import Compactor
from eot.errors import ReasoningError
from eot.healthcheck import run_health_checks
from eot.models import EventType, ProgressEvent, Strategy
from eot.output import console, describe_wire_event, print_result
from eot.progress import CallbackSink
from eot.providers.base import AIProvider
from eot.providers.registry import build_providers
from eot.question_file import parse_file
from eot.resilience import RetryPolicy
from eot.topology import ReasoningEngine

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _determine_panel(
    config: AppConfig,
    models_arg: str | None,
    file_models: list[str] | None = None,
) -> list[str]:
    """--models wins over file frontmatter, which wins over the configured panel."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    if file_models:
        return list(file_models)
    return list(config.defaults.panel)


def _parse_personas(values: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated ``participant=persona`` options."""
    personas: dict[str, str] = {}
    for value in values:
        participant, sep, persona = value.partition("=")
        if not sep or not participant.strip() or not persona.strip():
            raise click.BadParameter(f"Expected participant=persona, got '{value}'", param_hint="--persona")
        personas[participant.strip()] = persona.strip()
    return personas


def _build_payload(
    question: str,
    participants: list[str],
    strategy: str,
    temperature: float | None,
    max_tokens: int | None,
    top_p: float | None,
    personas: dict[str, str],
) -> dict:
    options = {
        key: value
        for key, value in (("temperature", temperature), ("maxTokens", max_tokens), ("topP", top_p))
        if value is not None
    }
    payload: dict = {"question": question, "participants": participants, "strategy": strategy}
    if options:
        payload["options"] = options
    if personas:
        payload["personas"] = personas
    return payload


def _build_service(config: AppConfig, providers: dict[str, AIProvider], sequential: bool) -> ReasoningService:
    engine = ReasoningEngine(
        providers,
        config.prompts,
        compactor=Compactor(config.compaction),
        policy=RetryPolicy.from_config(config.retry),
        sequential=sequential,
    )
    return ReasoningService(engine, limits=config.engine, known_participants=set(config.models))


def _check_and_filter_providers(all_providers: dict[str, AIProvider]) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask user what to do on failures.

    Returns the filtered dict of working providers. Exits if the user
    declines to continue or no providers pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(all_providers))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return all_providers

    working = {n: p for n, p in all_providers.items() if n not in failed_names}

    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(
        f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}"
    )
    console.print(f"Working providers: {', '.join(sorted(working))}")

    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    console.print()
    return working


async def _run_interactive(service: ReasoningService, payload: dict) -> None:
    """Run with a live spinner fed by progress events, then print the transcript."""
    try:
        request = service.validate(payload)
    except ReasoningError as exc:
        console.print(f"[bold red]{exc.code}:[/bold red] {exc.message}")
        sys.exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=None)

        def on_event(event: ProgressEvent) -> None:
            if event.type is EventType.STAGE_START:
                progress.update(task, description=f"[{event.progress}%] Stage {event.stage}: {event.message}")
            elif event.type is EventType.STAGE_COMPLETE:
                stage = event.payload
                ok = sum(1 for r in stage.responses if not r.failed)
                progress.print(f"[green]OK[/green] Stage {stage.number} complete ({ok}/{len(stage.responses)} responses)")
                progress.update(task, description=f"[{event.progress}%] Waiting for next stage...")

        try:
            result = await asyncio.wait_for(
                service.engine.run(request, CallbackSink(on_event)),
                timeout=service.limits.request_timeout_sec,
            )
        except TimeoutError:
            logger.error("Run exceeded %ss", service.limits.request_timeout_sec)
            sys.exit(1)

    print_result(result)


async def _run_streaming(service: ReasoningService, payload: dict) -> None:
    """Register a session and consume it through the push protocol."""
    registration = service.register_stream(payload)
    if not registration["success"]:
        console.print(f"[bold red]{registration['code']}:[/bold red] {registration['error']}")
        sys.exit(1)

    failed = False
    sweeper = service.start_sweeper()
    try:
        async with aclosing(service.stream(registration["sessionId"])) as events:
            async for name, data in events:
                line = describe_wire_event(name, data)
                if line:
                    console.print(line)
                if name == "complete":
                    console.print(Rule("[bold green]Summary[/bold green]"))
                    console.print(Markdown(data["data"]["summary"]))
                elif name == "error":
                    failed = True
                    break
    finally:
        sweeper.cancel()

    if failed:
        sys.exit(1)


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--strategy", type=click.Choice([s.value for s in Strategy]), default=None,
              help="Communication topology (default: from config)")
@click.option("--models", default=None, help="Comma-separated participant list, first is center/synthesizer")
@click.option("--temperature", type=float, default=None, help="Sampling temperature (0-2)")
@click.option("--max-tokens", type=int, default=None, help="Max tokens per response (1-8192)")
@click.option("--top-p", type=float, default=None, help="Nucleus sampling (0-1)")
@click.option("--persona", "personas", multiple=True, help="participant=persona, repeatable")
@click.option("--sequential", is_flag=True, help="Invoke participants one at a time in every stage")
@click.option("--stream", "use_stream", is_flag=True, help="Consume progress through a streaming session")
@click.option("--json", "as_json", is_flag=True, help="Print the batch response envelope as JSON")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    strategy: str | None,
    models: str | None,
    temperature: float | None,
    max_tokens: int | None,
    top_p: float | None,
    personas: tuple[str, ...],
    sequential: bool,
    use_stream: bool,
    as_json: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """EoT Council -- Exchange-of-Thought reasoning across several models.

    \b
    Examples:
      eot "Is remote work beneficial?" --strategy debate --models claude,openai
      eot "How should we price the product?" --strategy report --models claude,gemini,deepseek
      eot "Plan a migration to Postgres" --strategy relay --stream
      eot --file question.md --json
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    meta: dict = {}
    if question_file:
        question_text, meta = parse_file(Path(question_file))
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    all_providers = build_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        all_providers = _check_and_filter_providers(all_providers)

    persona_map = dict(meta.get("personas") or {})
    persona_map.update(_parse_personas(personas))

    payload = _build_payload(
        question=question_text,
        participants=_determine_panel(config, models, meta.get("models")),
        strategy=strategy or str(meta.get("strategy", config.defaults.strategy)),
        temperature=temperature,
        max_tokens=max_tokens,
        top_p=top_p,
        personas=persona_map,
    )
    service = _build_service(config, all_providers, sequential)

    console.print(
        f"\n[bold cyan]EoT Council[/bold cyan] — {payload['strategy']} with "
        f"{', '.join(payload['participants'])}"
    )
    console.print(f"Question: [italic]{question_text[:80]}{'...' if len(question_text) > 80 else ''}[/italic]\n")

    if as_json:
        envelope = asyncio.run(service.run_batch(payload))
        click.echo(json.dumps(envelope, indent=2, ensure_ascii=False))
        if not envelope["success"]:
            sys.exit(1)
    elif use_stream:
        asyncio.run(_run_streaming(service, payload))
    else:
        asyncio.run(_run_interactive(service, payload))


if __name__ == "__main__":
    main()
