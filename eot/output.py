"""Rich console output for progress events and reasoning results."""

import logging

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from eot.models import ParticipantResponse, ReasoningResult, Stage

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _response_preview(response: ParticipantResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_stage_summary(stage: Stage) -> None:
    """Print a brief summary of one stage's responses to the console."""
    console.print(Rule(f"[bold cyan]Stage {stage.number}: {stage.title}[/bold cyan]"))
    console.print(Text(f"{stage.description} ({stage.mode.value}, {stage.duration_sec:.1f}s)", style="dim"))
    for resp in stage.responses:
        if resp.failed:
            console.print(
                Panel(
                    f"{resp.content}\n[dim]{resp.error or ''}[/dim]",
                    title=f"[bold red]{resp.participant}[/bold red] ({resp.model})",
                    border_style="red",
                )
            )
            continue
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.participant}[/bold] ({resp.model})",
                subtitle=f"{resp.latency_sec:.1f}s | {resp.usage.total_tokens} tokens",
                border_style="dim",
            )
        )


def print_summary(result: ReasoningResult) -> None:
    """Print the closing summary to the console using Rich markdown."""
    console.print(Rule("[bold green]Summary[/bold green]"))
    console.print(
        Text(
            f"Strategy: {result.strategy.value} | "
            f"Synthesized by: {result.participants[0]} | "
            f"Stages: {len(result.stages)} | "
            f"Duration: {result.duration_sec:.1f}s",
            style="dim",
        )
    )
    console.print(Markdown(result.summary))


def print_result(result: ReasoningResult) -> None:
    for stage in result.stages:
        print_stage_summary(stage)
    print_summary(result)


def describe_wire_event(name: str, data: dict) -> str | None:
    """One console line for a push-protocol event, or None for events not worth a line."""
    progress = data.get("progress")
    prefix = f"[dim]{progress:>3}%[/dim] " if isinstance(progress, int) else ""
    if name == "stage_start":
        return f"{prefix}[bold cyan]Stage {data['stage']}[/bold cyan] {data['title']}"
    if name == "model_complete":
        return f"{prefix}[green]OK[/green]   {data['model']}"
    if name == "model_error":
        return f"{prefix}[red]FAIL[/red] {data['model']}"
    if name == "error":
        return f"[bold red]Error:[/bold red] {data['message']}"
    return None
