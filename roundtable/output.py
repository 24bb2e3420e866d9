"""Rich console output for debate rounds and the final session state."""

import logging

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from roundtable.models import ConsensusMeasurement, RoundResult, Session, StructuredResponse

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _preview(text: str, words: int = 60) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _response_body(resp: StructuredResponse) -> str:
    lines = [f"[bold]{escape(resp.position)}[/bold]", "", escape(_preview(resp.reasoning))]
    if resp.citations:
        lines.append("")
        lines.extend(f"[dim]- {escape(c.title)} ({escape(c.url)})[/dim]" for c in resp.citations)
    if resp.role_violation:
        actual = resp.role_violation.actual.value if resp.role_violation.actual else "none"
        lines.append(f"\n[yellow]Expected stance {resp.role_violation.expected.value}, got {actual}[/yellow]")
    return "\n".join(lines)


def _agreement_style(level: float) -> str:
    if level >= 0.8:
        return "green"
    if level >= 0.5:
        return "yellow"
    return "red"


def print_consensus(consensus: ConsensusMeasurement) -> None:
    style = _agreement_style(consensus.agreement_level)
    console.print(
        Text(f"Agreement: {consensus.agreement_level * 100:.0f}%  {consensus.summary}", style=style)
    )
    if consensus.groupthink_warning:
        console.print("[bold yellow]Groupthink warning: positions converged suspiciously fast[/bold yellow]")


def print_round_summary(result: RoundResult) -> None:
    """Print one panel per response, then the round's consensus line."""
    console.print(Rule(f"[bold cyan]Round {result.round_number}[/bold cyan]"))
    for resp in result.responses:
        stance = f" ({resp.stance.value})" if resp.stance else ""
        console.print(
            Panel(
                _response_body(resp),
                title=f"[bold]{escape(resp.agent_name)}[/bold]{stance}",
                subtitle=f"confidence {resp.confidence * 100:.0f}% | {len(resp.tool_calls)} tool calls",
                border_style="dim",
            )
        )
    print_consensus(result.consensus)


def print_session_summary(session: Session) -> None:
    """Print the final consensus and where the debate stopped."""
    console.print(Rule("[bold green]Roundtable Result[/bold green]"))
    console.print(
        Text(
            f"Session: {session.id} | Mode: {session.mode} | "
            f"Rounds: {session.current_round}/{session.total_rounds} | Status: {session.status.value}",
            style="dim",
        )
    )
    if not session.rounds:
        console.print("[yellow]No rounds completed.[/yellow]")
        return
    final = session.rounds[-1].consensus
    print_consensus(final)
    for point in final.common_points:
        console.print(f"  [green]+[/green] {escape(point)}")
    for point in final.disagreement_points:
        console.print(f"  [red]-[/red] {escape(point)}")
