"""Click CLI: config loading, agent selection, health check, debate and output."""

import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from roundtable.consensus import AIConsensusAnalyzer
from roundtable.debate import DebateOrchestrator, new_session
from roundtable.errors import InfrastructureError
from roundtable.healthcheck import run_health_checks
from roundtable.models import RoundResult, Session
from roundtable.modes import default_modes
from roundtable.output import print_round_summary, print_session_summary
from roundtable.providers.anthropic import AnthropicAgent
from roundtable.providers.base import Agent, ProviderError
from roundtable.providers.gemini import GeminiAgent
from roundtable.providers.openai_provider import OpenAIAgent
from roundtable.providers.xai import XAIAgent
from roundtable.session import JsonSessionStore
from roundtable.toolkit import Toolkit

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[Agent]] = {
    "anthropic": AnthropicAgent,
    "openai": OpenAIAgent,
    "google-genai": GeminiAgent,
    "xai": XAIAgent,
}

_MIN_AGENTS = 2


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_agents(config: AppConfig) -> dict[str, Agent]:
    """Build an agent for every provider with an API key. Keyed by config name."""
    agents: dict[str, Agent] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        agent_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if agent_cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            agents[name] = agent_cls(model_cfg, config.prompts)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return agents


def _determine_panel(config: AppConfig, models_arg: str | None) -> list[str]:
    """--models overrides the configured default panel."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    return list(config.defaults.default_panel)


def _effective_rounds(config: AppConfig, rounds: int | None) -> int:
    requested = rounds if rounds is not None else config.defaults.rounds
    if requested > config.defaults.max_rounds:
        logger.warning("Capping --rounds %d to max_rounds %d", requested, config.defaults.max_rounds)
        return config.defaults.max_rounds
    return requested


def _pick_consensus_agent(all_agents: dict[str, Agent], preferred: str | None) -> Agent:
    if preferred and preferred in all_agents:
        return all_agents[preferred]
    return next(iter(all_agents.values()))


def _check_and_filter_agents(all_agents: dict[str, Agent]) -> dict[str, Agent]:
    """Run health checks, print results, and ask what to do on failures.

    Returns the working agents. Exits if the user declines to continue or
    no agent passes.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(all_agents))

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
        return all_agents

    working = {n: a for n, a in all_agents.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working providers: {', '.join(sorted(working))}")
    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)
    console.print()
    return working


async def _run_debate(
    topic: str,
    config: AppConfig,
    all_agents: dict[str, Agent],
    panel_names: list[str],
    rounds: int,
    mode: str,
    focus: str | None,
    exit_enabled: bool,
    output_dir: Path,
) -> Session:
    panel = [all_agents[n] for n in panel_names if n in all_agents]
    if len(panel) < _MIN_AGENTS:
        console.print(
            f"[bold red]Error:[/bold red] Need at least {_MIN_AGENTS} agents in panel, got {len(panel)}. "
            "Check API keys in .env or adjust --models."
        )
        sys.exit(1)

    analyzer_agent = _pick_consensus_agent(all_agents, config.defaults.consensus_agent)
    exit_criteria = replace(config.exit_criteria, enabled=config.exit_criteria.enabled and exit_enabled)
    orchestrator = DebateOrchestrator(
        Toolkit(),
        AIConsensusAnalyzer(analyzer_agent, config.prompts, config.retry),
        modes=default_modes(),
        session_store=JsonSessionStore(output_dir),
        retry_config=config.retry,
        exit_criteria=exit_criteria,
    )
    session = new_session(topic, mode, rounds)

    console.print(f"\n[bold cyan]Roundtable[/bold cyan] ({len(panel)} agents, up to {rounds} rounds, {mode})")
    console.print(f"Panel: {', '.join(a.name() for a in panel)}")
    console.print(f"Consensus analyzer: {analyzer_agent.name()}")
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_round_complete(result: RoundResult) -> None:
            progress.print(
                f"[green]OK[/green] Round {result.round_number} complete "
                f"({len(result.responses)} responses, agreement {result.consensus.agreement_level:.2f})"
            )

        progress.add_task("Running debate rounds...", total=None)
        await orchestrator.execute_rounds(
            panel,
            session,
            rounds,
            focus_question=focus,
            on_round_complete=on_round_complete,
        )

    for result in session.rounds:
        print_round_summary(result)
    print_session_summary(session)
    return session


@click.command()
@click.argument("topic")
@click.option("--rounds", default=None, type=int, help="Number of debate rounds (default: from config)")
@click.option("--mode", default=None, help="Debate mode (default: from config)")
@click.option("--models", default=None, help="Comma-separated provider list, overrides the default panel")
@click.option("--focus", default=None, help="Focus question passed to every agent")
@click.option("--no-exit", "no_exit", is_flag=True, help="Disable early exit on converged consensus")
@click.option("--output", "output_path", default=None, help="Session output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    topic: str,
    rounds: int | None,
    mode: str | None,
    models: str | None,
    focus: str | None,
    no_exit: bool,
    output_path: str | None,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Roundtable -- multi-agent debate with consensus tracking.

    \b
    Examples:
      roundtable "Should we adopt a four-day work week?" --rounds 3
      roundtable "Is nuclear power green?" --mode devils-advocate --models claude,openai,gemini
      roundtable "Monorepo vs polyrepo?" --mode delphi --no-exit
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_rounds = _effective_rounds(config, rounds)
    effective_mode = mode or config.defaults.mode
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    all_agents = _build_all_agents(config)
    if len(all_agents) < _MIN_AGENTS:
        console.print("[bold red]Error:[/bold red] Need at least 2 providers with API keys. Check .env.")
        sys.exit(1)

    if not skip_health_check:
        all_agents = _check_and_filter_agents(all_agents)

    try:
        session = asyncio.run(
            _run_debate(
                topic=topic,
                config=config,
                all_agents=all_agents,
                panel_names=_determine_panel(config, models),
                rounds=effective_rounds,
                mode=effective_mode,
                focus=focus,
                exit_enabled=not no_exit,
                output_dir=effective_output,
            )
        )
    except (InfrastructureError, ProviderError) as exc:
        console.print(f"[bold red]Debate failed:[/bold red] {exc}")
        sys.exit(1)
    console.print(f"\n[dim]Saved to: {JsonSessionStore(effective_output).path_for(session.id)}[/dim]")


if __name__ == "__main__":
    main()
