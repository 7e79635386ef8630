"""Click CLI — loads config, builds the engine, streams a debate to the terminal."""

import asyncio
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path

import click
import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, load_config
from ai_debate.debate import Debate, DebateEngine, DebateRequest
from ai_debate.healthcheck import run_health_checks
from ai_debate.models import DebateStatus, Role
from ai_debate.multiplexer import MergeMode
from ai_debate.output import EventPrinter, print_jsonl, print_verdict, save_to_file
from ai_debate.providers.base import ModelAdapter
from ai_debate.providers.registry import AdapterRegistry
from ai_debate.storage import SQLiteTranscriptStore, TranscriptStore
from ai_debate.tools import TavilySearch, ToolBridge

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=Console(stderr=True))],
    )


def _apply_overrides(
    config: AppConfig,
    mode: str | None,
    output_path: str | None,
    db_path: str | None,
) -> AppConfig:
    """Return a copy of the config with CLI flags applied."""
    defaults = config.defaults
    if mode:
        defaults = replace(defaults, merge_mode=mode)
    if output_path:
        defaults = replace(defaults, output_dir=Path(output_path))
    if db_path:
        defaults = replace(defaults, database=Path(db_path))
    return replace(config, defaults=defaults)


def _selected_adapters(engine: DebateEngine, request: DebateRequest) -> dict[str, ModelAdapter]:
    """Every distinct adapter any role may use, keyed by identifier."""
    adapters: dict[str, ModelAdapter] = {}
    for selection in engine.select_models(request).values():
        for adapter in engine.registry.resolve_chain(selection.chain):
            adapters[adapter.name()] = adapter
    return adapters


async def _check_adapters(
    engine: DebateEngine,
    request: DebateRequest,
    timeout: float,
    jsonl: bool = False,
) -> bool:
    """Ping the selected adapters. Returns False when the debate should not start."""
    adapters = _selected_adapters(engine, request)
    if not jsonl:
        console.print("\n[bold]Checking models...[/bold]")
    results = await run_health_checks(adapters, timeout=timeout)

    failed: set[str] = set()
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            if not jsonl:
                console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            if jsonl:
                logger.warning("Health check failed for %s: %s", name, short_err)
            else:
                console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}", highlight=False)
            failed.add(name)

    if not failed:
        return True

    for role, selection in engine.select_models(request).items():
        if all(identifier in failed for identifier in selection.chain):
            console.print(f"\n[bold red]Error:[/bold red] No working model for {role.label}.")
            return False

    console.print(f"\n[yellow]{len(failed)} model(s) failed:[/yellow] {', '.join(sorted(failed))}")
    return click.confirm("Continue and rely on fallbacks?", default=True)


def _install_sigint(debate: Debate) -> bool:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, debate.cancel)
    except NotImplementedError:
        # Windows event loops; Ctrl+C raises KeyboardInterrupt instead
        return False
    return True


async def _run(
    config: AppConfig,
    request: DebateRequest,
    store: TranscriptStore | None,
    skip_health_check: bool,
    jsonl: bool,
) -> Debate | None:
    """Build the engine, optionally health-check, and stream one debate."""
    registry = AdapterRegistry(config.providers)
    async with httpx.AsyncClient(timeout=config.timeouts.tool_sec) as http:
        bridge = None
        if config.search_enabled:
            bridge = ToolBridge(TavilySearch(config.search, client=http), timeout=config.timeouts.tool_sec)
        engine = DebateEngine(config, registry, tool_bridge=bridge, store=store)

        if not skip_health_check:
            if not await _check_adapters(engine, request, config.timeouts.health_sec, jsonl):
                return None

        debate = engine.start(request)
        if not jsonl:
            session = debate.session
            console.print(f"\n[bold cyan]AI Debate[/bold cyan] — {escape(session.topic[:80])}")
            for role, selection in session.selections.items():
                console.print(f"{role.label}: {selection.primary}", highlight=False)
            console.print(f"Tools: {'on' if session.tools_enabled else 'off'}")

        printer = EventPrinter(console)
        handled = _install_sigint(debate)
        try:
            async for event in debate.events():
                if jsonl:
                    print_jsonl(event, console)
                else:
                    printer(event)
        finally:
            if handled:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        return debate


@click.command()
@click.argument("topic")
@click.option("--pro", "pro_model", default=None, help="Model for Pro, e.g. openai/gpt-4o-mini")
@click.option("--con", "con_model", default=None, help="Model for Con")
@click.option("--judge", "judge_model", default=None, help="Model for the Judge")
@click.option("--tools/--no-tools", "tools_enabled", default=None,
              help="Enable web search for Pro and Con (default: from config)")
@click.option("--mode", type=click.Choice([m.value for m in MergeMode]), default=None,
              help="How concurrent speakers are merged in the output")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False,
              help="Do not write the markdown transcript or the SQLite record")
@click.option("--db", "db_path", default=None, help="SQLite transcript database (default: from config)")
@click.option("--jsonl", is_flag=True, default=False, help="Print raw events as JSON lines")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    topic: str,
    pro_model: str | None,
    con_model: str | None,
    judge_model: str | None,
    tools_enabled: bool | None,
    mode: str | None,
    output_path: str | None,
    no_save: bool,
    db_path: str | None,
    jsonl: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """AI Debate -- two models argue a topic, a third one judges.

    \b
    Examples:
      ai-debate "Remote work is better than office work"
      ai-debate "Nuclear power is green" --no-tools --mode interleaved
      ai-debate "Cats beat dogs" --pro openai/gpt-4o-mini --judge anthropic/claude-3-5-haiku-latest
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)
    config = _apply_overrides(config, mode, output_path, db_path)

    overrides = {Role.PRO: pro_model, Role.CON: con_model, Role.JUDGE: judge_model}
    request = DebateRequest(
        topic=topic,
        models={role: model for role, model in overrides.items() if model},
        tools_enabled=tools_enabled,
    )
    store = None if no_save else SQLiteTranscriptStore(config.defaults.database)

    try:
        debate = asyncio.run(_run(config, request, store, skip_health_check, jsonl))
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if debate is None:
        sys.exit(1)

    session = debate.session
    if not jsonl:
        print_verdict(session)
    if not no_save and len(session.transcript):
        saved_path = save_to_file(session, config.defaults.output_dir)
        if not jsonl:
            console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if session.status is not DebateStatus.DONE:
        sys.exit(1)


if __name__ == "__main__":
    main()
