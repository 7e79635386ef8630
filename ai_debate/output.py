"""Rich console rendering of the event feed and markdown file save for transcripts."""

import json
import logging
import re
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.rule import Rule
from rich.text import Text

from ai_debate.events import CANCELLED_SCOPE, DebateEvent, EventKind
from ai_debate.models import DebateSession, Phase, Role

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ROLE_STYLES = {
    Role.PRO: "bold green",
    Role.CON: "bold red",
    Role.JUDGE: "bold cyan",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


class EventPrinter:
    """Renders debate events to a rich Console as they arrive."""

    def __init__(self, out: Console | None = None, show_thinking: bool = True) -> None:
        self._console = out or console
        self._show_thinking = show_thinking
        self._in_thinking = False

    def __call__(self, event: DebateEvent) -> None:
        kind = event.kind
        if kind is EventKind.PHASE_START:
            self._console.print()
            style = _ROLE_STYLES.get(event.role, "bold")
            title = f"[{style}]{event.role.label}[/{style}] — {event.phase.title}"
            self._console.print(Rule(f"{title} [dim]({event.data.get('adapter', '')})[/dim]"))
        elif kind is EventKind.DELTA:
            self._end_thinking()
            self._console.print(event.text, end="", markup=False, highlight=False, soft_wrap=True)
        elif kind is EventKind.THINKING:
            if self._show_thinking:
                self._in_thinking = True
                self._console.print(Text(event.text, style="dim italic"), end="", soft_wrap=True)
        elif kind is EventKind.TOOL_ACTIVITY:
            self._end_thinking()
            status = event.data.get("status")
            query = event.data.get("query", "")
            if status == "started":
                self._console.print(f"\n[yellow]search[/yellow] {escape(query)}", highlight=False)
            else:
                results = event.data.get("results") or []
                label = "[red]search failed[/red]" if status == "failed" else f"[yellow]{len(results)} source(s)[/yellow]"
                self._console.print(f"  {label}", highlight=False)
        elif kind is EventKind.USAGE:
            self._end_thinking()
            self._console.print(
                f"\n[dim]tokens: {event.data['prompt_tokens']} prompt / "
                f"{event.data['completion_tokens']} completion[/dim]"
            )
        elif kind is EventKind.ERROR:
            self._console.print()
            if event.data.get("scope") == CANCELLED_SCOPE:
                self._console.print("[bold yellow]Debate cancelled.[/bold yellow]")
            else:
                scope = escape(str(event.data.get("scope")))
                message = escape(str(event.data.get("message")))
                self._console.print(f"[bold red]Error[/bold red] ({scope}): {message}", highlight=False)
        elif kind is EventKind.DONE:
            self._console.print()
            self._console.print(Rule("[bold green]Debate complete[/bold green]"))

    def _end_thinking(self) -> None:
        if self._in_thinking:
            self._console.print()
            self._in_thinking = False


def print_jsonl(event: DebateEvent, out: Console | None = None) -> None:
    """Print one event as a JSON line (for piping into a transport)."""
    (out or console).print(json.dumps(event.to_dict(), ensure_ascii=False), markup=False, highlight=False, soft_wrap=True)


def print_verdict(session: DebateSession) -> None:
    """Print the judge's decision and token totals."""
    verdict = session.verdict
    if verdict is None:
        return
    console.print(Rule("[bold cyan]Verdict[/bold cyan]"))
    winner = verdict.winner.label if verdict.winner else "undecided"
    usage = session.usage
    console.print(
        Text(
            f"Winner: {winner} | Turns: {len(session.transcript)} | "
            f"Tokens: {usage.prompt_tokens} prompt / {usage.completion_tokens} completion",
            style="dim",
        )
    )
    console.print(Markdown(verdict.verdict))


def save_to_file(session: DebateSession, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the debate transcript as a markdown file.

    Args:
        session: The debate session (finished or not; partial transcripts are saved as-is).
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem suffix instead
            of deriving one from the topic.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = session.started_at.strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(session.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    duration = ""
    if session.finished_at is not None:
        duration = f"{(session.finished_at - session.started_at).total_seconds():.1f}s"

    lines: list[str] = [
        f"# AI Debate: {session.topic[:80]}",
        "",
        f"**Date:** {session.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    for role, selection in session.selections.items():
        fallbacks = f" (fallbacks: {', '.join(selection.fallbacks)})" if selection.fallbacks else ""
        lines.append(f"**{role.label}:** {selection.primary}{fallbacks}")
    lines += [
        f"**Status:** {session.status.value}",
        f"**Tools:** {'enabled' if session.tools_enabled else 'disabled'}",
    ]
    if duration:
        lines.append(f"**Duration:** {duration}")
    if session.error:
        lines.append(f"**Error:** {session.error}")
    lines += ["", "---", ""]

    for phase in Phase:
        turns = session.transcript.for_phase(phase)
        if not turns:
            continue
        lines.append(f"## {phase.title}")
        lines.append("")
        for turn in turns:
            lines.append(f"### {turn.role.label} ({turn.model})")
            lines.append("")
            lines.append(turn.content)
            lines.append("")
            for inv in turn.tool_invocations:
                status = " (failed)" if inv.is_error else ""
                lines.append(f"- Search{status}: _{inv.query}_")
                for url in inv.sources:
                    lines.append(f"  - <{url}>")
            if turn.tool_invocations:
                lines.append("")
            lines.append(
                f"*Tokens: {turn.usage.prompt_tokens} prompt / {turn.usage.completion_tokens} completion*"
            )
            lines.append("")

    if session.verdict is not None:
        winner = session.verdict.winner.label if session.verdict.winner else "undecided"
        lines += [f"## Result: {winner}", ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
