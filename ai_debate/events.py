"""Role/phase-tagged events emitted by the engine to a transport or UI."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ai_debate.models import Phase, Role, ToolInvocation, Usage


class EventKind(Enum):
    PHASE_START = "phase_start"
    DELTA = "delta"
    THINKING = "thinking"
    TOOL_ACTIVITY = "tool_activity"
    USAGE = "usage"
    PHASE_DONE = "phase_done"
    ERROR = "error"
    DONE = "done"

    @property
    def terminal(self) -> bool:
        return self in (EventKind.ERROR, EventKind.DONE)


CANCELLED_SCOPE = "cancelled"


@dataclass(frozen=True)
class DebateEvent:
    kind: EventKind
    role: Role | None = None
    phase: Phase | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.kind.value}
        if self.role is not None:
            out["role"] = self.role.value
        if self.phase is not None:
            out["phase"] = self.phase.value
        out.update(self.data)
        return out

    def to_sse(self) -> str:
        """Encode as one Server-Sent Events ``data:`` frame."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"

    @property
    def text(self) -> str:
        return str(self.data.get("text", ""))


def phase_start(role: Role, phase: Phase, adapter: str) -> DebateEvent:
    return DebateEvent(EventKind.PHASE_START, role, phase, {"title": phase.title, "adapter": adapter})


def delta(role: Role, phase: Phase, text: str) -> DebateEvent:
    return DebateEvent(EventKind.DELTA, role, phase, {"text": text})


def thinking(role: Role, phase: Phase, text: str) -> DebateEvent:
    return DebateEvent(EventKind.THINKING, role, phase, {"text": text})


def tool_started(role: Role, phase: Phase, query: str) -> DebateEvent:
    return DebateEvent(EventKind.TOOL_ACTIVITY, role, phase, {"status": "started", "query": query, "results": []})


def tool_finished(role: Role, phase: Phase, invocation: ToolInvocation) -> DebateEvent:
    return DebateEvent(
        EventKind.TOOL_ACTIVITY,
        role,
        phase,
        {
            "status": "failed" if invocation.is_error else "finished",
            "query": invocation.query,
            "results": list(invocation.sources),
        },
    )


def usage(role: Role, phase: Phase, totals: Usage) -> DebateEvent:
    return DebateEvent(
        EventKind.USAGE,
        role,
        phase,
        {"prompt_tokens": totals.prompt_tokens, "completion_tokens": totals.completion_tokens},
    )


def phase_done(role: Role, phase: Phase, adapter: str) -> DebateEvent:
    return DebateEvent(EventKind.PHASE_DONE, role, phase, {"adapter": adapter})


def error(
    scope: str,
    message: str,
    role: Role | None = None,
    phase: Phase | None = None,
    adapter: str | None = None,
) -> DebateEvent:
    data: dict[str, Any] = {"scope": scope, "message": message}
    if adapter:
        data["adapter"] = adapter
    return DebateEvent(EventKind.ERROR, role, phase, data)


def cancelled() -> DebateEvent:
    return error(CANCELLED_SCOPE, "Debate cancelled")


def done() -> DebateEvent:
    return DebateEvent(EventKind.DONE)
