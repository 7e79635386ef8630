"""Dataclasses and enums for the debate pipeline. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(Enum):
    PRO = "pro"
    CON = "con"
    JUDGE = "judge"

    @property
    def label(self) -> str:
        return self.value.title()


class Phase(Enum):
    OPENING = "opening"
    REBUTTAL = "rebuttal"
    DEFENSE = "defense"
    CLOSING = "closing"
    JUDGEMENT = "judgement"

    @property
    def order(self) -> int:
        return list(Phase).index(self)

    @property
    def speakers(self) -> tuple[Role, ...]:
        """Roles that speak in this phase, in speaking order."""
        if self is Phase.JUDGEMENT:
            return (Role.JUDGE,)
        return (Role.PRO, Role.CON)

    @property
    def title(self) -> str:
        return _PHASE_TITLES[self]


_PHASE_TITLES = {
    Phase.OPENING: "Opening Statement",
    Phase.REBUTTAL: "Rebuttal",
    Phase.DEFENSE: "Defense",
    Phase.CLOSING: "Closing Statement",
    Phase.JUDGEMENT: "Judgement",
}


class DebateStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (DebateStatus.DONE, DebateStatus.FAILED, DebateStatus.CANCELLED)


@dataclass(frozen=True)
class ModelSelection:
    role: Role
    primary: str                      # "provider/model"
    fallbacks: tuple[str, ...] = ()

    @property
    def chain(self) -> tuple[str, ...]:
        return (self.primary, *self.fallbacks)


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class ToolInvocation:
    query: str
    summary: str
    sources: tuple[str, ...] = ()
    is_error: bool = False


@dataclass(frozen=True)
class Turn:
    role: Role
    phase: Phase
    model: str                        # identifier actually used
    content: str
    usage: Usage = Usage()
    tool_invocations: tuple[ToolInvocation, ...] = ()
    thinking: str = ""


@dataclass
class Transcript:
    """Append-only, phase-ordered record of finished Turns."""

    _turns: list[Turn] = field(default_factory=list)

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        if self._turns and turn.phase.order < self._turns[-1].phase.order:
            raise ValueError(
                f"Cannot append {turn.phase.value} turn after {self._turns[-1].phase.value}"
            )
        self._turns.append(turn)

    def for_phase(self, phase: Phase) -> list[Turn]:
        return [t for t in self._turns if t.phase is phase]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(tuple(self._turns))


@dataclass(frozen=True)
class Verdict:
    reasoning: str
    verdict: str
    winner: Role | None = None


@dataclass
class DebateSession:
    id: str
    topic: str
    selections: dict[Role, ModelSelection]
    tools_enabled: bool = False
    transcript: Transcript = field(default_factory=Transcript)
    phase: Phase | None = None
    status: DebateStatus = DebateStatus.PENDING
    error: str | None = None
    verdict: Verdict | None = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def usage(self) -> Usage:
        total = Usage()
        for turn in self.transcript:
            total = total + turn.usage
        return total
