"""Exceptions raised by the debate engine above the adapter layer."""

from ai_debate.models import Phase, Role
from ai_debate.providers.base import ErrorKind, ProviderError


class FallbackExhaustedError(ProviderError):
    """Every adapter in a fallback chain failed with a retryable error."""

    def __init__(self, attempts: list[tuple[str, str]]) -> None:
        self.attempts = list(attempts)
        tried = "; ".join(f"{name}: {reason}" for name, reason in self.attempts)
        last = self.attempts[-1][0] if self.attempts else "none"
        super().__init__(last, f"All adapters failed ({tried})", ErrorKind.FATAL)


class ToolArgumentsError(Exception):
    """A model produced tool-call arguments that cannot be parsed."""


class SearchError(Exception):
    """Raised by a search provider when a query cannot be served."""


class SpeakerError(Exception):
    """A Speaker Session failed and its Turn cannot be completed."""

    def __init__(self, role: Role, phase: Phase, adapter: str, cause: BaseException) -> None:
        self.role = role
        self.phase = phase
        self.adapter = adapter
        self.cause = cause
        super().__init__(f"{role.label} {phase.value} failed on {adapter}: {cause}")

    @property
    def scope(self) -> str:
        return f"{self.role.value}:{self.phase.value}"


class DebateCancelled(Exception):
    """Raised inside the engine once cancellation has been observed."""
