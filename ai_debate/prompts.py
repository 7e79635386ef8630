"""Role/phase prompt construction and transcript compression."""

import logging

from config.config_loader import PromptsConfig, RoleConfig
from ai_debate.models import Phase, Role, Turn
from ai_debate.providers.base import Message

logger = logging.getLogger(__name__)

_TRUNCATED = "\n\n[...truncated]"


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~1 token per 4 characters, at least 1."""
    return max(1, len(text) // 4)


def compress_transcript(turns: tuple[Turn, ...], budget_tokens: int) -> list[Turn]:
    """Keep the most recent Turns that fit ``budget_tokens``.

    The newest Turn is always kept; if it alone exceeds the budget its
    content is cut to fit.
    """
    kept: list[Turn] = []
    total = 0
    for turn in reversed(turns):
        est = estimate_tokens(turn.content)
        if kept and total + est > budget_tokens:
            break
        kept.append(turn)
        total += est
    kept.reverse()

    if len(kept) == 1 and total > budget_tokens:
        only = kept[0]
        allowed_chars = max(80, budget_tokens * 4)
        if len(only.content) > allowed_chars:
            kept[0] = Turn(
                role=only.role,
                phase=only.phase,
                model=only.model,
                content=only.content[:allowed_chars] + _TRUNCATED,
                usage=only.usage,
                tool_invocations=only.tool_invocations,
            )
    if len(kept) < len(turns):
        logger.debug("Transcript compressed from %d to %d turns", len(turns), len(kept))
    return kept


def format_history(turns: list[Turn] | tuple[Turn, ...]) -> str:
    parts = [f"[{t.role.label} - {t.phase.title} - {t.model}]\n{t.content}\n" for t in turns]
    return "\n".join(parts)


class PromptBuilder:
    """Builds chat messages for debaters and the judge from config templates."""

    def __init__(self, prompts: PromptsConfig, roles: dict[str, RoleConfig]) -> None:
        self._prompts = prompts
        self._roles = roles

    def _budget(self, role: Role) -> int:
        cfg = self._roles.get(role.value)
        if cfg is None:
            return 4000
        return max(0, cfg.context_tokens - cfg.reserved_tokens)

    def build_side(
        self,
        role: Role,
        phase: Phase,
        topic: str,
        transcript: tuple[Turn, ...],
        tools_enabled: bool = False,
    ) -> tuple[Message, ...]:
        if role is Role.JUDGE or phase is Phase.JUDGEMENT:
            raise ValueError("build_side is for Pro/Con debating phases; use build_judge")
        system = self._prompts.side.format(
            stance=self._prompts.stances.get(role.value, ""),
            topic=topic,
            phase_goal=self._prompts.phase_goals.get(phase.value, phase.title),
            tool_instruction=self._prompts.search_instruction.rstrip() if tools_enabled else "",
        )
        messages = [Message.system(system.strip())]
        if transcript:
            history = format_history(compress_transcript(transcript, self._budget(role)))
            messages.append(Message.user(self._prompts.history.format(history=history).strip()))
        messages.append(Message.user(self._prompts.turn.format(phase_title=phase.title)))
        return tuple(messages)

    def build_judge(self, topic: str, transcript: tuple[Turn, ...]) -> tuple[Message, ...]:
        """The judge always sees the full, uncompressed transcript."""
        system = self._prompts.judge.format(topic=topic)
        history = format_history(transcript)
        return (
            Message.system(system.strip()),
            Message.user(self._prompts.history.format(history=history).strip()),
        )

    def build(
        self,
        role: Role,
        phase: Phase,
        topic: str,
        transcript: tuple[Turn, ...],
        tools_enabled: bool = False,
    ) -> tuple[Message, ...]:
        if role is Role.JUDGE:
            return self.build_judge(topic, transcript)
        return self.build_side(role, phase, topic, transcript, tools_enabled)

    def recovery_notice(self, failed: str, adapter: str) -> str:
        return self._prompts.recovery_notice.format(failed=failed, adapter=adapter)
