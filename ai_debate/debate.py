"""Debate orchestration: phase state machine over concurrent speaker sessions."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime

from config.config_loader import AppConfig
from ai_debate import events
from ai_debate.errors import DebateCancelled, SpeakerError
from ai_debate.events import DebateEvent
from ai_debate.fallback import FallbackPolicy
from ai_debate.models import (
    DebateSession,
    DebateStatus,
    ModelSelection,
    Phase,
    Role,
    Turn,
)
from ai_debate.multiplexer import Channel, EventMultiplexer, MergeMode
from ai_debate.prompts import PromptBuilder
from ai_debate.providers.base import ModelAdapter
from ai_debate.providers.registry import AdapterRegistry
from ai_debate.speaker import SpeakerSession
from ai_debate.storage import TranscriptStore
from ai_debate.tools import ToolBridge
from ai_debate.verdict import parse_verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebateRequest:
    topic: str
    models: dict[Role, str] = field(default_factory=dict)   # role -> primary override
    tools_enabled: bool | None = None                      # None -> config default


class Debate:
    """A single debate run. Consume ``events()`` once; call ``cancel()`` any time."""

    def __init__(
        self,
        session: DebateSession,
        chains: dict[Role, list[ModelAdapter]],
        config: AppConfig,
        prompts: PromptBuilder,
        multiplexer: EventMultiplexer,
        tool_bridge: ToolBridge | None = None,
        store: TranscriptStore | None = None,
    ) -> None:
        self.session = session
        self._chains = chains
        self._config = config
        self._prompts = prompts
        self._mux = multiplexer
        self._bridge = tool_bridge if session.tools_enabled else None
        self._store = store
        self._cancelled = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._consumed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation; the event stream ends with one cancelled error."""
        if not self._cancelled.is_set():
            logger.info("Cancellation requested for debate %s", self.session.id)
        self._cancelled.set()

    def _new_speaker(self, role: Role, phase: Phase) -> SpeakerSession:
        role_cfg = self._config.roles[role.value]
        policy = FallbackPolicy(
            self._chains[role],
            stall_timeout=self._config.timeouts.stall_sec,
            attempt_timeout=self._config.timeouts.attempt_sec,
        )
        return SpeakerSession(
            role=role,
            phase=phase,
            policy=policy,
            prompts=self._prompts,
            tool_bridge=None if role is Role.JUDGE else self._bridge,
            max_tool_calls=self._config.defaults.max_tool_calls,
            temperature=role_cfg.temperature,
            max_tokens=role_cfg.max_tokens,
        )

    async def _speak(self, speaker: SpeakerSession, snapshot: tuple[Turn, ...], channel: Channel) -> Turn:
        try:
            turn = await speaker.run(self.session.topic, snapshot, channel)
        except Exception as exc:
            await channel.close(exc)
            raise
        await channel.close()
        return turn

    async def events(self) -> AsyncIterator[DebateEvent]:
        """Run every phase and yield the merged event feed.

        The feed ends with exactly one terminal event: ``done``, or ``error``
        (scope ``cancelled`` on cancellation).
        """
        if self._consumed:
            raise RuntimeError("Debate.events() can only be consumed once")
        self._consumed = True
        session = self.session
        session.status = DebateStatus.RUNNING
        logger.info("Debate %s started: %r", session.id, session.topic)

        try:
            for phase in Phase:
                if self._cancelled.is_set():
                    raise DebateCancelled()
                session.phase = phase
                async for event in self._run_phase(phase):
                    yield event
        except DebateCancelled:
            await self._cancel_tasks()
            self._finish(DebateStatus.CANCELLED, "cancelled")
            yield events.cancelled()
            return
        except SpeakerError as exc:
            await self._cancel_tasks()
            self._finish(DebateStatus.FAILED, str(exc))
            yield events.error(exc.scope, str(exc.cause), exc.role, exc.phase, exc.adapter)
            return
        except Exception as exc:
            logger.exception("Debate %s crashed in %s", session.id, session.phase)
            await self._cancel_tasks()
            self._finish(DebateStatus.FAILED, str(exc))
            yield events.error("debate", f"Unexpected error: {exc}", phase=session.phase)
            return
        finally:
            await self._cancel_tasks()

        judge_turns = session.transcript.for_phase(Phase.JUDGEMENT)
        if judge_turns:
            session.verdict = parse_verdict(judge_turns[-1].content)
        self._finish(DebateStatus.DONE)
        yield events.done()

    async def _run_phase(self, phase: Phase) -> AsyncIterator[DebateEvent]:
        snapshot = self.session.transcript.turns
        speakers = [self._new_speaker(role, phase) for role in phase.speakers]
        channels = [self._mux.channel(s.role, phase) for s in speakers]
        self._tasks = [
            asyncio.create_task(self._speak(s, snapshot, ch), name=f"{s.role.value}-{phase.value}")
            for s, ch in zip(speakers, channels)
        ]
        logger.info("Phase %s started (%s)", phase.value, ", ".join(r.value for r in phase.speakers))

        async for event in self._mux.merge(channels, self._cancelled):
            yield event

        turns = await asyncio.gather(*self._tasks)
        self._tasks = []
        # Role order, regardless of which session finished first
        for turn in turns:
            self.session.transcript.append(turn)
            await self._persist(turn)
        logger.info("Phase %s complete", phase.value)

    async def _persist(self, turn: Turn) -> None:
        if self._store is None:
            return
        try:
            await asyncio.to_thread(self._store.save_turn, self.session.id, self.session.topic, turn)
        except Exception as exc:
            logger.error("Failed to persist %s/%s turn: %s", turn.role.value, turn.phase.value, exc)

    async def _cancel_tasks(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _finish(self, status: DebateStatus, error: str | None = None) -> None:
        self.session.status = status
        self.session.error = error
        self.session.finished_at = datetime.now()
        logger.info(
            "Debate %s %s with %d turns", self.session.id, status.value, len(self.session.transcript)
        )


class DebateEngine:
    """Builds Debates from an immutable AppConfig and injected collaborators."""

    def __init__(
        self,
        config: AppConfig,
        registry: AdapterRegistry,
        prompts: PromptBuilder | None = None,
        tool_bridge: ToolBridge | None = None,
        store: TranscriptStore | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.prompts = prompts or PromptBuilder(config.prompts, config.roles)
        self.tool_bridge = tool_bridge
        self.store = store

    def select_models(self, request: DebateRequest) -> dict[Role, ModelSelection]:
        selections: dict[Role, ModelSelection] = {}
        for role in Role:
            role_cfg = self.config.roles.get(role.value)
            if role_cfg is None:
                raise ValueError(f"No model configured for role '{role.value}'")
            primary = request.models.get(role) or role_cfg.model
            fallbacks = tuple(f for f in role_cfg.fallbacks if f != primary)
            selections[role] = ModelSelection(role=role, primary=primary, fallbacks=fallbacks)
        return selections

    def start(self, request: DebateRequest) -> Debate:
        """Validate the request and build a Debate ready to stream.

        Raises:
            ValueError: Empty or oversized topic, or an unresolvable model identifier.
        """
        topic = request.topic.strip()
        if not topic:
            raise ValueError("Topic must not be empty")
        if len(topic) > self.config.defaults.max_topic_chars:
            raise ValueError(f"Topic exceeds {self.config.defaults.max_topic_chars} characters")

        selections = self.select_models(request)
        chains = {role: self.registry.resolve_chain(sel.chain) for role, sel in selections.items()}

        tools_enabled = self.config.defaults.tools_enabled if request.tools_enabled is None else request.tools_enabled
        if tools_enabled and self.tool_bridge is None:
            logger.info("Tools requested but no search provider is configured; continuing without tools")
            tools_enabled = False

        session = DebateSession(
            id=uuid.uuid4().hex,
            topic=topic,
            selections=selections,
            tools_enabled=tools_enabled,
        )
        mux = EventMultiplexer(
            mode=MergeMode(self.config.defaults.merge_mode),
            channel_size=self.config.defaults.channel_size,
        )
        return Debate(
            session=session,
            chains=chains,
            config=self.config,
            prompts=self.prompts,
            multiplexer=mux,
            tool_bridge=self.tool_bridge,
            store=self.store,
        )


async def run_debate(engine: DebateEngine, request: DebateRequest) -> tuple[DebateSession, list[DebateEvent]]:
    """Run a debate to completion and collect every event."""
    debate = engine.start(request)
    collected = [event async for event in debate.events()]
    return debate.session, collected
