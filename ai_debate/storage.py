"""Write-only transcript persistence: one row per finished Turn."""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path

from ai_debate.models import Turn

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS debate_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    debate_id TEXT NOT NULL,
    topic TEXT NOT NULL,
    role TEXT NOT NULL,
    phase TEXT NOT NULL,
    provider TEXT,
    content TEXT NOT NULL,
    prompt_tokens INTEGER NOT NULL DEFAULT 0,
    completion_tokens INTEGER NOT NULL DEFAULT 0,
    tool_invocations TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


class TranscriptStore(ABC):
    """Receives finished Turns, one call per Turn."""

    @abstractmethod
    def save_turn(self, debate_id: str, topic: str, turn: Turn) -> None:
        ...


class SQLiteTranscriptStore(TranscriptStore):
    """Stores Turns in the ``debate_messages`` table of a SQLite file."""

    def __init__(self, db_path: str | Path = "debate.db") -> None:
        self.db_path = Path(db_path)
        if self.db_path.parent != Path("."):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute(_SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with rollback on error."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error("Transcript database error: %s", e)
            raise
        finally:
            if conn:
                conn.close()

    def save_turn(self, debate_id: str, topic: str, turn: Turn) -> None:
        tools = [
            {"query": t.query, "sources": list(t.sources), "is_error": t.is_error}
            for t in turn.tool_invocations
        ]
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO debate_messages (
                    debate_id, topic, role, phase, provider, content,
                    prompt_tokens, completion_tokens, tool_invocations
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    debate_id,
                    topic,
                    turn.role.value,
                    turn.phase.value,
                    turn.model,
                    turn.content,
                    turn.usage.prompt_tokens,
                    turn.usage.completion_tokens,
                    json.dumps(tools),
                ),
            )
            conn.commit()
        logger.debug("Saved %s/%s turn for debate %s", turn.role.value, turn.phase.value, debate_id)

    def count_turns(self, debate_id: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM debate_messages WHERE debate_id = ?", (debate_id,)
            ).fetchone()
            return int(row["n"])
