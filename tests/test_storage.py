"""Tests for ai_debate/storage.py."""

import json
import sqlite3

from ai_debate.models import Phase, Role, ToolInvocation, Turn, Usage
from ai_debate.storage import SQLiteTranscriptStore


def test_creates_schema(tmp_path):
    db = tmp_path / "nested" / "debate.db"
    SQLiteTranscriptStore(db)
    with sqlite3.connect(db) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert "debate_messages" in tables


def test_save_turn_writes_one_row(tmp_path, sample_turns):
    store = SQLiteTranscriptStore(tmp_path / "debate.db")
    turn = Turn(
        role=Role.PRO,
        phase=Phase.REBUTTAL,
        model="mistral/mistral-small-latest",
        content="Evidence says otherwise.",
        usage=Usage(120, 80),
        tool_invocations=(ToolInvocation("hybrid work data", "...", ("https://example.com/a",)),),
    )

    store.save_turn("d1", "Remote work", sample_turns[0])
    store.save_turn("d1", "Remote work", turn)
    store.save_turn("d2", "Other", sample_turns[1])

    assert store.count_turns("d1") == 2
    assert store.count_turns("d2") == 1
    with sqlite3.connect(tmp_path / "debate.db") as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM debate_messages WHERE phase = 'rebuttal'").fetchone()
    assert row["role"] == "pro"
    assert row["provider"] == "mistral/mistral-small-latest"
    assert row["prompt_tokens"] == 120
    assert row["completion_tokens"] == 80
    assert json.loads(row["tool_invocations"]) == [
        {"query": "hybrid work data", "sources": ["https://example.com/a"], "is_error": False}
    ]


def test_store_reopens_existing_database(tmp_path, sample_turns):
    path = tmp_path / "debate.db"
    SQLiteTranscriptStore(path).save_turn("d1", "t", sample_turns[0])
    assert SQLiteTranscriptStore(path).count_turns("d1") == 1
