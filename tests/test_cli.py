"""Tests for ai_debate/cli.py — helpers plus CliRunner runs against scripted adapters."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from ai_debate import cli
from ai_debate.debate import DebateRequest
from ai_debate.providers.base import ErrorKind, ProviderError


@pytest.fixture
def patched_cli(monkeypatch, sample_app_config, registry):
    """Point the CLI at the test config and scripted adapters."""
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "load_config", lambda: sample_app_config)
    monkeypatch.setattr(cli, "AdapterRegistry", lambda providers: registry)
    return sample_app_config


def test_apply_overrides(sample_app_config, tmp_path):
    config = cli._apply_overrides(sample_app_config, "interleaved", str(tmp_path / "out"), None)
    assert config.defaults.merge_mode == "interleaved"
    assert config.defaults.output_dir == tmp_path / "out"
    assert config.defaults.database == sample_app_config.defaults.database
    assert sample_app_config.defaults.merge_mode == "sequential"


def test_apply_overrides_noop(sample_app_config):
    assert cli._apply_overrides(sample_app_config, None, None, None) == sample_app_config


def test_selected_adapters_are_distinct(engine):
    adapters = cli._selected_adapters(engine, DebateRequest(topic="t"))
    assert sorted(adapters) == ["fake/backup", "fake/con", "fake/judge", "fake/pro"]


async def test_check_adapters_all_ok(engine):
    assert await cli._check_adapters(engine, DebateRequest(topic="t"), timeout=1.0)


async def test_check_adapters_asks_when_fallbacks_remain(engine, adapters, monkeypatch):
    adapters["fake/pro"].script = [RuntimeError("401 Unauthorized")]
    asked = []
    monkeypatch.setattr(cli.click, "confirm", lambda *args, **kwargs: asked.append(args) or True)

    assert await cli._check_adapters(engine, DebateRequest(topic="t"), timeout=1.0)
    assert len(asked) == 1


async def test_check_adapters_stops_when_a_role_has_no_working_model(engine, adapters):
    adapters["fake/pro"].script = [RuntimeError("down")]
    adapters["fake/backup"].script = [RuntimeError("down")]

    assert not await cli._check_adapters(engine, DebateRequest(topic="t"), timeout=1.0)


def test_main_runs_debate_and_saves(patched_cli):
    result = CliRunner().invoke(cli.main, ["Remote work is better", "--skip-health-check"])

    assert result.exit_code == 0, result.output
    assert "Debate complete" in result.output
    assert "Winner: Pro" in result.output
    saved = list(Path(patched_cli.defaults.output_dir).glob("*.md"))
    assert len(saved) == 1
    assert "remote-work-is-better" in saved[0].name
    assert Path(patched_cli.defaults.database).exists()


def test_main_no_save(patched_cli):
    result = CliRunner().invoke(cli.main, ["Remote work is better", "--skip-health-check", "--no-save"])

    assert result.exit_code == 0, result.output
    assert not Path(patched_cli.defaults.output_dir).exists()
    assert not Path(patched_cli.defaults.database).exists()


def test_main_jsonl(patched_cli):
    result = CliRunner().invoke(cli.main, ["Remote work", "--skip-health-check", "--no-save", "--jsonl"])

    assert result.exit_code == 0, result.output
    payloads = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
    assert payloads[0]["type"] == "phase_start"
    assert payloads[-1] == {"type": "done"}
    assert sum(1 for p in payloads if p["type"] == "phase_done") == 9


def test_main_exits_1_on_failure(patched_cli, adapters):
    adapters["fake/con"].script = [ProviderError("fake/con", "400 bad request", ErrorKind.FATAL)]

    result = CliRunner().invoke(cli.main, ["Remote work", "--skip-health-check", "--no-save"])

    assert result.exit_code == 1
    assert "con:opening" in result.output


def test_main_rejects_unknown_model(patched_cli):
    result = CliRunner().invoke(cli.main, ["Remote work", "--skip-health-check", "--pro", "nowhere/model"])

    assert result.exit_code == 1
    assert "Unknown provider" in result.output


def test_main_rejects_bad_mode():
    result = CliRunner().invoke(cli.main, ["Remote work", "--mode", "shuffled"])
    assert result.exit_code == 2
