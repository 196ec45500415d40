"""Summary: Tests for the command-line interface.

Importance: Ensures CLI commands drive the same services as the API.
Alternatives: Test CLI behavior manually.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from voicepilot.cli import build_parser, run_cli


DEFAULTS = Path(__file__).resolve().parents[1] / "config" / "defaults.json"


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "config").mkdir()
    shutil.copy(DEFAULTS, tmp_path / "config" / "defaults.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VOICEPILOT_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("VOICEPILOT_AI_PROVIDER", "mock")
    monkeypatch.setenv("DEEPGRAM_API_KEY", "")
    return tmp_path


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_voice_command_runs_controller(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary: Replaying a clip logs the expense and records a session.

    Importance: Exercises the full voice flow from the command line.
    Alternatives: Call the controller directly in tests.
    """

    clip = workspace / "clip.txt"
    clip.write_text("I spent $12 on coffee", encoding="utf-8")
    assert run_cli(["voice", str(clip), "--confirm"]) == 0
    output = capsys.readouterr().out
    assert "Transcript: I spent $12 on coffee" in output
    assert run_cli(["sessions"]) == 0
    assert "[success] log/expense" in capsys.readouterr().out


def test_execute_command_prints_result(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    intent = {"type": "act", "category": "todo", "entities": {"title": "Call the bank"}}
    assert run_cli(["execute", json.dumps(intent)]) == 0
    body = json.loads(capsys.readouterr().out)
    assert body["result"]["text"] == "Call the bank"


def test_execute_command_reports_domain_errors(workspace: Path) -> None:
    intent = {"type": "act", "category": "email", "entities": {"to": "john@example.com"}}
    assert run_cli(["execute", json.dumps(intent)]) == 1
    assert run_cli(["execute", "not json"]) == 1


def test_integrations_and_api_key_commands(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["create-api-key", "--label", "phone"]) == 0
    assert "Created API key" in capsys.readouterr().out
    assert run_cli(["integrations"]) == 0
    output = capsys.readouterr().out
    assert "google: not connected (idle)" in output
    assert run_cli(["disconnect", "slack"]) == 1
