"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from voicepilot.config import AppConfig, load_defaults, load_dotenv
from voicepilot.errors import ConfigurationError


DEFAULTS = {
    "db_path": "test.db",
    "api_host": "127.0.0.1",
    "api_port": "8000",
    "default_user_name": "Local User",
    "default_user_email": "local@voicepilot",
    "token_secret": "",
    "public_base_url": "http://localhost:8000",
    "google_client_id": "",
    "google_client_secret": "",
    "microsoft_client_id": "",
    "microsoft_client_secret": "",
    "notion_client_id": "",
    "notion_client_secret": "",
    "slack_client_id": "",
    "slack_client_secret": "",
    "deepgram_api_key": "",
    "ai_provider": "mock",
    "gemini_api_key": "",
    "gemini_model": "gemini-2.0-flash",
    "openai_api_key": "",
    "openai_model": "gpt-4o-mini",
    "workflow_base_url": "http://localhost:5678/webhook",
    "processing_timeout_seconds": "30",
    "max_gateway_retries": "2",
    "token_refresh_buffer_seconds": "300",
    "execute_timeout_seconds": "",
}

ENV_KEYS = (
    "VOICEPILOT_DB_PATH",
    "VOICEPILOT_AI_PROVIDER",
    "VOICEPILOT_PROCESSING_TIMEOUT_SECONDS",
    "VOICEPILOT_EXECUTE_TIMEOUT_SECONDS",
    "DEEPGRAM_API_KEY",
    "GOOGLE_CLIENT_ID",
)


def _write_defaults(root: Path) -> None:
    (root / "config").mkdir()
    (root / "config" / "defaults.json").write_text(json.dumps(DEFAULTS), encoding="utf-8")


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text("{\"db_path\": \"test.db\"}", encoding="utf-8")
    defaults = load_defaults(defaults_path)
    assert defaults["db_path"] == "test.db"


def test_load_dotenv_sets_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables.

    Importance: Validates local secret loading without external tools.
    Alternatives: Assume OS environment is always set.
    """

    env_path = tmp_path / ".env"
    env_path.write_text("VOICEPILOT_AI_PROVIDER=gemini\n", encoding="utf-8")
    monkeypatch.setenv("VOICEPILOT_AI_PROVIDER", "unset")
    monkeypatch.delenv("VOICEPILOT_AI_PROVIDER")
    load_dotenv(env_path)
    assert os.getenv("VOICEPILOT_AI_PROVIDER") == "gemini"


def test_app_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults when env is absent.

    Importance: Confirms config file remains the baseline for variables.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    config = AppConfig.from_env()
    assert config.db_path == "test.db"
    assert config.ai_provider == "mock"
    assert config.api_port == 8000
    assert config.deepgram_api_key is None
    assert config.processing_timeout_seconds == 30.0
    assert config.max_gateway_retries == 2
    assert config.token_refresh_buffer_seconds == 300
    assert config.execute_timeout_seconds is None


def test_app_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Environment variables take precedence over defaults.

    Importance: Deployments configure secrets and timeouts without editing files.
    Alternatives: Require a per-environment defaults file.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VOICEPILOT_DB_PATH", "other.db")
    monkeypatch.setenv("VOICEPILOT_PROCESSING_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("VOICEPILOT_EXECUTE_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("DEEPGRAM_API_KEY", "dg-key")
    config = AppConfig.from_env()
    assert config.db_path == "other.db"
    assert config.processing_timeout_seconds == 5.0
    assert config.execute_timeout_seconds == 12.5
    assert config.deepgram_api_key == "dg-key"


def test_oauth_client_requires_credentials(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Missing client credentials raise ConfigurationError.

    Importance: Surfaces setup gaps before redirecting users to a provider.
    Alternatives: Let the provider reject an empty client id.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    config = AppConfig.from_env()
    with pytest.raises(ConfigurationError):
        config.oauth_client("google")
    assert "GOOGLE_CLIENT_ID" in config.missing_settings()
    assert "DEEPGRAM_API_KEY" in config.missing_settings()
