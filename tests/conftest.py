"""Summary: Shared pytest fixtures and fakes.

Importance: Keeps every test on isolated storage with no network access.
Alternatives: Repeat config and fake construction in each test module.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from voicepilot.config import AppConfig
from voicepilot.credentials import CredentialManager
from voicepilot.errors import ProviderAuthError
from voicepilot.gateway import ClassificationGateway, ClassificationResult
from voicepilot.models import User
from voicepilot.oauth import OAuthTokenResult, ProviderCapabilities, provider_spec
from voicepilot.storage.sqlite_store import SqliteStore
from voicepilot.token_codec import TokenCodec


def build_config(db_path: str, **overrides: Any) -> AppConfig:
    """Summary: Build an AppConfig for tests.

    Importance: Ensures tests use isolated storage and fake client credentials.
    Alternatives: Load AppConfig from environment variables.
    """

    values: dict[str, Any] = dict(
        db_path=db_path,
        api_host="127.0.0.1",
        api_port=8000,
        default_user_name="Local User",
        default_user_email="local@voicepilot",
        token_secret="secret",
        public_base_url="http://localhost:8000",
        google_client_id="google-client",
        google_client_secret="google-secret",
        microsoft_client_id="ms-client",
        microsoft_client_secret="ms-secret",
        notion_client_id="notion-client",
        notion_client_secret="notion-secret",
        slack_client_id="slack-client",
        slack_client_secret="slack-secret",
        deepgram_api_key=None,
        ai_provider="mock",
        gemini_api_key=None,
        gemini_model="gemini-2.0-flash",
        openai_api_key=None,
        openai_model="gpt-4o-mini",
        workflow_base_url="http://workflows.test/webhook",
    )
    values.update(overrides)
    return AppConfig(**values)


def iso_in(seconds: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


class FakeOAuthClient:
    """Summary: In-memory OAuth client that counts refresh and revoke calls."""

    def __init__(self, refresh_delay: float = 0.0) -> None:
        self.refresh_calls = 0
        self.revoked: list[tuple[str, str]] = []
        self.refresh_error: Exception | None = None
        self.revoke_error: Exception | None = None
        self.refresh_delay = refresh_delay
        self.exchange_result = OAuthTokenResult(
            access_token="connected-access",
            refresh_token="connected-refresh",
            expires_at=iso_in(3600),
            account_id="user@example.com",
        )
        self._lock = threading.Lock()

    def capabilities(self, provider: str) -> ProviderCapabilities:
        return provider_spec(provider).capabilities

    def exchange_code(self, provider: str, code: str) -> OAuthTokenResult:
        if code == "bad-code":
            raise ProviderAuthError("invalid_grant")
        return self.exchange_result

    def refresh(self, provider: str, refresh_token: str) -> OAuthTokenResult:
        with self._lock:
            self.refresh_calls += 1
            count = self.refresh_calls
        if self.refresh_delay:
            time.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        return OAuthTokenResult(
            access_token=f"refreshed-{count}",
            refresh_token=None,
            expires_at=iso_in(3600),
        )

    def revoke(self, provider: str, access_token: str) -> None:
        self.revoked.append((provider, access_token))
        if self.revoke_error is not None:
            raise self.revoke_error

    def ensure_configured(self, provider: str) -> None:
        provider_spec(provider)


class FakeWorkflowClient:
    """Summary: Records workflow calls and replies from a preset table."""

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies = replies or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def call(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((name, payload))
        reply = self.replies.get(name, {})
        if isinstance(reply, Exception):
            raise reply
        return reply


class ScriptedGateway(ClassificationGateway):
    """Summary: Gateway that replays a script of results and failures.

    Importance: Each call consumes one step; a callable step runs in the worker thread.
    Alternatives: Patch the gateway methods per test.
    """

    def __init__(self, steps: list[Any]) -> None:
        self._steps = list(steps)
        self._last = steps[-1] if steps else None
        self.calls = 0

    def classify(self, audio: bytes) -> ClassificationResult:
        self.calls += 1
        step = self._steps.pop(0) if self._steps else self._last
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step()
        return step


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return build_config(str(tmp_path / "test.db"))


@pytest.fixture
def store(config: AppConfig) -> SqliteStore:
    store = SqliteStore(config.db_path)
    store.initialize()
    return store


@pytest.fixture
def user_id(store: SqliteStore) -> int:
    return store.ensure_user(User(display_name="Local User", email="local@voicepilot"))


@pytest.fixture
def oauth() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def credentials(store: SqliteStore, oauth: FakeOAuthClient) -> CredentialManager:
    return CredentialManager(store=store, codec=TokenCodec("secret"), oauth=oauth)


@pytest.fixture
def connect(
    store: SqliteStore, user_id: int
) -> Callable[..., None]:
    """Summary: Store an encoded credential row directly."""

    codec = TokenCodec("secret")

    def _connect(
        provider: str,
        access_token: str = "stored-access",
        refresh_token: str | None = "stored-refresh",
        expires_at: str | None = None,
    ) -> None:
        store.upsert_integration(
            user_id=user_id,
            provider=provider,
            access_token=codec.encode(access_token),
            refresh_token=codec.encode(refresh_token),
            expires_at=expires_at,
            account_id=f"{provider}@example.com",
        )

    return _connect
