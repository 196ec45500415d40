"""Summary: API integration tests.

Importance: Validates FastAPI endpoints against core workflows.
Alternatives: Use manual curl testing only.
"""

from __future__ import annotations

import base64
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from conftest import FakeOAuthClient, FakeWorkflowClient, build_config
from voicepilot.api import create_app
from voicepilot.app import AppContext, build_context
from voicepilot.errors import UpstreamWorkflowError
from voicepilot.models import User
from voicepilot.oauth import decode_state, encode_state
from voicepilot.services import ApiKeyService


def _client(
    tmp_path: Path, workflows: FakeWorkflowClient | None = None
) -> tuple[TestClient, AppContext, dict[str, str], int]:
    """Summary: Build a test client with a bearer key for the default user.

    Importance: Ensures tests use isolated storage and no network calls.
    Alternatives: Load AppConfig from environment variables.
    """

    config = build_config(str(tmp_path / "test.db"))
    context = build_context(
        config, oauth=FakeOAuthClient(), workflows=workflows or FakeWorkflowClient()
    )
    client = TestClient(create_app(config, context=context))
    user_id = context.store.ensure_user(
        User(display_name=config.default_user_name, email=config.default_user_email)
    )
    _, token = ApiKeyService(store=context.store, token_secret=config.token_secret).create_api_key(
        user_id, label="tests"
    )
    return client, context, {"Authorization": f"Bearer {token}"}, user_id


def test_health_is_public(tmp_path: Path) -> None:
    client, _, _, _ = _client(tmp_path)
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_api_key_are_rejected(tmp_path: Path) -> None:
    client, _, _, _ = _client(tmp_path)
    assert client.get("/integrations").status_code == 401
    response = client.get("/integrations", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_execute_intent_logs_expense(tmp_path: Path) -> None:
    """Summary: A confirmed LOG expense is written with a negative amount.

    Importance: Confirms the HTTP layer wires into the router and storage.
    Alternatives: Validate only the router directly.
    """

    client, context, headers, user_id = _client(tmp_path)
    response = client.post(
        "/execute-intent",
        json={
            "intent": {
                "intentType": "log",
                "category": "expense",
                "entities": {"amount": 12, "store": "coffee"},
            }
        },
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"]["amount"] == -12
    assert context.store.list_transactions(user_id)[0].store == "coffee"


def test_execute_intent_error_codes(tmp_path: Path) -> None:
    """Summary: Domain errors map onto status codes and machine-readable codes.

    Importance: Remote clients rebuild the error class from `code`.
    Alternatives: Return 500 for every failure.
    """

    workflows = FakeWorkflowClient(
        {"generic-query": UpstreamWorkflowError("Workflow generic-query failed", status=500)}
    )
    client, _, headers, _ = _client(tmp_path, workflows)
    email = client.post(
        "/execute-intent", json={"intent": {"type": "act", "category": "email"}}, headers=headers
    )
    assert email.status_code == 400
    assert email.json()["code"] == "provider_auth"
    assert workflows.calls == []
    invalid = client.post(
        "/execute-intent", json={"intent": {"type": "log", "category": "todo"}}, headers=headers
    )
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "validation"
    upstream = client.post(
        "/execute-intent", json={"intent": {"type": "query", "title": "Hi"}}, headers=headers
    )
    assert upstream.status_code == 502
    assert upstream.json() == {
        "error": "Workflow generic-query failed",
        "code": "upstream_workflow",
        "status": 500,
    }


def test_process_voice_returns_transcript_and_intent(tmp_path: Path) -> None:
    client, _, headers, _ = _client(tmp_path)
    audio = base64.b64encode(b"What meetings do I have tomorrow?").decode("ascii")
    response = client.post("/process-voice", json={"audio": audio}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["transcript"] == "What meetings do I have tomorrow?"
    assert body["intent"]["category"] == "calendar"


def test_process_voice_rejects_bad_audio(tmp_path: Path) -> None:
    client, _, headers, _ = _client(tmp_path)
    assert client.post("/process-voice", json={"audio": "%%%"}, headers=headers).status_code == 400
    assert client.post("/process-voice", json={"audio": ""}, headers=headers).status_code == 400


def test_oauth_start_and_callback_connect_provider(tmp_path: Path) -> None:
    """Summary: Start returns a consent URL; the callback stores tokens and redirects.

    Importance: Covers the full connect flow without a real provider.
    Alternatives: Test state encoding only.
    """

    client, context, headers, user_id = _client(tmp_path)
    start = client.post(
        "/oauth/google/start", json={"redirectUrl": "voicepilot://integrations"}, headers=headers
    )
    assert start.status_code == 200
    state = parse_qs(urlparse(start.json()["url"]).query)["state"][0]
    assert decode_state(state) == (
        user_id,
        "voicepilot://integrations",
    )
    callback = client.get(
        "/oauth/google/callback",
        params={"code": "auth-code", "state": encode_state(user_id, "voicepilot://integrations")},
        follow_redirects=False,
    )
    assert callback.status_code == 302
    assert callback.headers["location"] == "voicepilot://integrations"
    assert context.store.get_integration(user_id, "google").is_active
    listing = client.get("/integrations", headers=headers).json()
    google = next(item for item in listing if item["provider"] == "google")
    assert google["connected"] is True
    assert google["accountId"] == "user@example.com"


def test_oauth_callback_failures(tmp_path: Path) -> None:
    client, context, _, user_id = _client(tmp_path)
    bad_state = client.get(
        "/oauth/slack/callback", params={"code": "x", "state": "garbage"}, follow_redirects=False
    )
    assert bad_state.status_code == 400
    failed = client.get(
        "/oauth/slack/callback",
        params={"code": "bad-code", "state": encode_state(user_id, "voicepilot://integrations")},
        follow_redirects=False,
    )
    assert failed.status_code == 302
    assert context.store.get_integration(user_id, "slack") is None


def test_disconnect_endpoint(tmp_path: Path) -> None:
    client, context, headers, user_id = _client(tmp_path)
    missing = client.post("/integrations/notion/disconnect", headers=headers)
    assert missing.status_code == 404
    context.credentials.connect(user_id, "notion", "auth-code")
    response = client.post("/integrations/notion/disconnect", headers=headers)
    assert response.json() == {"success": True}
    assert not context.store.get_integration(user_id, "notion").is_active


def test_sync_endpoint_rejects_unsupported_provider(tmp_path: Path) -> None:
    client, _, headers, _ = _client(tmp_path)
    response = client.post("/integrations/slack/sync", headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "validation"
