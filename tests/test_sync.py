"""Summary: Tests for provider mail and calendar sync.

Importance: Ensures syncs are idempotent, labelled and always return to idle.
Alternatives: Verify sync manually against live provider accounts.
"""

from __future__ import annotations

import io
import json
from datetime import datetime
from typing import Any

import pytest

from conftest import iso_in
from voicepilot.classifier import EmailLabeler
from voicepilot.errors import ProviderAuthError, UpstreamWorkflowError, ValidationError
from voicepilot.models import CalendarEvent
from voicepilot.sync import GoogleSyncSource, ProviderSyncService, SyncSource, _event


class FakeSource(SyncSource):
    email_provider = "gmail"
    event_provider = "google"
    event_color = "#4285F4"

    def __init__(self, access_token: str) -> None:
        self.access_token = access_token
        self.subject = "Invoice #42"
        self.fail_events = False

    def fetch_emails(self, limit: int) -> list[dict[str, Any]]:
        return [
            {
                "external_id": "msg-1",
                "sender": "billing@example.com",
                "subject": self.subject,
                "preview": "Your invoice is ready",
                "timestamp": "2026-01-15T10:00:00+00:00",
                "is_read": False,
            },
            {
                "external_id": "",
                "sender": "skip@example.com",
                "subject": "No id",
                "preview": "",
                "timestamp": "2026-01-15T09:00:00+00:00",
                "is_read": True,
            },
        ]

    def fetch_events(self, start: datetime, end: datetime, limit: int) -> list[CalendarEvent]:
        if self.fail_events:
            raise UpstreamWorkflowError("Google Calendar request failed (500)", status=500)
        return [
            _event(
                external_id="evt-1",
                title="Planning",
                start="2026-02-01T09:30:00Z",
                end="2026-02-01T10:00:00Z",
                is_all_day=False,
                location=None,
                provider=self.event_provider,
                color=self.event_color,
            )
        ]


def _service(store, credentials, sources) -> ProviderSyncService:
    return ProviderSyncService(
        store=store, credentials=credentials, labeler=EmailLabeler(), sources=sources
    )


def test_sync_upserts_email_and_events(store, credentials, connect, user_id) -> None:
    """Summary: A second sync updates rows instead of duplicating them.

    Importance: Users can resync freely without inbox duplicates.
    Alternatives: Clear provider data before every sync.
    """

    connect("google", expires_at=iso_in(3600))
    sources: dict[str, FakeSource] = {}

    def factory(token: str) -> FakeSource:
        sources["google"] = sources.get("google") or FakeSource(token)
        return sources["google"]

    service = _service(store, credentials, {"google": factory})
    report = service.sync(user_id, "google")
    assert report.to_payload() == {
        "success": True,
        "emails_synced": 1,
        "events_synced": 1,
        "errors": [],
    }
    assert sources["google"].access_token == "stored-access"
    sources["google"].subject = "Invoice #42 (reminder)"
    service.sync(user_id, "google")
    emails = store.list_emails(user_id)
    assert len(emails) == 1
    assert emails[0].subject == "Invoice #42 (reminder)"
    assert emails[0].label == "Invoices"
    events = store.list_events(user_id)
    assert len(events) == 1
    assert events[0].time == "09:30"
    record = store.get_integration(user_id, "google")
    assert record.sync_status == "idle"
    assert record.last_sync_at is not None


def test_partial_failure_is_recorded(store, credentials, connect, user_id) -> None:
    connect("google", expires_at=iso_in(3600))

    def factory(token: str) -> FakeSource:
        source = FakeSource(token)
        source.fail_events = True
        return source

    report = _service(store, credentials, {"google": factory}).sync(user_id, "google")
    assert report.emails_synced == 1
    assert report.events_synced == 0
    assert report.to_payload()["success"] is False
    record = store.get_integration(user_id, "google")
    assert record.sync_status == "idle"
    assert "calendar" in record.last_sync_error


def test_sync_requires_connected_provider(store, credentials, user_id) -> None:
    service = _service(store, credentials, {"google": FakeSource})
    with pytest.raises(ProviderAuthError):
        service.sync(user_id, "google")


def test_sync_rejects_unsupported_provider(store, credentials, user_id) -> None:
    service = _service(store, credentials, {"google": FakeSource})
    with pytest.raises(ValidationError):
        service.sync(user_id, "notion")


def test_all_day_events_have_no_clock() -> None:
    event = _event("evt-2", None, "2026-02-01", "2026-02-02", True, "", "outlook", "#0078D4")
    assert event.title == "Untitled"
    assert event.time is None
    assert event.location is None
    assert event.date == "2026-02-01"


class _Response(io.BytesIO):
    def __enter__(self) -> "_Response":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()


def test_non_json_mail_response_keeps_calendar_half(
    store, credentials, connect, user_id, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Summary: A provider returning HTML for mail still lets events sync.

    Importance: Malformed provider bodies surface as upstream errors, not crashes.
    Alternatives: Abort the whole sync on any unexpected body.
    """

    connect("google", expires_at=iso_in(3600))
    calendar = {
        "items": [
            {
                "id": "evt-9",
                "summary": "Standup",
                "start": {"dateTime": "2026-02-01T09:00:00Z"},
                "end": {"dateTime": "2026-02-01T09:15:00Z"},
            }
        ]
    }

    def fake_urlopen(request, timeout=None) -> _Response:
        if "gmail" in request.full_url:
            return _Response(b"<html>Service temporarily unavailable</html>")
        return _Response(json.dumps(calendar).encode("utf-8"))

    monkeypatch.setattr("voicepilot.sync.urllib.request.urlopen", fake_urlopen)
    service = _service(store, credentials, {"google": GoogleSyncSource})
    report = service.sync(user_id, "google")
    assert report.emails_synced == 0
    assert report.events_synced == 1
    assert report.errors == ["email: Gmail returned a non-JSON response"]
    record = store.get_integration(user_id, "google")
    assert record.sync_status == "idle"
    assert "non-JSON" in record.last_sync_error
