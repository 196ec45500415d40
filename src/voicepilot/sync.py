"""Summary: Provider mail and calendar sync jobs.

Importance: Pulls recent email and upcoming events into local tables with idempotent upserts.
Alternatives: Query provider APIs live on every screen load.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable

from voicepilot.classifier import EmailLabeler
from voicepilot.credentials import CredentialManager
from voicepilot.errors import ProviderAuthError, UpstreamWorkflowError, ValidationError, VoicePilotError
from voicepilot.models import CalendarEvent, SyncedEmail, SyncStatus
from voicepilot.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

EMAIL_LIMIT = 20
EVENT_LIMIT = 50
EVENT_WINDOW_DAYS = 30


class SyncSource(ABC):
    """Summary: Read-only view of one provider's mailbox and calendar."""

    email_provider: str
    event_provider: str
    event_color: str

    @abstractmethod
    def fetch_emails(self, limit: int) -> list[dict[str, Any]]:
        """Summary: Return recent messages as dicts with external_id, sender, subject, preview, timestamp, is_read."""

    @abstractmethod
    def fetch_events(self, start: datetime, end: datetime, limit: int) -> list[CalendarEvent]:
        """Summary: Return events starting inside the window."""


class GoogleSyncSource(SyncSource):
    """Summary: Gmail and Google Calendar reader using OAuth tokens.

    Importance: Fetches message metadata only, which is all the inbox list needs.
    Alternatives: Use the Google API client library.
    """

    email_provider = "gmail"
    event_provider = "google"
    event_color = "#4285F4"

    def __init__(self, access_token: str) -> None:
        self._access_token = access_token

    def fetch_emails(self, limit: int) -> list[dict[str, Any]]:
        base = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
        listing = _api_get(f"{base}?maxResults={limit}", self._access_token, "Gmail")
        emails: list[dict[str, Any]] = []
        for item in listing.get("messages", []):
            message_id = item.get("id")
            if not message_id:
                continue
            detail = _api_get(
                f"{base}/{message_id}?format=metadata&metadataHeaders=From"
                "&metadataHeaders=Subject&metadataHeaders=Date",
                self._access_token,
                "Gmail",
            )
            headers = {
                header.get("name", "").lower(): header.get("value", "")
                for header in (detail.get("payload") or {}).get("headers", [])
            }
            emails.append(
                {
                    "external_id": message_id,
                    "sender": headers.get("from", ""),
                    "subject": headers.get("subject", ""),
                    "preview": detail.get("snippet", ""),
                    "timestamp": _parse_mail_date(headers.get("date")),
                    "is_read": "UNREAD" not in (detail.get("labelIds") or []),
                }
            )
        return emails

    def fetch_events(self, start: datetime, end: datetime, limit: int) -> list[CalendarEvent]:
        query = urllib.parse.urlencode(
            {
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "maxResults": limit,
                "singleEvents": "true",
                "orderBy": "startTime",
            }
        )
        payload = _api_get(
            f"https://www.googleapis.com/calendar/v3/calendars/primary/events?{query}",
            self._access_token,
            "Google Calendar",
        )
        events: list[CalendarEvent] = []
        for item in payload.get("items", []):
            start_info = item.get("start") or {}
            end_info = item.get("end") or {}
            is_all_day = not start_info.get("dateTime")
            events.append(
                _event(
                    external_id=item.get("id", ""),
                    title=item.get("summary"),
                    start=start_info.get("dateTime") or start_info.get("date") or "",
                    end=end_info.get("dateTime") or end_info.get("date") or "",
                    is_all_day=is_all_day,
                    location=item.get("location"),
                    provider=self.event_provider,
                    color=self.event_color,
                )
            )
        return events


class MicrosoftSyncSource(SyncSource):
    """Summary: Outlook mail and calendar reader using Microsoft Graph.

    Importance: Mirrors the Google source so one sync job serves both providers.
    Alternatives: Use the msgraph SDK.
    """

    email_provider = "outlook"
    event_provider = "outlook"
    event_color = "#0078D4"

    def __init__(self, access_token: str) -> None:
        self._access_token = access_token

    def fetch_emails(self, limit: int) -> list[dict[str, Any]]:
        query = urllib.parse.urlencode(
            {
                "$top": limit,
                "$orderby": "receivedDateTime desc",
                "$select": "id,from,subject,bodyPreview,receivedDateTime,isRead",
            }
        )
        payload = _api_get(
            f"https://graph.microsoft.com/v1.0/me/messages?{query}",
            self._access_token,
            "Microsoft Graph",
        )
        emails: list[dict[str, Any]] = []
        for item in payload.get("value", []):
            sender = ((item.get("from") or {}).get("emailAddress") or {})
            emails.append(
                {
                    "external_id": item.get("id", ""),
                    "sender": sender.get("name") or sender.get("address", ""),
                    "subject": item.get("subject") or "",
                    "preview": item.get("bodyPreview") or "",
                    "timestamp": item.get("receivedDateTime") or _now(),
                    "is_read": bool(item.get("isRead", True)),
                }
            )
        return emails

    def fetch_events(self, start: datetime, end: datetime, limit: int) -> list[CalendarEvent]:
        query = urllib.parse.urlencode(
            {
                "startDateTime": start.isoformat(),
                "endDateTime": end.isoformat(),
                "$top": limit,
                "$orderby": "start/dateTime",
                "$select": "id,subject,start,end,location,isAllDay",
            }
        )
        payload = _api_get(
            f"https://graph.microsoft.com/v1.0/me/calendarview?{query}",
            self._access_token,
            "Microsoft Graph",
        )
        events: list[CalendarEvent] = []
        for item in payload.get("value", []):
            location = item.get("location")
            if isinstance(location, dict):
                location = location.get("displayName") or None
            events.append(
                _event(
                    external_id=item.get("id", ""),
                    title=item.get("subject"),
                    start=(item.get("start") or {}).get("dateTime", ""),
                    end=(item.get("end") or {}).get("dateTime", ""),
                    is_all_day=bool(item.get("isAllDay")),
                    location=location,
                    provider=self.event_provider,
                    color=self.event_color,
                )
            )
        return events


SOURCES: dict[str, Callable[[str], SyncSource]] = {
    "google": GoogleSyncSource,
    "microsoft": MicrosoftSyncSource,
}


@dataclass(frozen=True)
class SyncReport:
    provider: str
    emails_synced: int
    events_synced: int
    errors: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": not self.errors,
            "emails_synced": self.emails_synced,
            "events_synced": self.events_synced,
            "errors": list(self.errors),
        }


@dataclass
class ProviderSyncService:
    """Summary: Runs mail and calendar sync for one (user, provider).

    Importance: Marks the credential as syncing, upserts by provider id and always returns it to idle.
    Alternatives: Schedule sync in an external job runner.
    """

    store: SqliteStore
    credentials: CredentialManager
    labeler: EmailLabeler
    sources: dict[str, Callable[[str], SyncSource]] = field(default_factory=lambda: dict(SOURCES))

    def sync(self, user_id: int, provider: str) -> SyncReport:
        """Summary: Sync recent email and the next 30 days of events.

        Importance: A failure in one half is recorded and does not block the other.
        Alternatives: Abort the whole sync on the first failure.
        """

        factory = self.sources.get(provider)
        if factory is None:
            raise ValidationError(f"Sync is not supported for {provider}")
        token = self.credentials.get_access_token(user_id, provider)
        if not token:
            raise ProviderAuthError(f"{provider} is not connected. Connect {provider} first.")
        record = self.store.get_integration(user_id, provider)
        account_email = record.provider_account_id if record else None
        source = factory(token)
        self.store.set_sync_status(user_id, provider, SyncStatus.SYNCING)
        logger.info("Syncing %s for user %s.", provider, user_id)
        errors: list[str] = []
        emails_synced = 0
        events_synced = 0
        try:
            try:
                raw_emails = source.fetch_emails(EMAIL_LIMIT)
                labels = self.labeler.label(raw_emails)
                emails = [
                    SyncedEmail(
                        external_id=raw["external_id"],
                        provider=source.email_provider,
                        sender=raw["sender"],
                        subject=raw["subject"],
                        preview=raw["preview"],
                        timestamp=raw["timestamp"],
                        is_read=raw["is_read"],
                        label=label,
                        provider_account_email=account_email,
                    )
                    for raw, label in zip(raw_emails, labels)
                    if raw.get("external_id")
                ]
                emails_synced = self.store.upsert_emails(user_id, emails)
            except VoicePilotError as exc:
                logger.warning("Email sync for %s failed: %s", provider, exc)
                errors.append(f"email: {exc}")
            try:
                start = datetime.now(timezone.utc)
                events = source.fetch_events(
                    start, start + timedelta(days=EVENT_WINDOW_DAYS), EVENT_LIMIT
                )
                events_synced = self.store.upsert_events(
                    user_id, source.event_provider, [event for event in events if event.external_id]
                )
            except VoicePilotError as exc:
                logger.warning("Calendar sync for %s failed: %s", provider, exc)
                errors.append(f"calendar: {exc}")
        finally:
            self.store.set_sync_status(
                user_id,
                provider,
                SyncStatus.IDLE,
                error="; ".join(errors) or None,
                finished=True,
            )
        logger.info(
            "Synced %s emails and %s events from %s.", emails_synced, events_synced, provider
        )
        return SyncReport(
            provider=provider,
            emails_synced=emails_synced,
            events_synced=events_synced,
            errors=errors,
        )


def _event(
    external_id: str,
    title: str | None,
    start: str,
    end: str,
    is_all_day: bool,
    location: str | None,
    provider: str,
    color: str,
) -> CalendarEvent:
    return CalendarEvent(
        title=title or "Untitled",
        date=start.split("T")[0],
        time=None if is_all_day else _clock(start),
        duration=None if is_all_day else _clock(end),
        location=location or None,
        category="Work",
        color=color,
        is_all_day=is_all_day,
        external_id=external_id,
        provider=provider,
    )


def _clock(value: str) -> str | None:
    if "T" not in value:
        return None
    return value.split("T")[1][:5] or None


def _parse_mail_date(value: str | None) -> str:
    if not value:
        return _now()
    try:
        return parsedate_to_datetime(value).astimezone(timezone.utc).isoformat()
    except (TypeError, ValueError):
        return _now()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _api_get(url: str, access_token: str, service: str) -> dict[str, Any]:
    """Summary: Fetch JSON from a provider API with a bearer token.

    Importance: Encapsulates provider calls without new dependencies.
    Alternatives: Use a third-party HTTP client or SDK.
    """

    request = urllib.request.Request(
        url, headers={"Authorization": f"Bearer {access_token}"}, method="GET"
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        raise UpstreamWorkflowError(
            f"{service} request failed ({exc.code}): {error_body or exc.reason}", status=exc.code
        ) from exc
    except urllib.error.URLError as exc:
        raise UpstreamWorkflowError(f"{service} request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise UpstreamWorkflowError(f"{service} request timed out") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UpstreamWorkflowError(f"{service} returned a non-JSON response") from exc
    if not isinstance(payload, dict):
        raise UpstreamWorkflowError(f"{service} returned an unexpected response")
    return payload
