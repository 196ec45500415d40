"""Summary: Domain model dataclasses for VoicePilot.

Importance: Defines the core entities shared across the router, sync jobs and storage.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IntentType(str, Enum):
    """Summary: The three disjoint behaviours an utterance can map to."""

    LOG = "log"
    QUERY = "query"
    ACT = "act"


class ExecutionStatus(str, Enum):
    """Summary: Execution outcome recorded on a voice session.

    Importance: Only PENDING is non-terminal; every other value is written once.
    Alternatives: Track outcome with nullable success/error columns.
    """

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class SessionState(str, Enum):
    """Summary: States of the recording session controller."""

    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    REVIEW = "review"
    QUERY_RESULT = "query_result"
    ACT_RESULT = "act_result"
    ERROR = "error"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass(frozen=True)
class User:
    """Summary: Represents an account owner.

    Importance: Every session, credential and record is scoped to a user.
    Alternatives: Delegate identity entirely to an external auth service.
    """

    display_name: str
    email: str


@dataclass(frozen=True)
class Transaction:
    """Summary: A finance entry written by LOG expense/income and ACT transaction.

    Importance: Carries the sign-normalized amount into storage.
    Alternatives: Store the raw classifier amount and normalize on read.
    """

    date: str
    store: str
    amount: float
    category: str
    status: str = "Pending"
    summary: str | None = None


@dataclass(frozen=True)
class Contact:
    """Summary: A person saved from a LOG or ACT contact intent."""

    name: str
    role: str | None = None
    company: str | None = None
    phone: str | None = None
    email: str | None = None
    where_met: str | None = None
    why: str | None = None
    when_met: str | None = None
    status: str = "New Connection"


@dataclass(frozen=True)
class CalendarEvent:
    """Summary: A calendar entry, either logged by voice or synced from a provider.

    Importance: Shares one table between local writes and idempotent sync upserts.
    Alternatives: Keep synced events in a separate table.
    """

    title: str
    date: str
    time: str | None = None
    duration: str | None = None
    location: str | None = None
    category: str = "Personal"
    color: str = "#34A853"
    is_all_day: bool = False
    external_id: str | None = None
    provider: str | None = None


@dataclass(frozen=True)
class Todo:
    """Summary: A to-do item created by an ACT todo intent."""

    text: str
    workspace_id: int | None = None
    due_date: str | None = None
    priority: str = "medium"
    completed: bool = False


@dataclass(frozen=True)
class Workspace:
    """Summary: A project workspace created by an ACT workspace intent."""

    title: str
    type: str = "Personal"
    color: str = "#6B8E4E"


@dataclass(frozen=True)
class Draft:
    """Summary: An unsent message saved by an ACT draft intent."""

    title: str
    detail: str
    target_account: str | None = None
    type: str = "email"
    status: str = "pending"


@dataclass(frozen=True)
class SyncedEmail:
    """Summary: An inbox message pulled from a provider during sync.

    Importance: Keyed by (user, provider, external_id) so re-syncs update in place.
    Alternatives: Append every sync result and deduplicate on read.
    """

    external_id: str
    provider: str
    sender: str
    subject: str
    preview: str
    timestamp: str
    is_read: bool = True
    label: str = "Uncategorized"
    provider_account_email: str | None = None
