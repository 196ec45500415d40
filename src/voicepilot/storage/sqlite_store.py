"""Summary: SQLite storage implementation for VoicePilot.

Importance: Persists voice sessions, provider credentials and the records the router writes.
Alternatives: Use an ORM or a hosted Postgres database.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from voicepilot.errors import PersistenceError
from voicepilot.models import (
    CalendarEvent,
    Contact,
    Draft,
    ExecutionStatus,
    SyncedEmail,
    SyncStatus,
    Todo,
    Transaction,
    User,
    Workspace,
)


@dataclass(frozen=True)
class StoredUser:
    """Summary: User record with database identifier."""

    id: int
    display_name: str
    email: str


@dataclass(frozen=True)
class StoredApiKey:
    """Summary: API key metadata without the token hash.

    Importance: Lets users list and revoke keys without exposing secrets.
    Alternatives: Return the hashes and trust callers not to leak them.
    """

    id: int
    user_id: int
    label: str | None
    created_at: str


@dataclass(frozen=True)
class StoredSession:
    """Summary: Voice session record.

    Importance: Tracks one recording attempt from classification to its terminal outcome.
    Alternatives: Keep session outcomes only in client memory.
    """

    id: int
    user_id: int
    transcript: str
    audio_ref: str | None
    intent_type: str | None
    category: str | None
    confidence: float | None
    parsed_data: dict[str, Any]
    execution_status: str
    execution_result: dict[str, Any] | None
    executed_at: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class StoredCredential:
    """Summary: Provider credential row with tokens still encoded.

    Importance: Decoding stays in the credential manager so raw rows never carry plaintext.
    Alternatives: Decode inside the store.
    """

    id: int
    user_id: int
    provider: str
    access_token: str | None
    refresh_token: str | None
    token_expires_at: str | None
    provider_account_id: str | None
    scopes: dict[str, Any]
    connected_at: str | None
    disconnected_at: str | None
    sync_status: str
    last_sync_at: str | None
    last_sync_error: str | None

    @property
    def is_active(self) -> bool:
        return self.disconnected_at is None and self.access_token is not None


@dataclass(frozen=True)
class StoredTransaction:
    id: int
    user_id: int
    date: str
    store: str
    amount: float
    category: str
    status: str
    summary: str | None


@dataclass(frozen=True)
class StoredEvent:
    id: int
    user_id: int
    title: str
    date: str
    time: str | None
    location: str | None
    category: str
    color: str
    provider: str | None
    external_id: str | None


@dataclass(frozen=True)
class StoredEmail:
    id: int
    user_id: int
    provider: str
    external_id: str
    sender: str
    subject: str
    preview: str
    timestamp: str
    is_read: bool
    label: str


class SqliteStore:
    """Summary: SQLite-backed storage for VoicePilot.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first session or sync.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS api_keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    label TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS voice_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    transcript TEXT NOT NULL,
                    audio_ref TEXT,
                    intent_type TEXT,
                    category TEXT,
                    confidence REAL,
                    parsed_data TEXT,
                    execution_status TEXT NOT NULL DEFAULT 'pending',
                    execution_result TEXT,
                    executed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_integrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    provider TEXT NOT NULL,
                    access_token TEXT,
                    refresh_token TEXT,
                    token_expires_at TEXT,
                    provider_account_id TEXT,
                    scopes TEXT,
                    connected_at TEXT,
                    disconnected_at TEXT,
                    sync_status TEXT NOT NULL DEFAULT 'idle',
                    last_sync_at TEXT,
                    last_sync_error TEXT,
                    UNIQUE(user_id, provider)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    store TEXT NOT NULL,
                    amount REAL NOT NULL,
                    category TEXT NOT NULL,
                    status TEXT NOT NULL,
                    summary TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS contacts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    role TEXT,
                    company TEXT,
                    phone TEXT,
                    email TEXT,
                    where_met TEXT,
                    why TEXT,
                    when_met TEXT,
                    status TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS calendar_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    date TEXT NOT NULL,
                    time TEXT,
                    duration TEXT,
                    location TEXT,
                    category TEXT NOT NULL,
                    color TEXT NOT NULL,
                    is_all_day INTEGER NOT NULL DEFAULT 0,
                    provider TEXT,
                    external_id TEXT,
                    UNIQUE(user_id, provider, external_id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS workspaces (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    type TEXT NOT NULL,
                    color TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS project_todos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    workspace_id INTEGER,
                    text TEXT NOT NULL,
                    due_date TEXT,
                    priority TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS drafts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    detail TEXT NOT NULL,
                    target_account TEXT,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS emails (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    provider TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    sender TEXT,
                    subject TEXT,
                    preview TEXT,
                    timestamp TEXT,
                    is_read INTEGER NOT NULL DEFAULT 1,
                    label TEXT NOT NULL,
                    provider_account_email TEXT,
                    UNIQUE(user_id, provider, external_id)
                )
                """
            )
            connection.commit()

    def ensure_user(self, user: User) -> int:
        """Summary: Ensure a user exists and return their ID.

        Importance: Provides a stable user record for data ownership.
        Alternatives: Omit user records in single-user mode.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO users (display_name, email) VALUES (?, ?)",
                (user.display_name, user.email),
            )
            if cursor.rowcount:
                user_id = cursor.lastrowid
            else:
                cursor.execute("SELECT id FROM users WHERE email = ?", (user.email,))
                row = cursor.fetchone()
                user_id = int(row[0]) if row else 0
            connection.commit()
        return int(user_id)

    def list_users(self) -> list[StoredUser]:
        with self._connection() as connection:
            rows = connection.execute(
                "SELECT id, display_name, email FROM users ORDER BY id"
            ).fetchall()
        return [StoredUser(id=row[0], display_name=row[1], email=row[2]) for row in rows]

    def get_user_by_email(self, email: str) -> StoredUser | None:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT id, display_name, email FROM users WHERE email = ?", (email,)
            ).fetchone()
        if not row:
            return None
        return StoredUser(id=row[0], display_name=row[1], email=row[2])

    def create_api_key(
        self, user_id: int, token_hash: str, label: str | None, created_at: str
    ) -> int:
        """Summary: Store a hashed API key for a user.

        Importance: Enables bearer authentication without persisting raw tokens.
        Alternatives: Store keys in an external secrets manager.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "INSERT INTO api_keys (user_id, token_hash, label, created_at) VALUES (?, ?, ?, ?)",
                (user_id, token_hash, label, created_at),
            )
            key_id = cursor.lastrowid
            connection.commit()
        return int(key_id)

    def list_api_keys(self, user_id: int) -> list[StoredApiKey]:
        with self._connection() as connection:
            rows = connection.execute(
                "SELECT id, user_id, label, created_at FROM api_keys WHERE user_id = ? ORDER BY id",
                (user_id,),
            ).fetchall()
        return [
            StoredApiKey(id=row[0], user_id=row[1], label=row[2], created_at=row[3])
            for row in rows
        ]

    def delete_api_key(self, user_id: int, key_id: int) -> bool:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "DELETE FROM api_keys WHERE id = ? AND user_id = ?", (key_id, user_id)
            )
            deleted = cursor.rowcount > 0
            connection.commit()
        return deleted

    def get_user_id_by_api_key(self, token_hash: str) -> int | None:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT user_id FROM api_keys WHERE token_hash = ?", (token_hash,)
            ).fetchone()
        return int(row[0]) if row else None

    def create_session(
        self,
        user_id: int,
        transcript: str,
        audio_ref: str | None,
        parsed_data: dict[str, Any],
    ) -> int:
        """Summary: Insert a pending voice session after classification succeeds.

        Importance: Gives the controller a durable record to close out exactly once.
        Alternatives: Create the row at recording start and fill it in later.
        """

        now = _now()
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO voice_sessions (
                    user_id, transcript, audio_ref, intent_type, category, confidence,
                    parsed_data, execution_status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    transcript,
                    audio_ref,
                    parsed_data.get("type") or parsed_data.get("intentType"),
                    parsed_data.get("category"),
                    parsed_data.get("confidence"),
                    json.dumps(parsed_data),
                    ExecutionStatus.PENDING.value,
                    now,
                    now,
                ),
            )
            session_id = cursor.lastrowid
            connection.commit()
        return int(session_id)

    def update_session_intent(self, session_id: int, parsed_data: dict[str, Any]) -> None:
        """Summary: Replace the stored intent with the user-edited version before execution."""

        with self._connection() as connection:
            connection.execute(
                """
                UPDATE voice_sessions
                SET parsed_data = ?, intent_type = ?, category = ?, updated_at = ?
                WHERE id = ? AND execution_status = 'pending'
                """,
                (
                    json.dumps(parsed_data),
                    parsed_data.get("type") or parsed_data.get("intentType"),
                    parsed_data.get("category"),
                    _now(),
                    session_id,
                ),
            )
            connection.commit()

    def finish_session(
        self,
        session_id: int,
        status: ExecutionStatus,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Summary: Move a pending session to a terminal status.

        Importance: The update only matches pending rows, so a session is closed at most once.
        Alternatives: Read the status first and update in application code.
        """

        if status is ExecutionStatus.PENDING:
            raise ValueError("Terminal status required")
        now = _now()
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE voice_sessions
                SET execution_status = ?, execution_result = ?, executed_at = ?, updated_at = ?
                WHERE id = ? AND execution_status = 'pending'
                """,
                (
                    status.value,
                    json.dumps(result) if result is not None else None,
                    now,
                    now,
                    session_id,
                ),
            )
            updated = cursor.rowcount == 1
            connection.commit()
        return updated

    def get_session(self, session_id: int) -> StoredSession | None:
        with self._connection() as connection:
            row = connection.execute(
                f"SELECT {_SESSION_COLUMNS} FROM voice_sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return _session_from_row(row) if row else None

    def list_sessions(self, user_id: int, limit: int = 20) -> list[StoredSession]:
        with self._connection() as connection:
            rows = connection.execute(
                f"""
                SELECT {_SESSION_COLUMNS} FROM voice_sessions
                WHERE user_id = ? ORDER BY id DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [_session_from_row(row) for row in rows]

    def get_integration(self, user_id: int, provider: str) -> StoredCredential | None:
        """Summary: Load the credential row for (user, provider), active or not.

        Importance: Callers decide whether a disconnected row counts.
        Alternatives: Filter disconnected rows in SQL and lose their sync history.
        """

        with self._connection() as connection:
            row = connection.execute(
                f"SELECT {_CREDENTIAL_COLUMNS} FROM user_integrations WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            ).fetchone()
        return _credential_from_row(row) if row else None

    def list_integrations(self, user_id: int) -> list[StoredCredential]:
        with self._connection() as connection:
            rows = connection.execute(
                f"SELECT {_CREDENTIAL_COLUMNS} FROM user_integrations WHERE user_id = ? ORDER BY provider",
                (user_id,),
            ).fetchall()
        return [_credential_from_row(row) for row in rows]

    def upsert_integration(
        self,
        user_id: int,
        provider: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
        account_id: str | None,
        scopes: dict[str, Any] | None = None,
    ) -> int:
        """Summary: Insert or update the credential after a successful connect.

        Importance: Clears disconnected_at and keeps an existing refresh token when none is supplied.
        Alternatives: Delete and reinsert the row on every connect.
        """

        now = _now()
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO user_integrations (
                    user_id, provider, access_token, refresh_token, token_expires_at,
                    provider_account_id, scopes, connected_at, disconnected_at, sync_status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, 'idle')
                ON CONFLICT(user_id, provider)
                DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = COALESCE(excluded.refresh_token, user_integrations.refresh_token),
                    token_expires_at = excluded.token_expires_at,
                    provider_account_id = COALESCE(
                        excluded.provider_account_id, user_integrations.provider_account_id
                    ),
                    scopes = excluded.scopes,
                    connected_at = excluded.connected_at,
                    disconnected_at = NULL
                """,
                (
                    user_id,
                    provider,
                    access_token,
                    refresh_token,
                    expires_at,
                    account_id,
                    json.dumps(scopes or {}),
                    now,
                ),
            )
            connection.commit()
            row = connection.execute(
                "SELECT id FROM user_integrations WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            ).fetchone()
        return int(row[0])

    def update_integration_tokens(
        self,
        user_id: int,
        provider: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
    ) -> None:
        """Summary: Persist the result of a refresh exchange.

        Importance: Rotated refresh tokens replace the old one; a missing one keeps it.
        Alternatives: Rewrite the full row through upsert_integration.
        """

        with self._connection() as connection:
            connection.execute(
                """
                UPDATE user_integrations
                SET access_token = ?,
                    refresh_token = COALESCE(?, refresh_token),
                    token_expires_at = ?
                WHERE user_id = ? AND provider = ? AND disconnected_at IS NULL
                """,
                (access_token, refresh_token, expires_at, user_id, provider),
            )
            connection.commit()

    def disconnect_integration(self, user_id: int, provider: str) -> bool:
        """Summary: Clear tokens and stamp disconnected_at, keeping the row.

        Importance: Disconnected credentials can never be used again but history survives.
        Alternatives: Delete the row outright.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                UPDATE user_integrations
                SET access_token = NULL,
                    refresh_token = NULL,
                    token_expires_at = NULL,
                    disconnected_at = ?,
                    sync_status = 'idle'
                WHERE user_id = ? AND provider = ?
                """,
                (_now(), user_id, provider),
            )
            updated = cursor.rowcount > 0
            connection.commit()
        return updated

    def set_sync_status(
        self,
        user_id: int,
        provider: str,
        status: SyncStatus,
        error: str | None = None,
        finished: bool = False,
    ) -> None:
        """Summary: Record sync progress on the credential row.

        Importance: Lets the integrations view show syncing state and the last error.
        Alternatives: Track sync state in a separate jobs table.
        """

        with self._connection() as connection:
            if finished:
                connection.execute(
                    """
                    UPDATE user_integrations
                    SET sync_status = ?, last_sync_error = ?, last_sync_at = ?
                    WHERE user_id = ? AND provider = ?
                    """,
                    (status.value, error, _now(), user_id, provider),
                )
            else:
                connection.execute(
                    """
                    UPDATE user_integrations SET sync_status = ?, last_sync_error = ?
                    WHERE user_id = ? AND provider = ?
                    """,
                    (status.value, error, user_id, provider),
                )
            connection.commit()

    def add_transaction(self, user_id: int, transaction: Transaction) -> int:
        """Summary: Insert a finance transaction in one statement."""

        return self._insert(
            "transactions",
            {
                "user_id": user_id,
                "date": transaction.date,
                "store": transaction.store,
                "amount": transaction.amount,
                "category": transaction.category,
                "status": transaction.status,
                "summary": transaction.summary,
            },
        )

    def list_transactions(self, user_id: int) -> list[StoredTransaction]:
        with self._connection() as connection:
            rows = connection.execute(
                """
                SELECT id, user_id, date, store, amount, category, status, summary
                FROM transactions WHERE user_id = ? ORDER BY id
                """,
                (user_id,),
            ).fetchall()
        return [StoredTransaction(*row) for row in rows]

    def add_contact(self, user_id: int, contact: Contact) -> int:
        return self._insert(
            "contacts",
            {
                "user_id": user_id,
                "name": contact.name,
                "role": contact.role,
                "company": contact.company,
                "phone": contact.phone,
                "email": contact.email,
                "where_met": contact.where_met,
                "why": contact.why,
                "when_met": contact.when_met,
                "status": contact.status,
            },
        )

    def list_contacts(self, user_id: int) -> list[dict[str, Any]]:
        return self._select_all("contacts", user_id)

    def add_event(self, user_id: int, event: CalendarEvent) -> int:
        return self._insert("calendar_events", _event_values(user_id, event))

    def upsert_events(self, user_id: int, provider: str, events: list[CalendarEvent]) -> int:
        """Summary: Upsert synced calendar events keyed by provider event id.

        Importance: Re-syncing the same remote event updates the row instead of duplicating it.
        Alternatives: Delete all provider events before each sync.
        """

        with self._connection() as connection:
            for event in events:
                values = _event_values(user_id, event)
                values["provider"] = provider
                columns = ", ".join(values)
                placeholders = ", ".join("?" for _ in values)
                updates = ", ".join(
                    f"{column} = excluded.{column}"
                    for column in values
                    if column not in {"user_id", "provider", "external_id"}
                )
                connection.execute(
                    f"""
                    INSERT INTO calendar_events ({columns}) VALUES ({placeholders})
                    ON CONFLICT(user_id, provider, external_id) DO UPDATE SET {updates}
                    """,
                    tuple(values.values()),
                )
            connection.commit()
        return len(events)

    def list_events(self, user_id: int) -> list[StoredEvent]:
        with self._connection() as connection:
            rows = connection.execute(
                """
                SELECT id, user_id, title, date, time, location, category, color, provider, external_id
                FROM calendar_events WHERE user_id = ? ORDER BY date, time, id
                """,
                (user_id,),
            ).fetchall()
        return [StoredEvent(*row) for row in rows]

    def add_workspace(self, user_id: int, workspace: Workspace) -> int:
        return self._insert(
            "workspaces",
            {
                "user_id": user_id,
                "title": workspace.title,
                "type": workspace.type,
                "color": workspace.color,
            },
        )

    def first_workspace_id(self, user_id: int) -> int | None:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT id FROM workspaces WHERE user_id = ? ORDER BY id LIMIT 1", (user_id,)
            ).fetchone()
        return int(row[0]) if row else None

    def list_workspaces(self, user_id: int) -> list[dict[str, Any]]:
        return self._select_all("workspaces", user_id)

    def add_todo(self, user_id: int, todo: Todo) -> int:
        return self._insert(
            "project_todos",
            {
                "user_id": user_id,
                "workspace_id": todo.workspace_id,
                "text": todo.text,
                "due_date": todo.due_date,
                "priority": todo.priority,
                "completed": int(todo.completed),
            },
        )

    def list_todos(self, user_id: int) -> list[dict[str, Any]]:
        return self._select_all("project_todos", user_id)

    def add_draft(self, user_id: int, draft: Draft) -> int:
        return self._insert(
            "drafts",
            {
                "user_id": user_id,
                "title": draft.title,
                "detail": draft.detail,
                "target_account": draft.target_account,
                "type": draft.type,
                "status": draft.status,
            },
        )

    def list_drafts(self, user_id: int) -> list[dict[str, Any]]:
        return self._select_all("drafts", user_id)

    def upsert_emails(self, user_id: int, emails: list[SyncedEmail]) -> int:
        """Summary: Upsert synced inbox messages keyed by (user, provider, external id).

        Importance: The second write of the same message wins and no duplicate row is created.
        Alternatives: Insert-or-ignore and keep stale read flags.
        """

        with self._connection() as connection:
            for email in emails:
                connection.execute(
                    """
                    INSERT INTO emails (
                        user_id, provider, external_id, sender, subject, preview, timestamp,
                        is_read, label, provider_account_email
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, provider, external_id)
                    DO UPDATE SET
                        sender = excluded.sender,
                        subject = excluded.subject,
                        preview = excluded.preview,
                        timestamp = excluded.timestamp,
                        is_read = excluded.is_read,
                        label = excluded.label,
                        provider_account_email = excluded.provider_account_email
                    """,
                    (
                        user_id,
                        email.provider,
                        email.external_id,
                        email.sender,
                        email.subject,
                        email.preview,
                        email.timestamp,
                        int(email.is_read),
                        email.label,
                        email.provider_account_email,
                    ),
                )
            connection.commit()
        return len(emails)

    def list_emails(self, user_id: int, provider: str | None = None) -> list[StoredEmail]:
        query = """
            SELECT id, user_id, provider, external_id, sender, subject, preview, timestamp,
                   is_read, label
            FROM emails WHERE user_id = ?
        """
        params: list[Any] = [user_id]
        if provider:
            query += " AND provider = ?"
            params.append(provider)
        query += " ORDER BY timestamp DESC, id DESC"
        with self._connection() as connection:
            rows = connection.execute(query, params).fetchall()
        return [
            StoredEmail(
                id=row[0],
                user_id=row[1],
                provider=row[2],
                external_id=row[3],
                sender=row[4],
                subject=row[5],
                preview=row[6],
                timestamp=row[7],
                is_read=bool(row[8]),
                label=row[9],
            )
            for row in rows
        ]

    def _insert(self, table: str, values: dict[str, Any]) -> int:
        """Summary: Run a single-row INSERT and return the new id.

        Importance: Direct writes are one statement, so they either land fully or not at all.
        Alternatives: Hand-write an INSERT per record type.
        """

        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            row_id = cursor.lastrowid
            connection.commit()
        return int(row_id)

    def _select_all(self, table: str, user_id: int) -> list[dict[str, Any]]:
        with self._connection() as connection:
            cursor = connection.execute(
                f"SELECT * FROM {table} WHERE user_id = ? ORDER BY id", (user_id,)
            )
            names = [column[0] for column in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Closes connections cleanly and reports driver failures as PersistenceError.
        Alternatives: Keep a single long-lived connection.
        """

        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not open database: {exc}") from exc
        try:
            yield connection
        except sqlite3.Error as exc:
            connection.rollback()
            raise PersistenceError(f"Database write failed: {exc}") from exc
        finally:
            connection.close()


_SESSION_COLUMNS = (
    "id, user_id, transcript, audio_ref, intent_type, category, confidence, parsed_data, "
    "execution_status, execution_result, executed_at, created_at, updated_at"
)
_CREDENTIAL_COLUMNS = (
    "id, user_id, provider, access_token, refresh_token, token_expires_at, provider_account_id, "
    "scopes, connected_at, disconnected_at, sync_status, last_sync_at, last_sync_error"
)


def _session_from_row(row: tuple) -> StoredSession:
    return StoredSession(
        id=row[0],
        user_id=row[1],
        transcript=row[2],
        audio_ref=row[3],
        intent_type=row[4],
        category=row[5],
        confidence=row[6],
        parsed_data=json.loads(row[7]) if row[7] else {},
        execution_status=row[8],
        execution_result=json.loads(row[9]) if row[9] else None,
        executed_at=row[10],
        created_at=row[11],
        updated_at=row[12],
    )


def _credential_from_row(row: tuple) -> StoredCredential:
    return StoredCredential(
        id=row[0],
        user_id=row[1],
        provider=row[2],
        access_token=row[3],
        refresh_token=row[4],
        token_expires_at=row[5],
        provider_account_id=row[6],
        scopes=json.loads(row[7]) if row[7] else {},
        connected_at=row[8],
        disconnected_at=row[9],
        sync_status=row[10],
        last_sync_at=row[11],
        last_sync_error=row[12],
    )


def _event_values(user_id: int, event: CalendarEvent) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "title": event.title,
        "date": event.date,
        "time": event.time,
        "duration": event.duration,
        "location": event.location,
        "category": event.category,
        "color": event.color,
        "is_all_day": int(event.is_all_day),
        "provider": event.provider,
        "external_id": event.external_id,
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

