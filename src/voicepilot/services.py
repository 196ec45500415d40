"""Summary: Core application services for VoicePilot.

Importance: Wraps storage with user, API key and voice session operations.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import Any

from voicepilot.models import ExecutionStatus, User
from voicepilot.storage.sqlite_store import (
    SqliteStore,
    StoredApiKey,
    StoredSession,
    StoredUser,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserService:
    """Summary: Manages user records for multi-user workflows.

    Importance: Provides user creation and lookup for per-user auth.
    Alternatives: Use an external identity provider.
    """

    store: SqliteStore

    def create_user(self, display_name: str, email: str) -> int:
        """Summary: Create or ensure a user exists.

        Importance: Allows onboarding multiple users without a schema rewrite.
        Alternatives: Keep a single hardcoded user.
        """

        return self.store.ensure_user(User(display_name=display_name, email=email))

    def list_users(self) -> list[StoredUser]:
        return self.store.list_users()

    def get_user_by_email(self, email: str) -> StoredUser | None:
        return self.store.get_user_by_email(email)


@dataclass(frozen=True)
class ApiKeyService:
    """Summary: Issues and verifies API keys for users.

    Importance: Provides the bearer credential the HTTP surface resolves users from.
    Alternatives: Use OAuth or an external auth service.
    """

    store: SqliteStore
    token_secret: str

    def create_api_key(self, user_id: int, label: str | None = None) -> tuple[int, str]:
        """Summary: Create a new API key for a user.

        Importance: Returns a one-time plaintext token for client storage.
        Alternatives: Store raw tokens in the database.
        """

        raw_token = secrets.token_urlsafe(32)
        key_id = self.store.create_api_key(
            user_id=user_id,
            token_hash=self._hash_token(raw_token),
            label=label,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info("Created API key %s for user %s.", key_id, user_id)
        return key_id, raw_token

    def revoke_api_key(self, user_id: int, key_id: int) -> bool:
        return self.store.delete_api_key(user_id, key_id)

    def list_api_keys(self, user_id: int) -> list[StoredApiKey]:
        return self.store.list_api_keys(user_id)

    def resolve_user_id(self, token: str) -> int | None:
        """Summary: Resolve a user ID from an API key."""

        return self.store.get_user_id_by_api_key(self._hash_token(token))

    def _hash_token(self, token: str) -> str:
        """Summary: Hash an API token with a secret salt.

        Importance: Avoids storing raw API keys in the database.
        Alternatives: Use an HSM or external secrets manager.
        """

        salt = self.token_secret or "voicepilot"
        return hashlib.sha256(f"{salt}:{token}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SessionService:
    """Summary: Persists voice sessions for one user.

    Importance: The controller's only path to the session table, so terminal writes stay conditional.
    Alternatives: Let the controller write rows through the store directly.
    """

    store: SqliteStore
    user_id: int

    def create(self, transcript: str, intent: dict[str, Any], audio_ref: str | None = None) -> int:
        """Summary: Create a pending session once classification has produced an intent."""

        session_id = self.store.create_session(
            user_id=self.user_id,
            transcript=transcript,
            audio_ref=audio_ref,
            parsed_data=intent,
        )
        logger.info("Created voice session %s.", session_id)
        return session_id

    def record_edit(self, session_id: int, intent: dict[str, Any]) -> None:
        self.store.update_session_intent(session_id, intent)

    def finish(
        self,
        session_id: int,
        status: ExecutionStatus,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Summary: Close a pending session with a terminal status.

        Importance: Returns False when the session was already closed, so repeat calls change nothing.
        Alternatives: Overwrite the status unconditionally.
        """

        updated = self.store.finish_session(session_id, status, result)
        if updated:
            logger.info("Voice session %s finished with %s.", session_id, status.value)
        else:
            logger.info("Voice session %s was already closed.", session_id)
        return updated

    def get(self, session_id: int) -> StoredSession | None:
        return self.store.get_session(session_id)

    def recent(self, limit: int = 20) -> list[StoredSession]:
        return self.store.list_sessions(self.user_id, limit)
