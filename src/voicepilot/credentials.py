"""Summary: Credential lifecycle management for provider integrations.

Importance: Resolves usable access tokens, refreshes stale ones and revokes on disconnect.
Alternatives: Let every caller talk to the OAuth helpers and the store directly.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from voicepilot.config import PROVIDERS
from voicepilot.errors import ProviderAuthError
from voicepilot.oauth import OAuthClient
from voicepilot.storage.sqlite_store import SqliteStore, StoredCredential
from voicepilot.token_codec import TokenCodec


logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


@dataclass(frozen=True)
class IntegrationStatus:
    """Summary: Connection summary for one provider.

    Importance: Feeds the integrations listing without exposing tokens.
    Alternatives: Return raw credential rows to the caller.
    """

    provider: str
    connected: bool
    account_id: str | None
    sync_status: str
    last_sync_at: str | None
    last_sync_error: str | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "connected": self.connected,
            "accountId": self.account_id,
            "syncStatus": self.sync_status,
            "lastSyncAt": self.last_sync_at,
            "lastSyncError": self.last_sync_error,
        }


class _RefreshLocks:
    """Summary: One lock per (user, provider) for single-flight refresh."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[int, str], threading.Lock] = {}

    def get(self, user_id: int, provider: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault((user_id, provider), threading.Lock())


@dataclass
class CredentialManager:
    """Summary: Owns the per-(user, provider) OAuth credential lifecycle.

    Importance: One generic algorithm consults provider capabilities instead of per-provider code paths.
    Alternatives: Duplicate refresh and revoke logic in each provider module.
    """

    store: SqliteStore
    codec: TokenCodec
    oauth: OAuthClient
    refresh_buffer: timedelta = DEFAULT_REFRESH_BUFFER
    _locks: _RefreshLocks = field(default_factory=_RefreshLocks, repr=False)

    def get_access_token(self, user_id: int, provider: str) -> str | None:
        """Summary: Return a usable access token, refreshing it when it is close to expiry.

        Importance: Provider calls never see a token that expires within the refresh buffer.
        Alternatives: Refresh lazily after a provider returns 401.
        """

        capabilities = self.oauth.capabilities(provider)
        record = self._active(user_id, provider)
        if record is None:
            return None
        if not capabilities.tokens_expire:
            return self.codec.decode(record.access_token)
        if not capabilities.supports_refresh or not record.refresh_token:
            return None
        if not self._needs_refresh(record.token_expires_at):
            return self.codec.decode(record.access_token)
        with self._locks.get(user_id, provider):
            record = self._active(user_id, provider)
            if record is None or not record.refresh_token:
                return None
            if not self._needs_refresh(record.token_expires_at):
                return self.codec.decode(record.access_token)
            return self._refresh(user_id, provider, record)

    def connect(self, user_id: int, provider: str, code: str) -> StoredCredential:
        """Summary: Exchange an authorization code and store the resulting credential.

        Importance: Reconnecting keeps the previous refresh token when the provider omits one.
        Alternatives: Require the user to revoke access before reconnecting.
        """

        self.oauth.ensure_configured(provider)
        result = self.oauth.exchange_code(provider, code)
        self.store.upsert_integration(
            user_id=user_id,
            provider=provider,
            access_token=self.codec.encode(result.access_token),
            refresh_token=self.codec.encode(result.refresh_token),
            expires_at=result.expires_at,
            account_id=result.account_id,
            scopes=result.scopes,
        )
        logger.info("Connected %s for user %s.", provider, user_id)
        record = self.store.get_integration(user_id, provider)
        if record is None:
            raise ProviderAuthError(f"{provider} credential was not stored")
        return record

    def disconnect(self, user_id: int, provider: str) -> bool:
        """Summary: Revoke where supported and always clear the stored tokens.

        Importance: A failed remote revoke must never leave a usable token behind locally.
        Alternatives: Abort the disconnect when the revoke call fails.
        """

        capabilities = self.oauth.capabilities(provider)
        record = self.store.get_integration(user_id, provider)
        if record is None:
            return False
        access_token = self.codec.decode(record.access_token)
        if capabilities.supports_revoke and access_token:
            try:
                self.oauth.revoke(provider, access_token)
            except Exception as exc:
                logger.warning("Revoking %s token failed for user %s: %s", provider, user_id, exc)
        self.store.disconnect_integration(user_id, provider)
        logger.info("Disconnected %s for user %s.", provider, user_id)
        return True

    def list_integrations(self, user_id: int) -> list[IntegrationStatus]:
        """Summary: Report connection and sync status for every supported provider."""

        records = {record.provider: record for record in self.store.list_integrations(user_id)}
        statuses: list[IntegrationStatus] = []
        for provider in PROVIDERS:
            record = records.get(provider)
            statuses.append(
                IntegrationStatus(
                    provider=provider,
                    connected=bool(record and record.is_active),
                    account_id=record.provider_account_id if record else None,
                    sync_status=record.sync_status if record else "idle",
                    last_sync_at=record.last_sync_at if record else None,
                    last_sync_error=record.last_sync_error if record else None,
                )
            )
        return statuses

    def _active(self, user_id: int, provider: str) -> StoredCredential | None:
        record = self.store.get_integration(user_id, provider)
        if record is None or not record.is_active:
            return None
        return record

    def _refresh(self, user_id: int, provider: str, record: StoredCredential) -> str:
        refresh_token = self.codec.decode(record.refresh_token)
        try:
            result = self.oauth.refresh(provider, refresh_token)
        except ProviderAuthError:
            logger.warning("Refreshing %s token failed for user %s.", provider, user_id)
            raise
        except Exception as exc:
            logger.warning("Refreshing %s token failed for user %s.", provider, user_id)
            raise ProviderAuthError(
                f"Could not refresh {provider} token; reconnect {provider} first"
            ) from exc
        self.store.update_integration_tokens(
            user_id=user_id,
            provider=provider,
            access_token=self.codec.encode(result.access_token),
            refresh_token=self.codec.encode(result.refresh_token),
            expires_at=result.expires_at,
        )
        logger.info("Refreshed %s token for user %s.", provider, user_id)
        return result.access_token

    def _needs_refresh(self, expires_at: str | None) -> bool:
        """Summary: Check whether a token is expired or inside the refresh buffer.

        Importance: A missing or unreadable expiry counts as stale for expiring providers.
        Alternatives: Treat unknown expiry as valid and wait for a 401.
        """

        if not expires_at:
            return True
        try:
            expires = datetime.fromisoformat(expires_at)
        except ValueError:
            return True
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= datetime.now(timezone.utc) + self.refresh_buffer
