"""Summary: OAuth helper utilities for provider integrations.

Importance: Generates consent URLs, exchanges codes, refreshes and revokes tokens for all providers.
Alternatives: Use provider SDKs for OAuth flows.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from voicepilot.config import AppConfig
from voicepilot.errors import ConfigurationError, ProviderAuthError


logger = logging.getLogger(__name__)

GOOGLE_SCOPES = (
    "openid email https://www.googleapis.com/auth/gmail.readonly "
    "https://www.googleapis.com/auth/gmail.send https://www.googleapis.com/auth/calendar"
)
MICROSOFT_SCOPES = (
    "openid email profile offline_access Mail.Read Mail.Send Calendars.ReadWrite Files.Read"
)
SLACK_USER_SCOPES = "channels:history,channels:read,chat:write,users:read"
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class ProviderCapabilities:
    """Summary: Describes how a provider's tokens behave.

    Importance: Lets one refresh/disconnect algorithm serve every provider.
    Alternatives: Write a separate token helper per provider.
    """

    supports_refresh: bool
    tokens_expire: bool
    supports_revoke: bool
    rotates_refresh_token: bool = False


@dataclass(frozen=True)
class ProviderSpec:
    """Summary: Static endpoints and capabilities for an OAuth provider."""

    name: str
    authorize_url: str
    token_url: str
    capabilities: ProviderCapabilities
    revoke_url: str | None = None
    account_url: str | None = None


PROVIDER_SPECS: dict[str, ProviderSpec] = {
    "google": ProviderSpec(
        name="google",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        revoke_url="https://oauth2.googleapis.com/revoke",
        account_url="https://www.googleapis.com/oauth2/v2/userinfo",
        capabilities=ProviderCapabilities(
            supports_refresh=True, tokens_expire=True, supports_revoke=True
        ),
    ),
    "microsoft": ProviderSpec(
        name="microsoft",
        authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        account_url="https://graph.microsoft.com/v1.0/me",
        capabilities=ProviderCapabilities(
            supports_refresh=True,
            tokens_expire=True,
            supports_revoke=False,
            rotates_refresh_token=True,
        ),
    ),
    "notion": ProviderSpec(
        name="notion",
        authorize_url="https://api.notion.com/v1/oauth/authorize",
        token_url="https://api.notion.com/v1/oauth/token",
        capabilities=ProviderCapabilities(
            supports_refresh=False, tokens_expire=False, supports_revoke=False
        ),
    ),
    "slack": ProviderSpec(
        name="slack",
        authorize_url="https://slack.com/oauth/v2/authorize",
        token_url="https://slack.com/api/oauth.v2.access",
        revoke_url="https://slack.com/api/auth.revoke",
        capabilities=ProviderCapabilities(
            supports_refresh=False, tokens_expire=False, supports_revoke=True
        ),
    ),
}


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Provides a consistent token representation for storage and refresh logic.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: str | None
    account_id: str | None = None
    scopes: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_response(
        payload: dict[str, Any], expires: bool = True, account_id: str | None = None
    ) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Normalizes expiry and optional fields across providers.
        Alternatives: Use provider-specific token response classes.
        """

        access_token = payload.get("access_token")
        if not access_token:
            raise ProviderAuthError("Token response did not include an access token")
        expires_at = None
        if expires:
            expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
            expires_at = (
                datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            ).isoformat()
        scope = payload.get("scope")
        return OAuthTokenResult(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at,
            account_id=account_id,
            scopes={"granted_scopes": scope} if scope else {},
        )


def provider_spec(provider: str) -> ProviderSpec:
    """Summary: Look up the spec for a provider name.

    Importance: Rejects unknown providers before any request is built.
    Alternatives: Let dictionary lookups raise KeyError.
    """

    spec = PROVIDER_SPECS.get(provider)
    if spec is None:
        raise ProviderAuthError(f"Unknown OAuth provider: {provider}")
    return spec


def encode_state(user_id: int, redirect_url: str) -> str:
    """Summary: Encode the OAuth state parameter.

    Importance: Carries the user and return URL through the provider consent screen.
    Alternatives: Store state server-side keyed by a random token.
    """

    payload = json.dumps({"userId": user_id, "redirectUrl": redirect_url})
    return base64.b64encode(payload.encode("utf-8")).decode("utf-8")


def decode_state(state: str) -> tuple[int, str]:
    """Summary: Decode the OAuth state parameter into (user_id, redirect_url).

    Importance: The callback cannot redirect anywhere without a decodable state.
    Alternatives: Fall back to a fixed redirect URL on bad state.
    """

    try:
        payload = json.loads(base64.b64decode(state.encode("utf-8"), validate=True))
        user_id = int(payload["userId"])
        redirect_url = str(payload["redirectUrl"])
    except (binascii.Error, ValueError, KeyError, TypeError) as exc:
        raise ValueError("Invalid state parameter") from exc
    return user_id, redirect_url


def callback_url(config: AppConfig, provider: str) -> str:
    return f"{config.public_base_url.rstrip('/')}/oauth/{provider}/callback"


def build_auth_url(config: AppConfig, provider: str, state: str) -> str:
    """Summary: Build the provider consent URL.

    Importance: Enables starting OAuth for google, microsoft, notion and slack.
    Alternatives: Use a different OAuth helper library.
    """

    spec = provider_spec(provider)
    client_id, _ = config.oauth_client(provider)
    params = {
        "client_id": client_id,
        "redirect_uri": callback_url(config, provider),
        "response_type": "code",
        "state": state,
    }
    if provider == "google":
        params.update({"access_type": "offline", "prompt": "consent", "scope": GOOGLE_SCOPES})
    elif provider == "microsoft":
        params.update({"response_mode": "query", "scope": MICROSOFT_SCOPES})
    elif provider == "notion":
        params["owner"] = "user"
    elif provider == "slack":
        params["user_scope"] = SLACK_USER_SCOPES
    return spec.authorize_url + "?" + urllib.parse.urlencode(params)


def exchange_oauth_code(config: AppConfig, provider: str, code: str) -> OAuthTokenResult:
    """Summary: Exchange an OAuth authorization code for tokens.

    Importance: Completes OAuth flows by retrieving access and refresh tokens.
    Alternatives: Use provider SDKs or external auth services.
    """

    spec = provider_spec(provider)
    payload = _token_payload(config, provider, code)
    if provider == "notion":
        client_id, client_secret = config.oauth_client(provider)
        basic = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("utf-8")
        response = _post_json(spec.token_url, payload, {"Authorization": f"Basic {basic}"})
        owner = ((response.get("owner") or {}).get("user") or {}).get("person") or {}
        result = OAuthTokenResult.from_response(
            response, expires=False, account_id=owner.get("email")
        )
        return OAuthTokenResult(
            access_token=result.access_token,
            refresh_token=None,
            expires_at=None,
            account_id=result.account_id,
            scopes={
                "workspace_id": response.get("workspace_id"),
                "workspace_name": response.get("workspace_name"),
            },
        )
    response = _post_form(spec.token_url, payload)
    if provider == "slack":
        if not response.get("ok"):
            raise ProviderAuthError(f"Slack token exchange failed: {response.get('error')}")
        authed_user = response.get("authed_user") or {}
        team = response.get("team") or {}
        result = OAuthTokenResult.from_response(
            authed_user, expires=False, account_id=authed_user.get("id")
        )
        return OAuthTokenResult(
            access_token=result.access_token,
            refresh_token=None,
            expires_at=None,
            account_id=result.account_id,
            scopes={
                "team_id": team.get("id"),
                "team_name": team.get("name"),
                "user_scopes": authed_user.get("scope", ""),
            },
        )
    if response.get("error"):
        raise ProviderAuthError(
            f"{provider} token exchange failed: {response.get('error_description') or response['error']}"
        )
    return OAuthTokenResult.from_response(response)


def refresh_oauth_token(config: AppConfig, provider: str, refresh_token: str) -> OAuthTokenResult:
    """Summary: Exchange a refresh token for a new access token.

    Importance: Keeps provider calls working after the access token expires.
    Alternatives: Force the user through the consent screen again.
    """

    spec = provider_spec(provider)
    if not spec.capabilities.supports_refresh:
        raise ProviderAuthError(f"{provider} does not support token refresh")
    response = _post_form(spec.token_url, _refresh_payload(config, provider, refresh_token))
    if response.get("error"):
        raise ProviderAuthError(f"{provider} token refresh failed: {response['error']}")
    return OAuthTokenResult.from_response(response)


def revoke_token(provider: str, access_token: str) -> None:
    """Summary: Revoke an access token at the provider.

    Importance: Disconnect should invalidate the grant, not only forget it locally.
    Alternatives: Rely on token expiry after a local delete.
    """

    spec = provider_spec(provider)
    if not spec.capabilities.supports_revoke or not spec.revoke_url:
        return
    if provider == "google":
        url = spec.revoke_url + "?" + urllib.parse.urlencode({"token": access_token})
        _post_form(url, {})
        return
    response = _post_form(spec.revoke_url, {}, {"Authorization": f"Bearer {access_token}"})
    if provider == "slack" and not response.get("ok", False):
        raise ProviderAuthError(f"Slack token revoke failed: {response.get('error')}")


def fetch_account_id(provider: str, access_token: str) -> str | None:
    """Summary: Look up the provider account identifier for a fresh token.

    Importance: Shows which mailbox or workspace a credential belongs to.
    Alternatives: Ask the user to type their account email.
    """

    spec = provider_spec(provider)
    if not spec.account_url:
        return None
    profile = _get_json(spec.account_url, access_token)
    if provider == "microsoft":
        return profile.get("mail") or profile.get("userPrincipalName")
    return profile.get("email")


def _token_payload(config: AppConfig, provider: str, code: str) -> dict[str, str]:
    """Summary: Build token request parameters for OAuth code exchange.

    Importance: Ensures provider-specific payloads include required fields.
    Alternatives: Assemble payloads inline inside the exchange function.
    """

    client_id, client_secret = config.oauth_client(provider)
    redirect_uri = callback_url(config, provider)
    if provider == "notion":
        return {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
    }
    if provider in {"google", "microsoft"}:
        payload["grant_type"] = "authorization_code"
    if provider == "microsoft":
        payload["scope"] = MICROSOFT_SCOPES
    return payload


def _refresh_payload(config: AppConfig, provider: str, refresh_token: str) -> dict[str, str]:
    """Summary: Build refresh request parameters.

    Importance: Microsoft requires the original scope on refresh; Google does not.
    Alternatives: Send every parameter to every provider.
    """

    client_id, client_secret = config.oauth_client(provider)
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }
    if provider == "microsoft":
        payload["scope"] = MICROSOFT_SCOPES
    return payload


def _post_form(
    url: str, payload: dict[str, str], headers: dict[str, str] | None = None
) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Avoids new dependencies while supporting OAuth exchanges.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request_headers = {"Content-Type": "application/x-www-form-urlencoded"}
    request_headers.update(headers or {})
    request = urllib.request.Request(url, data=data, headers=request_headers, method="POST")
    return _send(request)


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
    request_headers = {"Content-Type": "application/json"}
    request_headers.update(headers)
    request = urllib.request.Request(
        url, data=json.dumps(payload).encode("utf-8"), headers=request_headers, method="POST"
    )
    return _send(request)


def _get_json(url: str, access_token: str) -> dict[str, Any]:
    request = urllib.request.Request(
        url, headers={"Authorization": f"Bearer {access_token}"}, method="GET"
    )
    return _send(request)


def _send(request: urllib.request.Request) -> dict[str, Any]:
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8")
        raise ProviderAuthError(
            f"OAuth request failed ({exc.code}): {error_body or exc.reason}"
        ) from exc
    except urllib.error.URLError as exc:
        raise ProviderAuthError(f"OAuth request failed: {exc.reason}") from exc
    if not raw.strip():
        return {}
    return json.loads(raw)


class OAuthClient:
    """Summary: Config-bound facade over the provider OAuth helpers.

    Importance: Gives the credential manager one injectable collaborator for all network calls.
    Alternatives: Monkeypatch module functions in every test.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def capabilities(self, provider: str) -> ProviderCapabilities:
        return provider_spec(provider).capabilities

    def exchange_code(self, provider: str, code: str) -> OAuthTokenResult:
        result = exchange_oauth_code(self._config, provider, code)
        if result.account_id is not None:
            return result
        try:
            account_id = fetch_account_id(provider, result.access_token)
        except ProviderAuthError as exc:
            logger.warning("Could not fetch %s account profile: %s", provider, exc)
            return result
        return OAuthTokenResult(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_at=result.expires_at,
            account_id=account_id,
            scopes=result.scopes,
        )

    def refresh(self, provider: str, refresh_token: str) -> OAuthTokenResult:
        return refresh_oauth_token(self._config, provider, refresh_token)

    def revoke(self, provider: str, access_token: str) -> None:
        revoke_token(provider, access_token)

    def ensure_configured(self, provider: str) -> None:
        """Summary: Raise ConfigurationError when the provider has no client credentials."""

        try:
            self._config.oauth_client(provider)
        except ConfigurationError:
            logger.error("OAuth client credentials missing for %s.", provider)
            raise
