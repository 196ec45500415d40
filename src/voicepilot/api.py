"""Summary: FastAPI application for VoicePilot.

Importance: Exposes OAuth, integration, voice processing and intent execution endpoints.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel

from voicepilot.app import AppContext, build_context
from voicepilot.config import AppConfig
from voicepilot.errors import (
    ClassificationParseError,
    ConfigurationError,
    GatewayError,
    PersistenceError,
    ProviderAuthError,
    TransientGatewayError,
    UpstreamWorkflowError,
    ValidationError,
    VoicePilotError,
)
from voicepilot.models import User
from voicepilot.oauth import build_auth_url, decode_state, encode_state, provider_spec
from voicepilot.services import ApiKeyService


logger = logging.getLogger(__name__)

ERROR_RESPONSES: list[tuple[type[VoicePilotError], int, str]] = [
    (ValidationError, 400, "validation"),
    (ProviderAuthError, 400, "provider_auth"),
    (UpstreamWorkflowError, 502, "upstream_workflow"),
    (PersistenceError, 500, "persistence"),
    (ConfigurationError, 500, "configuration"),
    (TransientGatewayError, 503, "gateway_unavailable"),
    (ClassificationParseError, 500, "classification_parse"),
    (GatewayError, 500, "gateway"),
]


class OAuthStartRequest(BaseModel):
    """Summary: Request payload for starting an OAuth flow.

    Importance: Carries the client URL the callback redirects back to.
    Alternatives: Use a fixed redirect URL from configuration.
    """

    redirectUrl: str


class ExecuteIntentRequest(BaseModel):
    """Summary: Request payload for executing a confirmed intent."""

    intent: dict[str, Any]


class ProcessVoiceRequest(BaseModel):
    """Summary: Request payload carrying base64-encoded audio."""

    audio: str


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    token: str


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to VoicePilot services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="VoicePilot API", version="0.1.0")
    context = context or build_context(config)
    context.store.ensure_user(
        User(display_name=config.default_user_name, email=config.default_user_email)
    )
    api_keys = ApiKeyService(store=context.store, token_secret=config.token_secret)
    missing = config.missing_settings()
    if missing:
        logger.warning("Missing settings: %s", ", ".join(missing))

    @app.exception_handler(VoicePilotError)
    def handle_domain_error(request: Request, exc: VoicePilotError) -> JSONResponse:
        """Summary: Render domain errors as `{error}` bodies with a mapped status.

        Importance: Clients rebuild the error class from `code`.
        Alternatives: Raise HTTPException at every call site.
        """

        status, code = 500, "internal"
        for error_class, mapped_status, mapped_code in ERROR_RESPONSES:
            if isinstance(exc, error_class):
                status, code = mapped_status, mapped_code
                break
        body: dict[str, Any] = {"error": str(exc), "code": code}
        if isinstance(exc, UpstreamWorkflowError) and exc.status is not None:
            body["status"] = exc.status
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content=body)

    def require_user(authorization: str | None = Header(default=None)) -> CurrentUser:
        """Summary: Resolve the calling user from a bearer API key.

        Importance: Every endpoint except the OAuth callback acts on behalf of a user.
        Alternatives: Use session cookies.
        """

        if not authorization or not authorization.lower().startswith("bearer "):
            raise HTTPException(status_code=401, detail="Missing bearer token")
        token = authorization.split(" ", 1)[1].strip()
        user_id = api_keys.resolve_user_id(token)
        if user_id is None:
            raise HTTPException(status_code=401, detail="Invalid API key")
        return CurrentUser(user_id=user_id, token=token)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/oauth/{provider}/start")
    def oauth_start(
        provider: str, payload: OAuthStartRequest, user: CurrentUser = Depends(require_user)
    ) -> dict[str, str]:
        """Summary: Return the provider consent URL for the caller.

        Importance: The state carries the user id and return URL through the provider.
        Alternatives: Store state server-side with a random key.
        """

        provider_spec(provider)
        state = encode_state(user.user_id, payload.redirectUrl)
        return {"url": build_auth_url(config, provider, state)}

    @app.get("/oauth/{provider}/callback")
    def oauth_callback(
        provider: str,
        state: str,
        code: str | None = None,
        error: str | None = None,
    ) -> Response:
        """Summary: Complete an OAuth flow and redirect back to the client.

        Importance: Always redirects once the state decodes; failures are only logged.
        Alternatives: Render an error page from the callback.
        """

        try:
            user_id, redirect_url = decode_state(state)
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid state parameter"})
        if error or not code:
            logger.warning("OAuth %s callback returned no code: %s", provider, error)
            return RedirectResponse(redirect_url, status_code=302)
        try:
            context.credentials.connect(user_id, provider, code)
        except Exception:
            logger.exception("OAuth %s callback failed for user %s.", provider, user_id)
        return RedirectResponse(redirect_url, status_code=302)

    @app.post("/integrations/{provider}/disconnect")
    def disconnect(provider: str, user: CurrentUser = Depends(require_user)) -> Any:
        provider_spec(provider)
        if not context.credentials.disconnect(user.user_id, provider):
            return JSONResponse(
                status_code=404, content={"error": f"No {provider} integration found"}
            )
        return {"success": True}

    @app.post("/integrations/{provider}/sync")
    def sync(provider: str, user: CurrentUser = Depends(require_user)) -> dict[str, Any]:
        report = context.services_for_user(user.user_id).sync.sync(user.user_id, provider)
        return report.to_payload()

    @app.get("/integrations")
    def integrations(user: CurrentUser = Depends(require_user)) -> list[dict[str, Any]]:
        return [
            status.to_payload()
            for status in context.credentials.list_integrations(user.user_id)
        ]

    @app.post("/execute-intent")
    def execute_intent(
        payload: ExecuteIntentRequest, user: CurrentUser = Depends(require_user)
    ) -> dict[str, Any]:
        """Summary: Execute a confirmed intent for the caller.

        Importance: Single entry point for the router over HTTP.
        Alternatives: One endpoint per intent type.
        """

        services = context.services_for_user(user.user_id, user_token=user.token)
        return services.executor.execute(payload.intent)

    @app.post("/process-voice")
    def process_voice(
        payload: ProcessVoiceRequest, user: CurrentUser = Depends(require_user)
    ) -> dict[str, Any]:
        """Summary: Transcribe and classify base64 audio.

        Importance: Keeps speech and LLM credentials on the server.
        Alternatives: Call the speech and LLM vendors from the client.
        """

        try:
            audio = base64.b64decode(payload.audio, validate=True)
        except binascii.Error:
            return JSONResponse(status_code=400, content={"error": "Audio is not valid base64"})
        if not audio:
            return JSONResponse(status_code=400, content={"error": "No audio provided"})
        result = context.services_for_user(user.user_id).gateway.classify(audio)
        return result.to_payload()

    return app
