"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from voicepilot.ai import AiProvider, AiProviderFactory
from voicepilot.classifier import EmailLabeler, IntentClassifier
from voicepilot.config import AppConfig
from voicepilot.credentials import CredentialManager
from voicepilot.executor import LocalIntentExecutor
from voicepilot.gateway import LocalClassificationGateway
from voicepilot.models import User
from voicepilot.oauth import OAuthClient
from voicepilot.router import IntentRouter
from voicepilot.services import ApiKeyService, SessionService, UserService
from voicepilot.speech import DeepgramSpeechToText, MockSpeechToText, SpeechToText
from voicepilot.storage.sqlite_store import SqliteStore
from voicepilot.sync import SOURCES, ProviderSyncService, SyncSource
from voicepilot.token_codec import TokenCodec
from voicepilot.workflows import WorkflowClient


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for building user services.

    Importance: One credential manager per process, so refresh locks cover every request.
    Alternatives: Rebuild dependencies for every request.
    """

    store: SqliteStore
    config: AppConfig
    ai_provider: AiProvider
    speech: SpeechToText
    credentials: CredentialManager
    workflows: WorkflowClient
    sync_sources: dict[str, Callable[[str], SyncSource]] = field(default_factory=lambda: dict(SOURCES))

    def services_for_user(self, user_id: int, user_token: str | None = None) -> "AppServices":
        """Summary: Build user-scoped services from shared context.

        Importance: Keeps every router and session write scoped to one user.
        Alternatives: Use a multi-tenant database with row-level security.
        """

        router = IntentRouter(
            store=self.store,
            credentials=self.credentials,
            workflows=self.workflows,
            user_id=user_id,
            user_token=user_token,
            llm_secret=self.config.gemini_api_key or self.config.openai_api_key,
        )
        return AppServices(
            users=UserService(store=self.store),
            api_keys=ApiKeyService(store=self.store, token_secret=self.config.token_secret),
            sessions=SessionService(store=self.store, user_id=user_id),
            router=router,
            executor=LocalIntentExecutor(router=router),
            gateway=LocalClassificationGateway(
                speech=self.speech, classifier=IntentClassifier(self.ai_provider)
            ),
            sync=ProviderSyncService(
                store=self.store,
                credentials=self.credentials,
                labeler=EmailLabeler(self.ai_provider),
                sources=self.sync_sources,
            ),
            credentials=self.credentials,
            store=self.store,
            user_id=user_id,
        )


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for one user.

    Importance: Simplifies passing dependencies to the API and CLI.
    Alternatives: Use a dependency injection container.
    """

    users: UserService
    api_keys: ApiKeyService
    sessions: SessionService
    router: IntentRouter
    executor: LocalIntentExecutor
    gateway: LocalClassificationGateway
    sync: ProviderSyncService
    credentials: CredentialManager
    store: SqliteStore
    user_id: int


def build_context(
    config: AppConfig,
    oauth: OAuthClient | None = None,
    ai_provider: AiProvider | None = None,
    speech: SpeechToText | None = None,
    workflows: WorkflowClient | None = None,
    sync_sources: dict[str, Callable[[str], SyncSource]] | None = None,
) -> AppContext:
    """Summary: Build shared context for user-scoped services.

    Importance: Collaborators can be swapped for fakes without touching the wiring.
    Alternatives: Construct dependencies separately per request.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    if speech is None:
        speech = (
            DeepgramSpeechToText(config.deepgram_api_key)
            if config.deepgram_api_key
            else MockSpeechToText()
        )
    credentials = CredentialManager(
        store=store,
        codec=TokenCodec(config.token_secret),
        oauth=oauth or OAuthClient(config),
        refresh_buffer=timedelta(seconds=config.token_refresh_buffer_seconds),
    )
    return AppContext(
        store=store,
        config=config,
        ai_provider=ai_provider or AiProviderFactory(config).build(),
        speech=speech,
        credentials=credentials,
        workflows=workflows or WorkflowClient(config.workflow_base_url),
        sync_sources=sync_sources if sync_sources is not None else dict(SOURCES),
    )


def build_services(config: AppConfig) -> AppServices:
    """Summary: Build services for the configured default user.

    Importance: Provides a single construction path for the CLI.
    Alternatives: Require a user id on every command.
    """

    context = build_context(config)
    user = User(display_name=config.default_user_name, email=config.default_user_email)
    user_id = context.store.ensure_user(user)
    return context.services_for_user(user_id)
