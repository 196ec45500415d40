"""Summary: Application configuration for VoicePilot.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass

from voicepilot.errors import ConfigurationError


PROVIDERS = ("google", "microsoft", "notion", "slack")


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for providers, gateways and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    api_host: str
    api_port: int
    default_user_name: str
    default_user_email: str
    token_secret: str
    public_base_url: str
    google_client_id: str
    google_client_secret: str
    microsoft_client_id: str
    microsoft_client_secret: str
    notion_client_id: str
    notion_client_secret: str
    slack_client_id: str
    slack_client_secret: str
    deepgram_api_key: str | None
    ai_provider: str
    gemini_api_key: str | None
    gemini_model: str
    openai_api_key: str | None
    openai_model: str
    workflow_base_url: str
    processing_timeout_seconds: float = 30.0
    max_gateway_retries: int = 2
    token_refresh_buffer_seconds: int = 300
    execute_timeout_seconds: float | None = None

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        execute_timeout = os.getenv(
            "VOICEPILOT_EXECUTE_TIMEOUT_SECONDS", defaults["execute_timeout_seconds"]
        )
        return AppConfig(
            db_path=os.getenv("VOICEPILOT_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("VOICEPILOT_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("VOICEPILOT_API_PORT", defaults["api_port"])),
            default_user_name=os.getenv(
                "VOICEPILOT_DEFAULT_USER_NAME", defaults["default_user_name"]
            ),
            default_user_email=os.getenv(
                "VOICEPILOT_DEFAULT_USER_EMAIL", defaults["default_user_email"]
            ),
            token_secret=os.getenv("VOICEPILOT_TOKEN_SECRET", defaults["token_secret"]),
            public_base_url=os.getenv("VOICEPILOT_PUBLIC_BASE_URL", defaults["public_base_url"]),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            microsoft_client_id=os.getenv("MICROSOFT_CLIENT_ID", defaults["microsoft_client_id"]),
            microsoft_client_secret=os.getenv(
                "MICROSOFT_CLIENT_SECRET", defaults["microsoft_client_secret"]
            ),
            notion_client_id=os.getenv("NOTION_CLIENT_ID", defaults["notion_client_id"]),
            notion_client_secret=os.getenv("NOTION_CLIENT_SECRET", defaults["notion_client_secret"]),
            slack_client_id=os.getenv("SLACK_CLIENT_ID", defaults["slack_client_id"]),
            slack_client_secret=os.getenv("SLACK_CLIENT_SECRET", defaults["slack_client_secret"]),
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY") or defaults["deepgram_api_key"] or None,
            ai_provider=os.getenv("VOICEPILOT_AI_PROVIDER", defaults["ai_provider"]),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or defaults["gemini_api_key"] or None,
            gemini_model=os.getenv("GEMINI_MODEL", defaults["gemini_model"]),
            openai_api_key=os.getenv("OPENAI_API_KEY") or defaults["openai_api_key"] or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults["openai_model"]),
            workflow_base_url=os.getenv(
                "VOICEPILOT_WORKFLOW_BASE_URL", defaults["workflow_base_url"]
            ),
            processing_timeout_seconds=float(
                os.getenv(
                    "VOICEPILOT_PROCESSING_TIMEOUT_SECONDS",
                    defaults["processing_timeout_seconds"],
                )
            ),
            max_gateway_retries=int(
                os.getenv("VOICEPILOT_MAX_GATEWAY_RETRIES", defaults["max_gateway_retries"])
            ),
            token_refresh_buffer_seconds=int(
                os.getenv(
                    "VOICEPILOT_TOKEN_REFRESH_BUFFER_SECONDS",
                    defaults["token_refresh_buffer_seconds"],
                )
            ),
            execute_timeout_seconds=float(execute_timeout) if execute_timeout else None,
        )

    def oauth_client(self, provider: str) -> tuple[str, str]:
        """Summary: Return the (client_id, client_secret) pair for a provider.

        Importance: Fails fast with a configuration error instead of a provider-side rejection.
        Alternatives: Look up attributes by name at each call site.
        """

        if provider not in PROVIDERS:
            raise ConfigurationError(f"Unknown OAuth provider: {provider}")
        client_id = getattr(self, f"{provider}_client_id")
        client_secret = getattr(self, f"{provider}_client_secret")
        if not client_id or not client_secret:
            raise ConfigurationError(f"Missing OAuth client credentials for {provider}")
        return client_id, client_secret

    def missing_settings(self) -> list[str]:
        """Summary: List provider and gateway settings that are not configured.

        Importance: Lets operators spot startup-class gaps before the first request.
        Alternatives: Discover missing settings only when a request fails.
        """

        missing: list[str] = []
        for provider in PROVIDERS:
            if not getattr(self, f"{provider}_client_id"):
                missing.append(f"{provider.upper()}_CLIENT_ID")
            if not getattr(self, f"{provider}_client_secret"):
                missing.append(f"{provider.upper()}_CLIENT_SECRET")
        if not self.deepgram_api_key:
            missing.append("DEEPGRAM_API_KEY")
        if self.ai_provider == "gemini" and not self.gemini_api_key:
            missing.append("GEMINI_API_KEY")
        if self.ai_provider == "openai" and not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.workflow_base_url:
            missing.append("VOICEPILOT_WORKFLOW_BASE_URL")
        return missing


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())
