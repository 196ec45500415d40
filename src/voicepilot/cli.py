"""Summary: Command-line interface for VoicePilot.

Importance: Provides a local-first entry point for accounts, integrations and voice commands.
Alternatives: Build a mobile or web client first.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any

from voicepilot.app import AppServices, build_services
from voicepilot.config import PROVIDERS, AppConfig
from voicepilot.controller import RecordingSessionController
from voicepilot.errors import VoicePilotError
from voicepilot.models import SessionState
from voicepilot.oauth import build_auth_url, encode_state
from voicepilot.recorder import FileAudioRecorder


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="VoicePilot CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user = subparsers.add_parser("create-user", help="Create a user")
    create_user.add_argument("display_name", type=str)
    create_user.add_argument("email", type=str)

    create_api_key = subparsers.add_parser("create-api-key", help="Create an API key")
    create_api_key.add_argument("--user-id", type=int, default=None)
    create_api_key.add_argument("--label", type=str, default=None)

    oauth_url = subparsers.add_parser("oauth-url", help="Print a provider consent URL")
    oauth_url.add_argument("provider", choices=PROVIDERS)
    oauth_url.add_argument("--redirect-url", type=str, default="voicepilot://integrations")

    disconnect = subparsers.add_parser("disconnect", help="Disconnect a provider")
    disconnect.add_argument("provider", choices=PROVIDERS)

    subparsers.add_parser("integrations", help="List provider integrations")

    sync = subparsers.add_parser("sync", help="Sync email and calendar from a provider")
    sync.add_argument("provider", choices=("google", "microsoft"))

    execute = subparsers.add_parser("execute", help="Execute an intent given as JSON")
    execute.add_argument("intent", type=str)

    voice = subparsers.add_parser("voice", help="Run a voice command from an audio file")
    voice.add_argument("path", type=str)
    voice.add_argument("--confirm", action="store_true", help="Execute without asking")

    sessions = subparsers.add_parser("sessions", help="List recent voice sessions")
    sessions.add_argument("--limit", type=int, default=10)

    subparsers.add_parser("serve", help="Run the HTTP API")

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives the voice flow and integration management without a client app.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "serve":
        import uvicorn

        from voicepilot.api import create_app

        uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)
        return 0

    services = build_services(config)
    try:
        return _dispatch(args, config, services)
    except VoicePilotError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


def _dispatch(args: argparse.Namespace, config: AppConfig, services: AppServices) -> int:
    user_id = services.user_id

    if args.command == "create-user":
        created = services.users.create_user(args.display_name, args.email)
        print(f"Created user {created}.")
        return 0

    if args.command == "create-api-key":
        key_id, token = services.api_keys.create_api_key(args.user_id or user_id, args.label)
        print(f"Created API key {key_id}: {token}")
        print("Store this key now; it cannot be shown again.")
        return 0

    if args.command == "oauth-url":
        state = encode_state(user_id, args.redirect_url)
        print(build_auth_url(config, args.provider, state))
        return 0

    if args.command == "disconnect":
        if services.credentials.disconnect(user_id, args.provider):
            print(f"Disconnected {args.provider}.")
            return 0
        print(f"No {args.provider} integration found.")
        return 1

    if args.command == "integrations":
        for status in services.credentials.list_integrations(user_id):
            state = "connected" if status.connected else "not connected"
            suffix = f" as {status.account_id}" if status.account_id else ""
            print(f"{status.provider}: {state}{suffix} ({status.sync_status})")
        return 0

    if args.command == "sync":
        report = services.sync.sync(user_id, args.provider)
        print(
            f"Synced {report.emails_synced} emails and {report.events_synced} events "
            f"from {args.provider}."
        )
        for error in report.errors:
            print(f"  error: {error}")
        return 0 if not report.errors else 1

    if args.command == "execute":
        try:
            intent = json.loads(args.intent)
        except json.JSONDecodeError as exc:
            print(f"Intent is not valid JSON: {exc}")
            return 1
        print(json.dumps(services.executor.execute(intent), indent=2))
        return 0

    if args.command == "voice":
        return asyncio.run(_run_voice(args.path, args.confirm, config, services))

    if args.command == "sessions":
        for session in services.sessions.recent(limit=args.limit):
            print(
                f"#{session.id} [{session.execution_status}] {session.intent_type or '-'}/"
                f"{session.category or '-'}: {session.transcript}"
            )
        return 0

    return 1


async def _run_voice(
    path: str, confirm: bool, config: AppConfig, services: AppServices
) -> int:
    """Summary: Replay an audio file through the recording session controller.

    Importance: Exercises the same state machine a device client drives.
    Alternatives: Call the gateway and executor directly.
    """

    controller = RecordingSessionController(
        recorder=FileAudioRecorder(path),
        gateway=services.gateway,
        executor=services.executor,
        sessions=services.sessions,
        timeout=config.processing_timeout_seconds,
        max_retries=config.max_gateway_retries,
        execute_timeout=config.execute_timeout_seconds,
    )
    await controller.start_recording()
    await controller.stop_recording()
    if controller.state is not SessionState.REVIEW:
        print(f"Error: {controller.error}")
        return 1

    print(f"Transcript: {controller.transcript}")
    print(json.dumps(controller.intent, indent=2))
    if not confirm and not _ask("Execute this intent? [y/N] "):
        await controller.cancel()
        print("Cancelled.")
        return 0

    response: dict[str, Any] | None = await controller.confirm_intent()
    if controller.state is SessionState.ERROR:
        print(f"Error: {controller.error}")
        return 1
    if controller.state is SessionState.QUERY_RESULT:
        print(controller.query_response)
    elif controller.state is SessionState.ACT_RESULT:
        print(controller.act_result)
    else:
        print(json.dumps(response, indent=2))
    controller.dismiss()
    return 0


def _ask(prompt: str) -> bool:
    return input(prompt).strip().lower() in {"y", "yes"}


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
