"""Summary: Intent executors used by the recording session controller.

Importance: Sends a confirmed intent to the router, in-process or over HTTP.
Alternatives: Let the controller hold a router directly.
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

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
from voicepilot.router import IntentRouter


ERROR_CODES: dict[str, type[VoicePilotError]] = {
    "validation": ValidationError,
    "provider_auth": ProviderAuthError,
    "upstream_workflow": UpstreamWorkflowError,
    "persistence": PersistenceError,
    "configuration": ConfigurationError,
    "gateway_unavailable": TransientGatewayError,
    "classification_parse": ClassificationParseError,
    "gateway": GatewayError,
}


class IntentExecutor(ABC):
    """Summary: Executes a confirmed intent payload."""

    @abstractmethod
    def execute(self, intent: dict[str, Any]) -> dict[str, Any]:
        """Summary: Return `{success, result}` or `{success, response}`; raise on failure."""


@dataclass(frozen=True)
class LocalIntentExecutor(IntentExecutor):
    router: IntentRouter

    def execute(self, intent: dict[str, Any]) -> dict[str, Any]:
        return self.router.execute(intent).to_payload()


class HttpIntentExecutor(IntentExecutor):
    """Summary: Calls a remote `/execute-intent` endpoint.

    Importance: Rebuilds the server's error class from its `code` field so the controller sees the same taxonomy.
    Alternatives: Surface every remote failure as a generic error.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float | None = None) -> None:
        self._url = f"{base_url.rstrip('/')}/execute-intent"
        self._api_key = api_key
        self._timeout = timeout

    def execute(self, intent: dict[str, Any]) -> dict[str, Any]:
        request = urllib.request.Request(
            self._url,
            data=json.dumps({"intent": intent}).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        try:
            if self._timeout is None:
                response = urllib.request.urlopen(request)
            else:
                response = urllib.request.urlopen(request, timeout=self._timeout)
            with response:
                data = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            raise _remote_error(exc.read().decode("utf-8", errors="replace"), exc.code) from exc
        except (urllib.error.URLError, socket.timeout) as exc:
            raise VoicePilotError(f"Execution request failed: {exc}") from exc
        if data.get("error"):
            raise _remote_error(json.dumps(data), None)
        return data


def _remote_error(body: str, status: int | None) -> VoicePilotError:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        data = {}
    message = str(data.get("error") or body or f"Execution failed ({status})")
    error_class = ERROR_CODES.get(str(data.get("code")), VoicePilotError)
    if error_class is UpstreamWorkflowError:
        return UpstreamWorkflowError(message, status=data.get("status"))
    return error_class(message)
