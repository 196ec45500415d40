"""Summary: Transcription and classification gateway clients.

Importance: Turns recorded audio into a transcript plus intent and sorts failures into retryable or not.
Alternatives: Let the controller call the speech and LLM providers directly.
"""

from __future__ import annotations

import base64
import json
import logging
import socket
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from voicepilot.classifier import IntentClassifier, check_intent
from voicepilot.errors import (
    ClassificationParseError,
    GatewayError,
    TransientGatewayError,
)
from voicepilot.speech import SpeechToText


logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = {502, 503, 504}
TRANSIENT_MARKERS = ("network", "timeout", "timed out", "fetch", "connection", "502", "503", "504")
NO_TRANSCRIPT = "Could not transcribe audio. Please try again."


@dataclass(frozen=True)
class ClassificationResult:
    """Summary: Transcript and raw intent payload returned by the gateway."""

    transcript: str
    intent: dict[str, Any]

    @staticmethod
    def from_payload(payload: Any) -> "ClassificationResult":
        """Summary: Validate a gateway response body.

        Importance: A body with neither an error nor a transcript and intent is a parse failure.
        Alternatives: Pass partial responses through and fail later in review.
        """

        if not isinstance(payload, dict):
            raise ClassificationParseError("Gateway response is not an object")
        if payload.get("error"):
            raise classify_failure(str(payload["error"]))
        transcript = payload.get("transcript")
        intent = payload.get("intent")
        if not isinstance(transcript, str) or not isinstance(intent, dict):
            raise ClassificationParseError("Gateway response is missing transcript or intent")
        check_intent(intent)
        return ClassificationResult(transcript=transcript, intent=intent)

    def to_payload(self) -> dict[str, Any]:
        return {"transcript": self.transcript, "intent": self.intent}


def classify_failure(message: str) -> GatewayError:
    """Summary: Map an error message to a transient or permanent gateway error.

    Importance: Only network, timeout and 5xx gateway failures are retried.
    Alternatives: Retry every failure a fixed number of times.
    """

    lowered = message.lower()
    if any(marker in lowered for marker in TRANSIENT_MARKERS):
        return TransientGatewayError(message)
    return GatewayError(message)


class ClassificationGateway(ABC):
    """Summary: Abstract transcription and classification boundary."""

    @abstractmethod
    def classify(self, audio: bytes) -> ClassificationResult:
        """Summary: Transcribe and classify one recording.

        Importance: Raises TransientGatewayError, GatewayError or ClassificationParseError on failure.
        Alternatives: Return an error field and let callers inspect it.
        """


class HttpClassificationGateway(ClassificationGateway):
    """Summary: Calls a remote `/process-voice` endpoint.

    Importance: Keeps speech and LLM keys on the server side.
    Alternatives: Embed provider keys in the client.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 60.0) -> None:
        self._url = f"{base_url.rstrip('/')}/process-voice"
        self._api_key = api_key
        self._timeout = timeout

    def classify(self, audio: bytes) -> ClassificationResult:
        body = json.dumps({"audio": base64.b64encode(audio).decode("ascii")}).encode("utf-8")
        request = urllib.request.Request(
            self._url,
            data=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            detail, code = _error_detail(exc.read().decode("utf-8", errors="replace"))
            message = f"Gateway error ({exc.code}): {detail or exc.reason}"
            if exc.code in TRANSIENT_STATUSES or code == "gateway_unavailable":
                raise TransientGatewayError(message) from exc
            if code == "classification_parse":
                raise ClassificationParseError(detail or message) from exc
            if code == "gateway":
                raise GatewayError(detail or message) from exc
            raise classify_failure(message) from exc
        except (urllib.error.URLError, socket.timeout, TimeoutError) as exc:
            raise TransientGatewayError(f"Gateway network error: {exc}") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ClassificationParseError("Gateway returned malformed JSON") from exc
        return ClassificationResult.from_payload(payload)


@dataclass(frozen=True)
class LocalClassificationGateway(ClassificationGateway):
    """Summary: In-process gateway wiring speech-to-text to the intent classifier.

    Importance: Serves the `/process-voice` endpoint and offline CLI runs.
    Alternatives: Always go through HTTP, even inside the server.
    """

    speech: SpeechToText
    classifier: IntentClassifier

    def classify(self, audio: bytes) -> ClassificationResult:
        transcript = self.speech.transcribe(audio)
        if not transcript.strip():
            raise GatewayError(NO_TRANSCRIPT)
        intent = self.classifier.classify(transcript)
        logger.info("Classified voice command as %s/%s.", intent.get("intentType"), intent.get("category"))
        return ClassificationResult(transcript=transcript, intent=intent)


def _error_detail(body: str) -> tuple[str, str | None]:
    """Summary: Extract the error message and machine-readable code from an error body."""

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body, None
    if isinstance(data, dict) and data.get("error"):
        code = data.get("code")
        return str(data["error"]), str(code) if code else None
    return body, None
