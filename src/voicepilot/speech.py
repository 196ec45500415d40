"""Summary: Speech-to-text backends.

Importance: Converts recorded audio into the transcript the classifier reads.
Alternatives: Run a local Whisper model.
"""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod

from voicepilot.errors import ConfigurationError, GatewayError, TransientGatewayError


DEEPGRAM_URL = "https://api.deepgram.com/v1/listen"


class SpeechToText(ABC):
    """Summary: Abstract speech-to-text boundary.

    Importance: Gateways depend only on this interface, never on a vendor.
    Alternatives: Call Deepgram inline inside the gateway.
    """

    @abstractmethod
    def transcribe(self, audio: bytes, content_type: str = "audio/m4a") -> str:
        """Summary: Return the transcript for an audio clip, or an empty string."""


class DeepgramSpeechToText(SpeechToText):
    """Summary: Deepgram prerecorded transcription over HTTP.

    Importance: Matches the mobile recorder's m4a output without re-encoding.
    Alternatives: Use the Deepgram Python SDK.
    """

    def __init__(self, api_key: str | None, model: str = "nova-2") -> None:
        if not api_key:
            raise ConfigurationError("DEEPGRAM_API_KEY not configured")
        self._api_key = api_key
        self._model = model

    def transcribe(self, audio: bytes, content_type: str = "audio/m4a") -> str:
        query = urllib.parse.urlencode({"model": self._model, "smart_format": "true"})
        request = urllib.request.Request(
            f"{DEEPGRAM_URL}?{query}",
            data=audio,
            headers={"Authorization": f"Token {self._api_key}", "Content-Type": content_type},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=60) as response:
                data = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            message = f"Deepgram error ({exc.code}): {body or exc.reason}"
            if exc.code in {502, 503, 504}:
                raise TransientGatewayError(message) from exc
            raise GatewayError(message) from exc
        except (urllib.error.URLError, socket.timeout) as exc:
            raise TransientGatewayError(f"Deepgram request failed: {exc}") from exc
        channels = (data.get("results") or {}).get("channels") or [{}]
        alternatives = channels[0].get("alternatives") or [{}]
        return alternatives[0].get("transcript") or ""


class MockSpeechToText(SpeechToText):
    """Summary: Treats the audio bytes as UTF-8 text.

    Importance: Lets the CLI and tests drive the full voice flow with plain text files.
    Alternatives: Ship sample audio fixtures.
    """

    def __init__(self, transcript: str | None = None) -> None:
        self._transcript = transcript

    def transcribe(self, audio: bytes, content_type: str = "audio/m4a") -> str:
        if self._transcript is not None:
            return self._transcript
        return audio.decode("utf-8", errors="ignore").strip()
