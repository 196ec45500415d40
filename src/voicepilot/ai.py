"""Summary: AI provider abstraction and implementations.

Importance: Centralizes LLM access for intent classification.
Alternatives: Call provider SDKs directly in the classifier.
"""

from __future__ import annotations

import json
import re
import socket
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from voicepilot.config import AppConfig
from voicepilot.errors import ConfigurationError, GatewayError, TransientGatewayError


TRANSIENT_STATUSES = {502, 503, 504}


class AiProvider(ABC):
    """Summary: Abstract interface for AI text generation.

    Importance: Allows switching between mock and cloud LLMs without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate a response for a prompt.

        Importance: Standardizes AI outputs for the classifier.
        Alternatives: Return provider-specific response objects directly.
        """


class MockAiProvider(AiProvider):
    """Summary: Deterministic keyword classifier standing in for an LLM.

    Importance: Enables offline voice flows and repeatable tests.
    Alternatives: Use fixture-based responses loaded from files.
    """

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        started = time.time()
        match = re.search(r'Voice transcript: "(.*)"\s*$', prompt, re.DOTALL)
        transcript = match.group(1) if match else prompt
        response = json.dumps(_keyword_intent(transcript))
        latency_ms = int((time.time() - started) * 1000)
        return response, latency_ms


class GeminiProvider(AiProvider):
    """Summary: AI provider using the Gemini generateContent API.

    Importance: Requests JSON output directly so classification replies parse cleanly.
    Alternatives: Use the google-genai SDK.
    """

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._model = model

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.1, "responseMimeType": "application/json"},
        }
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self._model}:generateContent?key={self._api_key}"
        )
        started = time.time()
        raw = _post_json(url, payload, {}, "Gemini")
        latency_ms = int((time.time() - started) * 1000)
        candidates = raw.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or [{}]
        return parts[0].get("text") or "{}", latency_ms


class OpenAiProvider(AiProvider):
    """Summary: AI provider using OpenAI's chat completion API.

    Importance: Offers an alternative cloud classifier when configured.
    Alternatives: Use other cloud providers or a local model.
    """

    def __init__(self, api_key: str, model: str) -> None:
        self._api_key = api_key
        self._model = model

    def generate_text(self, prompt: str, purpose: str) -> tuple[str, int]:
        """Summary: Generate text using OpenAI chat completions.

        Importance: Uses JSON mode so the classifier receives an object.
        Alternatives: Use the responses API or a different provider.
        """

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": f"You are VoicePilot. Task: {purpose}."},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }
        started = time.time()
        raw = _post_json(
            "https://api.openai.com/v1/chat/completions",
            payload,
            {"Authorization": f"Bearer {self._api_key}"},
            "OpenAI",
        )
        latency_ms = int((time.time() - started) * 1000)
        content = raw["choices"][0]["message"]["content"]
        return content, latency_ms


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting AI providers from configuration.

    Importance: Keeps provider selection logic centralized.
    Alternatives: Wire providers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        """Summary: Construct the configured AI provider.

        Importance: Ensures consistent provider selection across the API and CLI.
        Alternatives: Use dependency injection frameworks.
        """

        if self.config.ai_provider == "gemini":
            if not self.config.gemini_api_key:
                raise ConfigurationError("GEMINI_API_KEY is required for gemini provider")
            return GeminiProvider(self.config.gemini_api_key, self.config.gemini_model)
        if self.config.ai_provider == "openai":
            if not self.config.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY is required for openai provider")
            return OpenAiProvider(self.config.openai_api_key, self.config.openai_model)
        return MockAiProvider()


def _post_json(
    url: str, payload: dict[str, Any], headers: dict[str, str], service: str
) -> dict[str, Any]:
    request = urllib.request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=60) as response:
            return json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        message = f"{service} error ({exc.code}): {body or exc.reason}"
        if exc.code in TRANSIENT_STATUSES:
            raise TransientGatewayError(message) from exc
        raise GatewayError(message) from exc
    except (urllib.error.URLError, socket.timeout) as exc:
        raise TransientGatewayError(f"{service} request failed: {exc}") from exc


_QUESTION_START = re.compile(r"^(what|how|when|where|who|do i|did i|is there|are there|which)\b")
_AMOUNT = re.compile(r"\$?\s*(\d[\d,]*(?:\.\d+)?)")


def _keyword_intent(transcript: str) -> dict[str, Any]:
    """Summary: Map a transcript to an intent with keyword rules.

    Importance: Mirrors the LOG, QUERY and ACT split the LLM prompt describes.
    Alternatives: Return a fixed intent for every transcript.
    """

    text = transcript.strip()
    lowered = text.lower()
    amount_match = _AMOUNT.search(text)
    amount = float(amount_match.group(1).replace(",", "")) if amount_match else None
    entities: dict[str, Any] = {}
    if _QUESTION_START.match(lowered) or lowered.endswith("?"):
        intent_type = "query"
        if any(word in lowered for word in ("meeting", "calendar", "schedule", "appointment")):
            category = "calendar"
        elif any(word in lowered for word in ("spend", "spent", "money", "budget", "earn")):
            category = "finance"
        elif any(word in lowered for word in ("phone", "contact", "number", "email address")):
            category = "contact"
        elif any(word in lowered for word in ("task", "to-do", "todo", "due")):
            category = "task"
        else:
            category = "general"
    elif lowered.startswith(("send", "email")):
        intent_type, category = "act", "email"
    elif "draft" in lowered:
        intent_type, category = "act", "draft"
    elif lowered.startswith(("schedule", "create a calendar", "book")):
        intent_type, category = "act", "event"
    elif any(word in lowered for word in ("to-do", "todo", "task", "remind me")):
        intent_type, category = "act", "todo"
        entities["title"] = re.sub(r"^.*?(to-do|todo|task)( to)?:?\s*", "", text, flags=re.I)
    elif "workspace" in lowered or "new project" in lowered:
        intent_type, category = "act", "workspace"
    elif lowered.startswith("record") and amount is not None:
        intent_type, category = "act", "transaction"
        entities["amount"] = amount
    elif lowered.startswith("add") and "contact" in lowered:
        intent_type, category = "act", "contact"
        entities["name"] = re.sub(r"^add\s+|\s+as a.*$", "", text, flags=re.I)
    elif amount is not None:
        intent_type = "log"
        income = any(word in lowered for word in ("earned", "received", "income", "paid me"))
        category = "income" if income else "expense"
        entities["amount"] = amount
        store = re.search(r"\b(?:on|at|from)\s+([\w' ]+?)(?:[.!]|$)", text, re.I)
        if store:
            entities["store"] = store.group(1).strip()
            entities["description"] = store.group(1).strip()
    elif lowered.startswith("met "):
        intent_type, category = "log", "contact"
        entities["person"] = re.sub(r"^met\s+|\s+at\s+.*$", "", text, flags=re.I)
    else:
        intent_type, category = "log", "event"
        entities["title"] = text
    return {
        "intentType": intent_type,
        "category": category,
        "title": text[:60],
        "detail": text,
        "confidence": 0.6,
        "entities": entities,
    }
