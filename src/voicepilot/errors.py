"""Summary: Error taxonomy for VoicePilot.

Importance: Gives every layer a shared vocabulary for user-visible and retryable failures.
Alternatives: Raise RuntimeError everywhere and inspect message strings.
"""

from __future__ import annotations


class VoicePilotError(Exception):
    """Summary: Base class for all VoicePilot errors.

    Importance: Lets the API and controller catch domain failures in one place.
    Alternatives: Catch Exception and lose the distinction from programming errors.
    """


class ConfigurationError(VoicePilotError):
    """Summary: Raised when required configuration is missing.

    Importance: Marks startup-class failures that retrying cannot fix.
    Alternatives: Let provider endpoints reject requests with empty credentials.
    """


class PermissionDenied(VoicePilotError):
    """Summary: Raised when microphone access is refused."""


class NoAudioCaptured(VoicePilotError):
    """Summary: Raised when a recording produced no audio bytes."""


class InvalidTransition(VoicePilotError):
    """Summary: Raised when a controller action is not valid in the current state.

    Importance: Enforces one active session per controller.
    Alternatives: Silently ignore out-of-order calls.
    """


class GatewayError(VoicePilotError):
    """Summary: Non-transient failure reported by the classification gateway.

    Importance: Surfaces immediately without retries.
    Alternatives: Retry every failure and hide permanent errors behind delays.
    """


class TransientGatewayError(GatewayError):
    """Summary: Network, timeout or 502/503/504 failure from the gateway.

    Importance: The only failure class the controller retries automatically.
    Alternatives: Classify retryability by parsing messages at the call site.
    """


class ClassificationParseError(VoicePilotError):
    """Summary: Raised when the classifier output cannot be parsed into an intent."""


class ValidationError(VoicePilotError):
    """Summary: Raised for unknown categories or missing required entities.

    Importance: Rejects malformed intents instead of coercing them to defaults.
    Alternatives: Fall through to a generic handler for unknown categories.
    """


class ProviderAuthError(VoicePilotError):
    """Summary: Raised when a provider credential is missing, expired or unrefreshable.

    Importance: Tells the user which provider to connect before retrying.
    Alternatives: Attempt the external call and let the provider reject it.
    """


class UpstreamWorkflowError(VoicePilotError):
    """Summary: Raised when an external workflow responds with a non-2xx status.

    Importance: Keeps the upstream status visible in the surfaced message.
    Alternatives: Return the raw upstream body to the client.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PersistenceError(VoicePilotError):
    """Summary: Raised when a direct write to the store fails.

    Importance: Surfaces storage failures verbatim without partial state.
    Alternatives: Propagate raw sqlite3 exceptions to callers.
    """
