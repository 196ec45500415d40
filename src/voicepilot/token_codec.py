"""Summary: At-rest encoding for provider OAuth tokens.

Importance: Keeps access and refresh tokens out of the credential table in plaintext.
Alternatives: Use a dedicated secrets manager or strong encryption library.
"""

from __future__ import annotations

import base64
import hashlib


PREFIX = "v1:"


class TokenCodec:
    """Summary: Reversible encoder for credential token columns.

    Importance: Lets the credential manager store and read tokens through one seam.
    Alternatives: Use a proper encryption library with key management.
    """

    def __init__(self, secret: str) -> None:
        self._secret = (secret or "voicepilot").encode("utf-8")

    def encode(self, token: str | None) -> str | None:
        """Summary: Encode a token for storage, passing None through.

        Importance: Refresh tokens are absent for notion and slack and must stay NULL.
        Alternatives: Store empty strings for missing tokens.
        """

        if token is None:
            return None
        raw = token.encode("utf-8")
        key = _keystream(self._secret, len(raw))
        obfuscated = bytes(b ^ k for b, k in zip(raw, key))
        return PREFIX + base64.urlsafe_b64encode(obfuscated).decode("utf-8")

    def decode(self, stored: str | None) -> str | None:
        """Summary: Decode a stored token column back to plaintext.

        Importance: Values without the version prefix were written before encoding and are returned unchanged.
        Alternatives: Require a data migration before enabling encoding.
        """

        if stored is None:
            return None
        if not stored.startswith(PREFIX):
            return stored
        raw = base64.urlsafe_b64decode(stored[len(PREFIX):].encode("utf-8"))
        key = _keystream(self._secret, len(raw))
        return bytes(b ^ k for b, k in zip(raw, key)).decode("utf-8")


def _keystream(secret: bytes, length: int) -> bytes:
    output = b""
    counter = 0
    while len(output) < length:
        output += hashlib.sha256(secret + counter.to_bytes(4, "big")).digest()
        counter += 1
    return output[:length]
