"""Summary: Tests for the credential token codec.

Importance: Ensures tokens are encoded at rest and read back consistently.
Alternatives: Store plaintext tokens and rely on disk encryption.
"""

from __future__ import annotations

from voicepilot.token_codec import TokenCodec


def test_token_codec_roundtrip() -> None:
    """Summary: Verify encoding and decoding restores plaintext.

    Importance: Ensures token storage can be reversed for use.
    Alternatives: Store tokens in a vault without encoding.
    """

    codec = TokenCodec("secret")
    encoded = codec.encode("ya29.token")
    assert encoded != "ya29.token"
    assert encoded.startswith("v1:")
    assert codec.decode(encoded) == "ya29.token"


def test_token_codec_passes_none_and_legacy_values() -> None:
    """Summary: None stays None and unprefixed values are returned unchanged.

    Importance: Rows written before encoding keep working.
    Alternatives: Migrate every stored token up front.
    """

    codec = TokenCodec("secret")
    assert codec.encode(None) is None
    assert codec.decode(None) is None
    assert codec.decode("plain-legacy-token") == "plain-legacy-token"


def test_token_codec_depends_on_secret() -> None:
    codec = TokenCodec("secret")
    other = TokenCodec("another-secret")
    assert codec.encode("token") != other.encode("token")
