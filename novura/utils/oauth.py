"""OAuth state encoding and PKCE helpers."""

import base64
import binascii
import hashlib
import json
import secrets
import string
from typing import Any

PKCE_CHARSET = string.ascii_letters + string.digits + "-._~"


class InvalidStateError(Exception):
    """Raised when an OAuth state parameter cannot be decoded."""
    pass


def encode_state(payload: dict[str, Any]) -> str:
    """Serialize state as base64 of compact JSON."""
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_state(state: str | None) -> dict[str, Any]:
    """Decode a state produced by :func:`encode_state`.

    Accepts the url-safe alphabet and missing padding, since some providers
    re-encode the value on the way back.

    Raises:
        InvalidStateError: If the value is not base64 JSON of an object.
    """
    if not state:
        raise InvalidStateError("Missing state")

    normalized = state.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        decoded = base64.b64decode(normalized).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidStateError("Invalid state") from e

    if not isinstance(payload, dict):
        raise InvalidStateError("Invalid state")
    return payload


def generate_code_verifier(length: int = 64) -> str:
    """Random PKCE verifier (RFC 7636 allows 43..128 chars)."""
    return "".join(secrets.choice(PKCE_CHARSET) for _ in range(length))


def code_challenge_s256(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
