"""Marketplace token encryption and request signing helpers.

Tokens are stored as ``enc:gcm:<iv_b64>:<ciphertext_b64>`` where the
ciphertext carries the 16-byte GCM tag at its end.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "enc:gcm:"
IV_LENGTH = 12
VALID_KEY_LENGTHS = (16, 24, 32)


class TokenCryptoError(Exception):
    """Raised when a key or an encrypted token cannot be used."""
    pass


def load_key(raw: str | None) -> AESGCM:
    """Build an AES-GCM cipher from a base64 or hex encoded key.

    Accepts an optional ``0x`` prefix and ignores whitespace and dashes.

    Raises:
        TokenCryptoError: If the key is empty, not decodable, or not 128/192/256 bits.
    """
    cleaned = (raw or "").strip()
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    cleaned = re.sub(r"[\s-]", "", cleaned)
    if not cleaned:
        raise TokenCryptoError("Invalid key format")

    try:
        key_bytes = base64.b64decode(cleaned, validate=True)
        if len(key_bytes) in VALID_KEY_LENGTHS:
            return AESGCM(key_bytes)
    except (binascii.Error, ValueError):
        pass

    if len(cleaned) % 2 == 0 and re.fullmatch(r"[0-9a-fA-F]+", cleaned):
        key_bytes = bytes.fromhex(cleaned)
        if len(key_bytes) in VALID_KEY_LENGTHS:
            return AESGCM(key_bytes)
        raise TokenCryptoError("Invalid key length")

    raise TokenCryptoError("Invalid key format")


def encrypt_token(key: AESGCM, plaintext: str) -> str:
    """Encrypt a token with a fresh random 12-byte IV."""
    iv = os.urandom(IV_LENGTH)
    ciphertext = key.encrypt(iv, plaintext.encode("utf-8"), None)
    iv_b64 = base64.b64encode(iv).decode("ascii")
    ct_b64 = base64.b64encode(ciphertext).decode("ascii")
    return f"{TOKEN_PREFIX}{iv_b64}:{ct_b64}"


def decrypt_token(key: AESGCM, value: str) -> str:
    """Decrypt an ``enc:gcm`` token.

    Raises:
        TokenCryptoError: If the string is malformed or authentication fails.
    """
    parts = (value or "").split(":")
    if len(parts) != 4 or parts[0] != "enc" or parts[1] != "gcm":
        raise TokenCryptoError("Invalid token format")

    try:
        iv = base64.b64decode(parts[2])
        ciphertext = base64.b64decode(parts[3])
        return key.decrypt(iv, ciphertext, None).decode("utf-8")
    except (binascii.Error, ValueError, InvalidTag) as e:
        raise TokenCryptoError(f"Token decryption failed: {e.__class__.__name__}") from e


def is_encrypted(value: str | None) -> bool:
    return bool(value and value.startswith(TOKEN_PREFIX))


def try_decrypt_token(key: AESGCM, value: str | None) -> str:
    """Decrypt when possible, otherwise hand back the stored value.

    Legacy rows may hold plaintext tokens, so anything that is not a valid
    ``enc:gcm`` string is returned unchanged.
    """
    if not value:
        return ""
    if not is_encrypted(value):
        return value
    try:
        return decrypt_token(key, value)
    except TokenCryptoError:
        logger.warning("Stored token could not be decrypted, using raw value")
        return value


def hmac_sha256_hex(key: str, message: str) -> str:
    """HMAC-SHA256 of message, uppercase hex."""
    return hmac.new(
        key=key.encode("utf-8"),
        msg=message.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest().upper()
