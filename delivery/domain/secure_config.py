"""Secure config codec for provider secrets.

Secrets are encrypted with AES-256 in CFB mode. A random 16-byte IV is
prepended to the ciphertext, the result is base64-encoded and stored as
`{"encrypted": "<base64>"}` in Provider.secure_config.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Mapping

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import SecureConfigError

KEY_SIZE = 32
IV_SIZE = 16
ENVELOPE_FIELD = "encrypted"


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Return IV || AES-256-CFB(plaintext)."""
    _check_key(key, "encryption")
    iv = os.urandom(IV_SIZE)
    encryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).encryptor()
    return iv + encryptor.update(plaintext) + encryptor.finalize()


def decrypt(ciphertext: bytes, key: bytes) -> bytes:
    _check_key(key, "decryption")
    if len(ciphertext) < IV_SIZE:
        raise SecureConfigError("ciphertext too short")
    iv, body = ciphertext[:IV_SIZE], ciphertext[IV_SIZE:]
    decryptor = Cipher(algorithms.AES(key), modes.CFB(iv)).decryptor()
    return decryptor.update(body) + decryptor.finalize()


def encrypt_to_base64(plaintext: bytes, key: bytes) -> str:
    return base64.b64encode(encrypt(plaintext, key)).decode("ascii")


def decrypt_from_base64(encoded: str, key: bytes) -> bytes:
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SecureConfigError(f"secure config is not valid base64: {exc}") from exc
    return decrypt(raw, key)


def encrypt_secure_config(secrets: Mapping[str, Any], key: bytes) -> dict[str, str]:
    """Encrypt a secrets mapping into the stored envelope shape."""
    plaintext = json.dumps(dict(secrets), separators=(",", ":")).encode("utf-8")
    return {ENVELOPE_FIELD: encrypt_to_base64(plaintext, key)}


def decrypt_secure_config(envelope: Mapping[str, Any] | None, key: bytes) -> dict[str, Any]:
    """Decrypt a stored `{"encrypted": ...}` envelope back into a dict.

    Only the exact envelope shape is accepted; a missing or empty `encrypted`
    field is an error rather than an empty secret.
    """
    if not isinstance(envelope, Mapping):
        raise SecureConfigError("secure config is not in the expected format")
    encoded = envelope.get(ENVELOPE_FIELD)
    if not isinstance(encoded, str) or not encoded:
        raise SecureConfigError("secure config is not in the expected format: missing 'encrypted'")

    plaintext = decrypt_from_base64(encoded, key)
    try:
        parsed = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise SecureConfigError(f"failed to parse provider secure config: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SecureConfigError("provider secure config must decrypt to a JSON object")
    return parsed


def _check_key(key: bytes, purpose: str) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        raise SecureConfigError(f"{purpose} key must be {KEY_SIZE} bytes for AES-256")
