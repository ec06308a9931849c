"""
AES-256-GCM helpers for the vault and the fallback keystore.

Blobs are laid out as MAGIC + nonce (12 bytes) + ciphertext + tag (16 bytes).
Passphrase-derived keys use scrypt with a per-file salt stored after MAGIC.
"""

from __future__ import annotations

import base64
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
SALT_LENGTH = 16

SCRYPT_N = 2**15
SCRYPT_R = 8
SCRYPT_P = 1


class DecryptionError(Exception):
    """Raised when ciphertext is malformed or fails authentication."""


def generate_key() -> bytes:
    return secrets.token_bytes(KEY_LENGTH)


def encode_key(key: bytes) -> str:
    """Text form of a raw key, suitable for a keystore entry."""
    return base64.urlsafe_b64encode(key).decode("ascii")


def decode_key(text: str) -> bytes:
    try:
        key = base64.urlsafe_b64decode(text.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise DecryptionError("stored key is not valid base64") from exc
    if len(key) != KEY_LENGTH:
        raise DecryptionError(f"stored key must be {KEY_LENGTH} bytes, got {len(key)}")
    return key


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit key from a passphrase with scrypt."""
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: bytes, key: bytes, magic: bytes) -> bytes:
    nonce = secrets.token_bytes(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, magic)
    return magic + nonce + ciphertext


def decrypt(data: bytes, key: bytes, magic: bytes) -> bytes:
    """Reverse ``encrypt``. The magic header is bound as associated data."""
    if not data.startswith(magic):
        raise DecryptionError("bad magic header")
    body = data[len(magic) :]
    if len(body) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError("encrypted data too short")
    nonce, ciphertext = body[:NONCE_LENGTH], body[NONCE_LENGTH:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, magic)
    except InvalidTag as exc:
        raise DecryptionError("authentication failed: wrong key or corrupted data") from exc
