"""
Encrypted-file keystore used when no OS keychain is usable.

Entries live in ``~/.tucksafe/keystore.enc`` as an AES-256-GCM encrypted JSON
document ``{"version": 1, "entries": {service: {account: secret}}}``.

The file key comes from one of:
  - ``TUCKSAFE_KEYSTORE_PASSPHRASE`` (scrypt, salt stored in the file), or
  - a random 32-byte key file (``~/.tucksafe/keystore.key``, chmod 600).
The key never appears inside the encrypted file.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from ..core.atomic import PRIVATE_FILE_MODE, atomic_write_bytes, restrict_dir
from ..core.crypto import (
    KEY_LENGTH,
    SALT_LENGTH,
    DecryptionError,
    decrypt,
    derive_key,
    encrypt,
    generate_key,
)
from .base import KeystoreOperationFailed, validate_arg, validate_secret

logger = logging.getLogger(__name__)

PASSPHRASE_ENV = "TUCKSAFE_KEYSTORE_PASSPHRASE"

_DATA_VERSION = 1
_MAGIC_KEYFILE = b"TUCKSAFE-KS1K"
_MAGIC_PASSPHRASE = b"TUCKSAFE-KS1P"


def _default_dir() -> Path:
    return Path.home() / ".tucksafe"


class FallbackKeystore:
    """File-backed keystore. Always available."""

    can_retrieve = True

    def __init__(
        self,
        path: str | Path | None = None,
        key_path: str | Path | None = None,
        passphrase: str | None = None,
    ):
        base = _default_dir()
        self.path = Path(path) if path else base / "keystore.enc"
        self.key_path = Path(key_path) if key_path else self.path.with_suffix(".key")
        self._passphrase = passphrase if passphrase is not None else os.environ.get(PASSPHRASE_ENV)
        self._lock = threading.Lock()

    def get_name(self) -> str:
        return "Local encrypted file"

    def is_available(self) -> bool:
        return True

    def store(self, service: str, account: str, secret: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        validate_secret(secret)
        with self._lock:
            entries = self._load()
            entries.setdefault(service, {})[account] = secret
            self._save(entries)

    def retrieve(self, service: str, account: str) -> str | None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        with self._lock:
            entries = self._load()
        return entries.get(service, {}).get(account) or None

    def delete(self, service: str, account: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        with self._lock:
            entries = self._load()
            accounts = entries.get(service)
            if not accounts or account not in accounts:
                return
            del accounts[account]
            if not accounts:
                del entries[service]
            self._save(entries)

    # -- file key -----------------------------------------------------------

    def _read_key_file(self, create: bool) -> bytes | None:
        if not self.key_path.exists():
            if not create:
                return None
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            restrict_dir(self.key_path.parent)
            atomic_write_bytes(self.key_path, generate_key(), mode=PRIVATE_FILE_MODE)
        try:
            key = self.key_path.read_bytes()
        except OSError as exc:
            raise KeystoreOperationFailed(f"Cannot read keystore key file {self.key_path}: {exc}") from exc
        if len(key) != KEY_LENGTH:
            raise KeystoreOperationFailed(
                f"Keystore key file {self.key_path} must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        return key

    # -- data file ----------------------------------------------------------

    def _load(self) -> dict[str, dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            blob = self.path.read_bytes()
        except OSError as exc:
            raise KeystoreOperationFailed(f"Cannot read keystore file {self.path}: {exc}") from exc

        try:
            if blob.startswith(_MAGIC_PASSPHRASE):
                if not self._passphrase:
                    raise KeystoreOperationFailed(
                        f"Keystore file {self.path} is passphrase-protected; set {PASSPHRASE_ENV}"
                    )
                salt = blob[len(_MAGIC_PASSPHRASE) : len(_MAGIC_PASSPHRASE) + SALT_LENGTH]
                key = derive_key(self._passphrase, salt)
                magic = _MAGIC_PASSPHRASE + salt
                plaintext = decrypt(blob, key, magic)
            else:
                key = self._read_key_file(create=False)
                if key is None:
                    raise KeystoreOperationFailed(
                        f"Keystore key file {self.key_path} is missing; cannot decrypt {self.path}"
                    )
                plaintext = decrypt(blob, key, _MAGIC_KEYFILE)
            data = json.loads(plaintext.decode("utf-8"))
        except (DecryptionError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise KeystoreOperationFailed(f"Keystore file {self.path} is unreadable: {exc}") from exc

        entries = data.get("entries") if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            raise KeystoreOperationFailed(f"Keystore file {self.path} has no entries table")
        return {
            service: {a: s for a, s in accounts.items() if isinstance(s, str)}
            for service, accounts in entries.items()
            if isinstance(accounts, dict)
        }

    def _save(self, entries: dict[str, dict[str, str]]) -> None:
        payload = json.dumps({"version": _DATA_VERSION, "entries": entries}).encode("utf-8")
        if self._passphrase:
            salt = os.urandom(SALT_LENGTH)
            magic = _MAGIC_PASSPHRASE + salt
            blob = encrypt(payload, derive_key(self._passphrase, salt), magic)
        else:
            blob = encrypt(payload, self._read_key_file(create=True), _MAGIC_KEYFILE)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        restrict_dir(self.path.parent)
        try:
            atomic_write_bytes(self.path, blob, mode=PRIVATE_FILE_MODE)
        except OSError as exc:
            raise KeystoreOperationFailed(f"Cannot write keystore file {self.path}: {exc}") from exc
        logger.debug("Wrote fallback keystore %s", self.path)
