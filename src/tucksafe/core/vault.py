"""Encrypted secrets vault: secret id -> plaintext value plus placeholder metadata.

The vault lives at ``<store>/secrets.vault`` and is never committed (it is
added to the store's ``.gitignore`` on every save). Its 256-bit key is kept in
the selected keystore under ``(SERVICE, ACCOUNT)``; the file itself is
``MAGIC + nonce + AES-GCM(json)``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..keystore.base import ACCOUNT, SERVICE, Keystore
from .atomic import PRIVATE_FILE_MODE, atomic_write_bytes
from .crypto import DecryptionError, decode_key, decrypt, encode_key, encrypt, generate_key
from .placeholders import (
    MAX_SECRET_NAME_LENGTH,
    format_placeholder,
    is_valid_secret_name,
    normalize_secret_name,
)

if TYPE_CHECKING:
    from ..keystore import KeystoreContext

logger = logging.getLogger(__name__)

VAULT_FILENAME = "secrets.vault"
VAULT_VERSION = "1.0.0"

_MAGIC = b"TUCKSAFE-VAULT1"
_ID_DIGEST_LENGTH = 8


class VaultError(Exception):
    """Base class for vault failures."""


class VaultCorrupted(VaultError):
    """The vault exists but cannot be decrypted or parsed. Never auto-deleted."""


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SecretEntry:
    value: str = field(repr=False)
    placeholder: str
    description: str | None = None
    source: str | None = None
    added_at: str = ""
    last_used: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "value": self.value,
            "placeholder": self.placeholder,
            "addedAt": self.added_at,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.source is not None:
            data["source"] = self.source
        if self.last_used is not None:
            data["lastUsed"] = self.last_used
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecretEntry:
        if not isinstance(data.get("value"), str) or not isinstance(data.get("placeholder"), str):
            raise ValueError("entry needs 'value' and 'placeholder' strings")
        return cls(
            value=data["value"],
            placeholder=data["placeholder"],
            description=data.get("description"),
            source=data.get("source"),
            added_at=str(data.get("addedAt") or ""),
            last_used=data.get("lastUsed"),
        )


@dataclass
class VaultDocument:
    version: str = VAULT_VERSION
    secrets: dict[str, SecretEntry] = field(default_factory=dict)

    def to_json(self) -> bytes:
        payload = {
            "version": self.version,
            "secrets": {name: entry.to_dict() for name, entry in self.secrets.items()},
        }
        return json.dumps(payload, indent=2).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> VaultDocument:
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict) or not isinstance(data.get("secrets"), dict):
            raise ValueError("vault document has no 'secrets' table")
        secrets = {}
        for name, entry in data["secrets"].items():
            if not isinstance(entry, dict):
                raise ValueError(f"entry {name!r} is not an object")
            secrets[name] = SecretEntry.from_dict(entry)
        return cls(version=str(data.get("version") or VAULT_VERSION), secrets=secrets)


@dataclass
class SecretContext:
    """Where a secret was discovered; drives its id."""

    source: str
    hint: str = "SECRET"
    description: str | None = None


@dataclass
class SecretInfo:
    """Listing view of an entry. Carries no value."""

    name: str
    placeholder: str
    description: str | None
    source: str | None
    added_at: str
    last_used: str | None


def get_vault_path(store_dir: str | Path) -> Path:
    return Path(store_dir) / VAULT_FILENAME


def ensure_vault_gitignored(store_dir: str | Path) -> bool:
    """Add the vault file to ``<store>/.gitignore``. Returns True if it was added."""
    gitignore = Path(store_dir) / ".gitignore"
    existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    entries = {line.strip() for line in existing.splitlines()}
    if VAULT_FILENAME in entries or f"/{VAULT_FILENAME}" in entries:
        return False

    prefix = "" if not existing or existing.endswith("\n") else "\n"
    block = f"{prefix}\n# tucksafe encrypted secrets (never commit)\n{VAULT_FILENAME}\n"
    if not existing:
        block = block.lstrip("\n")
    gitignore.parent.mkdir(parents=True, exist_ok=True)
    with open(gitignore, "a", encoding="utf-8") as f:
        f.write(block)
    return True


def _secret_id(hint: str, source: str) -> str:
    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:_ID_DIGEST_LENGTH].upper()
    base = normalize_secret_name(hint)[: MAX_SECRET_NAME_LENGTH - _ID_DIGEST_LENGTH - 1].rstrip("_")
    return f"{base}_{digest}"


class SecretsVault:
    """One store's vault, loaded lazily and held in memory for one command.

    Mutating CRUD helpers (``set_secret``, ``unset_secret``, ``touch_secrets``)
    save immediately. ``add_or_update_secret`` and ``resolve_placeholder`` only
    change the in-memory document; callers persist with ``save()`` or
    ``flush()`` once their batch is done.
    """

    def __init__(
        self,
        store_dir: str | Path,
        keystore: Keystore | None = None,
        context: KeystoreContext | None = None,
    ):
        self.store_dir = Path(store_dir)
        self.path = get_vault_path(self.store_dir)
        self._keystore = keystore
        self._context = context
        self._document: VaultDocument | None = None
        self._dirty = False
        self._lock = threading.Lock()

    @property
    def keystore(self) -> Keystore:
        if self._keystore is None:
            from ..keystore import get_keystore

            self._keystore = get_keystore(self._context)
        return self._keystore

    @property
    def document(self) -> VaultDocument:
        if self._document is None:
            self.load()
        assert self._document is not None
        return self._document

    @property
    def dirty(self) -> bool:
        return self._dirty

    def exists(self) -> bool:
        return self.path.exists()

    # -- key handling -------------------------------------------------------

    def _read_key(self) -> bytes | None:
        encoded = self.keystore.retrieve(SERVICE, ACCOUNT)
        if encoded is None:
            return None
        try:
            return decode_key(encoded)
        except DecryptionError as exc:
            raise VaultCorrupted(
                f"Vault key in {self.keystore.get_name()} is malformed: {exc}"
            ) from exc

    def _key_for_write(self) -> bytes:
        key = self._read_key()
        if key is not None:
            return key
        if self.exists():
            raise VaultCorrupted(
                f"Vault {self.path} exists but its key is missing from {self.keystore.get_name()}; "
                "refusing to overwrite it with a new key"
            )
        key = generate_key()
        self.keystore.store(SERVICE, ACCOUNT, encode_key(key))
        logger.debug("Created vault key in %s", self.keystore.get_name())
        return key

    # -- persistence --------------------------------------------------------

    def load(self) -> VaultDocument:
        """Decrypt the vault. A missing file is an empty vault."""
        if not self.exists():
            self._document = VaultDocument()
            self._dirty = False
            return self._document

        try:
            blob = self.path.read_bytes()
        except OSError as exc:
            raise VaultError(f"Cannot read vault {self.path}: {exc}") from exc

        key = self._read_key()
        if key is None:
            raise VaultCorrupted(
                f"Vault {self.path} exists but its key is missing from {self.keystore.get_name()}"
            )

        try:
            document = VaultDocument.from_json(decrypt(blob, key, _MAGIC))
        except DecryptionError as exc:
            raise VaultCorrupted(
                f"Cannot decrypt vault {self.path} with key from {self.keystore.get_name()}: {exc}"
            ) from exc
        except (UnicodeDecodeError, ValueError) as exc:
            raise VaultCorrupted(f"Vault {self.path} is malformed: {exc}") from exc

        self._document = document
        self._dirty = False
        return document

    def save(self, document: VaultDocument | None = None) -> None:
        """Re-encrypt and atomically replace the vault file (0600)."""
        if document is not None:
            self._document = document
        document = self.document
        blob = encrypt(document.to_json(), self._key_for_write(), _MAGIC)

        self.store_dir.mkdir(parents=True, exist_ok=True)
        try:
            atomic_write_bytes(self.path, blob, mode=PRIVATE_FILE_MODE)
        except OSError as exc:
            raise VaultError(f"Cannot write vault {self.path}: {exc}") from exc
        ensure_vault_gitignored(self.store_dir)
        self._dirty = False
        logger.debug("Saved vault %s (%d secrets)", self.path, len(document.secrets))

    def flush(self) -> bool:
        """Save only if in-memory changes are pending."""
        if not self._dirty:
            return False
        self.save()
        return True

    # -- discovery / restore ------------------------------------------------

    def add_or_update_secret(self, context: SecretContext, plaintext: str) -> str:
        """Vault *plaintext* found at *context*; return its secret id.

        The same (source, value) pair always maps to the same id.
        """
        if not plaintext:
            raise VaultError("Cannot vault an empty secret")
        secrets = self.document.secrets
        now = _iso_now()

        with self._lock:
            for secret_id, entry in secrets.items():
                if entry.source == context.source and entry.value == plaintext:
                    entry.last_used = now
                    self._dirty = True
                    return secret_id

            base = _secret_id(context.hint, context.source)
            secret_id = base
            counter = 2
            while secret_id in secrets:
                secret_id = f"{base}_{counter}"
                counter += 1

            secrets[secret_id] = SecretEntry(
                value=plaintext,
                placeholder=format_placeholder(secret_id),
                description=context.description,
                source=context.source,
                added_at=now,
                last_used=now,
            )
            self._dirty = True
        logger.debug("Vaulted new secret %s from %s", secret_id, context.source)
        return secret_id

    def resolve_placeholder(self, secret_id: str) -> str | None:
        """Plaintext for *secret_id*, or None when unknown. Marks it used."""
        secrets = self.document.secrets
        with self._lock:
            entry = secrets.get(secret_id)
            if entry is None:
                return None
            entry.last_used = _iso_now()
            self._dirty = True
            return entry.value

    # -- CRUD -----------------------------------------------------------------

    def set_secret(
        self,
        name: str,
        value: str,
        description: str | None = None,
        source: str | None = None,
    ) -> None:
        """Add or rotate a named secret. An existing entry keeps its placeholder."""
        if not is_valid_secret_name(name):
            raise VaultError(
                f"Invalid secret name {name!r}: use A-Z, 0-9 and _ "
                f"(starting with a letter, max {MAX_SECRET_NAME_LENGTH} chars)"
            )
        if not value:
            raise VaultError("Secret value cannot be empty")

        secrets = self.document.secrets
        now = _iso_now()
        existing = secrets.get(name)
        if existing is not None:
            existing.value = value
            existing.last_used = now
            if description is not None:
                existing.description = description
            if source is not None:
                existing.source = source
        else:
            secrets[name] = SecretEntry(
                value=value,
                placeholder=format_placeholder(name),
                description=description,
                source=source,
                added_at=now,
                last_used=now,
            )
        self.save()

    def get_secret(self, name: str) -> str | None:
        entry = self.document.secrets.get(name)
        return entry.value if entry else None

    def unset_secret(self, name: str) -> bool:
        if name not in self.document.secrets:
            return False
        del self.document.secrets[name]
        self.save()
        return True

    def has_secret(self, name: str) -> bool:
        return name in self.document.secrets

    def list_secrets(self) -> list[SecretInfo]:
        return [
            SecretInfo(
                name=name,
                placeholder=entry.placeholder,
                description=entry.description,
                source=entry.source,
                added_at=entry.added_at,
                last_used=entry.last_used,
            )
            for name, entry in sorted(self.document.secrets.items())
        ]

    def secret_count(self) -> int:
        return len(self.document.secrets)

    def touch_secrets(self, names: list[str]) -> None:
        now = _iso_now()
        changed = False
        for name in names:
            entry = self.document.secrets.get(name)
            if entry is not None:
                entry.last_used = now
                changed = True
        if changed:
            self.save()

    # -- key lifecycle --------------------------------------------------------

    def rotate_key(self) -> None:
        """Re-encrypt the vault under a fresh key and replace the keystore entry.

        If writing the vault fails the previous key is put back.
        """
        document = self.document
        old_key = self._read_key()
        new_key = generate_key()
        self.keystore.store(SERVICE, ACCOUNT, encode_key(new_key))
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(self.path, encrypt(document.to_json(), new_key, _MAGIC), mode=PRIVATE_FILE_MODE)
        except OSError as exc:
            if old_key is not None:
                self.keystore.store(SERVICE, ACCOUNT, encode_key(old_key))
            raise VaultError(f"Cannot write vault {self.path} during key rotation: {exc}") from exc
        ensure_vault_gitignored(self.store_dir)
        self._dirty = False
        logger.debug("Rotated vault key in %s", self.keystore.get_name())

    def delete_key(self) -> None:
        """Remove the vault key from the keystore. The vault becomes unreadable."""
        self.keystore.delete(SERVICE, ACCOUNT)
