"""Keystore contract, errors, and subprocess helpers shared by all backends."""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

SERVICE = "tuck-dotfiles"
ACCOUNT = "vault-encryption"

PROBE_TIMEOUT = 5
OPERATION_TIMEOUT = 10

_MAX_ARG_LENGTH = 256
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class KeystoreError(Exception):
    """Base class for keystore failures."""


class KeystoreUnavailable(KeystoreError):
    """Raised when a keystore backend cannot be used on this machine."""


class KeystoreOperationFailed(KeystoreError):
    """Raised when a store/retrieve/delete call fails."""


@runtime_checkable
class Keystore(Protocol):
    """Uniform interface over a platform's secure credential storage.

    ``can_retrieve`` is False for write-only backends; those are never picked
    by automatic selection.
    """

    can_retrieve: bool

    def get_name(self) -> str: ...

    def is_available(self) -> bool: ...

    def store(self, service: str, account: str, secret: str) -> None: ...

    def retrieve(self, service: str, account: str) -> str | None: ...

    def delete(self, service: str, account: str) -> None: ...


def validate_arg(value: str, name: str) -> None:
    """Reject empty, oversized, or control-character arguments."""
    if not isinstance(value, str):
        raise KeystoreOperationFailed(f"{name} must be a string")
    if not value:
        raise KeystoreOperationFailed(f"{name} cannot be empty")
    if len(value) > _MAX_ARG_LENGTH:
        raise KeystoreOperationFailed(f"{name} too long (max {_MAX_ARG_LENGTH} characters)")
    if _CONTROL_CHARS.search(value):
        raise KeystoreOperationFailed(f"{name} contains invalid control characters")


def validate_secret(secret: str) -> None:
    if not isinstance(secret, str) or not secret:
        raise KeystoreOperationFailed("secret must be a non-empty string")


def run_tool(
    args: list[str],
    *,
    backend: str,
    input_text: str | None = None,
    timeout: int = OPERATION_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run a keystore CLI with a bounded timeout.

    A missing binary or a hung call raises ``KeystoreUnavailable``; a non-zero
    exit code is returned to the caller to interpret.
    """
    try:
        return subprocess.run(
            args,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise KeystoreUnavailable(f"{backend}: '{args[0]}' timed out after {timeout}s") from exc
    except OSError as exc:
        raise KeystoreUnavailable(f"{backend}: failed to run '{args[0]}': {exc}") from exc
