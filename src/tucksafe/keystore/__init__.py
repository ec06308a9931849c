"""Keystore selection: pick one backend per process and cache it.

Selection order:
  1. the native backend for the running platform, if its probe succeeds and
     it can read secrets back;
  2. otherwise the encrypted fallback file.

Write-only backends (Windows ``cmdkey``) are never selected automatically,
so ``retrieve`` after ``store`` behaves the same on every platform.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Callable

from .base import (
    ACCOUNT,
    SERVICE,
    Keystore,
    KeystoreError,
    KeystoreOperationFailed,
    KeystoreUnavailable,
)
from .fallback import FallbackKeystore
from .linux import LinuxKeystore
from .macos import MacOSKeystore
from .windows import WindowsKeystore

logger = logging.getLogger(__name__)

_NATIVE_BACKENDS: dict[str, type] = {
    "darwin": MacOSKeystore,
    "linux": LinuxKeystore,
    "win32": WindowsKeystore,
}


def native_keystore_for(platform: str) -> Keystore | None:
    """Return an instance of the native backend for *platform*, if any."""
    key = "linux" if platform.startswith("linux") else platform
    cls = _NATIVE_BACKENDS.get(key)
    return cls() if cls else None


def _probe(keystore: Keystore) -> bool:
    try:
        return bool(keystore.is_available())
    except Exception:
        logger.debug("Keystore probe failed for %s", keystore.get_name(), exc_info=True)
        return False


class KeystoreContext:
    """Holds the selected keystore for one process (or one test).

    ``native`` and ``fallback`` are factories so tests can inject fakes
    without touching the real platform.
    """

    def __init__(
        self,
        platform: str | None = None,
        native: Callable[[], Keystore | None] | None = None,
        fallback: Callable[[], Keystore] | None = None,
    ):
        self.platform = platform or sys.platform
        self._native = native or (lambda: native_keystore_for(self.platform))
        self._fallback = fallback or FallbackKeystore
        self._selected: Keystore | None = None
        self._lock = threading.Lock()

    def select(self) -> Keystore:
        """Run the selection algorithm once and cache the result."""
        with self._lock:
            if self._selected is None:
                self._selected = self._choose()
            return self._selected

    def _choose(self) -> Keystore:
        native = self._native()
        if native is not None:
            if not _probe(native):
                logger.debug("%s unavailable, using fallback keystore", native.get_name())
            elif not getattr(native, "can_retrieve", False):
                logger.debug("%s is write-only, using fallback keystore", native.get_name())
            else:
                return native
        return self._fallback()

    def reset(self) -> None:
        with self._lock:
            self._selected = None


_default_context = KeystoreContext()


def get_keystore(context: KeystoreContext | None = None) -> Keystore:
    """Return the cached keystore for *context* (default: process-wide)."""
    return (context or _default_context).select()


def clear_keystore_cache() -> None:
    """Forget the process-wide selection (for testing)."""
    _default_context.reset()


def get_keystore_name(context: KeystoreContext | None = None) -> str:
    return get_keystore(context).get_name()


__all__ = [
    "ACCOUNT",
    "SERVICE",
    "FallbackKeystore",
    "Keystore",
    "KeystoreContext",
    "KeystoreError",
    "KeystoreOperationFailed",
    "KeystoreUnavailable",
    "LinuxKeystore",
    "MacOSKeystore",
    "WindowsKeystore",
    "clear_keystore_cache",
    "get_keystore",
    "get_keystore_name",
    "native_keystore_for",
]
