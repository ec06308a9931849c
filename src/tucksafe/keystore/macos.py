"""macOS Keychain backend using the ``security`` command."""

from __future__ import annotations

import shutil
import sys

from .base import (
    OPERATION_TIMEOUT,
    PROBE_TIMEOUT,
    KeystoreOperationFailed,
    KeystoreUnavailable,
    run_tool,
    validate_arg,
    validate_secret,
)

_NOT_FOUND_EXIT = 44


class MacOSKeystore:
    can_retrieve = True

    def get_name(self) -> str:
        return "macOS Keychain"

    def is_available(self) -> bool:
        if sys.platform != "darwin" or shutil.which("security") is None:
            return False
        try:
            result = run_tool(["security", "default-keychain"], backend=self.get_name(), timeout=PROBE_TIMEOUT)
        except KeystoreUnavailable:
            return False
        return result.returncode == 0

    def store(self, service: str, account: str, secret: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        validate_secret(secret)

        # -U updates an existing item in place
        result = run_tool(
            ["security", "add-generic-password", "-s", service, "-a", account, "-w", secret, "-U"],
            backend=self.get_name(),
            timeout=OPERATION_TIMEOUT,
        )
        if result.returncode != 0:
            raise KeystoreOperationFailed(
                f"Failed to store in macOS Keychain (exit {result.returncode}): {result.stderr.strip()}"
            )

    def retrieve(self, service: str, account: str) -> str | None:
        validate_arg(service, "service")
        validate_arg(account, "account")

        result = run_tool(
            ["security", "find-generic-password", "-s", service, "-a", account, "-w"],
            backend=self.get_name(),
        )
        if result.returncode == _NOT_FOUND_EXIT:
            return None
        if result.returncode != 0:
            raise KeystoreOperationFailed(
                f"Failed to read from macOS Keychain (exit {result.returncode}): {result.stderr.strip()}"
            )
        value = result.stdout.rstrip("\n")
        return value or None

    def delete(self, service: str, account: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")

        result = run_tool(
            ["security", "delete-generic-password", "-s", service, "-a", account],
            backend=self.get_name(),
        )
        if result.returncode not in (0, _NOT_FOUND_EXIT):
            raise KeystoreOperationFailed(
                f"Failed to delete from macOS Keychain (exit {result.returncode}): {result.stderr.strip()}"
            )
