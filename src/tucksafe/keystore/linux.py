"""Linux Secret Service backend using ``secret-tool`` (libsecret)."""

from __future__ import annotations

import os
import shutil
import sys

from .base import KeystoreOperationFailed, run_tool, validate_arg, validate_secret


class LinuxKeystore:
    can_retrieve = True

    def get_name(self) -> str:
        return "Linux Secret Service"

    def is_available(self) -> bool:
        if not sys.platform.startswith("linux"):
            return False
        if shutil.which("secret-tool") is None:
            return False
        # secret-tool talks to the daemon over the session bus; headless
        # sessions without one would hang or prompt.
        return bool(os.environ.get("DBUS_SESSION_BUS_ADDRESS"))

    def store(self, service: str, account: str, secret: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        validate_secret(secret)

        # secret is passed on stdin, never on the command line
        result = run_tool(
            ["secret-tool", "store", "--label", f"{service} - {account}", "service", service, "account", account],
            backend=self.get_name(),
            input_text=secret,
        )
        if result.returncode != 0:
            raise KeystoreOperationFailed(
                f"Failed to store in Linux Secret Service (exit {result.returncode}): {result.stderr.strip()}"
            )

    def retrieve(self, service: str, account: str) -> str | None:
        validate_arg(service, "service")
        validate_arg(account, "account")

        result = run_tool(
            ["secret-tool", "lookup", "service", service, "account", account],
            backend=self.get_name(),
        )
        # secret-tool exits 1 with empty output when nothing matches
        if result.returncode != 0:
            if result.stderr.strip():
                raise KeystoreOperationFailed(
                    f"Failed to read from Linux Secret Service (exit {result.returncode}): {result.stderr.strip()}"
                )
            return None
        value = result.stdout.rstrip("\n")
        return value or None

    def delete(self, service: str, account: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")

        result = run_tool(
            ["secret-tool", "clear", "service", service, "account", account],
            backend=self.get_name(),
        )
        if result.returncode != 0 and result.stderr.strip():
            raise KeystoreOperationFailed(
                f"Failed to delete from Linux Secret Service (exit {result.returncode}): {result.stderr.strip()}"
            )
