"""Windows Credential Manager backend using ``cmdkey``.

``cmdkey`` can add and remove generic credentials but has no way to print a
stored password back, so this backend is write-only. Automatic selection
skips it and uses the encrypted fallback file instead.
"""

from __future__ import annotations

import shutil
import sys

from .base import KeystoreOperationFailed, run_tool, validate_arg, validate_secret


def _target(service: str, account: str) -> str:
    return f"{service}:{account}"


class WindowsKeystore:
    can_retrieve = False

    def get_name(self) -> str:
        return "Windows Credential Manager"

    def is_available(self) -> bool:
        if sys.platform != "win32":
            return False
        return shutil.which("cmdkey") is not None

    def store(self, service: str, account: str, secret: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")
        validate_secret(secret)

        result = run_tool(
            ["cmdkey", f"/generic:{_target(service, account)}", f"/user:{account}", f"/pass:{secret}"],
            backend=self.get_name(),
        )
        if result.returncode != 0:
            raise KeystoreOperationFailed(f"Failed to store in Windows Credential Manager (exit {result.returncode})")

    def retrieve(self, service: str, account: str) -> str | None:
        raise KeystoreOperationFailed("Windows Credential Manager cannot return stored passwords via cmdkey")

    def delete(self, service: str, account: str) -> None:
        validate_arg(service, "service")
        validate_arg(account, "account")

        result = run_tool(["cmdkey", f"/delete:{_target(service, account)}"], backend=self.get_name())
        if result.returncode != 0:
            raise KeystoreOperationFailed(
                f"Failed to delete from Windows Credential Manager (exit {result.returncode}): {result.stdout.strip()}"
            )
