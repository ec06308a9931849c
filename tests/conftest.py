"""Shared fixtures."""

from __future__ import annotations

import pytest


class MemoryKeystore:
    """In-memory keystore; never touches an OS keychain."""

    def __init__(self, name: str = "Memory keystore", available: bool = True, can_retrieve: bool = True):
        self.name = name
        self.available = available
        self.can_retrieve = can_retrieve
        self.entries: dict[tuple[str, str], str] = {}

    def get_name(self) -> str:
        return self.name

    def is_available(self) -> bool:
        return self.available

    def store(self, service: str, account: str, secret: str) -> None:
        self.entries[(service, account)] = secret

    def retrieve(self, service: str, account: str) -> str | None:
        return self.entries.get((service, account))

    def delete(self, service: str, account: str) -> None:
        self.entries.pop((service, account), None)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the user's config, keychain, and store."""
    from tucksafe.keystore import FallbackKeystore, KeystoreContext

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr("tucksafe.core.config._GLOBAL_CONFIG_PATH", home / ".tucksafe" / "config.toml")
    monkeypatch.delenv("TUCK_DIR", raising=False)
    monkeypatch.delenv("TUCKSAFE_KEYSTORE_PASSPHRASE", raising=False)

    context = KeystoreContext(
        native=lambda: None,
        fallback=lambda: FallbackKeystore(path=home / ".tucksafe" / "keystore.enc"),
    )
    monkeypatch.setattr("tucksafe.keystore._default_context", context)
    return home


@pytest.fixture
def memory_keystore():
    return MemoryKeystore()


@pytest.fixture
def store_dir(tmp_path):
    store = tmp_path / "store"
    store.mkdir()
    return store


@pytest.fixture
def vault(store_dir, memory_keystore):
    from tucksafe.core.vault import SecretsVault

    return SecretsVault(store_dir, keystore=memory_keystore)


@pytest.fixture
def make_keystore():
    """Factory for in-memory keystores with a chosen name/availability."""
    return MemoryKeystore
