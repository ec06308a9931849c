"""Tests for the encrypted secrets vault."""

from __future__ import annotations

import json
import stat

import pytest

from tucksafe.core.vault import (
    VAULT_FILENAME,
    SecretContext,
    SecretsVault,
    VaultCorrupted,
    VaultError,
    ensure_vault_gitignored,
)
from tucksafe.keystore import ACCOUNT, SERVICE, FallbackKeystore


@pytest.fixture
def frozen_clock(monkeypatch):
    ticks = iter(f"2026-01-01T00:00:{i:02d}+00:00" for i in range(60))
    monkeypatch.setattr("tucksafe.core.vault._iso_now", lambda: next(ticks))


class TestLoadSave:
    def test_missing_vault_is_empty(self, vault):
        document = vault.load()
        assert document.secrets == {}
        assert document.version == "1.0.0"
        assert not vault.path.exists()

    def test_roundtrip(self, vault, store_dir, memory_keystore):
        vault.set_secret("GITHUB_TOKEN", "ghp_value", description="work")
        reopened = SecretsVault(store_dir, keystore=memory_keystore)
        assert reopened.get_secret("GITHUB_TOKEN") == "ghp_value"
        assert reopened.list_secrets()[0].description == "work"

    def test_file_is_encrypted_and_private(self, vault):
        vault.set_secret("API", "plaintext-marker-value")
        raw = vault.path.read_bytes()
        assert b"plaintext-marker-value" not in raw
        assert stat.S_IMODE(vault.path.stat().st_mode) == 0o600

    def test_key_created_in_keystore_on_first_save(self, vault, memory_keystore):
        assert memory_keystore.retrieve(SERVICE, ACCOUNT) is None
        vault.set_secret("API", "value")
        assert memory_keystore.retrieve(SERVICE, ACCOUNT) is not None

    def test_save_adds_gitignore_entry(self, vault, store_dir):
        vault.set_secret("API", "value")
        assert VAULT_FILENAME in (store_dir / ".gitignore").read_text().splitlines()

    def test_corrupted_vault_raises(self, vault, store_dir, memory_keystore):
        vault.set_secret("API", "value")
        vault.path.write_bytes(vault.path.read_bytes()[:-4] + b"XXXX")
        with pytest.raises(VaultCorrupted):
            SecretsVault(store_dir, keystore=memory_keystore).load()
        assert vault.path.exists()

    def test_missing_key_for_existing_vault_raises(self, vault, store_dir, memory_keystore):
        vault.set_secret("API", "value")
        memory_keystore.entries.clear()
        reopened = SecretsVault(store_dir, keystore=memory_keystore)
        with pytest.raises(VaultCorrupted, match="Memory keystore"):
            reopened.load()

    def test_never_overwrites_vault_with_new_key(self, vault, store_dir, memory_keystore):
        vault.set_secret("API", "value")
        before = vault.path.read_bytes()
        memory_keystore.entries.clear()
        with pytest.raises(VaultCorrupted):
            vault.save()
        assert vault.path.read_bytes() == before

    def test_with_fallback_keystore(self, store_dir, tmp_path):
        keystore = FallbackKeystore(path=tmp_path / "ks" / "keystore.enc")
        SecretsVault(store_dir, keystore=keystore).set_secret("API", "value")
        assert SecretsVault(store_dir, keystore=keystore).get_secret("API") == "value"

    def test_repr_hides_values(self, vault):
        vault.set_secret("API", "hidden-value")
        assert "hidden-value" not in repr(vault.document)


class TestAddOrUpdate:
    def test_same_source_and_value_reuses_id(self, vault, frozen_clock):
        ctx = SecretContext(source="~/.zshrc", hint="GITHUB_TOKEN")
        first = vault.add_or_update_secret(ctx, "ghp_abc")
        used_before = vault.document.secrets[first].last_used
        second = vault.add_or_update_secret(ctx, "ghp_abc")
        assert first == second
        assert vault.document.secrets[first].placeholder == "{{TUCK_SECRET:" + first + "}}"
        assert vault.document.secrets[first].last_used > used_before

    def test_id_is_derived_from_context(self, vault):
        secret_id = vault.add_or_update_secret(SecretContext(source="~/.zshrc", hint="STRIPE_SECRET_KEY"), "sk_1")
        assert secret_id.startswith("STRIPE_SECRET_KEY_")
        assert len(secret_id) == len("STRIPE_SECRET_KEY_") + 8

    def test_same_value_in_different_files_does_not_collide(self, vault):
        a = vault.add_or_update_secret(SecretContext(source="~/.zshrc", hint="TOKEN"), "same")
        b = vault.add_or_update_secret(SecretContext(source="~/.bashrc", hint="TOKEN"), "same")
        assert a != b

    def test_different_values_same_file_get_suffix(self, vault):
        ctx = SecretContext(source="~/.zshrc", hint="TOKEN")
        a = vault.add_or_update_secret(ctx, "one")
        b = vault.add_or_update_secret(ctx, "two")
        assert b == f"{a}_2"

    def test_not_saved_until_flush(self, vault):
        vault.add_or_update_secret(SecretContext(source="x", hint="TOKEN"), "value")
        assert vault.dirty
        assert not vault.path.exists()
        assert vault.flush() is True
        assert vault.path.exists()
        assert vault.flush() is False

    def test_empty_value_rejected(self, vault):
        with pytest.raises(VaultError):
            vault.add_or_update_secret(SecretContext(source="x"), "")


class TestResolve:
    def test_resolve_known(self, vault, frozen_clock):
        vault.set_secret("API", "value")
        before = vault.document.secrets["API"].last_used
        assert vault.resolve_placeholder("API") == "value"
        assert vault.document.secrets["API"].last_used > before

    def test_resolve_unknown(self, vault):
        assert vault.resolve_placeholder("NOPE") is None


class TestCrud:
    def test_set_rotates_value_keeps_placeholder(self, vault, frozen_clock):
        vault.set_secret("API", "one")
        entry = vault.document.secrets["API"]
        placeholder, added = entry.placeholder, entry.added_at
        vault.set_secret("API", "two")
        assert vault.get_secret("API") == "two"
        assert vault.document.secrets["API"].placeholder == placeholder
        assert vault.document.secrets["API"].added_at == added

    def test_invalid_name(self, vault):
        with pytest.raises(VaultError, match="Invalid secret name"):
            vault.set_secret("lower-case", "x")

    def test_unset(self, vault):
        vault.set_secret("API", "x")
        assert vault.unset_secret("API") is True
        assert vault.unset_secret("API") is False
        assert not vault.has_secret("API")

    def test_list_has_no_values(self, vault):
        vault.set_secret("B_KEY", "bbb")
        vault.set_secret("A_KEY", "aaa")
        listing = vault.list_secrets()
        assert [s.name for s in listing] == ["A_KEY", "B_KEY"]
        assert not hasattr(listing[0], "value")
        assert vault.secret_count() == 2

    def test_touch_secrets(self, vault, frozen_clock):
        vault.set_secret("API", "x")
        before = vault.document.secrets["API"].last_used
        vault.touch_secrets(["API", "MISSING"])
        assert vault.document.secrets["API"].last_used > before


class TestKeyLifecycle:
    def test_rotate_key(self, vault, store_dir, memory_keystore):
        vault.set_secret("API", "value")
        old_key = memory_keystore.retrieve(SERVICE, ACCOUNT)
        old_blob = vault.path.read_bytes()
        vault.rotate_key()
        assert memory_keystore.retrieve(SERVICE, ACCOUNT) != old_key
        assert vault.path.read_bytes() != old_blob
        assert SecretsVault(store_dir, keystore=memory_keystore).get_secret("API") == "value"

    def test_delete_key_makes_vault_unreadable(self, vault, store_dir, memory_keystore):
        vault.set_secret("API", "value")
        vault.delete_key()
        with pytest.raises(VaultCorrupted):
            SecretsVault(store_dir, keystore=memory_keystore).load()

    def test_malformed_key(self, vault, memory_keystore):
        vault.set_secret("API", "value")
        memory_keystore.entries[(SERVICE, ACCOUNT)] = "not-a-key"
        with pytest.raises(VaultCorrupted):
            vault.load()


class TestGitignore:
    def test_appends_once(self, store_dir):
        (store_dir / ".gitignore").write_text("*.swp")
        assert ensure_vault_gitignored(store_dir) is True
        assert ensure_vault_gitignored(store_dir) is False
        lines = (store_dir / ".gitignore").read_text().splitlines()
        assert lines[0] == "*.swp"
        assert lines.count(VAULT_FILENAME) == 1

    def test_creates_file(self, store_dir):
        ensure_vault_gitignored(store_dir)
        assert (store_dir / ".gitignore").read_text().startswith("# tucksafe")


def test_document_json_shape(vault):
    vault.set_secret("API", "value", source="~/.zshrc")
    payload = json.loads(vault.document.to_json())
    assert payload["version"] == "1.0.0"
    assert payload["secrets"]["API"]["placeholder"] == "{{TUCK_SECRET:API}}"
    assert payload["secrets"]["API"]["source"] == "~/.zshrc"
