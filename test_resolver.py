"""
Credential resolver and backend tests.

Run:
    pytest test_resolver.py
"""

import logging

import keyring
import keyring.backend
import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from qaskpass.classifier import Classification, RequestKind, classify
from qaskpass.config import AppSettings
from qaskpass.vault import (
    CredentialResolver,
    KeychainIntegration,
    KeyringBackend,
    MemoryBackend,
    StoreError,
    VaultBackend,
    legacy_variants,
    open_store,
)
from qaskpass.vault import resolver as resolver_module

FOLDER = "qaskpass"


def lookup(identifier):
    return Classification(RequestKind.SECRET_HIDDEN, identifier, True)


class BrokenBackend(MemoryBackend):
    """Fails on every read."""

    def read_password(self, key):
        raise StoreError("backend exploded")


class DictKeyring(keyring.backend.KeyringBackend):
    """In-memory keyring for tests."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.data = {}

    def get_password(self, service, username):
        return self.data.get((service, username))

    def set_password(self, service, username, password):
        self.data[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.data[(service, username)]
        except KeyError:
            raise PasswordDeleteError(username)


@pytest.fixture
def dict_keyring():
    previous = keyring.get_keyring()
    fake = DictKeyring()
    keyring.set_keyring(fake)
    yield fake
    keyring.set_keyring(previous)


@pytest.fixture
def vault(tmp_path):
    backend = VaultBackend(tmp_path / "vault.db")
    backend.init_vault("correct horse battery")
    assert backend.unlock("correct horse battery")
    yield backend
    backend.close()


# ── Legacy variants ────────────────────────────────────────────────

def test_legacy_variants_order():
    assert legacy_variants("alice") == ["'alice'", "alice ", "'alice' "]


# ── Resolve ────────────────────────────────────────────────────────

def test_resolve_canonical_key():
    store = MemoryBackend({FOLDER: {"alice": "s3cret"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) == "s3cret"


def test_resolve_quoted_legacy_key_is_migrated(caplog):
    store = MemoryBackend({FOLDER: {"'alice'": "s3cret"}})

    with caplog.at_level(logging.WARNING):
        secret = CredentialResolver(store, FOLDER).resolve(lookup("alice"))

    assert secret == "s3cret"
    assert store.snapshot() == {FOLDER: {"alice": "s3cret"}}
    assert any("legacy key" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize("legacy_key", ["alice ", "'alice' "])
def test_resolve_space_variants_are_migrated(legacy_key):
    store = MemoryBackend({FOLDER: {legacy_key: "s3cret"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) == "s3cret"
    assert store.snapshot() == {FOLDER: {"alice": "s3cret"}}


def test_resolve_probes_variants_in_order():
    store = MemoryBackend({FOLDER: {"alice ": "spaced", "'alice'": "quoted"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) == "quoted"
    # Only the hit is migrated
    assert store.snapshot() == {FOLDER: {"alice": "quoted", "alice ": "spaced"}}


def test_resolve_empty_canonical_falls_back_and_is_replaced():
    store = MemoryBackend({FOLDER: {"alice": "", "'alice'": "s3cret"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) == "s3cret"
    assert store.snapshot() == {FOLDER: {"alice": "s3cret"}}


def test_resolve_respects_lookup_flag():
    store = MemoryBackend({FOLDER: {"me@host": "s3cret"}})
    result = CredentialResolver(store, FOLDER).resolve(classify("Enter me@host's old password: "))
    assert result is None


def test_resolve_without_identifier_or_store():
    store = MemoryBackend({FOLDER: {"x": "y"}})
    assert CredentialResolver(store, FOLDER).resolve(Classification(RequestKind.SECRET_HIDDEN, None, True)) is None
    assert CredentialResolver(None, FOLDER).resolve(lookup("x")) is None


def test_resolve_missing_folder():
    store = MemoryBackend({"other": {"alice": "s3cret"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) is None


def test_resolve_nothing_stored():
    store = MemoryBackend({FOLDER: {}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) is None
    assert store.snapshot() == {FOLDER: {}}


def test_resolve_backend_failure_is_absent():
    store = BrokenBackend({FOLDER: {"alice": "s3cret"}})
    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) is None


def test_module_level_resolve():
    store = MemoryBackend({FOLDER: {"alice": "s3cret"}})
    assert resolver_module.resolve(lookup("alice"), store, FOLDER) == "s3cret"
    assert resolver_module.resolve(lookup("alice"), None, FOLDER) is None


# ── Store ──────────────────────────────────────────────────────────

def test_store_creates_folder():
    store = MemoryBackend()
    assert CredentialResolver(store, FOLDER).store_secret("alice", "s3cret")
    assert store.snapshot() == {FOLDER: {"alice": "s3cret"}}


def test_store_overwrites():
    store = MemoryBackend({FOLDER: {"alice": "old"}})
    assert resolver_module.store("alice", "new", store, FOLDER)
    assert store.snapshot() == {FOLDER: {"alice": "new"}}


def test_store_needs_identifier_and_backend():
    store = MemoryBackend()
    assert not CredentialResolver(store, FOLDER).store_secret(None, "s3cret")
    assert not CredentialResolver(None, FOLDER).store_secret("alice", "s3cret")
    assert store.snapshot() == {}


# ── Memory backend ─────────────────────────────────────────────────

def test_memory_backend_requires_folder():
    store = MemoryBackend()
    with pytest.raises(StoreError):
        store.read_password("x")
    with pytest.raises(StoreError):
        store.set_folder("missing")


def test_memory_backend_rename_replaces_target():
    store = MemoryBackend({FOLDER: {"a": "1", "b": "2"}})
    store.set_folder(FOLDER)
    store.rename_entry("a", "b")
    assert store.entry_list() == ["b"]
    assert store.read_password("b") == "1"


# ── Vault backend ──────────────────────────────────────────────────

def test_vault_roundtrip_and_rename(vault):
    assert not vault.has_folder(FOLDER)
    vault.create_folder(FOLDER)
    vault.set_folder(FOLDER)

    vault.write_password("'alice'", "s3cret")
    vault.write_password("alice", "stale")
    vault.rename_entry("'alice'", "alice")

    assert vault.entry_list() == ["alice"]
    assert vault.read_password("alice") == "s3cret"
    assert vault.read_password("bob") == ""


def test_vault_secrets_encrypted_at_rest(vault, tmp_path):
    vault.create_folder(FOLDER)
    vault.set_folder(FOLDER)
    vault.write_password("alice", "plaintext-marker")
    assert b"plaintext-marker" not in (tmp_path / "vault.db").read_bytes()


def test_vault_wrong_password(tmp_path):
    backend = VaultBackend(tmp_path / "vault.db")
    backend.init_vault("right password")
    assert not backend.unlock("wrong password")
    assert not backend.is_unlocked
    with pytest.raises(StoreError):
        backend.has_folder(FOLDER)


def test_vault_rename_missing_entry(vault):
    vault.create_folder(FOLDER)
    vault.set_folder(FOLDER)
    vault.write_password("alice", "keep")
    with pytest.raises(StoreError):
        vault.rename_entry("ghost", "alice")
    # Failed rename rolled back
    assert vault.read_password("alice") == "keep"


def test_resolver_against_vault(vault):
    vault.create_folder(FOLDER)
    vault.set_folder(FOLDER)
    vault.write_password("alice ", "s3cret")

    assert CredentialResolver(vault, FOLDER).resolve(lookup("alice")) == "s3cret"
    assert vault.entry_list() == ["alice"]


# ── Keyring backend ────────────────────────────────────────────────

def test_keyring_backend_folders_and_entries(dict_keyring):
    store = KeyringBackend.open()
    assert not store.has_folder(FOLDER)

    assert CredentialResolver(store, FOLDER).store_secret("alice", "s3cret")
    assert store.entry_list() == ["alice"]
    assert dict_keyring.data[(f"qaskpass/{FOLDER}", "alice")] == "s3cret"


def test_keyring_backend_legacy_migration(dict_keyring):
    store = KeyringBackend.open()
    store.create_folder(FOLDER)
    dict_keyring.data[(f"qaskpass/{FOLDER}", "'alice' ")] = "s3cret"

    assert CredentialResolver(store, FOLDER).resolve(lookup("alice")) == "s3cret"
    assert (f"qaskpass/{FOLDER}", "'alice' ") not in dict_keyring.data
    assert dict_keyring.data[(f"qaskpass/{FOLDER}", "alice")] == "s3cret"


def test_keyring_backend_remove(dict_keyring):
    store = KeyringBackend.open()
    store.create_folder(FOLDER)
    store.set_folder(FOLDER)
    store.write_password("alice", "s3cret")
    assert store.remove_entry("alice")
    assert not store.remove_entry("alice")
    assert store.entry_list() == []


# ── open_store ─────────────────────────────────────────────────────

def test_open_store_none_and_memory():
    assert open_store(AppSettings(backend="none")) is None
    assert isinstance(open_store(AppSettings(backend="memory")), MemoryBackend)


def test_open_store_uninitialized_vault(tmp_path):
    settings = AppSettings(backend="vault", vault_path=str(tmp_path / "missing.db"))
    assert open_store(settings) is None


def test_open_store_vault_with_master_password(tmp_path, dict_keyring):
    path = tmp_path / "vault.db"
    VaultBackend(path).init_vault("master")
    settings = AppSettings(backend="vault", vault_path=str(path))

    store = open_store(settings, master_password=lambda: "master")
    assert isinstance(store, VaultBackend)
    assert store.is_unlocked
    store.close()

    assert open_store(settings, master_password=lambda: "wrong") is None
    assert open_store(settings, master_password=lambda: None) is None


# ── Master password cache ──────────────────────────────────────────

def test_keychain_master_password_cycle(dict_keyring):
    assert KeychainIntegration.is_available()
    assert KeychainIntegration.get_master_password() is None

    assert KeychainIntegration.store_master_password("master")
    assert KeychainIntegration.get_master_password() == "master"

    assert KeychainIntegration.clear_master_password()
    assert KeychainIntegration.clear_master_password()
    assert KeychainIntegration.get_master_password() is None


def test_open_store_vault_from_keychain(tmp_path, dict_keyring):
    path = tmp_path / "vault.db"
    VaultBackend(path).init_vault("master")
    KeychainIntegration.store_master_password("master")

    store = open_store(AppSettings(backend="vault", vault_path=str(path)))
    assert isinstance(store, VaultBackend)
    store.close()


# ── Failed migrations ──────────────────────────────────────────────

class NoRenameBackend(MemoryBackend):
    """Reads work, renames are refused."""

    def rename_entry(self, old_key, new_key):
        raise StoreError("rename denied")


class StuckKeyring(DictKeyring):
    """Refuses to delete one account."""

    stuck = "'alice'"

    def delete_password(self, service, username):
        if username == self.stuck:
            raise KeyringError("delete refused")
        super().delete_password(service, username)


def test_resolve_returns_secret_when_migration_fails(caplog):
    store = NoRenameBackend({FOLDER: {"'alice'": "s3cret"}})

    with caplog.at_level(logging.WARNING):
        secret = CredentialResolver(store, FOLDER).resolve(lookup("alice"))

    assert secret == "s3cret"
    assert store.snapshot() == {FOLDER: {"'alice'": "s3cret"}}
    assert any("Could not migrate" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize("existing", [None, "stale"])
def test_keyring_rename_rolls_back_when_delete_fails(existing):
    previous = keyring.get_keyring()
    fake = StuckKeyring()
    keyring.set_keyring(fake)
    try:
        store = KeyringBackend.open()
        store.create_folder(FOLDER)
        store.set_folder(FOLDER)
        store.write_password("'alice'", "s3cret")
        if existing is not None:
            store.write_password("alice", existing)

        with pytest.raises(StoreError):
            store.rename_entry("'alice'", "alice")

        service = f"qaskpass/{FOLDER}"
        assert fake.data[(service, "'alice'")] == "s3cret"
        assert fake.data.get((service, "alice")) == existing
    finally:
        keyring.set_keyring(previous)
