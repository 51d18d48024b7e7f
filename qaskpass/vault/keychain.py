"""
Cross-platform keychain integration.

Supports:
- Linux: Secret Service (GNOME Keyring / KWallet)
- macOS: Keychain
- Windows: Credential Locker

KeyringBackend stores askpass entries directly in the system keychain.
KeychainIntegration only caches the master password of the encrypted
vault file so it can be unlocked without a prompt.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .backend import CredentialBackend, StoreError

logger = logging.getLogger(__name__)

SERVICE_NAME = "qaskpass"


def keyring_usable() -> bool:
    """Check if a real keychain backend is active."""
    try:
        backend_name = type(keyring.get_keyring()).__name__
    except Exception as e:
        logger.debug(f"Keyring probe failed: {e}")
        return False

    # Check it's not the fail backend
    if "Fail" in backend_name or "Null" in backend_name:
        logger.debug(f"Keyring backend not usable: {backend_name}")
        return False
    logger.debug(f"Keyring backend: {backend_name}")
    return True


class KeychainIntegration:
    """
    Master password caching for the encrypted vault.

    This doesn't replace the vault's encryption - it just caches the
    master password so askpass can unlock the vault non-interactively.
    """

    ACCOUNT_NAME = "vault-master-password"

    @classmethod
    def is_available(cls) -> bool:
        return keyring_usable()

    @classmethod
    def store_master_password(cls, password: str) -> bool:
        """
        Store master password in system keychain.

        Returns:
            True if stored successfully
        """
        if not cls.is_available():
            logger.warning("Keychain not available")
            return False

        try:
            keyring.set_password(SERVICE_NAME, cls.ACCOUNT_NAME, password)
            logger.info("Master password stored in system keychain")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store password in keychain: {e}")
            return False

    @classmethod
    def get_master_password(cls) -> Optional[str]:
        """Master password if cached, None otherwise."""
        try:
            password = keyring.get_password(SERVICE_NAME, cls.ACCOUNT_NAME)
        except KeyringError as e:
            logger.debug(f"Failed to get password from keychain: {e}")
            return None
        if password:
            logger.debug("Retrieved master password from keychain")
        return password

    @classmethod
    def clear_master_password(cls) -> bool:
        """
        Remove master password from system keychain.

        Returns:
            True if removed (or wasn't present)
        """
        try:
            keyring.delete_password(SERVICE_NAME, cls.ACCOUNT_NAME)
            logger.info("Master password removed from system keychain")
            return True
        except PasswordDeleteError:
            # Password wasn't stored - that's fine
            return True
        except KeyringError as e:
            logger.error(f"Failed to remove password from keychain: {e}")
            return False


class KeyringBackend(CredentialBackend):
    """
    Askpass entries in the system keychain.

    Folder F maps to the keyring service "qaskpass/F". The keychain API
    cannot enumerate entries, so folder markers and per-folder key indexes
    are kept under the "qaskpass" service itself.
    """

    name = "keyring"

    def __init__(self, service: str = SERVICE_NAME):
        self.service = service
        self._folder: Optional[str] = None

    @classmethod
    def open(cls, service: str = SERVICE_NAME) -> KeyringBackend:
        if not keyring_usable():
            raise StoreError("No usable system keychain")
        return cls(service)

    def _get(self, service: str, account: str) -> Optional[str]:
        try:
            return keyring.get_password(service, account)
        except KeyringError as e:
            raise StoreError(f"Keychain read failed: {e}") from e

    def _set(self, service: str, account: str, value: str) -> None:
        try:
            keyring.set_password(service, account, value)
        except KeyringError as e:
            raise StoreError(f"Keychain write failed: {e}") from e

    def _delete(self, service: str, account: str) -> bool:
        try:
            keyring.delete_password(service, account)
            return True
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise StoreError(f"Keychain delete failed: {e}") from e

    def _folder_service(self) -> str:
        if self._folder is None:
            raise StoreError("No folder selected")
        return f"{self.service}/{self._folder}"

    def _load_index(self) -> list[str]:
        raw = self._get(self.service, f"index:{self._folder}")
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except ValueError:
            logger.warning(f"Corrupt key index for folder '{self._folder}', rebuilding")
            return []

    def _save_index(self, keys: list[str]) -> None:
        self._set(self.service, f"index:{self._folder}", json.dumps(sorted(set(keys))))

    # ── Folders ──────────────────────────────────────────────────────

    def has_folder(self, folder: str) -> bool:
        return self._get(self.service, f"folder:{folder}") is not None

    def create_folder(self, folder: str) -> None:
        if not self.has_folder(folder):
            self._set(self.service, f"folder:{folder}", datetime.now().isoformat())

    def set_folder(self, folder: str) -> None:
        if not self.has_folder(folder):
            raise StoreError(f"Folder '{folder}' does not exist")
        self._folder = folder

    # ── Entries ──────────────────────────────────────────────────────

    def read_password(self, key: str) -> str:
        return self._get(self._folder_service(), key) or ""

    def write_password(self, key: str, value: str) -> None:
        self._set(self._folder_service(), key, value)
        self._save_index(self._load_index() + [key])

    def rename_entry(self, old_key: str, new_key: str) -> None:
        service = self._folder_service()
        value = self._get(service, old_key)
        if value is None:
            raise StoreError(f"No entry '{old_key}' to rename")

        # Best effort: the keychain has no transactions. If the old key cannot
        # be removed, the new key is put back the way it was.
        previous = self._get(service, new_key)
        self._set(service, new_key, value)
        try:
            self._delete(service, old_key)
        except StoreError:
            if previous is None:
                self._delete(service, new_key)
            else:
                self._set(service, new_key, previous)
            raise
        keys = [k for k in self._load_index() if k != old_key]
        self._save_index(keys + [new_key])

    def remove_entry(self, key: str) -> bool:
        removed = self._delete(self._folder_service(), key)
        self._save_index([k for k in self._load_index() if k != key])
        return removed

    def entry_list(self) -> list[str]:
        self._folder_service()
        return self._load_index()
