"""
Credential backend interface.

This is the integration seam between the resolver and wherever secrets
actually live. The resolver only sees CredentialBackend - it doesn't know
or care whether entries are in the system keyring, the encrypted vault
file, or a dict.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Credential backend operation failed."""
    pass


class CredentialBackend(ABC):
    """
    Folder-scoped key/value secret store.

    Entries live in named folders; one folder is selected at a time with
    set_folder() and all entry operations apply to it.
    """

    name = "abstract"

    @abstractmethod
    def has_folder(self, folder: str) -> bool:
        ...

    @abstractmethod
    def create_folder(self, folder: str) -> None:
        ...

    @abstractmethod
    def set_folder(self, folder: str) -> None:
        """Select the folder used by subsequent entry operations."""
        ...

    @abstractmethod
    def read_password(self, key: str) -> str:
        """Return the secret stored under key, or "" if there is none."""
        ...

    @abstractmethod
    def write_password(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def rename_entry(self, old_key: str, new_key: str) -> None:
        """Move an entry, replacing whatever is stored under new_key."""
        ...

    @abstractmethod
    def remove_entry(self, key: str) -> bool:
        ...

    @abstractmethod
    def entry_list(self) -> list[str]:
        ...

    def close(self) -> None:
        """Release the backend. Safe to call more than once."""
        pass

    def __enter__(self) -> CredentialBackend:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class MemoryBackend(CredentialBackend):
    """
    In-memory backend for testing and throwaway sessions.

    Nothing survives the process.
    """

    name = "memory"

    def __init__(self, folders: dict[str, dict[str, str]] = None):
        self._folders: dict[str, dict[str, str]] = {
            name: dict(entries) for name, entries in (folders or {}).items()
        }
        self._current: Optional[str] = None

    def _entries(self) -> dict[str, str]:
        if self._current is None:
            raise StoreError("No folder selected")
        return self._folders[self._current]

    def has_folder(self, folder: str) -> bool:
        return folder in self._folders

    def create_folder(self, folder: str) -> None:
        self._folders.setdefault(folder, {})

    def set_folder(self, folder: str) -> None:
        if folder not in self._folders:
            raise StoreError(f"Folder '{folder}' does not exist")
        self._current = folder

    def read_password(self, key: str) -> str:
        return self._entries().get(key, "")

    def write_password(self, key: str, value: str) -> None:
        self._entries()[key] = value

    def rename_entry(self, old_key: str, new_key: str) -> None:
        entries = self._entries()
        if old_key not in entries:
            raise StoreError(f"No entry '{old_key}' to rename")
        entries[new_key] = entries.pop(old_key)

    def remove_entry(self, key: str) -> bool:
        return self._entries().pop(key, None) is not None

    def entry_list(self) -> list[str]:
        return sorted(self._entries())

    def snapshot(self) -> dict[str, dict[str, str]]:
        """Copy of all folders and entries."""
        return {name: dict(entries) for name, entries in self._folders.items()}
