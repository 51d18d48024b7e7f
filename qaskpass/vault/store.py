"""
Encrypted credential storage using SQLite + Fernet.
"""

from __future__ import annotations
import base64
import logging
import secrets
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .backend import CredentialBackend, StoreError

logger = logging.getLogger(__name__)

DEFAULT_VAULT_PATH = Path.home() / ".qaskpass" / "vault.db"


class VaultBackend(CredentialBackend):
    """
    Encrypted folder/entry storage.

    Uses SQLite for storage and Fernet for encryption.
    Master password is required to unlock the vault. Entry keys and
    folder names are stored in clear, only secrets are encrypted.
    """

    name = "vault"
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path = None):
        """
        Initialize vault backend.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser() if db_path else DEFAULT_VAULT_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: Optional[sqlite3.Connection] = None
        self._fernet: Optional[Fernet] = None
        self._unlocked = False
        self._folder_id: Optional[int] = None

    def is_initialized(self) -> bool:
        """Check if vault has been initialized."""
        if not self.db_path.exists():
            return False

        conn = sqlite3.connect(str(self.db_path))
        try:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='vault_meta'"
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def init_vault(self, password: str) -> None:
        """
        Initialize vault with master password.

        Args:
            password: Master password for encryption
        """
        if self.is_initialized():
            raise StoreError("Vault already initialized")

        salt = secrets.token_bytes(16)
        key = self._derive_key(password, salt)

        # Verification token lets unlock() detect a wrong password
        verify_token = secrets.token_bytes(32)
        encrypted_verify = Fernet(key).encrypt(verify_token)

        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.executescript('''
                CREATE TABLE vault_meta (
                    key TEXT PRIMARY KEY,
                    value BLOB
                );

                CREATE TABLE folders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    created_at TEXT
                );

                CREATE TABLE entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    folder_id INTEGER NOT NULL REFERENCES folders(id) ON DELETE CASCADE,
                    key TEXT NOT NULL,
                    value_enc BLOB NOT NULL,
                    created_at TEXT,
                    UNIQUE (folder_id, key)
                );

                CREATE INDEX idx_entries_folder ON entries(folder_id);
            ''')

            conn.executemany(
                "INSERT INTO vault_meta (key, value) VALUES (?, ?)",
                [
                    ('salt', salt),
                    ('verify', encrypted_verify),
                    ('verify_plain', verify_token),
                    ('version', str(self.SCHEMA_VERSION).encode()),
                ],
            )
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Vault initialized at {self.db_path}")

    def unlock(self, password: str) -> bool:
        """
        Unlock vault with master password.

        Args:
            password: Master password

        Returns:
            True if unlock successful
        """
        if not self.is_initialized():
            raise StoreError("Vault not initialized")

        conn = sqlite3.connect(str(self.db_path))
        try:
            meta = dict(conn.execute(
                "SELECT key, value FROM vault_meta WHERE key IN ('salt', 'verify', 'verify_plain')"
            ))
            if len(meta) != 3:
                conn.close()
                return False

            fernet = Fernet(self._derive_key(password, meta['salt']))

            try:
                if fernet.decrypt(meta['verify']) != meta['verify_plain']:
                    conn.close()
                    return False
            except InvalidToken:
                conn.close()
                return False

        except sqlite3.Error as e:
            logger.error(f"Unlock failed: {e}")
            conn.close()
            return False

        conn.execute("PRAGMA foreign_keys = ON")
        self._conn = conn
        self._fernet = fernet
        self._unlocked = True
        logger.debug("Vault unlocked")
        return True

    def lock(self) -> None:
        """Lock vault."""
        if self._conn:
            self._conn.close()
            self._conn = None
        self._fernet = None
        self._unlocked = False
        self._folder_id = None
        logger.debug("Vault locked")

    def close(self) -> None:
        self.lock()

    @property
    def is_unlocked(self) -> bool:
        """Check if vault is unlocked."""
        return self._unlocked and self._fernet is not None

    def _derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive encryption key from password."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=480000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode()))

    def _encrypt(self, data: str) -> bytes:
        if not self._fernet:
            raise StoreError("Vault not unlocked")
        return self._fernet.encrypt(data.encode())

    def _decrypt(self, data: bytes) -> str:
        if not self._fernet:
            raise StoreError("Vault not unlocked")
        try:
            return self._fernet.decrypt(data).decode()
        except InvalidToken as e:
            raise StoreError("Entry could not be decrypted") from e

    def _require_unlocked(self) -> sqlite3.Connection:
        if not self.is_unlocked:
            raise StoreError("Vault not unlocked")
        return self._conn

    def _require_folder(self) -> int:
        self._require_unlocked()
        if self._folder_id is None:
            raise StoreError("No folder selected")
        return self._folder_id

    # ── Folders ──────────────────────────────────────────────────────

    def has_folder(self, folder: str) -> bool:
        conn = self._require_unlocked()
        cursor = conn.execute("SELECT 1 FROM folders WHERE name = ?", (folder,))
        return cursor.fetchone() is not None

    def create_folder(self, folder: str) -> None:
        conn = self._require_unlocked()
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO folders (name, created_at) VALUES (?, ?)",
                (folder, datetime.now().isoformat()),
            )

    def set_folder(self, folder: str) -> None:
        conn = self._require_unlocked()
        row = conn.execute("SELECT id FROM folders WHERE name = ?", (folder,)).fetchone()
        if not row:
            raise StoreError(f"Folder '{folder}' does not exist")
        self._folder_id = row[0]

    def list_folders(self) -> list[str]:
        conn = self._require_unlocked()
        return [row[0] for row in conn.execute("SELECT name FROM folders ORDER BY name")]

    # ── Entries ──────────────────────────────────────────────────────

    def read_password(self, key: str) -> str:
        folder_id = self._require_folder()
        row = self._conn.execute(
            "SELECT value_enc FROM entries WHERE folder_id = ? AND key = ?",
            (folder_id, key),
        ).fetchone()
        if not row:
            return ""
        return self._decrypt(row[0])

    def write_password(self, key: str, value: str) -> None:
        folder_id = self._require_folder()
        value_enc = self._encrypt(value)
        with self._conn:
            self._conn.execute('''
                INSERT INTO entries (folder_id, key, value_enc, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (folder_id, key) DO UPDATE SET value_enc = excluded.value_enc
            ''', (folder_id, key, value_enc, datetime.now().isoformat()))

    def rename_entry(self, old_key: str, new_key: str) -> None:
        folder_id = self._require_folder()
        # Single transaction: the target is replaced, never duplicated
        with self._conn:
            self._conn.execute(
                "DELETE FROM entries WHERE folder_id = ? AND key = ?",
                (folder_id, new_key),
            )
            cursor = self._conn.execute(
                "UPDATE entries SET key = ? WHERE folder_id = ? AND key = ?",
                (new_key, folder_id, old_key),
            )
            if cursor.rowcount == 0:
                raise StoreError(f"No entry '{old_key}' to rename")

    def remove_entry(self, key: str) -> bool:
        folder_id = self._require_folder()
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM entries WHERE folder_id = ? AND key = ?",
                (folder_id, key),
            )
        return cursor.rowcount > 0

    def entry_list(self) -> list[str]:
        folder_id = self._require_folder()
        cursor = self._conn.execute(
            "SELECT key FROM entries WHERE folder_id = ? ORDER BY key", (folder_id,)
        )
        return [row[0] for row in cursor]
