"""
Credential storage - backends, resolver and store opening.
"""

from __future__ import annotations
import logging
from typing import Callable, Optional

from .backend import CredentialBackend, MemoryBackend, StoreError
from .keychain import KeychainIntegration, KeyringBackend
from .resolver import CredentialResolver, legacy_variants
from .store import VaultBackend

logger = logging.getLogger(__name__)

__all__ = [
    # Backends
    "CredentialBackend",
    "MemoryBackend",
    "KeyringBackend",
    "VaultBackend",
    "StoreError",
    # Keychain
    "KeychainIntegration",
    # Resolver
    "CredentialResolver",
    "legacy_variants",
    "open_store",
]


def open_store(
    settings,
    master_password: Optional[Callable[[], Optional[str]]] = None,
) -> Optional[CredentialBackend]:
    """
    Open the configured credential backend.

    Unavailability is a normal outcome here, not an error: askpass simply
    falls back to asking the user.

    Args:
        settings: AppSettings
        master_password: Called for the vault master password when the
            keychain has none cached

    Returns:
        Opened backend, or None
    """
    backend = settings.backend

    if backend == "none":
        return None

    if backend == "memory":
        return MemoryBackend()

    try:
        if backend == "keyring":
            return KeyringBackend.open()

        if backend == "vault":
            return _open_vault(settings, master_password)

    except StoreError as e:
        logger.info(f"Credential store unavailable: {e}")
        return None
    except Exception as e:
        logger.warning(f"Opening {backend} store failed: {e}")
        return None

    logger.warning(f"Unknown backend '{backend}'")
    return None


def _open_vault(settings, master_password) -> Optional[VaultBackend]:
    vault = VaultBackend(settings.vault_path)
    if not vault.is_initialized():
        logger.info(f"Vault at {vault.db_path} not initialized")
        return None

    password = KeychainIntegration.get_master_password()
    if not password and master_password is not None:
        password = master_password()
    if not password:
        logger.info("No vault master password available")
        return None

    if not vault.unlock(password):
        logger.warning("Vault master password rejected")
        return None
    return vault
