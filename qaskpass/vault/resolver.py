"""
Credential resolution - finds a stored secret for a classified prompt.
"""

from __future__ import annotations
import logging
from typing import Optional

from ..classifier import Classification
from .backend import CredentialBackend, StoreError

logger = logging.getLogger(__name__)

# Older releases stored keys wrapped in single quotes, and even older ones
# appended a space. Probed in this order after the canonical key.
LEGACY_KEY_TEMPLATES = ("'{0}'", "{0} ", "'{0}' ")


def legacy_variants(identifier: str) -> list[str]:
    """Historical key forms of an identifier, in probing order."""
    return [template.format(identifier) for template in LEGACY_KEY_TEMPLATES]


class CredentialResolver:
    """
    Looks up and stores askpass secrets in one folder of a backend.

    A resolver without a backend is valid and never finds anything.
    """

    def __init__(self, store: Optional[CredentialBackend], folder: str):
        """
        Initialize resolver.

        Args:
            store: Opened credential backend, or None if unavailable
            folder: Folder holding this application's entries
        """
        self.store = store
        self.folder = folder

    def resolve(self, classification: Classification) -> Optional[str]:
        """
        Find the stored secret for a classification.

        Legacy key forms are probed when the canonical key is empty; a hit
        is renamed to the canonical key so the lookup is cheap next time.

        Returns:
            The secret, or None if nothing usable is stored. Backend
            failures are logged and reported as None.
        """
        identifier = classification.identifier
        if self.store is None or identifier is None or not classification.allow_store_lookup:
            return None

        try:
            return self._lookup(identifier)
        except Exception as e:
            logger.warning(f"Credential lookup for {identifier} failed: {e}")
            return None

    def _lookup(self, identifier: str) -> Optional[str]:
        if not self.store.has_folder(self.folder):
            logger.debug(f"No folder '{self.folder}' in {self.store.name} store")
            return None

        self.store.set_folder(self.folder)

        secret = self.store.read_password(identifier)
        if secret:
            logger.debug(f"Found stored secret for {identifier}")
            return secret

        for key in legacy_variants(identifier):
            secret = self.store.read_password(key)
            if secret:
                logger.warning(f"Detected legacy key for {identifier}, enabling workaround")
                try:
                    self.store.rename_entry(key, identifier)
                except StoreError as e:
                    logger.warning(f"Could not migrate legacy key for {identifier}: {e}")
                return secret

        return None

    def store_secret(self, identifier: Optional[str], secret: str) -> bool:
        """
        Remember a freshly entered secret under its identifier.

        The folder is created on first use.

        Returns:
            True if written
        """
        if self.store is None or identifier is None:
            return False

        try:
            if not self.store.has_folder(self.folder):
                self.store.create_folder(self.folder)
            self.store.set_folder(self.folder)
            self.store.write_password(identifier, secret)
        except Exception as e:
            logger.error(f"Failed to store secret for {identifier}: {e}")
            return False

        logger.info(f"Stored secret for {identifier} in {self.store.name} store")
        return True


def resolve(
    classification: Classification,
    store: Optional[CredentialBackend],
    folder: str,
) -> Optional[str]:
    """Resolve without keeping a resolver around."""
    return CredentialResolver(store, folder).resolve(classification)


def store(
    identifier: Optional[str],
    secret: str,
    backend: Optional[CredentialBackend],
    folder: str,
) -> bool:
    """Store without keeping a resolver around."""
    return CredentialResolver(backend, folder).store_secret(identifier, secret)
