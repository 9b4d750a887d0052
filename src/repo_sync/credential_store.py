"""Encrypted storage for repository connection credentials.

The whole :class:`GitConfig` is serialized to JSON and encrypted with Fernet
(AES128-CBC + HMAC) before being written to the local key-value store under a
single key. The encryption key is derived from a secret embedded in the
application, so this only protects against casual inspection of the storage
file on a single-user machine; it is not a key custody solution.
"""

import base64
import json
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .storage import KeyValueStore
from .sync_errors import ConfigMissingError
from .sync_models import GitConfig


logger = logging.getLogger(__name__)


class CredentialStore:
    """Persists the active :class:`GitConfig` encrypted at rest."""

    STORAGE_KEY = "git-sync-config-encrypted"
    SECRET_KEY = "all-in-one-git-sync-secret"
    KDF_SALT = b"repo-sync-config-v1"
    KDF_ITERATIONS = 100_000

    def __init__(self, storage: KeyValueStore, secret: Optional[str] = None):
        """Initialize the credential store.

        Args:
            storage: Key-value store holding the encrypted blob
            secret: Optional override of the embedded secret
        """
        self.storage = storage
        self.logger = logging.getLogger(__name__)
        self._fernet = Fernet(self._derive_key(secret or self.SECRET_KEY))
        self._config: Optional[GitConfig] = None

    def _derive_key(self, secret: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.KDF_SALT,
            iterations=self.KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))

    @property
    def config(self) -> Optional[GitConfig]:
        """The active configuration, if any."""
        return self._config

    def encrypt(self, config: GitConfig) -> str:
        """Encrypt a configuration into an opaque string."""
        payload = json.dumps(config.to_dict()).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def decrypt(self, encrypted: str) -> Optional[GitConfig]:
        """Decrypt a configuration blob.

        Returns:
            The configuration, or None if the blob cannot be decrypted or parsed
        """
        try:
            plaintext = self._fernet.decrypt(encrypted.encode("ascii"))
            return GitConfig.from_dict(json.loads(plaintext.decode("utf-8")))
        except (InvalidToken, UnicodeError, ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Failed to decrypt Git config: {e!r}")
            return None

    def save(self, config: GitConfig):
        """Encrypt and persist ``config`` and make it the active one."""
        config.with_default_branch()
        self.storage.set_item(self.STORAGE_KEY, self.encrypt(config))
        self._config = config
        self.logger.info(f"Saved sync config: {config.redacted()}")

    def load(self) -> Optional[GitConfig]:
        """Load the persisted configuration and make it the active one."""
        encrypted = self.storage.get_item(self.STORAGE_KEY)
        if not encrypted:
            return None

        config = self.decrypt(encrypted)
        if config:
            config.with_default_branch()
            self._config = config
        return config

    def clear(self):
        """Forget the persisted and active configuration."""
        self.storage.remove_item(self.STORAGE_KEY)
        self._config = None
        self.logger.info("Cleared sync config")

    def require(self) -> GitConfig:
        """Return the active configuration, loading it if needed.

        Raises:
            ConfigMissingError: If no configuration is available
        """
        if self._config is None and self.load() is None:
            raise ConfigMissingError("Git sync not configured")
        return self._config
