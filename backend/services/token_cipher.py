"""Symmetric encryption for provider access tokens at rest."""

import logging

from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


class TokenCipher:
    """Fernet wrapper used to store access tokens encrypted.

    The key comes from ``TOKEN_ENCRYPTION_KEY``. When no key is configured a
    process-local key is generated, so tokens stored in one run cannot be
    read in the next; a warning is logged once.
    """

    _fallback_key: bytes | None = None

    def __init__(self, key: str | bytes | None = None):
        key = key or settings.TOKEN_ENCRYPTION_KEY
        if not key:
            if TokenCipher._fallback_key is None:
                logger.warning(
                    "TOKEN_ENCRYPTION_KEY is not set; using an ephemeral key. "
                    "Stored access tokens will be unreadable after restart."
                )
                TokenCipher._fallback_key = Fernet.generate_key()
            key = TokenCipher._fallback_key
        if isinstance(key, str):
            key = key.encode()
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Raises:
            ValueError: If the ciphertext was not produced with this key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Stored access token could not be decrypted") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new key suitable for TOKEN_ENCRYPTION_KEY."""
        return Fernet.generate_key().decode()
