"""
Encryption helpers
Used to keep the session token encrypted at rest
"""
import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .logger import get_logger

logger = get_logger('crypto')


class TokenCrypto:
    """
    Session token encryption/decryption.

    Uses Fernet symmetric encryption when a key is configured, otherwise a
    reversible base64 obfuscation that is only suitable for development.
    """

    OBFUSCATION_PREFIX = 'OBF:'

    def __init__(self, key: Optional[str] = None):
        """
        Args:
            key: Fernet key (urlsafe base64, 32 bytes). None disables encryption.
        """
        self._fernet = None

        if key:
            try:
                self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid Fernet key, falling back to obfuscation: {e}")
                self._fernet = None

    @property
    def is_secure(self) -> bool:
        """Whether real encryption is in use"""
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string.

        Args:
            plaintext: Clear text

        Returns:
            Ciphertext (base64 text)
        """
        if not plaintext:
            return ''

        if self._fernet:
            return self._fernet.encrypt(plaintext.encode('utf-8')).decode('utf-8')
        encoded = base64.b64encode(plaintext.encode('utf-8')).decode('utf-8')
        return self.OBFUSCATION_PREFIX + encoded

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a string produced by :meth:`encrypt`.

        Returns an empty string when the value cannot be decrypted with the
        current key (e.g. the key was rotated), which callers treat as
        "no session".
        """
        if not ciphertext:
            return ''

        if ciphertext.startswith(self.OBFUSCATION_PREFIX):
            encoded = ciphertext[len(self.OBFUSCATION_PREFIX):]
            return base64.b64decode(encoded.encode('utf-8')).decode('utf-8')

        if not self._fernet:
            logger.warning("Encrypted token found but no encryption key configured")
            return ''

        try:
            return self._fernet.decrypt(ciphertext.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            logger.warning("Stored token could not be decrypted with the configured key")
            return ''

    @staticmethod
    def generate_key() -> str:
        """
        Generate a new encryption key.

        Returns:
            Fernet key string
        """
        return Fernet.generate_key().decode('utf-8')
