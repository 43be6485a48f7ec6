"""
Encryption Utilities
Fernet encryption for channel credentials stored at rest
"""
from __future__ import annotations

import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from src.shared.exceptions import CryptoError
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class EncryptionManager:
    """
    Encrypts and decrypts channel credentials (bot tokens, page tokens,
    gateway keys). Ciphertext is the Fernet token as text.

    Attributes:
        cipher: Fernet cipher instance
    """

    def __init__(self, master_key: str | None = None) -> None:
        """
        Initialize encryption manager.

        Args:
            master_key: Fernet key (urlsafe base64, 32 bytes). Generated if None.
        """
        if not master_key:
            master_key = Fernet.generate_key().decode("utf-8")
            logger.warning(
                "Using generated encryption key, stored credentials will not survive a restart",
                extra={"action": "set_ENCRYPTION_KEY"},
            )
        try:
            self.cipher = Fernet(master_key.encode("utf-8"))
        except (ValueError, TypeError) as e:
            raise CryptoError("Invalid encryption key") from e

    def encrypt(self, plaintext: str | bytes) -> str:
        """
        Encrypt plaintext data.

        Args:
            plaintext: Data to encrypt (string or bytes)

        Returns:
            Fernet token as text
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        return self.cipher.encrypt(plaintext).decode("utf-8")

    def decrypt(self, encrypted_data: str) -> str:
        """
        Decrypt encrypted data.

        Raises:
            CryptoError: If the token is malformed or was encrypted with another key
        """
        try:
            return self.cipher.decrypt(encrypted_data.encode("utf-8")).decode("utf-8")
        except (InvalidToken, ValueError) as e:
            logger.error("Decryption failed", extra={"error": e.__class__.__name__})
            raise CryptoError("Failed to decrypt data") from e

    def encrypt_json(self, data: dict[str, Any]) -> str:
        return self.encrypt(json.dumps(data, separators=(",", ":"), sort_keys=True))

    def decrypt_json(self, encrypted_data: str) -> dict[str, Any]:
        raw = self.decrypt(encrypted_data)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CryptoError("Decrypted credentials are not valid JSON") from e
        if not isinstance(value, dict):
            raise CryptoError("Decrypted credentials must be an object")
        return value

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode("utf-8")
