"""
Encryption utilities for securing session tokens at rest.
"""

import base64
import hashlib
import json
import logging
from typing import Any, Optional

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from storefront.core.config import settings

logger = logging.getLogger(__name__)

MIN_KDF_ITERATIONS = 100_000
MAX_KDF_ITERATIONS = 10_000_000


class StorageEncryptionError(Exception):
    """Raised when a stored value cannot be encrypted"""
    pass


class CredentialEncryption:
    """Handles encryption and decryption of stored credential data."""

    def __init__(self, secret_key: Optional[str] = None, iterations: Optional[int] = None):
        """Initialize encryption with a key derived from the client's secret key."""
        self._secret_key = secret_key or settings.SECRET_KEY
        self._iterations = self._validate_iterations(
            iterations if iterations is not None else settings.ENCRYPTION_KDF_ITERATIONS
        )
        self.cipher = self._create_cipher()

    @staticmethod
    def _validate_iterations(iterations: int) -> int:
        """Clamp KDF iterations to sane bounds"""
        if iterations > MAX_KDF_ITERATIONS:
            logger.warning(f"KDF iterations {iterations} exceeds maximum, using {MAX_KDF_ITERATIONS:,}")
            return MAX_KDF_ITERATIONS
        if iterations < MIN_KDF_ITERATIONS:
            logger.warning(f"KDF iterations {iterations} below minimum, using {MIN_KDF_ITERATIONS:,}")
            return MIN_KDF_ITERATIONS
        return iterations

    def _create_cipher(self) -> Fernet:
        """Create a Fernet cipher using the client's secret key."""
        secret_bytes = self._secret_key.encode("utf-8")
        # Deterministic per-deployment salt so tokens survive restarts
        salt = hashlib.sha256(b"storefront:" + secret_bytes).digest()[:16]

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret_bytes))

        return Fernet(key)

    def encrypt(self, data: Any) -> str:
        """
        Encrypt a JSON-serializable value for storage.

        Raises:
            StorageEncryptionError: If the value cannot be encrypted
        """
        try:
            json_data = json.dumps(data)
            return self.cipher.encrypt(json_data.encode("utf-8")).decode("utf-8")
        except Exception as e:
            logger.error(
                "Failed to encrypt credential data",
                extra={"error_type": type(e).__name__},
            )
            raise StorageEncryptionError(f"Credential encryption failed: {type(e).__name__}") from e

    def decrypt(self, encrypted_data: str) -> Optional[Any]:
        """
        Decrypt a stored value.

        Returns:
            The decrypted value or None if decryption fails
        """
        try:
            decrypted_bytes = self.cipher.decrypt(encrypted_data.encode("utf-8"))
            return json.loads(decrypted_bytes.decode("utf-8"))
        except Exception as e:
            logger.error(
                "Failed to decrypt credential data",
                extra={"error_type": type(e).__name__},
            )
            return None
