"""
Encryption utilities for provider tokens

This module provides encryption/decryption functionality using AES (Fernet)
for storing OAuth access tokens, token secrets and refresh tokens at rest.
"""
from cryptography.fernet import Fernet, InvalidToken
import logging
from typing import Optional

from config.settings import settings

logger = logging.getLogger(__name__)

# Encryption key from settings; an ephemeral key makes stored tokens unreadable after restart
if settings.ENCRYPTION_KEY:
    ENCRYPTION_KEY = settings.ENCRYPTION_KEY
else:
    ENCRYPTION_KEY = Fernet.generate_key().decode()
    logger.warning("ENCRYPTION_KEY not set, using an ephemeral key; stored connections will not survive restart")


def get_cipher_suite() -> Fernet:
    """
    Get the Fernet cipher suite for encryption/decryption.

    Returns:
        Fernet cipher suite instance
    """
    return Fernet(ENCRYPTION_KEY.encode())


def encrypt_value(value: str) -> str:
    """
    Encrypt a string value using Fernet.

    Args:
        value: Plain text string to encrypt

    Returns:
        Encrypted string (base64 encoded)

    Raises:
        ValueError: If encryption fails
    """
    try:
        cipher_suite = get_cipher_suite()
        return cipher_suite.encrypt(value.encode()).decode()
    except Exception as e:
        logger.error(f"Encryption failed: {str(e)}")
        raise ValueError(f"Failed to encrypt value: {str(e)}") from e


def decrypt_value(encrypted_value: Optional[str]) -> Optional[str]:
    """
    Decrypt an encrypted string value.

    Args:
        encrypted_value: Encrypted string (base64 encoded)

    Returns:
        Decrypted plain text string, or None if empty or decryption fails
    """
    if not encrypted_value:
        return None

    try:
        cipher_suite = get_cipher_suite()
        return cipher_suite.decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        logger.error("Decryption failed: Invalid token or encryption key changed")
        return None


def validate_encryption_key() -> bool:
    """
    Validate that the encryption key is properly configured.

    Returns:
        True if encryption key is valid, False otherwise
    """
    try:
        cipher_suite = get_cipher_suite()

        test_value = "test_encryption_validation"
        encrypted = cipher_suite.encrypt(test_value.encode())
        decrypted = cipher_suite.decrypt(encrypted).decode()

        if decrypted == test_value:
            logger.info("Encryption key validation successful")
            return True

        logger.error("Encryption key validation failed: decryption mismatch")
        return False

    except (ValueError, InvalidToken) as e:
        logger.error(f"Encryption key validation failed: {str(e)}")
        return False
