"""
Encryption service for alternate mailbox credentials.
Uses Fernet symmetric encryption with a key derived per account, so a
secret stored for one account cannot be decrypted under another.
"""

import base64

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from mailgraph.config import settings
from mailgraph.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_KDF_INFO = b"mailgraph-imap-app-password"


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


def _get_fernet(account_email: str) -> Fernet:
    """
    Get Fernet instance keyed by the master key and the account identity.

    Raises:
        EncryptionError: If encryption key is not configured or invalid
    """
    if not settings.ENCRYPTION_KEY:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")
    if not account_email:
        raise EncryptionError("Account email is required to derive the encryption key")

    try:
        master_key = base64.urlsafe_b64decode(settings.ENCRYPTION_KEY.encode("utf-8"))
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=account_email.strip().lower().encode("utf-8"),
            info=_KDF_INFO,
        )
        derived = hkdf.derive(master_key)
        return Fernet(base64.urlsafe_b64encode(derived))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_secret(plaintext: str, account_email: str) -> str:
    """
    Encrypt a secret (e.g. an IMAP app password) for document storage.

    Args:
        plaintext: Secret to encrypt
        account_email: Account the secret belongs to

    Returns:
        str: Fernet token as text

    Raises:
        EncryptionError: If encryption fails
    """
    if not plaintext or not isinstance(plaintext, str):
        raise EncryptionError("Secret must be a non-empty string")

    fernet = _get_fernet(account_email)
    try:
        token = fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")
    except Exception as e:
        logger.error("Failed to encrypt secret", error=str(e))
        raise EncryptionError(f"Encryption failed: {e}") from e

    logger.debug("Secret encrypted successfully", encrypted_length=len(token))
    return token


def decrypt_secret(ciphertext: str, account_email: str) -> str:
    """
    Decrypt a secret produced by encrypt_secret for the same account.

    Raises:
        EncryptionError: If decryption fails or token is invalid
    """
    if not ciphertext or not isinstance(ciphertext, str):
        raise EncryptionError("Encrypted secret must be a non-empty string")

    fernet = _get_fernet(account_email)
    try:
        return fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Secret decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted secret") from e
    except Exception as e:
        logger.error("Failed to decrypt secret", error=str(e))
        raise EncryptionError(f"Decryption failed: {e}") from e


def generate_new_key() -> str:
    """
    Generate a new Fernet master key.

    Note:
        Use this for initial setup or key rotation.
        Store the result in ENCRYPTION_KEY.
    """
    return Fernet.generate_key().decode("utf-8")
