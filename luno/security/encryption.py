"""
Encryption for sensitive data at rest (payment metadata, connection credentials).

AES-256-GCM, serialized as ``iv:tag:ciphertext`` in hex.
"""
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from luno.config import get_settings

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16
TAG_LENGTH = 16
_KDF_SALT = b"salt"
_KDF_ITERATIONS = 100_000


class EncryptionError(ValueError):
    """Raised when data cannot be encrypted or decrypted."""


def get_encryption_key() -> bytes:
    """
    Resolve the AES key from ENCRYPTION_KEY.

    A 64 character value is treated as hex; anything else is stretched
    with PBKDF2-SHA256.
    """
    key = get_settings().ENCRYPTION_KEY
    if not key:
        raise EncryptionError("ENCRYPTION_KEY environment variable is required")

    if len(key) == KEY_LENGTH * 2:
        try:
            return bytes.fromhex(key)
        except ValueError:
            pass

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    return kdf.derive(key.encode("utf-8"))


def encrypt(data: str) -> str:
    key = get_encryption_key()
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, data.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(encrypted_data: str) -> str:
    key = get_encryption_key()
    parts = encrypted_data.split(":")
    if len(parts) != 3:
        raise EncryptionError("Invalid encrypted data format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except (ValueError, InvalidTag) as e:
        raise EncryptionError("Failed to decrypt data") from e
    return plain.decode("utf-8")


def encrypt_json(data: Any) -> str:
    return encrypt(json.dumps(data))


def decrypt_json(encrypted_data: str) -> Any:
    return json.loads(decrypt(encrypted_data))
