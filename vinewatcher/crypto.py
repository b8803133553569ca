"""AES-256-GCM encryption for Private uploads.

Blob format (what a restore tool needs to decrypt):

    blob = nonce (12 bytes) || ciphertext || tag (16 bytes)

Cipher is AES-GCM with the 32-byte key from private.key and no associated
data. To decrypt: take blob[:12] as nonce and pass blob[12:] (ciphertext with
the tag appended, as AESGCM expects) to AESGCM(key).decrypt(nonce, rest, None).
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vinewatcher.errors import EncryptionError
from vinewatcher.keys import KEY_SIZE

NONCE_SIZE = 12
TAG_SIZE = 16


def _cipher(key: bytes) -> AESGCM:
    if key is None or len(key) != KEY_SIZE:
        raise EncryptionError("secret key missing or not 32 bytes")
    return AESGCM(key)


def encrypt_blob(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt plaintext under key with a fresh random nonce. Returns nonce || ciphertext+tag."""
    cipher = _cipher(key)
    nonce = os.urandom(NONCE_SIZE)
    try:
        return nonce + cipher.encrypt(nonce, plaintext, None)
    except (OverflowError, ValueError) as e:
        raise EncryptionError(f"encrypt failed: {e}") from e


def decrypt_blob(blob: bytes, key: bytes) -> bytes:
    """Inverse of encrypt_blob. Raises EncryptionError on a short blob, wrong key or tampering."""
    cipher = _cipher(key)
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise EncryptionError("blob too short")
    try:
        return cipher.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise EncryptionError("authentication failed (wrong key or corrupted blob)") from e
