from __future__ import annotations

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CorruptStoreError

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16


def generate_key() -> bytes:
    return AESGCM.generate_key(bit_length=KEY_LEN * 8)


def seal(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt *plaintext* with AES-256-GCM under a fresh random nonce.

    Returns ``nonce || ciphertext || tag``.
    """
    nonce = secrets.token_bytes(NONCE_LEN)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, None)


def open_sealed(blob: bytes, key: bytes) -> bytes:
    """Reverse :func:`seal`.

    Raises:
        CorruptStoreError: If the blob is truncated, was tampered with, or was
            sealed under a different key.
    """
    if len(blob) < NONCE_LEN + TAG_LEN:
        raise CorruptStoreError(f"sealed blob too short ({len(blob)} bytes)")
    nonce, ciphertext = blob[:NONCE_LEN], blob[NONCE_LEN:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise CorruptStoreError("authentication failed: wrong key or tampered data") from exc
    except ValueError as exc:
        # AESGCM rejects keys of the wrong size.
        raise CorruptStoreError(f"unusable encryption key: {exc}") from exc
