"""Encryption helpers for delivery credentials stored in the database.

LINE Notify tokens let anyone holding them push messages to a user, so they
are kept encrypted at rest. :func:`encrypt` and :func:`decrypt` wrap AES-GCM
with a key derived from the application secret.

The format is:

    ENC:v1:<base64(nonce || ciphertext || tag)>

``decrypt`` returns values without the prefix unchanged, so rows written
before encryption was enabled keep working.
"""

from __future__ import annotations

import base64
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from tsukumart.config import settings


_PREFIX = "ENC:v1:"
_NONCE_SIZE = 12  # 96-bit nonce recommended for AES-GCM
_KEY_SIZE = 32    # 256-bit AES key


def _get_key() -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=_KEY_SIZE,
        salt=None,
        info=b"tsukumart-notify-token",
    )
    return hkdf.derive(settings.secret_key.encode("utf-8"))


def encrypt(plaintext: Optional[str]) -> Optional[str]:
    """Encrypt a string value. ``None`` is passed through."""

    if plaintext is None:
        return None

    aesgcm = AESGCM(_get_key())
    nonce = os.urandom(_NONCE_SIZE)
    ct = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), associated_data=None)
    return _PREFIX + base64.b64encode(nonce + ct).decode("ascii")


def decrypt(value: Optional[str]) -> Optional[str]:
    """Decrypt a value produced by :func:`encrypt`.

    Returns ``None`` when the blob cannot be decrypted (for example after the
    secret was rotated); the caller then behaves as if no token is registered.
    """

    if value is None:
        return None
    if not value.startswith(_PREFIX):
        return value

    try:
        raw = base64.b64decode(value[len(_PREFIX):].encode("ascii"))
        if len(raw) <= _NONCE_SIZE:
            return None
        nonce, ct = raw[:_NONCE_SIZE], raw[_NONCE_SIZE:]
        return AESGCM(_get_key()).decrypt(nonce, ct, associated_data=None).decode("utf-8")
    except (InvalidTag, ValueError) as e:
        from tsukumart.utils.logger import logger
        logger.error(f"Crypto decryption failed: {type(e).__name__}: {e}")
        return None
