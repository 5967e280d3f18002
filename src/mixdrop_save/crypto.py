from __future__ import annotations

import base64
import binascii
import logging
from typing import Union

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad, unpad

from .errors import DecodeError, EncryptionKeyError

logger = logging.getLogger(__name__)

VALID_KEY_LENGTHS = (16, 24, 32)

# Every save is encrypted under the same all-zero IV so that files written by
# earlier builds stay readable. Identical plaintexts therefore produce identical
# ciphertexts under one key.
ZERO_IV = bytes(AES.block_size)


def key_bytes(key: Union[str, bytes, None]) -> bytes:
    if key is None:
        return b""
    if isinstance(key, bytes):
        return key
    return key.encode("utf-8")


def is_valid_key(key: Union[str, bytes, None]) -> bool:
    """AES accepts 128, 192 and 256 bit keys only."""
    return len(key_bytes(key)) in VALID_KEY_LENGTHS


class SaveCipher:
    """AES-CBC encryption of text payloads with base64 armouring."""

    def __init__(self, key: Union[str, bytes]) -> None:
        raw = key_bytes(key)
        if len(raw) not in VALID_KEY_LENGTHS:
            raise EncryptionKeyError(
                f"Encryption key must be 16, 24 or 32 bytes long, got {len(raw)}"
            )
        self._key = raw

    @property
    def key_size_bits(self) -> int:
        return len(self._key) * 8

    def encrypt(self, plain_text: str) -> str:
        cipher = AES.new(self._key, AES.MODE_CBC, iv=ZERO_IV)
        data = cipher.encrypt(pad(plain_text.encode("utf-8"), AES.block_size))
        return base64.b64encode(data).decode("ascii")

    def decrypt(self, payload: str) -> str:
        try:
            data = base64.b64decode(payload.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise DecodeError("Encrypted payload is not valid base64") from exc
        if not data or len(data) % AES.block_size:
            raise DecodeError("Encrypted payload length is not a multiple of the AES block size")
        cipher = AES.new(self._key, AES.MODE_CBC, iv=ZERO_IV)
        try:
            plain = unpad(cipher.decrypt(data), AES.block_size)
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecodeError("Failed to decrypt payload (wrong key or corrupt data)") from exc
