"""Framing of save payloads.

Stages applied on write, outermost last::

    document text -> COMP_<base64 gzip> -> ENC_<base64 AES-CBC>

On read the tags are stripped in reverse. An untagged payload is plain
document text.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import logging
import zlib
from typing import Optional

from .crypto import SaveCipher
from .errors import DecodeError

logger = logging.getLogger(__name__)

ENCRYPTION_PREFIX = "ENC_"
COMPRESSION_PREFIX = "COMP_"


def compress_text(text: str) -> str:
    """Gzip ``text`` (UTF-8) and return it base64 encoded."""
    data = gzip.compress(text.encode("utf-8"), mtime=0)
    return base64.b64encode(data).decode("ascii")


def decompress_text(payload: str) -> str:
    try:
        data = base64.b64decode(payload.encode("ascii"), validate=True)
        return gzip.decompress(data).decode("utf-8")
    except (binascii.Error, UnicodeError, OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"Failed to decompress payload: {exc}") from exc


class PayloadCodec:
    """Applies and strips the compression and encryption frames."""

    def __init__(self, compress: bool = True, cipher: Optional[SaveCipher] = None) -> None:
        self.compress = compress
        self.cipher = cipher

    @property
    def encrypts(self) -> bool:
        return self.cipher is not None

    def encode(self, text: str) -> str:
        if self.compress:
            text = COMPRESSION_PREFIX + compress_text(text)
        if self.cipher is not None:
            text = ENCRYPTION_PREFIX + self.cipher.encrypt(text)
        return text

    def decode(self, payload: str) -> str:
        """Strip frames from ``payload``.

        Raises:
            DecodeError: if a frame is corrupt, or the payload is encrypted and
                no cipher is configured.
        """
        if payload.startswith(ENCRYPTION_PREFIX):
            if self.cipher is None:
                raise DecodeError("Payload is encrypted but encryption is disabled for this session")
            payload = self.cipher.decrypt(payload[len(ENCRYPTION_PREFIX):])
        if payload.startswith(COMPRESSION_PREFIX):
            payload = decompress_text(payload[len(COMPRESSION_PREFIX):])
        return payload
