"""Stream cipher for protected values inside the XML payload.

KDBX 3 XORs every value marked Protected="True" with a single Salsa20
keystream, in document order. The keystream position is shared by all
values, so one cipher instance must serve exactly one full traversal.
"""

from __future__ import annotations

import hashlib
from enum import IntEnum

from Cryptodome.Cipher import Salsa20

from kpio.exceptions import ArgumentError, FormatError

# Fixed Salsa20 nonce used by KeePass 2.x
SALSA20_NONCE = b"\xE8\x30\x09\x4B\x97\x20\x5D\x2A"


class InnerStreamType(IntEnum):
    """InnerRandomStreamID header values."""

    NONE = 0
    ARC4_VARIANT = 1
    SALSA20 = 2
    CHACHA20 = 3


class ProtectedStreamCipher:
    """Salsa20 keystream used to lock and unlock protected values.

    lock and unlock are the same XOR; each call advances the shared
    keystream by the length of its input.
    """

    def __init__(
        self,
        stream_key: bytes,
        stream_type: InnerStreamType = InnerStreamType.SALSA20,
    ) -> None:
        """Initialize the stream cipher.

        Args:
            stream_key: ProtectedStreamKey header field (typically 32 bytes)
            stream_type: InnerRandomStreamID header value

        Raises:
            FormatError: If the stream type isn't Salsa20
        """
        if not isinstance(stream_key, (bytes, bytearray)):
            raise ArgumentError("Expected `stream_key` to be bytes")
        if stream_type != InnerStreamType.SALSA20:
            raise FormatError(f"Unsupported inner random stream: {int(stream_type)}")
        key = hashlib.sha256(stream_key).digest()
        self._cipher = Salsa20.new(key=key, nonce=SALSA20_NONCE)

    def unlock(self, ciphertext: bytes) -> bytes:
        """Decrypt protected value (XOR with stream)."""
        return self._cipher.encrypt(ciphertext)

    def lock(self, plaintext: bytes) -> bytes:
        """Encrypt protected value (XOR with stream)."""
        return self._cipher.encrypt(plaintext)
