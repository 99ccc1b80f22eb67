"""Hashed block stream used inside the KDBX 3 payload.

After decryption and the stream start bytes, the payload is a sequence of
blocks:

    4 bytes:  block index (u32le, starting at 0)
    32 bytes: SHA-256 of the block data
    4 bytes:  block length (u32le)
    N bytes:  block data

The stream ends with a block of length 0 whose hash is all zeros.
"""

from __future__ import annotations

import hashlib
import struct

from kpio.exceptions import ArgumentError, IntegrityError
from kpio.security.crypto import constant_time_compare

# Block size KeePass uses when writing (1 MiB)
DEFAULT_BLOCK_SIZE = 1024 * 1024

_BLOCK_HEADER = struct.Struct("<I32sI")
_ZERO_HASH = b"\x00" * 32


class HashedBlockCodec:
    """Encoder and decoder for the hashed block stream."""

    def __init__(self, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        if block_size <= 0:
            raise ArgumentError("Block size must be positive")
        self.block_size = block_size

    def encode(self, data: bytes) -> bytes:
        """Split data into hashed blocks and append the terminal block."""
        parts = []
        block_index = 0

        for offset in range(0, len(data), self.block_size):
            block_data = bytes(data[offset : offset + self.block_size])
            parts.append(
                _BLOCK_HEADER.pack(
                    block_index, hashlib.sha256(block_data).digest(), len(block_data)
                )
            )
            parts.append(block_data)
            block_index += 1

        parts.append(_BLOCK_HEADER.pack(block_index, _ZERO_HASH, 0))
        return b"".join(parts)

    def decode(self, data: bytes) -> bytes:
        """Verify and concatenate all blocks.

        Raises:
            IntegrityError: On a hash mismatch, out-of-order index, non-zero
                terminal hash or truncated stream
        """
        blocks = []
        offset = 0
        expected_index = 0

        while True:
            if offset + _BLOCK_HEADER.size > len(data):
                raise IntegrityError()
            block_index, block_hash, block_len = _BLOCK_HEADER.unpack_from(data, offset)
            offset += _BLOCK_HEADER.size

            if block_index != expected_index:
                raise IntegrityError()

            if block_len == 0:
                if block_hash != _ZERO_HASH:
                    raise IntegrityError()
                break

            if offset + block_len > len(data):
                raise IntegrityError()
            block_data = bytes(data[offset : offset + block_len])
            offset += block_len

            if not constant_time_compare(hashlib.sha256(block_data).digest(), block_hash):
                raise IntegrityError()

            blocks.append(block_data)
            expected_index += 1

        return b"".join(blocks)
