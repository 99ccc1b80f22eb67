"""Tests for the hashed block stream codec."""

import hashlib
import struct

import pytest

from kpio import HashedBlockCodec, IntegrityError
from kpio.exceptions import ArgumentError
from kpio.parsing.hashed_block import DEFAULT_BLOCK_SIZE

BS = DEFAULT_BLOCK_SIZE


def payload(size: int) -> bytes:
    return (bytes(range(251)) * (size // 251 + 1))[:size]


class TestHashedBlockRoundTrip:
    """Tests for encode/decode round-trips."""

    @pytest.mark.parametrize(
        "size",
        [0, 1, BS - 1, BS, BS + 1, 3 * BS + 17],
        ids=["empty", "one", "chunk-1", "chunk", "chunk+1", "several"],
    )
    def test_round_trip(self, size: int) -> None:
        """Test decode(encode(p)) == p across chunk boundaries."""
        codec = HashedBlockCodec()
        data = payload(size)
        assert codec.decode(codec.encode(data)) == data

    def test_block_size_is_one_mib(self) -> None:
        """Test the default block size matches KeePass."""
        assert DEFAULT_BLOCK_SIZE == 1024 * 1024


class TestHashedBlockLayout:
    """Tests for the encoded byte layout."""

    def test_empty_is_terminal_block_only(self) -> None:
        """Test empty input encodes to a single terminal block."""
        encoded = HashedBlockCodec().encode(b"")
        assert encoded == struct.pack("<I", 0) + b"\x00" * 32 + struct.pack("<I", 0)

    def test_single_block_layout(self) -> None:
        """Test a single block is index, hash, length, data, then terminal."""
        encoded = HashedBlockCodec().encode(b"hello")
        expected = (
            struct.pack("<I", 0)
            + hashlib.sha256(b"hello").digest()
            + struct.pack("<I", 5)
            + b"hello"
            + struct.pack("<I", 1)
            + b"\x00" * 32
            + struct.pack("<I", 0)
        )
        assert encoded == expected

    def test_chunk_count(self) -> None:
        """Test data is split into fixed-size chunks with increasing indexes."""
        codec = HashedBlockCodec(block_size=4)
        encoded = codec.encode(b"abcdefghij")
        indexes = []
        offset = 0
        while True:
            index, _, length = struct.unpack_from("<I32sI", encoded, offset)
            indexes.append(index)
            offset += 40 + length
            if length == 0:
                break
        assert indexes == [0, 1, 2, 3]
        assert offset == len(encoded)

    def test_invalid_block_size(self) -> None:
        """Test non-positive block sizes are rejected."""
        with pytest.raises(ArgumentError):
            HashedBlockCodec(block_size=0)


class TestHashedBlockVerification:
    """Tests for decode integrity checks."""

    def test_tampered_data(self) -> None:
        """Test a modified data byte fails verification."""
        encoded = bytearray(HashedBlockCodec().encode(b"secret data"))
        encoded[41] ^= 0x01
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(bytes(encoded))

    def test_tampered_hash(self) -> None:
        """Test a modified hash fails verification."""
        encoded = bytearray(HashedBlockCodec().encode(b"secret data"))
        encoded[4] ^= 0x01
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(bytes(encoded))

    def test_wrong_index(self) -> None:
        """Test an out-of-sequence block index fails verification."""
        encoded = bytearray(HashedBlockCodec().encode(b"secret data"))
        encoded[0] = 5
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(bytes(encoded))

    def test_nonzero_terminal_hash(self) -> None:
        """Test a terminal block with a non-zero hash fails verification."""
        encoded = bytearray(HashedBlockCodec().encode(b""))
        encoded[10] = 1
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(bytes(encoded))

    def test_missing_terminal_block(self) -> None:
        """Test a stream without its terminal block is rejected."""
        encoded = HashedBlockCodec().encode(b"secret data")
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(encoded[:-40])

    def test_truncated_block(self) -> None:
        """Test a block whose data runs past the end is rejected."""
        encoded = HashedBlockCodec().encode(b"secret data")
        with pytest.raises(IntegrityError):
            HashedBlockCodec().decode(encoded[:45])

    def test_trailing_bytes_ignored(self) -> None:
        """Test bytes after the terminal block are ignored."""
        encoded = HashedBlockCodec().encode(b"secret data")
        assert HashedBlockCodec().decode(encoded + b"junk") == b"secret data"

    def test_decodes_any_block_size(self) -> None:
        """Test decoding doesn't depend on the encoder's block size."""
        encoded = HashedBlockCodec(block_size=3).encode(b"abcdefgh")
        assert HashedBlockCodec().decode(encoded) == b"abcdefgh"
