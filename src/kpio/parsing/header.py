"""KDBX 3 signatures and outer header.

File layout:
    0-3    base signature    (u32le 0x9AA2D903)
    4-7    version signature (u32le 0xB54BFB67)
    8-11   file version      (u32le, minor in low 16 bits, major in high)
    12-    header fields     {u8 id, u16le length, value} ... id 0
    ...    AES-CBC payload

All parsing uses Python's struct module for binary operations.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from enum import IntEnum

from kpio.exceptions import (
    ArgumentError,
    CorruptedDataError,
    FormatError,
    InvalidSignatureError,
    UnsupportedVersionError,
)
from kpio.security.crypto import Cipher, secure_random_bytes
from kpio.security.kdf import DEFAULT_TRANSFORM_ROUNDS, AesKdfConfig
from kpio.security.stream import InnerStreamType

KDBX_MAGIC = 0x9AA2D903
KDBX3_MAGIC = 0xB54BFB67

# KDBX 3.1, written by KeePass 2.20 and later
KDBX3_FILE_VERSION = 0x00030001
KDBX3_MAX_MAJOR_VERSION = 3

SIGNATURE_SIZE = 12

# Value KeePass writes into the EndOfHeader field
END_OF_HEADER_MARKER = b"\r\n\r\n"


class HeaderFieldType(IntEnum):
    """KDBX 3 outer header field identifiers."""

    END = 0
    COMMENT = 1
    CIPHER_ID = 2
    COMPRESSION_FLAGS = 3
    MASTER_SEED = 4
    TRANSFORM_SEED = 5
    TRANSFORM_ROUNDS = 6
    ENCRYPTION_IV = 7
    PROTECTED_STREAM_KEY = 8
    STREAM_START_BYTES = 9
    INNER_RANDOM_STREAM_ID = 10


class CompressionType(IntEnum):
    """Payload compression."""

    NONE = 0
    GZIP = 1


REQUIRED_FIELDS = (
    HeaderFieldType.COMPRESSION_FLAGS,
    HeaderFieldType.MASTER_SEED,
    HeaderFieldType.TRANSFORM_SEED,
    HeaderFieldType.TRANSFORM_ROUNDS,
    HeaderFieldType.ENCRYPTION_IV,
    HeaderFieldType.PROTECTED_STREAM_KEY,
    HeaderFieldType.STREAM_START_BYTES,
)

# Exact sizes for fixed-width fields
_FIELD_SIZES = {
    HeaderFieldType.CIPHER_ID: 16,
    HeaderFieldType.COMPRESSION_FLAGS: 4,
    HeaderFieldType.TRANSFORM_SEED: 32,
    HeaderFieldType.TRANSFORM_ROUNDS: 8,
    HeaderFieldType.ENCRYPTION_IV: 16,
    HeaderFieldType.INNER_RANDOM_STREAM_ID: 4,
}


def read_signature(data: bytes) -> int:
    """Check the 12-byte prologue and return the file version.

    Raises:
        CorruptedDataError: If fewer than 12 bytes are available
        InvalidSignatureError: If either magic number is wrong
        UnsupportedVersionError: If the major version is newer than KDBX 3
    """
    if len(data) < SIGNATURE_SIZE:
        raise CorruptedDataError("File too short to contain a KDBX signature")
    magic, version_magic, version = struct.unpack_from("<III", data, 0)
    if magic != KDBX_MAGIC:
        raise InvalidSignatureError(
            "Database base signature does not match. File might be corrupt."
        )
    if version_magic != KDBX3_MAGIC:
        raise InvalidSignatureError("Unsupported database signature")
    major, minor = version >> 16, version & 0xFFFF
    if major > KDBX3_MAX_MAJOR_VERSION:
        raise UnsupportedVersionError(major, minor)
    return version


def build_signature(version: int = KDBX3_FILE_VERSION) -> bytes:
    """Build the 12-byte prologue for the given file version."""
    return struct.pack("<III", KDBX_MAGIC, KDBX3_MAGIC, version)


@dataclass(slots=True)
class ContainerHeader:
    """Outer header of a KDBX 3 file.

    Fields are kept as raw bytes in the order they were read so that an
    unchanged header serializes to exactly the bytes it was parsed from.

    Attributes:
        fields: Raw field values by type, EndOfHeader included
        version: File version from bytes 8-11, passed through unchanged
        length: Size in bytes of the parsed header field region
    """

    fields: dict[HeaderFieldType, bytes] = field(default_factory=dict)
    version: int = KDBX3_FILE_VERSION
    length: int = 0

    @classmethod
    def parse(
        cls, data: bytes, offset: int = SIGNATURE_SIZE
    ) -> tuple[ContainerHeader, int]:
        """Parse header fields starting at offset.

        Args:
            data: File contents
            offset: Position of the first header field

        Returns:
            Tuple of (header, number of bytes consumed)

        Raises:
            FormatError: On an unknown field ID or a repeated one
            CorruptedDataError: If the header is truncated
        """
        fields: dict[HeaderFieldType, bytes] = {}
        pos = offset

        while True:
            if pos + 3 > len(data):
                raise CorruptedDataError("Truncated header")
            field_id, field_len = struct.unpack_from("<BH", data, pos)
            pos += 3

            try:
                field_type = HeaderFieldType(field_id)
            except ValueError:
                raise FormatError(
                    f"Invalid header field ID {field_id}. The database might be corrupt."
                ) from None

            if field_type in fields:
                raise FormatError(f"Duplicate header field {field_type.name}")

            if pos + field_len > len(data):
                raise CorruptedDataError(f"Truncated header field {field_type.name}")
            fields[field_type] = bytes(data[pos : pos + field_len])
            pos += field_len

            if field_type == HeaderFieldType.END:
                break

        consumed = pos - offset
        return cls(fields=fields, length=consumed), consumed

    def serialize(self) -> bytes:
        """Serialize header fields, EndOfHeader last."""
        parts = []
        for field_type, value in self.fields.items():
            if field_type == HeaderFieldType.END:
                continue
            parts.append(struct.pack("<BH", field_type, len(value)))
            parts.append(value)
        end = self.fields.get(HeaderFieldType.END, END_OF_HEADER_MARKER)
        parts.append(struct.pack("<BH", HeaderFieldType.END, len(end)))
        parts.append(end)
        return b"".join(parts)

    def get(self, field_type: HeaderFieldType) -> bytes:
        """Return a raw field value.

        Raises:
            FormatError: If the field is absent
        """
        try:
            return self.fields[HeaderFieldType(field_type)]
        except (KeyError, ValueError):
            raise FormatError(f"Missing header field: {field_type!r}") from None

    def set(self, field_type: HeaderFieldType, value: bytes) -> None:
        """Set a raw field value."""
        field_type = HeaderFieldType(field_type)
        if not isinstance(value, (bytes, bytearray)):
            raise ArgumentError("Header field values must be bytes")
        if len(value) > 0xFFFF:
            raise ArgumentError(f"Header field {field_type.name} exceeds 65535 bytes")
        self.fields[field_type] = bytes(value)

    def validate(self) -> None:
        """Check required fields are present with the right sizes.

        Raises:
            FormatError: On a missing or wrongly sized field
        """
        for field_type in REQUIRED_FIELDS:
            if field_type not in self.fields:
                raise FormatError(f"Missing header field: {field_type.name}")
        for field_type, size in _FIELD_SIZES.items():
            value = self.fields.get(field_type)
            if value is not None and len(value) != size:
                raise FormatError(
                    f"Header field {field_type.name} must be {size} bytes, got {len(value)}"
                )
        if not self.fields[HeaderFieldType.STREAM_START_BYTES]:
            raise FormatError("Header field STREAM_START_BYTES is empty")

    # --- Typed accessors ---

    @property
    def cipher(self) -> Cipher:
        """Payload cipher; AES-256 when the CipherID field is absent."""
        if HeaderFieldType.CIPHER_ID not in self.fields:
            return Cipher.AES256_CBC
        return Cipher.from_uuid(self.fields[HeaderFieldType.CIPHER_ID])

    @property
    def compression(self) -> CompressionType:
        flags = struct.unpack("<I", self.get(HeaderFieldType.COMPRESSION_FLAGS))[0]
        try:
            return CompressionType(flags)
        except ValueError:
            raise FormatError(f"Unknown compression flags: {flags}") from None

    @compression.setter
    def compression(self, value: CompressionType) -> None:
        self.set(HeaderFieldType.COMPRESSION_FLAGS, struct.pack("<I", value))

    @property
    def master_seed(self) -> bytes:
        return self.get(HeaderFieldType.MASTER_SEED)

    @property
    def transform_seed(self) -> bytes:
        return self.get(HeaderFieldType.TRANSFORM_SEED)

    @property
    def transform_rounds(self) -> int:
        return struct.unpack("<Q", self.get(HeaderFieldType.TRANSFORM_ROUNDS))[0]

    @transform_rounds.setter
    def transform_rounds(self, rounds: int) -> None:
        self.set(HeaderFieldType.TRANSFORM_ROUNDS, struct.pack("<Q", rounds))

    @property
    def encryption_iv(self) -> bytes:
        return self.get(HeaderFieldType.ENCRYPTION_IV)

    @property
    def protected_stream_key(self) -> bytes:
        return self.get(HeaderFieldType.PROTECTED_STREAM_KEY)

    @property
    def stream_start_bytes(self) -> bytes:
        return self.get(HeaderFieldType.STREAM_START_BYTES)

    @property
    def inner_stream_type(self) -> InnerStreamType:
        """Protected value stream cipher; Salsa20 when the field is absent."""
        raw = self.fields.get(HeaderFieldType.INNER_RANDOM_STREAM_ID)
        if raw is None:
            return InnerStreamType.SALSA20
        stream_id = struct.unpack("<I", raw)[0]
        try:
            return InnerStreamType(stream_id)
        except ValueError:
            raise FormatError(f"Unknown inner random stream ID: {stream_id}") from None

    @property
    def kdf_config(self) -> AesKdfConfig:
        """AES-KDF parameters taken from TransformSeed and TransformRounds."""
        try:
            return AesKdfConfig(rounds=self.transform_rounds, salt=self.transform_seed)
        except ArgumentError as e:
            raise FormatError(f"Invalid key transform parameters: {e}") from e

    @kdf_config.setter
    def kdf_config(self, config: AesKdfConfig) -> None:
        self.set(HeaderFieldType.TRANSFORM_SEED, config.salt)
        self.transform_rounds = config.rounds

    @classmethod
    def create(
        cls,
        transform_rounds: int = DEFAULT_TRANSFORM_ROUNDS,
        compression: CompressionType = CompressionType.GZIP,
        cipher: Cipher = Cipher.AES256_CBC,
    ) -> ContainerHeader:
        """Create a header for a brand-new database with fresh random seeds."""
        header = cls()
        header.set(HeaderFieldType.CIPHER_ID, cipher.value)
        header.compression = compression
        header.set(HeaderFieldType.MASTER_SEED, secure_random_bytes(32))
        header.kdf_config = replace(AesKdfConfig.default(), rounds=transform_rounds)
        header.set(HeaderFieldType.ENCRYPTION_IV, secure_random_bytes(cipher.iv_size))
        header.set(HeaderFieldType.PROTECTED_STREAM_KEY, secure_random_bytes(32))
        header.set(HeaderFieldType.STREAM_START_BYTES, secure_random_bytes(32))
        header.set(
            HeaderFieldType.INNER_RANDOM_STREAM_ID,
            struct.pack("<I", InnerStreamType.SALSA20),
        )
        header.set(HeaderFieldType.END, END_OF_HEADER_MARKER)
        header.length = len(header.serialize())
        return header
