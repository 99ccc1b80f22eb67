"""KDBX 3 payload encryption and decryption.

This module handles the binary pipeline of a KDBX 3 file:
- Signature and outer header parsing
- Master key derivation from credentials (AES-KDF)
- AES-256-CBC payload decryption and encryption
- Stream start bytes verification
- Hashed block stream decoding and encoding
- Gzip compression

KDBX 3 structure:
1. Signatures and file version (12 bytes)
2. Outer header (plaintext)
3. Encrypted payload
   - Stream start bytes (copy of the header field)
   - Hashed block stream
     - (Optionally gzipped) XML database content
"""

from __future__ import annotations

import gzip
import logging
import warnings
import zlib
from dataclasses import dataclass

from kpio.exceptions import (
    ArgumentError,
    DecompressionError,
    IntegrityError,
)
from kpio.security import CipherContext, CredentialStore, constant_time_compare
from kpio.security.kdf import derive_master_key

from .hashed_block import HashedBlockCodec
from .header import (
    SIGNATURE_SIZE,
    CompressionType,
    ContainerHeader,
    build_signature,
    read_signature,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DecryptedPayload:
    """Result of decrypting a KDBX 3 file.

    Attributes:
        header: Parsed outer header
        xml_data: Decrypted, decoded and decompressed document bytes
    """

    header: ContainerHeader
    xml_data: bytes


def _derive_master_key(header: ContainerHeader, credentials: CredentialStore) -> bytes:
    composite = credentials.build_composite_hash()
    return derive_master_key(composite, header.master_seed, header.kdf_config)


class Kdbx3Reader:
    """Reader for KDBX 3 database files."""

    def __init__(self, data: bytes) -> None:
        """Initialize reader with file data.

        Args:
            data: Complete KDBX 3 file contents
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ArgumentError("Expected `data` to be bytes")
        self._data = bytes(data)

    def decrypt(self, credentials: CredentialStore) -> DecryptedPayload:
        """Decrypt the KDBX 3 file.

        Args:
            credentials: Credentials to derive the master key from

        Returns:
            DecryptedPayload with header and XML

        Raises:
            FormatError: If the signature or header is invalid
            MissingCredentialsError: If the credential store is empty
            IntegrityError: Wrong credentials or corrupted payload
            DecompressionError: If the payload isn't valid gzip
        """
        version = read_signature(self._data)
        header, header_len = ContainerHeader.parse(self._data, SIGNATURE_SIZE)
        header.version = version
        header.validate()
        logger.debug("Parsed KDBX header (%d bytes, version %#010x)", header_len, version)

        # Unknown ciphers are rejected before spending time on the KDF
        cipher = header.cipher
        inner_stream = header.inner_stream_type
        logger.debug("Payload cipher %s, inner stream %s", cipher.display_name, inner_stream.name)

        config = header.kdf_config
        try:
            config.validate_security()
        except ValueError as e:
            warnings.warn(
                f"Database has weak key transform parameters: {e}. "
                "Consider re-saving with more rounds.",
                UserWarning,
                stacklevel=4,
            )

        master_key = _derive_master_key(header, credentials)

        payload_offset = SIGNATURE_SIZE + header_len
        decrypted = CipherContext(cipher, master_key, header.encryption_iv).decrypt(
            self._data[payload_offset:]
        )

        start_bytes = header.stream_start_bytes
        if not constant_time_compare(decrypted[: len(start_bytes)], start_bytes):
            raise IntegrityError()

        payload = HashedBlockCodec().decode(decrypted[len(start_bytes) :])

        if header.compression == CompressionType.GZIP:
            payload = self._decompress(payload)

        logger.debug("Decrypted payload (%d bytes)", len(payload))
        return DecryptedPayload(header=header, xml_data=payload)

    def _decompress(self, data: bytes) -> bytes:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DecompressionError(f"Could not decompress database: {e}") from e


class Kdbx3Writer:
    """Writer for KDBX 3 database files."""

    def __init__(self, codec: HashedBlockCodec | None = None) -> None:
        self._codec = codec or HashedBlockCodec()

    def encrypt(
        self,
        header: ContainerHeader,
        xml_data: bytes,
        credentials: CredentialStore,
    ) -> bytes:
        """Encrypt database to KDBX 3 format.

        Args:
            header: Outer header configuration
            xml_data: XML database content
            credentials: Credentials to derive the master key from

        Returns:
            Complete KDBX 3 file as bytes
        """
        header.validate()
        cipher = header.cipher
        master_key = _derive_master_key(header, credentials)

        payload = xml_data
        if header.compression == CompressionType.GZIP:
            payload = gzip.compress(payload, compresslevel=6, mtime=0)

        payload = header.stream_start_bytes + self._codec.encode(payload)
        encrypted = CipherContext(cipher, master_key, header.encryption_iv).encrypt(payload)

        header_bytes = header.serialize()
        header.length = len(header_bytes)
        logger.debug("Encrypted payload (%d bytes)", len(encrypted))

        return build_signature(header.version) + header_bytes + encrypted


def read_kdbx3(data: bytes, credentials: CredentialStore) -> DecryptedPayload:
    """Convenience function to read a KDBX 3 file.

    Args:
        data: Complete file contents
        credentials: Credentials to unlock the file with

    Returns:
        DecryptedPayload with header and XML
    """
    return Kdbx3Reader(data).decrypt(credentials)


def write_kdbx3(
    header: ContainerHeader,
    xml_data: bytes,
    credentials: CredentialStore,
) -> bytes:
    """Convenience function to write a KDBX 3 file.

    Args:
        header: Outer header configuration
        xml_data: XML database content
        credentials: Credentials to lock the file with

    Returns:
        Complete KDBX 3 file as bytes
    """
    return Kdbx3Writer().encrypt(header, xml_data, credentials)
