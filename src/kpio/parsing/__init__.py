"""KDBX binary format parsing and building.

This module handles low-level binary format operations:
- Signature and header parsing and validation
- Hashed block stream encoding
- KDBX 3 payload encryption/decryption

All parsing uses Python's struct module for binary operations.
"""

from .hashed_block import DEFAULT_BLOCK_SIZE, HashedBlockCodec
from .header import (
    KDBX3_FILE_VERSION,
    KDBX3_MAGIC,
    KDBX_MAGIC,
    CompressionType,
    ContainerHeader,
    HeaderFieldType,
    build_signature,
    read_signature,
)
from .kdbx3 import (
    DecryptedPayload,
    Kdbx3Reader,
    Kdbx3Writer,
    read_kdbx3,
    write_kdbx3,
)

__all__ = [
    # Header
    "KDBX3_FILE_VERSION",
    "KDBX3_MAGIC",
    "KDBX_MAGIC",
    "CompressionType",
    "ContainerHeader",
    "HeaderFieldType",
    "build_signature",
    "read_signature",
    # Hashed blocks
    "DEFAULT_BLOCK_SIZE",
    "HashedBlockCodec",
    # KDBX3
    "DecryptedPayload",
    "Kdbx3Reader",
    "Kdbx3Writer",
    "read_kdbx3",
    "write_kdbx3",
]
