"""Security-critical components for kpio.

This module contains all security-sensitive code including:
- Credentials and the composite key
- Cryptographic operations
- Key derivation (AES-KDF)
- The protected value stream cipher

All code in this module should be audited carefully.
"""

from .credentials import (
    Credential,
    CredentialKind,
    CredentialStore,
    KeyfileCredential,
    KeyfileType,
    PasswordCredential,
)
from .crypto import (
    Cipher,
    CipherContext,
    constant_time_compare,
    secure_random_bytes,
)
from .kdf import (
    AES_KDF_MIN_ROUNDS,
    DEFAULT_TRANSFORM_ROUNDS,
    AesKdfConfig,
    build_master_key,
    derive_master_key,
    transform_key,
)
from .stream import SALSA20_NONCE, InnerStreamType, ProtectedStreamCipher

__all__ = [
    # Credentials
    "Credential",
    "CredentialKind",
    "CredentialStore",
    "KeyfileCredential",
    "KeyfileType",
    "PasswordCredential",
    # Crypto
    "Cipher",
    "CipherContext",
    "constant_time_compare",
    "secure_random_bytes",
    # KDF
    "AES_KDF_MIN_ROUNDS",
    "DEFAULT_TRANSFORM_ROUNDS",
    "AesKdfConfig",
    "build_master_key",
    "derive_master_key",
    "transform_key",
    # Protected stream
    "SALSA20_NONCE",
    "InnerStreamType",
    "ProtectedStreamCipher",
]
