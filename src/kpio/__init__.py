"""kpio - read and write KeePass 2.x (KDBX 3) password databases.

The library decrypts the container into an XML element tree with protected
values in plaintext, and encrypts such a tree back into a byte-exact
KDBX 3 file. It prioritizes interoperability and failure without oracles:
- Wrong credentials and corrupted payloads raise the same IntegrityError
- Keys are derived per call and never cached
- All key material stays bytes from end to end

Example:
    from kpio import Database

    db = Database.open("vault.kdbx", password="secret", keyfile="vault.key")
    for value in db.tree.iter("Value"):
        print(value.text)

    db.save()
"""

__version__ = "0.1.0"

from .database import Database
from .document import (
    DocumentFormat,
    XmlDocumentFormat,
    get_protected_bytes,
    iter_protected_nodes,
    set_protected_bytes,
)
from .engine import DatabaseEngine
from .exceptions import (
    ArgumentError,
    CorruptedDataError,
    CredentialError,
    CryptoError,
    DecompressionError,
    FormatError,
    IntegrityError,
    InvalidKeyFileError,
    InvalidSignatureError,
    KpioError,
    MissingCredentialsError,
    ParseError,
    UnknownCipherError,
    UnsupportedVersionError,
)
from .parsing import CompressionType, ContainerHeader, HashedBlockCodec, HeaderFieldType
from .security import (
    AesKdfConfig,
    Cipher,
    Credential,
    CredentialKind,
    CredentialStore,
    KeyfileCredential,
    KeyfileType,
    PasswordCredential,
    ProtectedStreamCipher,
)

__all__ = [
    # Core classes
    "Database",
    "DatabaseEngine",
    "DocumentFormat",
    "XmlDocumentFormat",
    "get_protected_bytes",
    "iter_protected_nodes",
    "set_protected_bytes",
    "CompressionType",
    "ContainerHeader",
    "HashedBlockCodec",
    "HeaderFieldType",
    "AesKdfConfig",
    "Cipher",
    "ProtectedStreamCipher",
    # Credentials
    "Credential",
    "CredentialKind",
    "CredentialStore",
    "KeyfileCredential",
    "KeyfileType",
    "PasswordCredential",
    # Exceptions
    "KpioError",
    "ArgumentError",
    "FormatError",
    "InvalidSignatureError",
    "UnsupportedVersionError",
    "CorruptedDataError",
    "CredentialError",
    "MissingCredentialsError",
    "InvalidKeyFileError",
    "IntegrityError",
    "DecompressionError",
    "ParseError",
    "CryptoError",
    "UnknownCipherError",
]
