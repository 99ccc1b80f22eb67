"""Custom exception hierarchy for kpio.

All exceptions raised by kpio inherit from KpioError.

Exception Hierarchy:
    KpioError (base)
    ├── ArgumentError
    ├── FormatError
    │   ├── InvalidSignatureError
    │   ├── UnsupportedVersionError
    │   └── CorruptedDataError
    ├── CredentialError
    │   ├── MissingCredentialsError
    │   └── InvalidKeyFileError
    ├── IntegrityError
    ├── DecompressionError
    ├── ParseError
    └── CryptoError
        └── UnknownCipherError

Security Note:
    IntegrityError deliberately carries a single generic message. A wrong
    password, a wrong keyfile and a corrupted payload all look the same to
    the caller, so the error can't be used to tell them apart.
"""

from __future__ import annotations


class KpioError(Exception):
    """Base exception for all kpio errors.

    All exceptions raised by kpio inherit from this class,
    making it easy to catch all library-specific errors.
    """


class ArgumentError(KpioError):
    """Malformed call input, such as a str where bytes were expected."""


# --- Format Errors ---


class FormatError(KpioError):
    """Error in KDBX file format or structure.

    Raised when the plaintext part of the file (signatures and header)
    doesn't conform to the KDBX 3 layout.
    """


class InvalidSignatureError(FormatError):
    """Invalid KDBX file signature (magic bytes).

    The file doesn't start with the expected KeePass 2.x magic bytes.
    """


class UnsupportedVersionError(FormatError):
    """Unsupported KDBX file version."""

    def __init__(self, version_major: int, version_minor: int) -> None:
        self.version_major = version_major
        self.version_minor = version_minor
        super().__init__(
            f"Unsupported KDBX version: {version_major}.{version_minor}"
        )


class CorruptedDataError(FormatError):
    """Database file is truncated or its header is malformed."""


# --- Credential Errors ---


class CredentialError(KpioError):
    """Error with database credentials.

    Base class for credential-related errors. Messages are kept
    generic to avoid information disclosure.
    """


class MissingCredentialsError(CredentialError):
    """No credentials provided.

    At least one credential (password or keyfile) is required
    to open or save a database.
    """

    def __init__(self) -> None:
        super().__init__("At least one credential (password or keyfile) is required")


class InvalidKeyFileError(CredentialError):
    """The keyfile is malformed or failed its checksum."""

    def __init__(self, message: str = "Invalid keyfile") -> None:
        super().__init__(message)


# --- Payload Errors ---


class IntegrityError(KpioError):
    """Decrypted payload failed verification.

    Raised for padding failures, stream start bytes mismatches and hashed
    block checksum mismatches alike.
    """

    def __init__(
        self, message: str = "Invalid credentials or corrupt file"
    ) -> None:
        super().__init__(message)


class DecompressionError(KpioError):
    """The decrypted payload could not be gunzipped."""


class ParseError(KpioError):
    """The document tree could not be parsed or its protected values decoded."""


# --- Crypto Errors ---


class CryptoError(KpioError):
    """Failure inside a cryptographic primitive not covered elsewhere."""


class UnknownCipherError(CryptoError):
    """Unknown or unsupported cipher algorithm.

    The database uses a cipher that this library doesn't recognize.
    """

    def __init__(self, cipher_uuid: bytes) -> None:
        self.cipher_uuid = cipher_uuid
        super().__init__(f"Unknown cipher: {cipher_uuid.hex()}")
