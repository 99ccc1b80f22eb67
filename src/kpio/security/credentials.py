"""Credentials and the composite key.

A database is unlocked by one or more credentials. Each credential
contributes a 32-byte hash; the composite key is

    SHA-256(hash_1 || hash_2 || ...)

with the credentials ordered by ascending priority (password before
keyfile), independent of the order they were added in.

Keyfiles come in two shapes:
1. XML keyfile (v1.0 or v2.0) - the key is stored in <Key><Data>
2. Anything else - the SHA-256 digest of the whole file is the key
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from xml.etree.ElementTree import ParseError as XmlParseError

from defusedxml import ElementTree as DefusedET
from defusedxml import DefusedXmlException

from kpio.exceptions import ArgumentError, InvalidKeyFileError, MissingCredentialsError

from .crypto import constant_time_compare

logger = logging.getLogger(__name__)


class CredentialKind(Enum):
    """Kinds of credential that can contribute to the composite key."""

    PASSWORD = "password"
    KEYFILE = "keyfile"


class KeyfileType(Enum):
    """How a keyfile's hash was obtained."""

    XML = "xml"
    BINARY = "binary"


class Credential(ABC):
    """A source of 32 bytes of key material.

    Subclasses compute their hash once at construction and never change it.
    """

    __slots__ = ("_hash",)

    PRIORITY: int = 0

    def __init__(self, key_hash: bytes) -> None:
        if len(key_hash) != 32:
            raise InvalidKeyFileError("Credential hash must be 32 bytes")
        self._hash = bytes(key_hash)

    @property
    def hash(self) -> bytes:
        """The 32-byte hash contributed to the composite key."""
        return self._hash

    @property
    def priority(self) -> int:
        """Position in the composite key; lower values come first."""
        return self.PRIORITY

    @property
    @abstractmethod
    def kind(self) -> CredentialKind: ...

    def __repr__(self) -> str:
        """Return string representation (hides key material)."""
        return f"{type(self).__name__}(<hidden>)"


class PasswordCredential(Credential):
    """Master password; its hash is SHA-256 of the UTF-8 encoded password."""

    __slots__ = ()

    PRIORITY = 0

    def __init__(self, password: str | bytes) -> None:
        if isinstance(password, str):
            password = password.encode("utf-8")
        elif not isinstance(password, (bytes, bytearray)):
            raise ArgumentError("Expected `password` to be str or bytes")
        super().__init__(hashlib.sha256(password).digest())

    @property
    def kind(self) -> CredentialKind:
        return CredentialKind.PASSWORD


class KeyfileCredential(Credential):
    """Keyfile contents.

    Example:
        >>> cred = KeyfileCredential.from_file("vault.key")
        >>> cred.keyfile_type
        <KeyfileType.XML: 'xml'>
    """

    __slots__ = ("_keyfile_type",)

    PRIORITY = 100

    def __init__(self, data: bytes) -> None:
        """Hash the keyfile contents.

        Args:
            data: Raw keyfile bytes

        Raises:
            ArgumentError: If data isn't bytes
            InvalidKeyFileError: If an XML keyfile is malformed
        """
        if not isinstance(data, (bytes, bytearray)):
            raise ArgumentError("Expected `data` to be bytes")
        key_hash, keyfile_type = _process_keyfile(bytes(data))
        super().__init__(key_hash)
        self._keyfile_type = keyfile_type
        logger.debug("Loaded %s keyfile", keyfile_type.value)

    @classmethod
    def from_file(cls, path: str | Path) -> KeyfileCredential:
        """Read a keyfile from disk.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Keyfile not found: {path}")
        return cls(path.read_bytes())

    @property
    def kind(self) -> CredentialKind:
        return CredentialKind.KEYFILE

    @property
    def keyfile_type(self) -> KeyfileType:
        """Whether the key came from an XML keyfile or a hashed binary file."""
        return self._keyfile_type


def _process_keyfile(data: bytes) -> tuple[bytes, KeyfileType]:
    """Extract the 32-byte key from keyfile contents.

    Returns:
        Tuple of (key hash, keyfile type)
    """
    try:
        tree = DefusedET.fromstring(data)
    except (XmlParseError, DefusedXmlException, ValueError):
        tree = None

    data_elem = tree.find("Key/Data") if tree is not None else None
    if data_elem is None:
        return hashlib.sha256(data).digest(), KeyfileType.BINARY

    version_elem = tree.find("Meta/Version")
    version = (version_elem.text or "").strip() if version_elem is not None else ""
    text = "".join((data_elem.text or "").split())

    if version.startswith("2."):
        # Version 2.0: hex encoded, optional 4-byte SHA-256 prefix as checksum
        try:
            key = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidKeyFileError("Keyfile data is not valid hex") from e
        if "Hash" in data_elem.attrib:
            try:
                expected = bytes.fromhex(data_elem.attrib["Hash"])
            except ValueError as e:
                raise InvalidKeyFileError("Keyfile hash is not valid hex") from e
            if not constant_time_compare(expected, hashlib.sha256(key).digest()[:4]):
                raise InvalidKeyFileError("Keyfile hash verification failed")
    else:
        # Version 1.0 (or unversioned): base64 encoded, used verbatim
        try:
            key = base64.b64decode(text, validate=True)
        except binascii.Error as e:
            raise InvalidKeyFileError("Keyfile data is not valid base64") from e

    if len(key) != 32:
        raise InvalidKeyFileError("Keyfile key must be 32 bytes")
    return key, KeyfileType.XML


class CredentialStore:
    """Ordered collection of credentials combined into the composite key.

    Example:
        >>> store = CredentialStore()
        >>> store.add(PasswordCredential("secret"))
        >>> store.add(KeyfileCredential.from_file("vault.key"))
        >>> composite = store.build_composite_hash()
    """

    def __init__(self, credentials: list[Credential] | None = None) -> None:
        self._credentials: list[Credential] = []
        for credential in credentials or []:
            self.add(credential)

    def add(self, credential: Credential) -> None:
        """Append a credential. Duplicates are kept."""
        if not isinstance(credential, Credential):
            raise ArgumentError("Expected `credential` to be a Credential")
        self._credentials.append(credential)

    def reset(self) -> None:
        """Remove all credentials."""
        self._credentials.clear()

    def __len__(self) -> int:
        return len(self._credentials)

    def __iter__(self) -> Iterator[Credential]:
        return iter(self._credentials)

    def build_composite_hash(self) -> bytes:
        """Combine all credentials into the 32-byte composite key.

        Raises:
            MissingCredentialsError: If the store is empty
        """
        if not self._credentials:
            raise MissingCredentialsError()
        ordered = sorted(self._credentials, key=lambda c: c.priority)
        return hashlib.sha256(b"".join(c.hash for c in ordered)).digest()

    @classmethod
    def from_secrets(
        cls,
        password: str | bytes | None = None,
        keyfile_data: bytes | None = None,
    ) -> CredentialStore:
        """Build a store from a password and/or keyfile contents."""
        store = cls()
        if password is not None:
            store.add(PasswordCredential(password))
        if keyfile_data is not None:
            store.add(KeyfileCredential(keyfile_data))
        return store
