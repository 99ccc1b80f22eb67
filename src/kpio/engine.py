"""Load and save orchestration for KDBX 3 databases.

DatabaseEngine ties the binary pipeline (kpio.parsing.kdbx3) to the
document tree:

    load: bytes -> signature -> header -> master key -> AES-CBC decrypt
          -> start bytes -> hashed blocks -> gunzip -> XML -> unlock
    save: tree copy -> lock -> XML -> gzip -> start bytes + hashed blocks
          -> AES-CBC encrypt -> header -> signature -> bytes

Every stage raises on failure and nothing partial is returned. The engine
does no file I/O.
"""

from __future__ import annotations

import copy
import logging
from xml.etree.ElementTree import Element

from .document import (
    DocumentFormat,
    XmlDocumentFormat,
    lock_protected_values,
    unlock_protected_values,
)
from .exceptions import ArgumentError, MissingCredentialsError
from .parsing import ContainerHeader, Kdbx3Writer, read_kdbx3
from .security import CredentialStore, ProtectedStreamCipher

logger = logging.getLogger(__name__)


class DatabaseEngine:
    """Runs the load and save pipelines for one database.

    The engine keeps the header of the last load or save so the database
    can be saved again without re-supplying seeds. A single engine must
    not be used for overlapping calls.

    Example:
        >>> engine = DatabaseEngine()
        >>> header, tree = engine.load(data, credentials)
        >>> data = engine.save(None, credentials, tree)
    """

    def __init__(self, document_format: DocumentFormat | None = None) -> None:
        self._format: DocumentFormat = document_format or XmlDocumentFormat()
        self._header: ContainerHeader | None = None

    @property
    def header(self) -> ContainerHeader | None:
        """Header retained from the last load or save."""
        return self._header

    def load(
        self, data: bytes, credentials: CredentialStore
    ) -> tuple[ContainerHeader, Element]:
        """Decrypt a KDBX 3 file and unlock its protected values.

        Args:
            data: Complete file contents
            credentials: Credentials to unlock the file with

        Returns:
            Tuple of (header, document root with protected values in plaintext)

        Raises:
            ArgumentError: If data isn't bytes or credentials isn't a CredentialStore
            FormatError: If the signature or header is invalid
            CredentialError: If the credential store is empty
            IntegrityError: Wrong credentials or corrupted payload
            DecompressionError: If the payload isn't valid gzip
            ParseError: If the XML or a protected value can't be decoded
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ArgumentError("Expected `data` to be bytes")
        self._check_credentials(credentials)

        payload = read_kdbx3(data, credentials)
        header = payload.header
        root = self._format.parse(payload.xml_data)

        cipher = ProtectedStreamCipher(header.protected_stream_key, header.inner_stream_type)
        count = unlock_protected_values(root, cipher)
        logger.debug("Unlocked %d protected values", count)

        self._header = header
        return header, root

    def save(
        self,
        header: ContainerHeader | None,
        credentials: CredentialStore,
        root: Element,
    ) -> bytes:
        """Lock protected values and encrypt the tree to KDBX 3 bytes.

        The caller's tree is not modified; locking happens on a copy.

        Args:
            header: Header to write, or None to reuse the retained header
            credentials: Credentials to lock the file with
            root: Document root with protected values in plaintext

        Returns:
            Complete KDBX 3 file as bytes

        Raises:
            ArgumentError: If no header is available or the tree isn't an Element
            CredentialError: If the credential store is empty
        """
        if header is None:
            header = self._header
        if header is None:
            raise ArgumentError("No header - load a database or pass a header")
        if not isinstance(root, Element):
            raise ArgumentError("Expected `root` to be an XML Element")
        self._check_credentials(credentials)

        # Fail on an empty store before doing any work
        if not len(credentials):
            raise MissingCredentialsError()

        locked = copy.deepcopy(root)
        cipher = ProtectedStreamCipher(header.protected_stream_key, header.inner_stream_type)
        count = lock_protected_values(locked, cipher)
        logger.debug("Locked %d protected values", count)

        xml_data = self._format.serialize(locked)
        data = Kdbx3Writer().encrypt(header, xml_data, credentials)

        self._header = header
        return data

    @staticmethod
    def _check_credentials(credentials: CredentialStore) -> None:
        if not isinstance(credentials, CredentialStore):
            raise ArgumentError("Expected `credentials` to be a CredentialStore")
