"""Document tree handling for the decrypted XML payload.

The payload is parsed into an ``xml.etree.ElementTree.Element`` tree. kpio
doesn't interpret the KeePass schema; it only needs to find protected
values, which are elements carrying ``Protected="True"``. Their text is
base64 Salsa20 ciphertext on disk and plaintext in memory. Plaintext that
isn't UTF-8 is held as latin-1 text, marked with ENCODING_ATTRIBUTE.

Locking and unlocking must visit protected elements in the same order,
since they share one keystream. Both go through iter_protected_nodes.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from typing import Protocol, cast
from xml.etree.ElementTree import Element, ParseError as XmlParseError, tostring

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as DefusedET

from .exceptions import ArgumentError, ParseError
from .security.stream import ProtectedStreamCipher

PROTECTED_ATTRIBUTE = "Protected"

# In-memory only; stripped when values are locked
ENCODING_ATTRIBUTE = "kpioEncoding"


class DocumentFormat(Protocol):
    """Converts between payload bytes and a document tree."""

    def parse(self, data: bytes) -> Element: ...
    def serialize(self, root: Element) -> bytes: ...


class XmlDocumentFormat:
    """XML document format backed by ElementTree.

    Parsing goes through defusedxml to refuse entity expansion attacks.
    """

    def parse(self, data: bytes) -> Element:
        try:
            return DefusedET.fromstring(data)
        except (XmlParseError, DefusedXmlException) as e:
            raise ParseError(f"Could not parse database as XML: {e}") from e

    def serialize(self, root: Element) -> bytes:
        # tostring returns bytes when encoding is specified
        return cast(bytes, tostring(root, encoding="utf-8", xml_declaration=True))


def is_protected(elem: Element) -> bool:
    """Check whether an element carries the protected marker."""
    return (elem.get(PROTECTED_ATTRIBUTE) or "").lower() == "true"


def iter_protected_nodes(root: Element) -> Iterator[Element]:
    """Yield protected elements in document (pre-order) order."""
    for elem in root.iter():
        if is_protected(elem):
            yield elem


def get_protected_bytes(elem: Element) -> bytes:
    """Return the plaintext bytes held by an unlocked protected element.

    Raises:
        ArgumentError: If a latin-1 value was edited to hold other characters
    """
    encoding = elem.get(ENCODING_ATTRIBUTE, "utf-8")
    try:
        return (elem.text or "").encode(encoding)
    except UnicodeEncodeError as e:
        raise ArgumentError(f"Protected value can't be encoded as {encoding}") from e


def set_protected_bytes(elem: Element, plaintext: bytes) -> None:
    """Store plaintext bytes as the element's text.

    UTF-8 plaintext becomes ordinary text. Anything else (gzipped
    attachments, for one) is kept as latin-1 text and tagged with
    ENCODING_ATTRIBUTE, so get_protected_bytes returns the exact bytes.
    """
    try:
        elem.text = plaintext.decode("utf-8")
        elem.attrib.pop(ENCODING_ATTRIBUTE, None)
    except UnicodeDecodeError:
        elem.text = plaintext.decode("latin-1")
        elem.set(ENCODING_ATTRIBUTE, "latin-1")


def unlock_protected_values(root: Element, cipher: ProtectedStreamCipher) -> int:
    """Decrypt all protected values in the tree in place.

    Returns:
        Number of protected elements visited

    Raises:
        ParseError: If a value isn't valid base64
    """
    count = 0
    for elem in iter_protected_nodes(root):
        try:
            ciphertext = base64.b64decode("".join((elem.text or "").split()), validate=True)
        except binascii.Error as e:
            raise ParseError("Protected value is not valid base64") from e
        set_protected_bytes(elem, cipher.unlock(ciphertext))
        count += 1
    return count


def lock_protected_values(root: Element, cipher: ProtectedStreamCipher) -> int:
    """Encrypt all protected values in the tree in place.

    ENCODING_ATTRIBUTE is removed, so the locked tree is what goes on disk.

    Returns:
        Number of protected elements visited
    """
    count = 0
    for elem in iter_protected_nodes(root):
        ciphertext = cipher.lock(get_protected_bytes(elem))
        elem.attrib.pop(ENCODING_ATTRIBUTE, None)
        elem.text = base64.b64encode(ciphertext).decode("ascii")
        count += 1
    return count
