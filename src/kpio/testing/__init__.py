"""Test utilities for kpio.

WARNING: The helpers in this module build databases with a handful of
key transform rounds so tests run fast. Such databases are trivially
brute-forced. DO NOT use them for real data.

Example:
    >>> from kpio.testing import build_database, make_document
    >>> data, credentials = build_database(make_document({"GitHub": "hunter2"}))
"""

from __future__ import annotations

from xml.etree.ElementTree import Element, SubElement

from kpio.engine import DatabaseEngine
from kpio.parsing import CompressionType, ContainerHeader
from kpio.security import CredentialStore

# Few rounds so each derivation takes microseconds
FAST_TRANSFORM_ROUNDS = 16

TEST_PASSWORD = "nebuchadnezzar"


def make_document(entries: dict[str, str], name: str = "Test") -> Element:
    """Build a small KeePass-shaped XML tree.

    Each entry gets a plain Title and a protected Password value, so the
    number of protected values equals len(entries).

    Args:
        entries: Mapping of title to password
        name: Database and root group name
    """
    root = Element("KeePassFile")
    meta = SubElement(root, "Meta")
    SubElement(meta, "Generator").text = "kpio.testing"
    SubElement(meta, "DatabaseName").text = name
    group = SubElement(SubElement(root, "Root"), "Group")
    SubElement(group, "Name").text = name

    for title, password in entries.items():
        entry = SubElement(group, "Entry")
        title_field = SubElement(entry, "String")
        SubElement(title_field, "Key").text = "Title"
        SubElement(title_field, "Value").text = title
        password_field = SubElement(entry, "String")
        SubElement(password_field, "Key").text = "Password"
        SubElement(password_field, "Value", Protected="True").text = password
    return root


def make_header(
    transform_rounds: int = FAST_TRANSFORM_ROUNDS,
    compression: CompressionType = CompressionType.GZIP,
) -> ContainerHeader:
    """Fresh header with a low round count."""
    return ContainerHeader.create(transform_rounds=transform_rounds, compression=compression)


def build_database(
    root: Element,
    credentials: CredentialStore | None = None,
    header: ContainerHeader | None = None,
) -> tuple[bytes, CredentialStore]:
    """Encrypt a document tree into KDBX 3 bytes.

    Args:
        root: Document with protected values in plaintext
        credentials: Defaults to a store holding TEST_PASSWORD
        header: Defaults to make_header()

    Returns:
        Tuple of (file bytes, credentials used)
    """
    if credentials is None:
        credentials = CredentialStore.from_secrets(TEST_PASSWORD)
    data = DatabaseEngine().save(header or make_header(), credentials, root)
    return data, credentials


__all__ = [
    "FAST_TRANSFORM_ROUNDS",
    "TEST_PASSWORD",
    "build_database",
    "make_document",
    "make_header",
]
