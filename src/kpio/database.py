"""High-level Database API for KDBX 3 files.

This module provides the main interface for working with KeePass databases:
- Opening and decrypting KDBX files from disk or bytes
- Creating new databases
- Managing credentials between saves
- Saving databases
"""

from __future__ import annotations

from pathlib import Path
from types import TracebackType
from xml.etree.ElementTree import Element, SubElement

from .engine import DatabaseEngine
from .exceptions import ArgumentError
from .parsing import CompressionType, ContainerHeader
from .security import (
    DEFAULT_TRANSFORM_ROUNDS,
    Credential,
    CredentialStore,
    KeyfileCredential,
)

GENERATOR_NAME = "kpio"


class Database:
    """High-level interface for KDBX 3 databases.

    Example usage:
        # Open existing database
        db = Database.open("passwords.kdbx", password="secret")

        # Work on the XML tree
        for value in db.tree.iter("Value"):
            ...

        # Change the password and save
        db.set_credentials(password="new secret")
        db.save()
    """

    def __init__(
        self,
        tree: Element,
        header: ContainerHeader,
        credentials: CredentialStore | None = None,
        engine: DatabaseEngine | None = None,
    ) -> None:
        """Initialize database.

        Usually you should use Database.open() or Database.create() instead.

        Args:
            tree: Document root with protected values in plaintext
            header: KDBX header
            credentials: Credentials used for saving
            engine: Engine that loaded the database
        """
        self._tree = tree
        self._header = header
        self._credentials = credentials if credentials is not None else CredentialStore()
        self._engine = engine or DatabaseEngine()
        self._filepath: Path | None = None

    def __enter__(self) -> Database:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, dropping credentials."""
        self.reset_credentials()

    @property
    def tree(self) -> Element:
        """Root element of the decrypted XML document."""
        return self._tree

    @property
    def header(self) -> ContainerHeader:
        """Outer header used when saving."""
        return self._header

    @property
    def credentials(self) -> CredentialStore:
        """Credentials used when saving."""
        return self._credentials

    @property
    def filepath(self) -> Path | None:
        """Get the file path (if opened from file)."""
        return self._filepath

    # --- Opening databases ---

    @classmethod
    def open(
        cls,
        filepath: str | Path,
        password: str | None = None,
        keyfile: str | Path | None = None,
    ) -> Database:
        """Open an existing KDBX database.

        Args:
            filepath: Path to the .kdbx file
            password: Database password
            keyfile: Path to keyfile (optional)

        Returns:
            Database instance

        Raises:
            FileNotFoundError: If the database or keyfile doesn't exist
            IntegrityError: If credentials are wrong or the file is corrupted
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Database file not found: {filepath}")

        keyfile_data = None
        if keyfile:
            keyfile_path = Path(keyfile)
            if not keyfile_path.exists():
                raise FileNotFoundError(f"Keyfile not found: {keyfile}")
            keyfile_data = keyfile_path.read_bytes()

        return cls.open_bytes(
            filepath.read_bytes(),
            password=password,
            keyfile_data=keyfile_data,
            filepath=filepath,
        )

    @classmethod
    def open_bytes(
        cls,
        data: bytes,
        password: str | None = None,
        keyfile_data: bytes | None = None,
        filepath: Path | None = None,
    ) -> Database:
        """Open a KDBX database from bytes.

        Args:
            data: KDBX file contents
            password: Database password
            keyfile_data: Keyfile contents (optional)
            filepath: Original file path (for save)

        Returns:
            Database instance
        """
        credentials = CredentialStore.from_secrets(password, keyfile_data)
        return cls.open_with(data, credentials, filepath=filepath)

    @classmethod
    def open_with(
        cls,
        data: bytes,
        credentials: CredentialStore,
        filepath: Path | None = None,
    ) -> Database:
        """Open a KDBX database from bytes with a prepared credential store."""
        engine = DatabaseEngine()
        header, tree = engine.load(data, credentials)
        db = cls(tree=tree, header=header, credentials=credentials, engine=engine)
        db._filepath = filepath
        return db

    # --- Creating databases ---

    @classmethod
    def create(
        cls,
        filepath: str | Path | None = None,
        password: str | None = None,
        keyfile: str | Path | None = None,
        database_name: str = "Database",
        transform_rounds: int = DEFAULT_TRANSFORM_ROUNDS,
        compression: CompressionType = CompressionType.GZIP,
    ) -> Database:
        """Create a new KDBX 3 database.

        Args:
            filepath: Path to save the database (optional)
            password: Database password
            keyfile: Path to keyfile (optional)
            database_name: Name for the database and its root group
            transform_rounds: AES-KDF rounds
            compression: Payload compression

        Returns:
            New Database instance
        """
        if password is None and keyfile is None:
            raise ArgumentError("At least one of password or keyfile is required")

        credentials = CredentialStore.from_secrets(password)
        if keyfile:
            credentials.add(KeyfileCredential.from_file(keyfile))

        header = ContainerHeader.create(
            transform_rounds=transform_rounds, compression=compression
        )
        db = cls(tree=_new_document(database_name), header=header, credentials=credentials)
        if filepath:
            db._filepath = Path(filepath)
        return db

    # --- Credentials ---

    def add_credential(self, credential: Credential) -> None:
        """Add a credential used by the next save."""
        self._credentials.add(credential)

    def reset_credentials(self) -> None:
        """Remove all credentials."""
        self._credentials.reset()

    def set_credentials(
        self,
        password: str | None = None,
        keyfile_data: bytes | None = None,
    ) -> None:
        """Replace credentials for the next save.

        Raises:
            ArgumentError: If neither password nor keyfile_data is given
        """
        if password is None and keyfile_data is None:
            raise ArgumentError("At least one of password or keyfile_data is required")
        self._credentials = CredentialStore.from_secrets(password, keyfile_data)

    # --- Saving databases ---

    def save(self, filepath: str | Path | None = None) -> None:
        """Save the database to disk.

        Args:
            filepath: Target path; defaults to the path it was opened from
        """
        if filepath:
            self._filepath = Path(filepath)
        if self._filepath is None:
            raise ArgumentError("No filepath specified and database wasn't opened from file")
        self._filepath.write_bytes(self.to_bytes())

    def to_bytes(self) -> bytes:
        """Serialize the database to KDBX 3 bytes."""
        return self._engine.save(self._header, self._credentials, self._tree)

    def __str__(self) -> str:
        return f'Database("{self._filepath or "<memory>"}", {len(self._credentials)} credentials)'


def _new_document(name: str) -> Element:
    """Minimal KeePass XML document with an empty root group."""
    root = Element("KeePassFile")
    meta = SubElement(root, "Meta")
    SubElement(meta, "Generator").text = GENERATOR_NAME
    SubElement(meta, "DatabaseName").text = name
    group = SubElement(SubElement(root, "Root"), "Group")
    SubElement(group, "Name").text = name
    return root
