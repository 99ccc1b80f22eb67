"""Tests for credentials and the composite key."""

import base64
import hashlib
from pathlib import Path

import pytest

from kpio import (
    ArgumentError,
    CredentialError,
    CredentialKind,
    CredentialStore,
    InvalidKeyFileError,
    KeyfileCredential,
    KeyfileType,
    MissingCredentialsError,
    PasswordCredential,
)

KEY = bytes(range(32))


def xml_keyfile_v1(key: bytes = KEY) -> bytes:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        "<KeyFile>\n"
        "  <Meta><Version>1.00</Version></Meta>\n"
        f"  <Key><Data>{base64.b64encode(key).decode()}</Data></Key>\n"
        "</KeyFile>\n"
    ).encode()


def xml_keyfile_v2(key: bytes = KEY, checksum: str | None = None) -> bytes:
    if checksum is None:
        checksum = hashlib.sha256(key).digest()[:4].hex().upper()
    hex_key = key.hex().upper()
    data = " ".join(hex_key[i : i + 8] for i in range(0, len(hex_key), 8))
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        "<KeyFile>\n"
        "  <Meta><Version>2.0</Version></Meta>\n"
        f'  <Key><Data Hash="{checksum}">\n    {data}\n  </Data></Key>\n'
        "</KeyFile>\n"
    ).encode()


class TestPasswordCredential:
    """Tests for PasswordCredential."""

    def test_hash_is_sha256_of_utf8(self) -> None:
        """Test password hash is SHA-256 of the UTF-8 password."""
        cred = PasswordCredential("pässword")
        assert cred.hash == hashlib.sha256("pässword".encode("utf-8")).digest()

    def test_bytes_password(self) -> None:
        """Test bytes passwords are hashed as-is."""
        assert PasswordCredential(b"secret").hash == PasswordCredential("secret").hash

    def test_kind_and_priority(self) -> None:
        """Test password kind and priority."""
        cred = PasswordCredential("x")
        assert cred.kind == CredentialKind.PASSWORD
        assert cred.priority < KeyfileCredential(b"binary key").priority

    def test_rejects_non_string(self) -> None:
        """Test non-str/bytes passwords are rejected."""
        with pytest.raises(ArgumentError):
            PasswordCredential(1234)  # type: ignore[arg-type]

    def test_repr_hides_secret(self) -> None:
        """Test repr doesn't include the hash."""
        cred = PasswordCredential("secret")
        assert cred.hash.hex() not in repr(cred)


class TestKeyfileCredential:
    """Tests for KeyfileCredential."""

    def test_xml_v1_keyfile(self) -> None:
        """Test XML v1.0 keyfile uses the decoded data verbatim."""
        cred = KeyfileCredential(xml_keyfile_v1())
        assert cred.keyfile_type == KeyfileType.XML
        assert cred.keyfile_type.value == "xml"
        assert cred.hash == KEY

    def test_xml_v2_keyfile(self) -> None:
        """Test XML v2.0 keyfile with hex data and checksum."""
        cred = KeyfileCredential(xml_keyfile_v2())
        assert cred.keyfile_type == KeyfileType.XML
        assert cred.hash == KEY

    def test_xml_v2_bad_checksum(self) -> None:
        """Test XML v2.0 keyfile with wrong checksum is rejected."""
        with pytest.raises(InvalidKeyFileError, match="verification"):
            KeyfileCredential(xml_keyfile_v2(checksum="00000000"))

    def test_xml_bad_base64(self) -> None:
        """Test XML keyfile with invalid base64 is rejected."""
        data = b"<KeyFile><Key><Data>!!not base64!!</Data></Key></KeyFile>"
        with pytest.raises(InvalidKeyFileError):
            KeyfileCredential(data)

    def test_xml_wrong_key_length(self) -> None:
        """Test XML keyfile whose key isn't 32 bytes is rejected."""
        with pytest.raises(InvalidKeyFileError):
            KeyfileCredential(xml_keyfile_v1(b"short"))

    def test_binary_keyfile(self) -> None:
        """Test binary keyfile hash is the raw SHA-256 digest of the file."""
        data = bytes(range(256)) * 4
        cred = KeyfileCredential(data)
        assert cred.keyfile_type == KeyfileType.BINARY
        assert cred.keyfile_type.value == "binary"
        assert cred.hash == hashlib.sha256(data).digest()
        assert len(cred.hash) == 32

    def test_xml_without_data_is_binary(self) -> None:
        """Test XML files without Key/Data are hashed as binary."""
        data = b"<KeyFile><Meta><Version>1.00</Version></Meta></KeyFile>"
        cred = KeyfileCredential(data)
        assert cred.keyfile_type == KeyfileType.BINARY
        assert cred.hash == hashlib.sha256(data).digest()

    def test_kind(self) -> None:
        """Test keyfile kind."""
        assert KeyfileCredential(b"abc").kind == CredentialKind.KEYFILE

    def test_rejects_non_bytes(self) -> None:
        """Test non-bytes keyfile data is rejected."""
        with pytest.raises(ArgumentError):
            KeyfileCredential("not bytes")  # type: ignore[arg-type]

    def test_from_file(self, tmp_path: Path) -> None:
        """Test reading a keyfile from disk."""
        path = tmp_path / "vault.key"
        path.write_bytes(xml_keyfile_v1())
        assert KeyfileCredential.from_file(path).hash == KEY

    def test_from_missing_file(self, tmp_path: Path) -> None:
        """Test reading a missing keyfile raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            KeyfileCredential.from_file(tmp_path / "missing.key")


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_empty_store_raises(self) -> None:
        """Test empty store can't build a composite hash."""
        store = CredentialStore()
        with pytest.raises(MissingCredentialsError):
            store.build_composite_hash()
        with pytest.raises(CredentialError):
            store.build_composite_hash()

    def test_single_password(self) -> None:
        """Test composite of a single password is SHA-256 of its hash."""
        store = CredentialStore([PasswordCredential("secret")])
        expected = hashlib.sha256(hashlib.sha256(b"secret").digest()).digest()
        assert store.build_composite_hash() == expected

    def test_ordered_by_priority(self) -> None:
        """Test composite order follows priority, not insertion order."""
        password = PasswordCredential("secret")
        keyfile = KeyfileCredential(xml_keyfile_v1())

        a = CredentialStore([keyfile, password]).build_composite_hash()
        b = CredentialStore([password, keyfile]).build_composite_hash()

        assert a == b
        assert a == hashlib.sha256(password.hash + KEY).digest()

    def test_no_deduplication(self) -> None:
        """Test duplicate credentials are all used."""
        password = PasswordCredential("secret")
        store = CredentialStore()
        store.add(password)
        store.add(password)
        assert len(store) == 2
        assert store.build_composite_hash() == hashlib.sha256(password.hash * 2).digest()

    def test_deterministic(self) -> None:
        """Test composite is stable across calls."""
        store = CredentialStore.from_secrets("secret", b"keyfile")
        assert store.build_composite_hash() == store.build_composite_hash()

    def test_reset(self) -> None:
        """Test reset empties the store."""
        store = CredentialStore.from_secrets("secret")
        store.reset()
        assert len(store) == 0
        with pytest.raises(MissingCredentialsError):
            store.build_composite_hash()

    def test_add_rejects_non_credential(self) -> None:
        """Test only Credential instances can be added."""
        with pytest.raises(ArgumentError):
            CredentialStore().add("secret")  # type: ignore[arg-type]

    def test_iteration(self) -> None:
        """Test the store iterates in insertion order."""
        a, b = PasswordCredential("a"), PasswordCredential("b")
        assert list(CredentialStore([a, b])) == [a, b]
