"""Block cipher and low-level crypto helpers.

KDBX 3 encrypts the payload with AES-256-CBC and PKCS#7 padding. The
cipher is identified in the header by a 16-byte UUID.
"""

from __future__ import annotations

import hmac
import os
from enum import Enum

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import pad, unpad

from kpio.exceptions import ArgumentError, CryptoError, IntegrityError, UnknownCipherError


class Cipher(Enum):
    """Supported payload ciphers.

    The UUID values are defined in the KDBX specification.
    """

    AES256_CBC = bytes.fromhex("31c1f2e6bf714350be5805216afc5aff")

    @property
    def display_name(self) -> str:
        """Human-readable cipher name."""
        return "AES-256-CBC"

    @property
    def key_size(self) -> int:
        return 32

    @property
    def iv_size(self) -> int:
        return 16

    @classmethod
    def from_uuid(cls, uuid_bytes: bytes) -> Cipher:
        """Look up a cipher by its KDBX UUID.

        Raises:
            UnknownCipherError: If the UUID doesn't match any known cipher
        """
        for cipher in cls:
            if cipher.value == uuid_bytes:
                return cipher
        raise UnknownCipherError(uuid_bytes)


class CipherContext:
    """Encrypts or decrypts one payload with a fixed key and IV.

    A fresh AES object is created per call since CBC state can't be reused
    between an encryption and a decryption.
    """

    def __init__(self, cipher: Cipher, key: bytes, iv: bytes) -> None:
        if len(key) != cipher.key_size:
            raise ArgumentError(
                f"{cipher.display_name} requires a {cipher.key_size}-byte key"
            )
        if len(iv) != cipher.iv_size:
            raise ArgumentError(
                f"{cipher.display_name} requires a {cipher.iv_size}-byte IV"
            )
        self._cipher = cipher
        self._key = bytes(key)
        self._iv = bytes(iv)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Pad with PKCS#7 and encrypt."""
        try:
            aes = AES.new(self._key, AES.MODE_CBC, iv=self._iv)
            return aes.encrypt(pad(plaintext, AES.block_size))
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Encryption failed: {e}") from e

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt and strip PKCS#7 padding.

        A ciphertext of the wrong length and a bad padding both mean the
        key was wrong or the data was damaged, so both raise IntegrityError.
        """
        if not ciphertext or len(ciphertext) % AES.block_size:
            raise IntegrityError()
        aes = AES.new(self._key, AES.MODE_CBC, iv=self._iv)
        try:
            return unpad(aes.decrypt(ciphertext), AES.block_size)
        except ValueError as e:
            raise IntegrityError() from e


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without leaking timing information."""
    return hmac.compare_digest(a, b)


def secure_random_bytes(n: int) -> bytes:
    """Return n bytes from the OS CSPRNG."""
    return os.urandom(n)
