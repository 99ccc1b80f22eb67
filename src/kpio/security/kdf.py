"""Key derivation for KDBX 3 databases.

KDBX 3 stretches the composite key with AES-KDF: the 32-byte composite
hash is AES-256-ECB encrypted with the header's TransformSeed as key,
TransformRounds times over. The master key is then

    SHA-256(MasterSeed || SHA-256(transformed))

Security considerations:
- The round loop never exits early; its cost is what hardens the key
- All inputs and outputs are raw bytes, never text
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from Cryptodome.Cipher import AES

from kpio.exceptions import ArgumentError

from .crypto import secure_random_bytes

# KeePass 2.x default since 2.35
DEFAULT_TRANSFORM_ROUNDS = 60000

# Below this the stretching is considered weak (old KeePass default)
AES_KDF_MIN_ROUNDS = 6000


@dataclass(frozen=True, slots=True)
class AesKdfConfig:
    """Configuration for AES-KDF.

    Attributes:
        rounds: Number of AES encryption rounds
        salt: 32-byte transform seed
    """

    rounds: int
    salt: bytes

    def __post_init__(self) -> None:
        """Validate configuration."""
        if len(self.salt) != 32:
            raise ArgumentError("AES-KDF salt must be exactly 32 bytes")
        if self.rounds < 0:
            raise ArgumentError("AES-KDF rounds must not be negative")
        if self.rounds > 0xFFFFFFFFFFFFFFFF:
            raise ArgumentError("AES-KDF rounds must fit in 64 bits")

    def validate_security(self) -> None:
        """Check that the round count meets the minimum.

        Raises:
            ValueError: If rounds are below AES_KDF_MIN_ROUNDS
        """
        if self.rounds < AES_KDF_MIN_ROUNDS:
            raise ValueError(
                f"Rounds {self.rounds} is below minimum {AES_KDF_MIN_ROUNDS}"
            )

    @classmethod
    def default(cls, salt: bytes | None = None) -> AesKdfConfig:
        """Create configuration with the KeePass default round count.

        Args:
            salt: Optional salt (32 random bytes generated if not provided)
        """
        if salt is None:
            salt = secure_random_bytes(32)
        return cls(rounds=DEFAULT_TRANSFORM_ROUNDS, salt=salt)


def _require_bytes(name: str, value: object) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ArgumentError(f"Expected `{name}` to be bytes, got {type(value).__name__}")
    return bytes(value)


def transform_key(key: bytes, seed: bytes, rounds: int) -> bytes:
    """Run the AES-KDF round loop.

    Encrypts ``key`` with AES-256-ECB (no padding, no IV) using ``seed`` as
    the cipher key, feeding each round's output into the next. Zero rounds
    return ``key`` unchanged. The result is not hashed here; see
    build_master_key.

    Args:
        key: Data to transform, a multiple of 16 bytes (normally 32)
        seed: 32-byte TransformSeed
        rounds: Number of iterations

    Returns:
        The transformed bytes, same length as ``key``

    Raises:
        ArgumentError: On non-bytes input, bad lengths or negative rounds
    """
    key = _require_bytes("key", key)
    seed = _require_bytes("seed", seed)
    if isinstance(rounds, bool) or not isinstance(rounds, int):
        raise ArgumentError("Expected `rounds` to be an int")
    if rounds < 0:
        raise ArgumentError("Transform rounds must not be negative")
    if len(seed) != 32:
        raise ArgumentError("Transform seed must be exactly 32 bytes")
    if len(key) % AES.block_size:
        raise ArgumentError("Transform key must be a multiple of 16 bytes")

    cipher = AES.new(seed, AES.MODE_ECB)
    for _ in range(rounds):
        key = cipher.encrypt(key)
    return key


def build_master_key(
    composite_hash: bytes,
    master_seed: bytes,
    transform_seed: bytes,
    rounds: int,
) -> bytes:
    """Derive the 32-byte payload key from the composite credential hash.

    Args:
        composite_hash: 32-byte output of CredentialStore.build_composite_hash
        master_seed: MasterSeed header field
        transform_seed: TransformSeed header field
        rounds: TransformRounds header field

    Returns:
        SHA-256(master_seed || SHA-256(transform_key(...)))
    """
    master_seed = _require_bytes("master_seed", master_seed)
    transformed = transform_key(composite_hash, transform_seed, rounds)
    transformed_hash = hashlib.sha256(transformed).digest()
    return hashlib.sha256(master_seed + transformed_hash).digest()


def derive_master_key(composite_hash: bytes, master_seed: bytes, config: AesKdfConfig) -> bytes:
    """build_master_key taking its seed and rounds from an AesKdfConfig."""
    return build_master_key(composite_hash, master_seed, config.salt, config.rounds)
