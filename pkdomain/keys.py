"""Ed25519 keypairs, z-base-32 encoding and seed file parsing."""

from __future__ import annotations

import os
import secrets
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

SECRET_KEY_LENGTH = 32
ZBASE32_SEED_LENGTH = 52
_ZBASE32_ALPHABET = "ybndrfg8ejkmcpqxot1uwisza345h769"
_ZBASE32_INDEX = {char: value for value, char in enumerate(_ZBASE32_ALPHABET)}


class SeedError(ValueError):
    """Raised when a seed cannot be read or parsed."""


def zbase32_encode(data: bytes) -> str:
    """Encode bytes as z-base-32, padding the last group with zero bits."""
    bit_count = len(data) * 8
    value = int.from_bytes(data, "big")
    pad = (-bit_count) % 5
    value <<= pad
    groups = (bit_count + pad) // 5
    return "".join(
        _ZBASE32_ALPHABET[(value >> (5 * (groups - 1 - i))) & 0x1F] for i in range(groups)
    )


def zbase32_decode(text: str) -> bytes:
    """Decode z-base-32 text to whole bytes, dropping trailing partial bits."""
    value = 0
    for char in text:
        try:
            value = (value << 5) | _ZBASE32_INDEX[char]
        except KeyError:
            raise ValueError(f"invalid z-base-32 character {char!r}") from None
    bit_count = len(text) * 5
    byte_count = bit_count // 8
    value >>= bit_count - byte_count * 8
    return value.to_bytes(byte_count, "big")


class Keypair:
    """An Ed25519 keypair built from a 32 byte secret key."""

    def __init__(self, secret_key: bytes) -> None:
        if len(secret_key) != SECRET_KEY_LENGTH:
            raise SeedError(f"secret key must be {SECRET_KEY_LENGTH} bytes")
        self.secret_key = bytes(secret_key)
        self._private = Ed25519PrivateKey.from_private_bytes(self.secret_key)

    def public_key(self) -> bytes:
        """Raw 32 byte public key."""
        return self._private.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )

    def to_z32(self) -> str:
        """Public key in z-base-32 form."""
        return zbase32_encode(self.public_key())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Keypair) and other.secret_key == self.secret_key

    def __hash__(self) -> int:
        return hash(self.secret_key)

    def __repr__(self) -> str:
        return f"Keypair(public_key={self.to_z32()})"


def generate_keypair() -> Keypair:
    """Create a keypair from a fresh random secret."""
    return Keypair(secrets.token_bytes(SECRET_KEY_LENGTH))


def _keypair_from_prefix(decoded: bytes) -> Keypair:
    if len(decoded) < SECRET_KEY_LENGTH:
        raise SeedError(f"seed must hold at least {SECRET_KEY_LENGTH} bytes")
    return Keypair(decoded[:SECRET_KEY_LENGTH])


def parse_seed_hex(seed: str) -> Keypair:
    """Parse a hex seed (the current format, 64 characters)."""
    try:
        decoded = bytes.fromhex(seed)
    except ValueError as exc:
        raise SeedError(f"Invalid hex seed. {exc}") from exc
    return _keypair_from_prefix(decoded)


def parse_seed_zbase32(seed: str) -> Keypair:
    """Parse a z-base-32 seed (the old format, 52 characters)."""
    try:
        decoded = zbase32_decode(seed)
    except ValueError:
        raise SeedError("Invalid zbase32 seed") from None
    return _keypair_from_prefix(decoded)


def parse_seed(seed: str) -> Keypair:
    """Parse a seed, as z-base-32 when 52 characters long, otherwise as hex."""
    seed = seed.strip()
    if len(seed) == ZBASE32_SEED_LENGTH:
        return parse_seed_zbase32(seed)
    return parse_seed_hex(seed)


def read_seed_file(path: str | os.PathLike[str]) -> Keypair:
    """Read and parse a seed file; `~` and environment variables are expanded."""
    expanded = Path(os.path.expandvars(os.path.expanduser(os.fspath(path))))
    try:
        seed = expanded.read_text()
    except OSError as exc:
        raise SeedError(f"Failed to read seed at {expanded}. {exc}") from exc
    try:
        return parse_seed(seed)
    except SeedError as exc:
        raise SeedError(f"Failed to parse the seed file. {exc}") from exc


def parse_public_key(text: str) -> bytes:
    """Parse a z-base-32 public key, optionally prefixed with `pk:`."""
    candidate = text.strip()
    if candidate.startswith("pk:"):
        candidate = candidate[3:]
    if len(candidate) != ZBASE32_SEED_LENGTH:
        raise ValueError("public key must be 52 z-base-32 characters")
    raw = zbase32_decode(candidate)
    if len(raw) != SECRET_KEY_LENGTH:
        raise ValueError("public key must be 32 bytes")
    try:
        Ed25519PublicKey.from_public_bytes(raw)
    except ValueError as exc:
        raise ValueError(f"invalid public key. {exc}") from exc
    return raw


def is_valid_public_key(text: str) -> bool:
    """Whether the text is a valid public key."""
    try:
        parse_public_key(text)
    except ValueError:
        return False
    return True