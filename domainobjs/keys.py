"""
Identity keys: Baby Jubjub private/public keys and key pairs.
"""

import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from primitives.babyjub import (
    Point,
    derive_public_key,
    ecdh_shared_key,
    format_private_key,
    in_curve,
)
from primitives.field import SNARK_FIELD_SIZE, to_field
from primitives.poseidon import hash2

PRIVATE_KEY_PREFIX = "macisk."
PUBLIC_KEY_PREFIX = "macipk."


class KeyHandlingError(Exception):
    """Base exception for key handling"""
    pass


class InvalidKeyFormat(KeyHandlingError):
    """Raised when a serialized key cannot be parsed"""
    pass


@dataclass(frozen=True)
class PrivateKey:
    raw: int

    def __post_init__(self):
        object.__setattr__(self, "raw", to_field(self.raw))

    def as_circuit_input(self) -> int:
        return format_private_key(self.raw)

    def serialize(self) -> str:
        return PRIVATE_KEY_PREFIX + format(self.raw, "064x")

    @classmethod
    def deserialize(cls, serialized: str) -> "PrivateKey":
        if not serialized.startswith(PRIVATE_KEY_PREFIX):
            raise InvalidKeyFormat(f"Private key must start with {PRIVATE_KEY_PREFIX}")
        try:
            return cls(int(serialized[len(PRIVATE_KEY_PREFIX):], 16))
        except ValueError as e:
            raise InvalidKeyFormat(f"Invalid private key {serialized!r}") from e


@dataclass(frozen=True)
class PublicKey:
    x: int
    y: int

    def as_array(self) -> List[int]:
        return [self.x, self.y]

    @property
    def point(self) -> Point:
        return (self.x, self.y)

    def is_on_curve(self) -> bool:
        return in_curve(self.point)

    def hash(self) -> int:
        return hash2(self.x, self.y)

    def serialize(self) -> str:
        return PUBLIC_KEY_PREFIX + format(self.x, "064x") + format(self.y, "064x")

    @classmethod
    def deserialize(cls, serialized: str) -> "PublicKey":
        body = serialized[len(PUBLIC_KEY_PREFIX):]
        if not serialized.startswith(PUBLIC_KEY_PREFIX) or len(body) != 128:
            raise InvalidKeyFormat(f"Invalid public key {serialized!r}")
        try:
            return cls(int(body[:64], 16), int(body[64:], 16))
        except ValueError as e:
            raise InvalidKeyFormat(f"Invalid public key {serialized!r}") from e

    @classmethod
    def from_point(cls, point: Point) -> "PublicKey":
        return cls(int(point[0]), int(point[1]))


class Keypair:
    """A private key and the public key derived from it"""

    def __init__(self, private_key: Optional[PrivateKey] = None):
        if private_key is None:
            private_key = PrivateKey(secrets.randbelow(SNARK_FIELD_SIZE))
        self.private_key = private_key
        self.public_key = PublicKey.from_point(derive_public_key(private_key.raw))

    def __eq__(self, other):
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.private_key == other.private_key

    def __hash__(self):
        return hash(self.private_key)

    def __repr__(self):
        return f"Keypair(public_key={self.public_key.serialize()})"

    def to_dict(self) -> Dict[str, str]:
        return {
            "privateKey": self.private_key.serialize(),
            "publicKey": self.public_key.serialize(),
        }


def gen_ecdh_shared_key(private_key: PrivateKey, public_key: PublicKey) -> Tuple[int, int]:
    """Shared point between a private key and another party's public key"""
    return ecdh_shared_key(private_key.raw, public_key.point)


def gen_poll_nullifier(private_key: PrivateKey, poll_id: int) -> int:
    """Per-poll nullifier; reveals nothing about the global private key"""
    return hash2(private_key.as_circuit_input(), poll_id)


# Public key with no known private key, fixed across the protocol
PAD_KEY = PublicKey(
    10457101036533406547632367118273992217979173478358440826365724437999023779287,
    19824078218392094440610104313265183977899662750282163392862422243483260492317,
)
