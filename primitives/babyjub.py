"""
Baby Jubjub twisted Edwards curve, EdDSA-Poseidon signatures and ECDH.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from .blake512 import blake512
from .field import SNARK_FIELD_SIZE, to_field
from .poseidon import poseidon

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

A = 168700
D = 168696

BASE8: Point = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

SUB_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041

IDENTITY: Point = (0, 1)


class CurveError(Exception):
    """Base exception for curve operations"""
    pass


class InvalidCurvePoint(CurveError):
    """Raised when a point is not on the Baby Jubjub curve"""
    pass


@dataclass(frozen=True)
class Signature:
    """EdDSA-Poseidon signature"""
    r8: Point
    s: int


# ============================================================================
# CURVE ARITHMETIC
# ============================================================================


def add_point(a: Point, b: Point) -> Point:
    p = SNARK_FIELD_SIZE
    beta = a[0] * b[1] % p
    gamma = a[1] * b[0] % p
    delta = (a[1] - A * a[0]) * (b[0] + b[1]) % p
    tau = beta * gamma % p
    dtau = D * tau % p
    x = (beta + gamma) * pow(1 + dtau, -1, p) % p
    y = (delta + A * beta - gamma) * pow(1 - dtau, -1, p) % p
    return (x, y)


def mul_point_escalar(base: Point, e: int) -> Point:
    """Double-and-add scalar multiplication"""
    result = IDENTITY
    exp = base
    rem = e
    while rem != 0:
        if rem & 1:
            result = add_point(result, exp)
        exp = add_point(exp, exp)
        rem >>= 1
    return result


def in_curve(point: Point) -> bool:
    p = SNARK_FIELD_SIZE
    try:
        x, y = point
    except (TypeError, ValueError):
        return False
    if not all(isinstance(c, int) and 0 <= c < p for c in (x, y)):
        return False
    x2 = x * x % p
    y2 = y * y % p
    return (A * x2 + y2) % p == (1 + D * x2 * y2) % p


def require_in_curve(point: Point) -> Point:
    if not in_curve(point):
        raise InvalidCurvePoint(f"Point {point} is not on the Baby Jubjub curve")
    return (int(point[0]), int(point[1]))


# ============================================================================
# KEY DERIVATION
# ============================================================================


def _hash_private_key(private_key: int) -> bytes:
    return blake512(private_key.to_bytes(32, "big"))


def _prune(buff: bytes) -> bytes:
    pruned = bytearray(buff)
    pruned[0] &= 0xF8
    pruned[31] &= 0x7F
    pruned[31] |= 0x40
    return bytes(pruned)


def _secret_scalar(private_key: int) -> int:
    h = _hash_private_key(private_key)
    return int.from_bytes(_prune(h[:32]), "little")


def format_private_key(private_key: int) -> int:
    """Private key as the scalar the circuit multiplies Base8 with"""
    return _secret_scalar(private_key) >> 3


def derive_public_key(private_key: int) -> Point:
    return mul_point_escalar(BASE8, format_private_key(private_key))


def ecdh_shared_key(private_key: int, public_key: Point) -> Point:
    """Diffie-Hellman shared point between a private key and a public key"""
    require_in_curve(public_key)
    return mul_point_escalar(public_key, format_private_key(private_key))


# ============================================================================
# EDDSA-POSEIDON
# ============================================================================


def sign(private_key: int, message: int) -> Signature:
    message = to_field(message)
    h = _hash_private_key(private_key)
    s = int.from_bytes(_prune(h[:32]), "little")
    public_key = mul_point_escalar(BASE8, s >> 3)

    r_buff = blake512(h[32:64] + message.to_bytes(32, "little"))
    r = int.from_bytes(r_buff, "little") % SUB_ORDER
    r8 = mul_point_escalar(BASE8, r)
    hm = poseidon([r8[0], r8[1], public_key[0], public_key[1], message])
    return Signature(r8=r8, s=(r + hm * s) % SUB_ORDER)


def verify(message: int, signature: Signature, public_key: Point) -> bool:
    if not in_curve(signature.r8) or not in_curve(public_key):
        return False
    if not isinstance(signature.s, int) or not 0 <= signature.s < SUB_ORDER:
        return False
    if not 0 <= message < SNARK_FIELD_SIZE:
        return False

    hm = poseidon([signature.r8[0], signature.r8[1], public_key[0], public_key[1], message])
    left = mul_point_escalar(BASE8, signature.s)
    right = add_point(signature.r8, mul_point_escalar(public_key, 8 * hm))
    return left == right
