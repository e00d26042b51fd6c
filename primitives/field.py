"""
SNARK scalar field for the voting engine.

Every value that enters a hash, a signature or a circuit input is passed
through ``Fr`` first so that nothing unreduced or out of range can reach
the proving layer.
"""

import hashlib
import logging
import secrets
from typing import Iterable, List

import galois

logger = logging.getLogger(__name__)

# ============================================================================
# FIELD CONSTANTS
# ============================================================================

# BN254 scalar field prime
SNARK_FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# keccak256("Maci") mod p, the seed of every message chain
NOTHING_UP_MY_SLEEVE = 8370432830353022751713833565135785980866757267633941821328460903436894336785

# 5 generates the multiplicative group of the BN254 scalar field
Fr = galois.GF(SNARK_FIELD_SIZE, primitive_element=5, verify=False)


class FieldError(Exception):
    """Base exception for field element handling"""
    pass


class InvalidFieldElement(FieldError):
    """Raised when a value is not a canonical element of the SNARK field"""
    pass


def to_field(value) -> int:
    """Validate a value as a field element and return it as a plain int"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFieldElement(f"Expected an integer field element, got {type(value).__name__}")
    try:
        return int(Fr(value))
    except (ValueError, TypeError) as e:
        raise InvalidFieldElement(f"Value {value} outside field bounds") from e


def to_field_elements(values: Iterable[int]) -> List[int]:
    """Validate every value of a sequence as a field element"""
    return [to_field(v) for v in values]


def sha256_hash(values: Iterable[int]) -> int:
    """SHA256 over 32-byte big-endian words, reduced into the field.

    This is the public-input hash the on-chain verifier recomputes, so the
    word encoding must not change.
    """
    data = b"".join(int(v).to_bytes(32, "big") for v in values)
    return int.from_bytes(hashlib.sha256(data).digest(), "big") % SNARK_FIELD_SIZE


def gen_random_salt() -> int:
    """Uniform random field element from OS randomness"""
    return secrets.randbelow(SNARK_FIELD_SIZE)


# ============================================================================
# SALT SOURCES
# ============================================================================


class SaltSource:
    """Random salts for commitments"""

    def next_salt(self) -> int:
        return gen_random_salt()


class SeededSaltSource(SaltSource):
    """Deterministic salt stream, used to replay a run byte for byte"""

    def __init__(self, seed: int = 0):
        self.seed = seed
        self.counter = 0

    def next_salt(self) -> int:
        preimage = self.seed.to_bytes(32, "big") + self.counter.to_bytes(32, "big")
        self.counter += 1
        return int.from_bytes(hashlib.sha256(preimage).digest(), "big") % SNARK_FIELD_SIZE
