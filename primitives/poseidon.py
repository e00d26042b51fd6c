"""
Circom-compatible Poseidon hash over the BN254 scalar field.

Round constants and the MDS matrix come from the Grain LFSR parameter
generator of the Poseidon paper, instantiated with the circomlib round
numbers for state widths 2 to 6.
"""

import logging
from functools import lru_cache
from typing import List, Sequence, Tuple

from .field import SNARK_FIELD_SIZE, to_field_elements

logger = logging.getLogger(__name__)

FULL_ROUNDS = 8
# Indexed by state width - 2
PARTIAL_ROUNDS = [56, 57, 56, 60, 60]
FIELD_BITS = 254
MIN_WIDTH = 2
MAX_WIDTH = 6


# ============================================================================
# GRAIN LFSR PARAMETER GENERATION
# ============================================================================


class GrainLFSR:
    """80-bit Grain LFSR used to derive Poseidon parameters"""

    def __init__(self, width: int, full_rounds: int, partial_rounds: int):
        bits = []
        # field type (prime field), sbox (x^alpha), field size, t, R_F, R_P
        for value, size in ((1, 2), (0, 4), (FIELD_BITS, 12), (width, 12),
                            (full_rounds, 10), (partial_rounds, 10)):
            bits.extend((value >> (size - 1 - i)) & 1 for i in range(size))
        bits.extend([1] * 30)
        self.bits = bits
        self.pos = 0
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        b = self.bits
        p = self.pos
        new_bit = (b[(p + 62) % 80] ^ b[(p + 51) % 80] ^ b[(p + 38) % 80]
                   ^ b[(p + 23) % 80] ^ b[(p + 13) % 80] ^ b[p])
        b[p] = new_bit
        self.pos = (p + 1) % 80
        return new_bit

    def next_bit(self) -> int:
        """Bit-pair filter: emit the second bit only when the first is 1"""
        while True:
            first = self._clock()
            second = self._clock()
            if first == 1:
                return second

    def random_bits(self, num_bits: int) -> int:
        value = 0
        for _ in range(num_bits):
            value = (value << 1) | self.next_bit()
        return value

    def field_element(self) -> int:
        """Rejection-sample a value below the field modulus"""
        while True:
            value = self.random_bits(FIELD_BITS)
            if value < SNARK_FIELD_SIZE:
                return value


@lru_cache(maxsize=None)
def poseidon_params(width: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
    """Round constants and MDS matrix for a state width"""
    if width < MIN_WIDTH or width > MAX_WIDTH:
        raise ValueError(f"Unsupported Poseidon width {width}")

    partial_rounds = PARTIAL_ROUNDS[width - MIN_WIDTH]
    grain = GrainLFSR(width, FULL_ROUNDS, partial_rounds)

    num_constants = (FULL_ROUNDS + partial_rounds) * width
    constants = tuple(grain.field_element() for _ in range(num_constants))

    p = SNARK_FIELD_SIZE
    while True:
        rand_list = [grain.random_bits(FIELD_BITS) % p for _ in range(2 * width)]
        while len(set(rand_list)) != len(rand_list):
            rand_list = [grain.random_bits(FIELD_BITS) % p for _ in range(2 * width)]
        xs, ys = rand_list[:width], rand_list[width:]
        if any((x + y) % p == 0 for x in xs for y in ys):
            continue
        mds = tuple(
            tuple(pow(x + y, -1, p) for y in ys)
            for x in xs
        )
        break

    logger.debug(f"Generated Poseidon parameters for width {width}")
    return constants, mds


# ============================================================================
# PERMUTATION
# ============================================================================


def _permute(state: List[int]) -> List[int]:
    width = len(state)
    constants, mds = poseidon_params(width)
    p = SNARK_FIELD_SIZE
    partial_rounds = PARTIAL_ROUNDS[width - MIN_WIDTH]
    half_full = FULL_ROUNDS // 2

    for r in range(FULL_ROUNDS + partial_rounds):
        offset = r * width
        state = [(s + constants[offset + i]) % p for i, s in enumerate(state)]
        if r < half_full or r >= half_full + partial_rounds:
            state = [pow(s, 5, p) for s in state]
        else:
            state[0] = pow(state[0], 5, p)
        state = [sum(m * s for m, s in zip(row, state)) % p for row in mds]
    return state


def poseidon_perm(state: Sequence[int]) -> List[int]:
    """Full-state Poseidon permutation"""
    return _permute(to_field_elements(state))


def poseidon(inputs: Sequence[int]) -> int:
    """Poseidon hash of 1 to 5 field elements"""
    if not 1 <= len(inputs) <= MAX_WIDTH - 1:
        raise ValueError(f"Poseidon expects 1 to {MAX_WIDTH - 1} inputs, got {len(inputs)}")
    return _permute([0] + to_field_elements(inputs))[0]


def hash1(a: int) -> int:
    return poseidon([a])


def hash2(a: int, b: int) -> int:
    return poseidon([a, b])


def hash3(a: int, b: int, c: int) -> int:
    return poseidon([a, b, c])


def hash4(values: Sequence[int]) -> int:
    if len(values) != 4:
        raise ValueError("hash4 expects exactly 4 elements")
    return poseidon(values)


def hash5(values: Sequence[int]) -> int:
    if len(values) != 5:
        raise ValueError("hash5 expects exactly 5 elements")
    return poseidon(values)


hash_left_right = hash2


def hash13(elements: Sequence[int]) -> int:
    """Hash up to 13 elements, zero padded, with two levels of width-6 hashes"""
    if len(elements) > 13:
        raise ValueError(f"hash13 expects at most 13 elements, got {len(elements)}")
    padded = list(elements) + [0] * (13 - len(elements))
    return poseidon([
        padded[0],
        poseidon(padded[1:6]),
        poseidon(padded[6:11]),
        padded[11],
        padded[12],
    ])
