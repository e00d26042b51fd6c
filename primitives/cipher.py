"""
Poseidon sponge encryption keyed by an ECDH shared point.
"""

from typing import List, Sequence

from .babyjub import Point
from .field import SNARK_FIELD_SIZE, to_field_elements
from .poseidon import poseidon_perm

TWO_128 = 2 ** 128


class CipherError(Exception):
    """Base exception for symmetric encryption"""
    pass


class DecryptionFailure(CipherError):
    """Raised when a ciphertext does not authenticate under the given key"""
    pass


def _initial_state(key: Point, nonce: int, length: int) -> List[int]:
    if nonce < 0 or nonce >= TWO_128:
        raise ValueError("The nonce must be less than 2^128")
    return [0, key[0], key[1], nonce + length * TWO_128]


def poseidon_encrypt(message: Sequence[int], key: Point, nonce: int) -> List[int]:
    """Encrypt a message; the output carries one extra authentication element"""
    p = SNARK_FIELD_SIZE
    padded = to_field_elements(message)
    while len(padded) % 3:
        padded.append(0)

    state = _initial_state(key, nonce, len(message))
    ciphertext = []
    for i in range(0, len(padded), 3):
        state = poseidon_perm(state)
        for j in range(3):
            state[j + 1] = (state[j + 1] + padded[i + j]) % p
        ciphertext.extend(state[1:4])

    state = poseidon_perm(state)
    ciphertext.append(state[1])
    return ciphertext


def _decrypt_blocks(ciphertext: Sequence[int], key: Point, nonce: int, length: int):
    p = SNARK_FIELD_SIZE
    state = _initial_state(key, nonce, length)
    message = []
    for i in range(len(ciphertext) // 3):
        state = poseidon_perm(state)
        block = ciphertext[i * 3:i * 3 + 3]
        message.extend((c - s) % p for c, s in zip(block, state[1:4]))
        state[1:4] = block
    return message, state


def poseidon_decrypt_without_check(ciphertext: Sequence[int], key: Point, nonce: int, length: int) -> List[int]:
    """Decrypt without verifying padding or the authentication element"""
    message, _ = _decrypt_blocks(to_field_elements(ciphertext), key, nonce, length)
    return message[:length]


def poseidon_decrypt(ciphertext: Sequence[int], key: Point, nonce: int, length: int) -> List[int]:
    ciphertext = to_field_elements(ciphertext)
    expected_blocks = (length + 2) // 3
    if len(ciphertext) != expected_blocks * 3 + 1:
        raise DecryptionFailure(
            f"Ciphertext of length {len(ciphertext)} cannot hold {length} elements")

    message, state = _decrypt_blocks(ciphertext, key, nonce, length)
    if any(message[length:]):
        raise DecryptionFailure("Message padding must be zero")

    state = poseidon_perm(state)
    if ciphertext[-1] != state[1]:
        raise DecryptionFailure("Authentication element does not match")
    return message[:length]
