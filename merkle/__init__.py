"""
Merkle accumulator module
Fixed-arity incremental Poseidon trees with padded inclusion proofs
"""

from .tree import (
    IncrementalTree,
    MerkleProof,
    calc_depth_from_num_leaves,
    verify_merkle_proof,

    # Exceptions
    MerkleError,
    CapacityExceeded,
)

__version__ = "1.0.0"
__author__ = "Vote Processing Engine Team"

__all__ = [
    # Classes
    'IncrementalTree',
    'MerkleProof',
    'calc_depth_from_num_leaves',
    'verify_merkle_proof',

    # Exceptions
    'MerkleError',
    'CapacityExceeded',
]
