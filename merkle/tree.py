"""
Append-only fixed-arity Merkle accumulator with padded inclusion proofs.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from primitives.field import to_field
from primitives.poseidon import poseidon

logger = logging.getLogger(__name__)

HashFunc = Callable[[Sequence[int]], int]


class MerkleError(Exception):
    """Base exception for Merkle accumulator operations"""
    pass


class CapacityExceeded(MerkleError):
    """Raised when inserting into a full tree"""
    pass


@dataclass
class MerkleProof:
    """Inclusion proof with one sibling set per level of the full depth"""
    leaf: int
    root: int
    path_elements: List[List[int]]
    path_indices: List[int]
    real_depth: int

    def as_circuit_inputs(self) -> Dict[str, object]:
        return {
            "leaf": self.leaf,
            "root": self.root,
            "pathElements": self.path_elements,
            "pathIndices": self.path_indices,
            "actualDepth": self.real_depth,
        }


def calc_depth_from_num_leaves(arity: int, num_leaves: int) -> int:
    """Smallest depth (at least 1) whose capacity holds num_leaves"""
    depth = 1
    while arity ** depth < num_leaves:
        depth += 1
    return depth


@dataclass
class IncrementalTree:
    """Fixed-depth incremental Merkle tree using Poseidon"""
    depth: int
    zero_value: int = 0
    arity: int = 2
    hash_func: Optional[HashFunc] = None
    zeros: List[int] = field(default_factory=list)
    nodes: List[List[int]] = field(default_factory=list)

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"Tree depth must be non-negative, got {self.depth}")
        if self.arity < 2:
            raise ValueError(f"Tree arity must be at least 2, got {self.arity}")
        if self.hash_func is None:
            self.hash_func = poseidon
        self.zero_value = to_field(self.zero_value)
        self.zeros = self._compute_zeros()
        self.nodes = [[] for _ in range(self.depth + 1)]

    def _compute_zeros(self) -> List[int]:
        """Root of an empty subtree at each level"""
        zeros = [self.zero_value]
        for _ in range(self.depth):
            zeros.append(self.hash_func([zeros[-1]] * self.arity))
        return zeros

    @classmethod
    def from_leaves(cls, depth: int, zero_value: int, arity: int,
                    leaves: Sequence[int], hash_func: Optional[HashFunc] = None) -> "IncrementalTree":
        """Build a tree from a list of leaves, one level at a time"""
        tree = cls(depth=depth, zero_value=zero_value, arity=arity, hash_func=hash_func)
        if len(leaves) > tree.capacity:
            raise CapacityExceeded(
                f"{len(leaves)} leaves exceed capacity {tree.capacity} of depth {depth}")

        tree.nodes[0] = [to_field(leaf) for leaf in leaves]
        for level in range(depth):
            current = tree.nodes[level]
            parents = []
            for start in range(0, len(current), arity):
                children = current[start:start + arity]
                children += [tree.zeros[level]] * (arity - len(children))
                parents.append(tree.hash_func(children))
            tree.nodes[level + 1] = parents
        return tree

    @property
    def capacity(self) -> int:
        return self.arity ** self.depth

    @property
    def num_leaves(self) -> int:
        return len(self.nodes[0])

    @property
    def leaves(self) -> List[int]:
        return list(self.nodes[0])

    @property
    def root(self) -> int:
        top = self.nodes[self.depth]
        return top[0] if top else self.zeros[self.depth]

    @property
    def real_depth(self) -> int:
        return calc_depth_from_num_leaves(self.arity, self.num_leaves)

    def get_node(self, level: int, index: int) -> int:
        nodes = self.nodes[level]
        return nodes[index] if index < len(nodes) else self.zeros[level]

    def _set_node(self, level: int, index: int, value: int):
        nodes = self.nodes[level]
        if index < len(nodes):
            nodes[index] = value
        else:
            nodes.append(value)

    def _recompute_path(self, index: int):
        for level in range(self.depth):
            parent = index // self.arity
            start = parent * self.arity
            children = [self.get_node(level, start + k) for k in range(self.arity)]
            self._set_node(level + 1, parent, self.hash_func(children))
            index = parent

    def insert(self, leaf: int) -> int:
        """Append a leaf and return its index"""
        index = self.num_leaves
        if index >= self.capacity:
            raise CapacityExceeded(f"Tree of depth {self.depth} and arity {self.arity} is full")
        self.nodes[0].append(to_field(leaf))
        self._recompute_path(index)
        return index

    def update(self, index: int, leaf: int):
        if index < 0 or index >= self.num_leaves:
            raise IndexError(f"Index {index} out of bounds for {self.num_leaves} leaves")
        self.nodes[0][index] = to_field(leaf)
        self._recompute_path(index)

    def gen_proof(self, index: int) -> MerkleProof:
        """Inclusion proof padded to the full depth with empty subtree roots"""
        if index < 0 or index >= self.num_leaves:
            raise IndexError(f"Index {index} out of bounds for {self.num_leaves} leaves")

        path_elements = []
        path_indices = []
        current = index
        for level in range(self.depth):
            position = current % self.arity
            start = current - position
            siblings = [self.get_node(level, start + k) for k in range(self.arity) if k != position]
            path_elements.append(siblings)
            path_indices.append(position)
            current //= self.arity

        return MerkleProof(
            leaf=self.nodes[0][index],
            root=self.root,
            path_elements=path_elements,
            path_indices=path_indices,
            real_depth=self.real_depth,
        )

    def gen_subroot_proof(self, start_index: int, end_index: int) -> MerkleProof:
        """Proof that the subtree over [start_index, end_index) belongs to the tree"""
        num_leaves = end_index - start_index
        if num_leaves <= 0:
            raise ValueError("The start index must be less than the end index")
        sub_depth = 0
        while self.arity ** sub_depth < num_leaves:
            sub_depth += 1
        if self.arity ** sub_depth != num_leaves:
            raise ValueError(f"Subtree size {num_leaves} is not a power of {self.arity}")
        if start_index % num_leaves:
            raise ValueError(f"Subtree start {start_index} is not aligned to {num_leaves}")
        if sub_depth > self.depth:
            raise ValueError(f"Subtree of {num_leaves} leaves exceeds tree capacity {self.capacity}")

        subroot_index = start_index // num_leaves
        path_elements = []
        path_indices = []
        current = subroot_index
        for level in range(sub_depth, self.depth):
            position = current % self.arity
            first = current - position
            path_elements.append(
                [self.get_node(level, first + k) for k in range(self.arity) if k != position])
            path_indices.append(position)
            current //= self.arity

        return MerkleProof(
            leaf=self.get_node(sub_depth, subroot_index),
            root=self.root,
            path_elements=path_elements,
            path_indices=path_indices,
            real_depth=self.real_depth,
        )

    def verify_proof(self, proof: MerkleProof) -> bool:
        return verify_merkle_proof(proof, self.arity, self.hash_func) and proof.root == self.root

    def copy(self) -> "IncrementalTree":
        tree = IncrementalTree(depth=self.depth, zero_value=self.zero_value,
                               arity=self.arity, hash_func=self.hash_func)
        tree.nodes = [list(level) for level in self.nodes]
        return tree


def verify_merkle_proof(proof: MerkleProof, arity: int, hash_func: Optional[HashFunc] = None) -> bool:
    """Recompute the root from a proof"""
    hash_func = hash_func or poseidon
    if len(proof.path_elements) != len(proof.path_indices):
        return False

    current = proof.leaf
    for siblings, position in zip(proof.path_elements, proof.path_indices):
        if len(siblings) != arity - 1 or not 0 <= position < arity:
            return False
        children = list(siblings)
        children.insert(position, current)
        current = hash_func(children)
    return current == proof.root
