from dataclasses import dataclass, field
from typing import Any, Dict, List

from config.config import VOTE_OPTION_TREE_ARITY
from merkle.tree import IncrementalTree
from primitives.poseidon import hash_left_right


@dataclass
class Ballot:
    """A voter's per-poll vote state"""
    vote_option_tree_depth: int
    nonce: int = 0
    votes: List[int] = field(default_factory=list)

    def __post_init__(self):
        capacity = VOTE_OPTION_TREE_ARITY ** self.vote_option_tree_depth
        if not self.votes:
            self.votes = [0] * capacity
        elif len(self.votes) != capacity:
            raise ValueError(f"Ballot expects {capacity} vote slots, got {len(self.votes)}")

    @classmethod
    def blank(cls, vote_option_tree_depth: int) -> "Ballot":
        return cls(vote_option_tree_depth)

    def vote_option_tree(self) -> IncrementalTree:
        return IncrementalTree.from_leaves(
            self.vote_option_tree_depth, 0, VOTE_OPTION_TREE_ARITY, self.votes)

    def vote_option_root(self) -> int:
        return self.vote_option_tree().root

    def hash(self) -> int:
        return hash_left_right(self.nonce, self.vote_option_root())

    def as_circuit_inputs(self) -> List[int]:
        return [self.nonce, self.vote_option_root()]

    def copy(self) -> "Ballot":
        return Ballot(self.vote_option_tree_depth, self.nonce, list(self.votes))

    def to_json(self) -> Dict[str, Any]:
        return {
            "nonce": str(self.nonce),
            "votes": [str(v) for v in self.votes],
            "voteOptionTreeDepth": self.vote_option_tree_depth,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Ballot":
        return cls(
            int(data["voteOptionTreeDepth"]),
            int(data["nonce"]),
            [int(v) for v in data["votes"]],
        )
