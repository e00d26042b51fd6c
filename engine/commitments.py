"""
Salted commitments, public-input hashes and commitment chaining.

Every function here produces a value that the circuit and the on-chain
verifier recompute independently, so the hash arities and argument order
are fixed.
"""

import logging
from typing import Optional, Sequence

from config.config import VOTE_OPTION_TREE_ARITY
from merkle.tree import IncrementalTree
from primitives.field import sha256_hash
from primitives.poseidon import hash3, hash_left_right

from .errors import CommitmentChainError

logger = logging.getLogger(__name__)


def gen_tree_commitment(leaves: Sequence[int], salt: int, depth: int) -> int:
    """Salted commitment to the root of a quinary tree over the leaves"""
    tree = IncrementalTree.from_leaves(depth, 0, VOTE_OPTION_TREE_ARITY, leaves)
    return hash_left_right(tree.root, salt)


def gen_sb_commitment(state_root: int, ballot_root: int, salt: int) -> int:
    """Salted commitment to the state and ballot tree roots"""
    return hash3(state_root, ballot_root, salt)


def gen_spent_voice_credit_subtotal_commitment(total_spent: int, salt: int) -> int:
    return hash_left_right(total_spent, salt)


def gen_tally_commitment(results_commitment: int, spent_commitment: int,
                         per_vo_spent_commitment: int) -> int:
    """Tally commitment over three independently salted sub-commitments"""
    return hash3(results_commitment, spent_commitment, per_vo_spent_commitment)


def gen_tally_results_commitment(results: Sequence[int], results_salt: int,
                                 total_spent: int, total_spent_salt: int,
                                 per_vo_spent: Sequence[int], per_vo_spent_salt: int,
                                 vote_option_tree_depth: int) -> int:
    return gen_tally_commitment(
        gen_tree_commitment(results, results_salt, vote_option_tree_depth),
        gen_spent_voice_credit_subtotal_commitment(total_spent, total_spent_salt),
        gen_tree_commitment(per_vo_spent, per_vo_spent_salt, vote_option_tree_depth),
    )


def process_messages_input_hash(packed_vals: int, coordinator_pub_key_hash: int,
                                input_batch_hash: int, output_batch_hash: int,
                                current_sb_commitment: int, new_sb_commitment: int,
                                poll_end_timestamp: int, actual_state_tree_depth: int) -> int:
    return sha256_hash([
        packed_vals,
        coordinator_pub_key_hash,
        input_batch_hash,
        output_batch_hash,
        current_sb_commitment,
        new_sb_commitment,
        poll_end_timestamp,
        actual_state_tree_depth,
    ])


def tally_votes_input_hash(packed_vals: int, sb_commitment: int,
                           current_tally_commitment: int, new_tally_commitment: int) -> int:
    return sha256_hash([packed_vals, sb_commitment, current_tally_commitment, new_tally_commitment])


class CommitmentChain:
    """Running commitment threaded from one batch to the next"""

    def __init__(self, name: str, current: Optional[int] = None):
        self.name = name
        self.current = current
        self.length = 0

    def start(self, initial: int):
        self.current = initial
        self.length = 0

    def advance(self, claimed_current: int, new: int) -> int:
        """Move to a new commitment, refusing a batch that does not continue the chain"""
        if self.current is not None and claimed_current != self.current:
            raise CommitmentChainError(
                f"{self.name} batch starts from {claimed_current}, expected {self.current}")
        self.current = new
        self.length += 1
        logger.debug(f"{self.name} commitment chain advanced to length {self.length}")
        return new
