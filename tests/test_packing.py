"""
Bit packing of small values and the circuit public-input hashes
"""

import pytest

from engine.commitments import (
    CommitmentChain,
    gen_sb_commitment,
    gen_tally_results_commitment,
    gen_tree_commitment,
    process_messages_input_hash,
    tally_votes_input_hash,
)
from engine.errors import CommitmentChainError
from merkle.tree import IncrementalTree
from primitives.field import sha256_hash
from primitives.packing import (
    COMMAND_LAYOUT,
    PROCESS_MESSAGES_LAYOUT,
    TALLY_VOTES_LAYOUT,
    PackingOverflow,
    PackLayout,
    pack_process_message_small_vals,
    pack_tally_votes_small_vals,
    unpack_process_message_small_vals,
    unpack_tally_votes_small_vals,
)
from primitives.poseidon import hash3, hash_left_right

MAX_50 = 2 ** 50 - 1


class TestPackLayout:

    @pytest.mark.parametrize("layout", [COMMAND_LAYOUT, PROCESS_MESSAGES_LAYOUT, TALLY_VOTES_LAYOUT])
    def test_round_trip_at_field_limits(self, layout):
        for value in (0, 1, MAX_50):
            values = [value] * len(layout.fields)
            assert list(layout.unpack_values(layout.pack_values(*values))) == values

    def test_round_trip_mixed_values(self):
        packed = COMMAND_LAYOUT.pack_values(3, MAX_50, 0, 17, 2)
        assert COMMAND_LAYOUT.unpack(packed) == {
            "state_index": 3,
            "vote_option_index": MAX_50,
            "new_vote_weight": 0,
            "nonce": 17,
            "poll_id": 2,
        }

    def test_field_order_matches_bit_offsets(self):
        packed = COMMAND_LAYOUT.pack_values(1, 2, 3, 4, 5)
        assert packed == 1 + (2 << 50) + (3 << 100) + (4 << 150) + (5 << 200)

    @pytest.mark.parametrize("position", range(5))
    def test_overflow_is_rejected(self, position):
        values = [0] * 5
        values[position] = 2 ** 50
        with pytest.raises(PackingOverflow):
            COMMAND_LAYOUT.pack_values(*values)

    def test_negative_is_rejected(self):
        with pytest.raises(PackingOverflow):
            TALLY_VOTES_LAYOUT.pack_values(-1, 0)

    def test_missing_field_is_rejected(self):
        with pytest.raises(KeyError):
            TALLY_VOTES_LAYOUT.pack({"batch_index": 1})
        with pytest.raises(KeyError):
            TALLY_VOTES_LAYOUT.pack_values(1)

    def test_layout_must_fit_in_a_field_element(self):
        with pytest.raises(ValueError):
            PackLayout("too_wide", 1, (("a", 200), ("b", 60)))


class TestSmallVals:

    def test_process_messages_small_vals(self):
        packed = pack_process_message_small_vals(25, 7, 10, 15)
        assert unpack_process_message_small_vals(packed) == {
            "max_vote_options": 25,
            "num_users": 7,
            "batch_start_index": 10,
            "batch_end_index": 15,
        }

    def test_tally_small_vals_store_the_batch_number(self):
        packed = pack_tally_votes_small_vals(6, 2, 9)
        assert unpack_tally_votes_small_vals(packed) == {"batch_index": 3, "num_signups": 9}

    def test_tally_small_vals_need_aligned_start(self):
        with pytest.raises(ValueError):
            pack_tally_votes_small_vals(3, 2, 9)


class TestCommitments:

    def test_sb_commitment(self):
        assert gen_sb_commitment(1, 2, 3) == hash3(1, 2, 3)

    def test_tree_commitment_is_salted_root(self):
        leaves = [4, 0, 9]
        root = IncrementalTree.from_leaves(1, 0, 5, leaves).root
        assert gen_tree_commitment(leaves, 11, 1) == hash_left_right(root, 11)
        assert gen_tree_commitment(leaves, 12, 1) != gen_tree_commitment(leaves, 11, 1)

    def test_tally_results_commitment_depends_on_every_part(self):
        base = gen_tally_results_commitment([1, 2], 5, 5, 6, [1, 4], 7, 1)
        assert base != gen_tally_results_commitment([1, 2], 5, 5, 6, [1, 4], 8, 1)
        assert base != gen_tally_results_commitment([1, 2], 5, 6, 6, [1, 4], 7, 1)
        assert base != gen_tally_results_commitment([2, 1], 5, 5, 6, [1, 4], 7, 1)

    def test_input_hashes(self):
        args = [1, 2, 3, 4, 5, 6, 7, 8]
        assert process_messages_input_hash(*args) == sha256_hash(args)
        assert tally_votes_input_hash(1, 2, 3, 4) == sha256_hash([1, 2, 3, 4])

    def test_commitment_chain(self):
        chain = CommitmentChain("test")
        chain.start(10)
        assert chain.advance(10, 20) == 20
        assert chain.current == 20
        assert chain.length == 1
        with pytest.raises(CommitmentChainError):
            chain.advance(10, 30)
        assert chain.current == 20
