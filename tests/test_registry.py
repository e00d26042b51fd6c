"""
Registry signups, poll deployment, processing lock and checkpoints
"""

import json

import pytest

from config.config import BatchSizes, ConfigurationError, EngineConfig, VotingMode
from domainobjs import PublicKey
from engine import PollNotFound, PollProcessingLocked, PreconditionError, Registry, SignupCountMismatch
from merkle.tree import CapacityExceeded
from primitives.babyjub import InvalidCurvePoint
from primitives.field import SeededSaltSource

from conftest import POLL_END_TIMESTAMP, TREE_DEPTHS, VOTE_OPTIONS, PollHarness, fixed_keypair


def deploy(registry, coordinator, **kwargs):
    return registry.deploy_poll(
        POLL_END_TIMESTAMP,
        TREE_DEPTHS,
        BatchSizes.for_tree_depths(kwargs.pop("message_batch_size", 5), TREE_DEPTHS),
        coordinator,
        kwargs.pop("vote_options", VOTE_OPTIONS),
        **kwargs,
    )


class TestSignUp:

    def test_indices_start_after_pad_leaf(self):
        registry = Registry(state_tree_depth=3)
        assert registry.num_signups == 1
        assert registry.sign_up(fixed_keypair(1).public_key) == 1
        assert registry.sign_up(fixed_keypair(2).public_key) == 2
        assert registry.num_signups == 3
        assert registry.state_leaves[1].voice_credit_balance == registry.initial_voice_credits

    def test_custom_balance_and_timestamp(self):
        registry = Registry(state_tree_depth=3)
        index = registry.sign_up(fixed_keypair(1).public_key, 42, 99)
        leaf = registry.state_leaves[index]
        assert (leaf.voice_credit_balance, leaf.timestamp) == (42, 99)
        assert registry.voice_credit_allotment(index) == 42
        assert registry.voice_credit_allotment() == registry.initial_voice_credits

    def test_rejects_off_curve_key(self):
        registry = Registry(state_tree_depth=3)
        with pytest.raises(InvalidCurvePoint):
            registry.sign_up(PublicKey(1, 1))
        assert registry.num_signups == 1

    def test_capacity(self):
        registry = Registry(state_tree_depth=2)
        for seed in range(3):
            registry.sign_up(fixed_keypair(seed + 1).public_key)
        with pytest.raises(CapacityExceeded):
            registry.sign_up(fixed_keypair(10).public_key)

    def test_state_root_tracks_signups(self):
        registry = Registry(state_tree_depth=3)
        before = registry.state_tree.root
        registry.sign_up(fixed_keypair(1).public_key)
        assert registry.state_tree.root != before
        assert registry.state_tree.leaves[1] == registry.state_leaves[1].hash()

    def test_allotment_of_unknown_index(self):
        registry = Registry(state_tree_depth=3)
        with pytest.raises(PreconditionError):
            registry.voice_credit_allotment(5)

    def test_snapshot_bounds(self):
        registry = Registry(state_tree_depth=3)
        registry.sign_up(fixed_keypair(1).public_key)
        assert len(registry.snapshot_state_leaves(2)) == 2
        with pytest.raises(SignupCountMismatch):
            registry.snapshot_state_leaves(3)


class TestPolls:

    def test_sequential_ids_and_null_polls(self, coordinator):
        registry = Registry(state_tree_depth=4)
        assert deploy(registry, coordinator) == 0
        assert registry.deploy_null_poll() == 1
        assert deploy(registry, coordinator) == 2
        assert registry.total_polls == 3

        assert registry.get_poll(0).poll_id == 0
        with pytest.raises(PollNotFound):
            registry.get_poll(1)
        with pytest.raises(PollNotFound):
            registry.get_poll(7)

    def test_invalid_poll_configuration(self, coordinator):
        registry = Registry(state_tree_depth=4)
        with pytest.raises(ConfigurationError):
            deploy(registry, coordinator, vote_options=6)
        with pytest.raises(ConfigurationError):
            registry.deploy_poll(POLL_END_TIMESTAMP, TREE_DEPTHS, BatchSizes(5, 3), coordinator, 5)
        assert registry.total_polls == 0

    def test_from_config(self, coordinator):
        config = EngineConfig(state_tree_depth=4, initial_voice_credits=50, vote_option_tree_depth=1,
                              vote_options=5, mode=VotingMode.NON_QV)
        registry = Registry.from_config(config)
        poll_id = registry.deploy_poll_from_config(config.poll_config(POLL_END_TIMESTAMP), coordinator)
        poll = registry.get_poll(poll_id)
        assert registry.initial_voice_credits == 50
        assert not poll.is_qv
        assert poll.tally_batch_size == 2

    def test_poll_config_must_match_state_depth(self, coordinator):
        config = EngineConfig(state_tree_depth=5, vote_option_tree_depth=1, vote_options=5)
        registry = Registry(state_tree_depth=4)
        with pytest.raises(PreconditionError):
            registry.deploy_poll_from_config(config.poll_config(POLL_END_TIMESTAMP), coordinator)

    def test_one_poll_processed_at_a_time(self, coordinator):
        registry = Registry(state_tree_depth=4)
        first = registry.get_poll(deploy(registry, coordinator, message_batch_size=1))
        second = registry.get_poll(deploy(registry, coordinator))

        messenger = PollHarness()
        voter = messenger.add_voter(1)
        for nonce in (1, 2):
            message, enc_pub_key, _ = messenger.make_message(
                voter.poll_keypair, 1, 0, 1, nonce)
            first.publish_message(message, enc_pub_key)

        first.update_poll(registry.num_signups)
        second.update_poll(registry.num_signups)

        first.process_messages()
        assert registry.poll_being_processed == first.poll_id
        with pytest.raises(PollProcessingLocked):
            second.process_messages()

        first.process_messages()
        assert registry.poll_being_processed is None
        second.process_messages()
        assert registry.poll_being_processed is None


class TestCheckpoint:

    @pytest.fixture
    def populated(self):
        harness = PollHarness()
        voters = [harness.add_voter(seed) for seed in range(1, 4)]
        for voter in voters:
            harness.vote(voter, 0, 3, 1)
        harness.registry.deploy_null_poll()
        return harness

    def test_json_round_trip(self, populated, coordinator):
        registry = populated.registry
        data = json.loads(json.dumps(registry.to_json()))
        restored = Registry.from_json(data, {0: coordinator})
        assert restored.equals(registry)
        assert restored.state_tree.root == registry.state_tree.root
        assert restored.get_poll(0).poll_state_tree.root == registry.get_poll(0).poll_state_tree.root
        assert restored.polls[1] is None

    def test_private_key_is_not_serialized(self, populated, coordinator):
        text = json.dumps(populated.registry.to_json())
        assert coordinator.private_key.serialize() not in text

    def test_restored_poll_needs_coordinator_key(self, populated):
        restored = Registry.from_json(populated.registry.to_json())
        poll = restored.get_poll(0)
        assert poll.coordinator_keypair is None
        with pytest.raises(ConfigurationError):
            poll.set_coordinator_keypair(fixed_keypair(8))
        poll.set_coordinator_keypair(fixed_keypair(7))

    def test_copy_is_equal_and_independent(self, populated):
        registry = populated.registry
        clone = registry.copy()
        assert clone.equals(registry)
        assert clone.get_poll(0).coordinator_keypair == registry.get_poll(0).coordinator_keypair

        clone.sign_up(fixed_keypair(99).public_key)
        assert not clone.equals(registry)
        assert registry.num_signups == 4

    def test_save_and_load_checkpoint(self, populated, coordinator, tmp_path):
        registry = populated.registry
        path = tmp_path / "checkpoints" / "registry.json"
        registry.save_checkpoint(path)
        restored = Registry.load_checkpoint(path, {0: coordinator}, SeededSaltSource(1))
        assert restored.equals(registry)
        assert isinstance(restored.salt_source, SeededSaltSource)
