"""
Shared fixtures: small deterministic registries, polls and voters.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import pytest

from config.config import BatchSizes, TreeDepths, VotingMode
from domainobjs import Command, Keypair, Message, PrivateKey, PublicKey, gen_ecdh_shared_key, gen_poll_nullifier
from engine import Poll, Registry
from primitives.field import SeededSaltSource

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

STATE_TREE_DEPTH = 4
INITIAL_VOICE_CREDITS = 100
VOTE_OPTIONS = 5
POLL_END_TIMESTAMP = 1_700_000_000
TREE_DEPTHS = TreeDepths(int_state_tree_depth=1, vote_option_tree_depth=1)


def fixed_keypair(seed: int) -> Keypair:
    return Keypair(PrivateKey(seed))


@dataclass
class Voter:
    maci_keypair: Keypair
    poll_keypair: Keypair
    state_index: int
    poll_state_index: int
    balance: int


class PollHarness:
    """A registry with one deployed poll and helpers to sign up, join and vote"""

    def __init__(self, mode: VotingMode = VotingMode.QV, message_batch_size: int = 5,
                 salt_seed: int = 42, coordinator_seed: int = 7):
        self.coordinator = fixed_keypair(coordinator_seed)
        self.registry = Registry(STATE_TREE_DEPTH, INITIAL_VOICE_CREDITS, SeededSaltSource(salt_seed))
        self.poll_id = self.registry.deploy_poll(
            POLL_END_TIMESTAMP,
            TREE_DEPTHS,
            BatchSizes.for_tree_depths(message_batch_size, TREE_DEPTHS),
            self.coordinator,
            VOTE_OPTIONS,
            mode,
        )
        self._published = 0

    @property
    def poll(self) -> Poll:
        return self.registry.get_poll(self.poll_id)

    def add_voter(self, seed: int, balance: int = INITIAL_VOICE_CREDITS) -> Voter:
        maci_keypair = fixed_keypair(1000 + 2 * seed)
        poll_keypair = fixed_keypair(1001 + 2 * seed)
        state_index = self.registry.sign_up(maci_keypair.public_key)
        nullifier = gen_poll_nullifier(maci_keypair.private_key, self.poll_id)
        poll_state_index = self.poll.join_poll(
            nullifier, poll_keypair.public_key, balance, state_index=state_index)
        return Voter(maci_keypair, poll_keypair, state_index, poll_state_index, balance)

    def make_message(self, signer: Keypair, state_index: int, vote_option_index: int,
                     new_vote_weight: int, nonce: int, new_pub_key: Optional[PublicKey] = None,
                     poll_id: Optional[int] = None) -> Tuple[Message, PublicKey, Command]:
        self._published += 1
        command = Command(
            state_index=state_index,
            new_pub_key=new_pub_key or signer.public_key,
            vote_option_index=vote_option_index,
            new_vote_weight=new_vote_weight,
            nonce=nonce,
            poll_id=self.poll_id if poll_id is None else poll_id,
            salt=50_000 + self._published,
        )
        ephemeral = fixed_keypair(90_000 + self._published)
        shared_key = gen_ecdh_shared_key(ephemeral.private_key, self.coordinator.public_key)
        message = command.encrypt(command.sign(signer.private_key), shared_key)
        return message, ephemeral.public_key, command

    def vote(self, voter: Voter, vote_option_index: int, new_vote_weight: int, nonce: int,
             signer: Optional[Keypair] = None, new_pub_key: Optional[PublicKey] = None) -> Command:
        """Publish a signed, encrypted command for a voter"""
        signer = signer or voter.poll_keypair
        message, enc_pub_key, command = self.make_message(
            signer, voter.poll_state_index, vote_option_index, new_vote_weight, nonce,
            new_pub_key=new_pub_key)
        self.poll.publish_message(message, enc_pub_key)
        return command

    def close(self):
        self.poll.update_poll(self.registry.num_signups)


@pytest.fixture
def coordinator() -> Keypair:
    return fixed_keypair(7)


@pytest.fixture
def harness() -> PollHarness:
    return PollHarness()


@pytest.fixture
def make_harness():
    """Factory for harnesses with a non-default mode or batch size"""
    def _make(**kwargs) -> PollHarness:
        return PollHarness(**kwargs)
    return _make
