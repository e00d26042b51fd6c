"""
Global registry: signed-up identities and the polls deployed against them.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.config import STATE_TREE_ARITY, BatchSizes, EngineConfig, PollConfig, TreeDepths, VotingMode
from domainobjs.keys import Keypair, PublicKey
from domainobjs.state_leaf import BLANK_STATE_LEAF, BLANK_STATE_LEAF_HASH, StateLeaf
from merkle.tree import IncrementalTree
from primitives.babyjub import InvalidCurvePoint
from primitives.field import SaltSource, to_field
from utils.utils import load_output, save_output, structurally_equal

from .errors import PollNotFound, PollProcessingLocked, PreconditionError, SignupCountMismatch
from .poll import Poll

logger = logging.getLogger(__name__)


class Registry:
    """Signed-up identities plus the lifecycle of every poll"""

    def __init__(self, state_tree_depth: int = 10, initial_voice_credits: int = 100,
                 salt_source: Optional[SaltSource] = None):
        self.state_tree_depth = state_tree_depth
        self.initial_voice_credits = initial_voice_credits
        self.salt_source = salt_source or SaltSource()

        self.state_leaves: List[StateLeaf] = [BLANK_STATE_LEAF.copy()]
        self.state_tree = IncrementalTree(state_tree_depth, BLANK_STATE_LEAF_HASH, STATE_TREE_ARITY)
        self.state_tree.insert(BLANK_STATE_LEAF_HASH)

        # None marks a null poll: the id was consumed but its state is irrelevant
        self.polls: Dict[int, Optional[Poll]] = {}
        self.total_polls = 0

        self.poll_being_processed: Optional[int] = None

    @classmethod
    def from_config(cls, config: EngineConfig, salt_source: Optional[SaltSource] = None) -> "Registry":
        return cls(config.state_tree_depth, config.initial_voice_credits, salt_source)

    @property
    def num_signups(self) -> int:
        """Number of state leaves, including the pad leaf"""
        return len(self.state_leaves)

    # ------------------------------------------------------------------
    # Signups
    # ------------------------------------------------------------------

    def sign_up(self, public_key: PublicKey, voice_credit_balance: Optional[int] = None,
                timestamp: int = 0) -> int:
        """Register a public key and return its state index"""
        if not public_key.is_on_curve():
            raise InvalidCurvePoint(f"Public key {public_key.serialize()} is not on the curve")
        if voice_credit_balance is None:
            voice_credit_balance = self.initial_voice_credits
        to_field(voice_credit_balance)

        state_leaf = StateLeaf(public_key, voice_credit_balance, timestamp)
        index = self.state_tree.insert(state_leaf.hash())
        self.state_leaves.append(state_leaf)

        logger.info(f"Signed up state index {index}")
        return index

    def voice_credit_allotment(self, state_index: Optional[int] = None) -> int:
        """Balance a registrant may carry into a poll"""
        if state_index is None:
            return self.initial_voice_credits
        if state_index < 1 or state_index >= len(self.state_leaves):
            raise PreconditionError(f"Unknown state index {state_index}")
        return self.state_leaves[state_index].voice_credit_balance

    def snapshot_state_leaves(self, num_signups: int) -> List[StateLeaf]:
        if num_signups < 0 or num_signups > len(self.state_leaves):
            raise SignupCountMismatch(
                f"Cannot snapshot {num_signups} signups out of {len(self.state_leaves)}")
        return [leaf.copy() for leaf in self.state_leaves[:num_signups]]

    # ------------------------------------------------------------------
    # Polls
    # ------------------------------------------------------------------

    def deploy_poll(self, poll_end_timestamp: int, tree_depths: TreeDepths, batch_sizes: BatchSizes,
                    coordinator_keypair: Keypair, vote_options: int,
                    mode: VotingMode = VotingMode.QV) -> int:
        """Create a poll under the next sequential id"""
        config = PollConfig(
            poll_end_timestamp=poll_end_timestamp,
            tree_depths=tree_depths,
            batch_sizes=batch_sizes,
            vote_options=vote_options,
            state_tree_depth=self.state_tree_depth,
            mode=mode,
        )
        return self.deploy_poll_from_config(config, coordinator_keypair)

    def deploy_poll_from_config(self, config: PollConfig, coordinator_keypair: Keypair) -> int:
        if config.state_tree_depth != self.state_tree_depth:
            raise PreconditionError(
                f"Poll state tree depth {config.state_tree_depth} differs from the registry's {self.state_tree_depth}")
        poll_id = self.total_polls
        self.polls[poll_id] = Poll(poll_id, config, coordinator_keypair,
                                   registry=self, salt_source=self.salt_source)
        self.total_polls += 1
        logger.info(f"Deployed poll {poll_id} with {config.vote_options} vote options")
        return poll_id

    def deploy_null_poll(self) -> int:
        """Consume a poll id without materializing the poll"""
        poll_id = self.total_polls
        self.polls[poll_id] = None
        self.total_polls += 1
        logger.debug(f"Deployed null poll {poll_id}")
        return poll_id

    def get_poll(self, poll_id: int) -> Poll:
        poll = self.polls.get(poll_id)
        if poll is None:
            raise PollNotFound(f"Poll {poll_id} does not exist or is a null poll")
        return poll

    def acquire_processing_lock(self, poll_id: int):
        """Only one poll may be mid-processing at a time"""
        if self.poll_being_processed is not None and self.poll_being_processed != poll_id:
            raise PollProcessingLocked(
                f"Poll {self.poll_being_processed} is currently being processed")
        self.poll_being_processed = poll_id

    def release_processing_lock(self, poll_id: int):
        if self.poll_being_processed == poll_id:
            self.poll_being_processed = None

    # ------------------------------------------------------------------
    # Copy, equality and serialization
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        """Checkpoint form; coordinator private keys and salts are not included"""
        return {
            "stateTreeDepth": self.state_tree_depth,
            "initialVoiceCredits": str(self.initial_voice_credits),
            "stateLeaves": [leaf.to_json() for leaf in self.state_leaves],
            "totalPolls": self.total_polls,
            "polls": {
                str(poll_id): None if poll is None else poll.to_json()
                for poll_id, poll in self.polls.items()
            },
            "pollBeingProcessed": self.poll_being_processed,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any],
                  coordinator_keypairs: Optional[Dict[int, Keypair]] = None,
                  salt_source: Optional[SaltSource] = None) -> "Registry":
        """Restore a checkpoint, re-supplying coordinator keypairs by poll id"""
        coordinator_keypairs = coordinator_keypairs or {}
        registry = cls(int(data["stateTreeDepth"]), int(data["initialVoiceCredits"]), salt_source)
        registry.state_leaves = [StateLeaf.from_json(leaf) for leaf in data["stateLeaves"]]
        registry.state_tree = IncrementalTree.from_leaves(
            registry.state_tree_depth, BLANK_STATE_LEAF_HASH, STATE_TREE_ARITY,
            [leaf.hash() for leaf in registry.state_leaves])

        registry.total_polls = int(data["totalPolls"])
        for poll_id, poll_data in data["polls"].items():
            poll_id = int(poll_id)
            if poll_data is None:
                registry.polls[poll_id] = None
                continue
            registry.polls[poll_id] = Poll.from_json(
                poll_data,
                coordinator_keypair=coordinator_keypairs.get(poll_id),
                registry=registry,
                salt_source=registry.salt_source,
            )
        registry.poll_being_processed = data["pollBeingProcessed"]
        return registry

    def copy(self) -> "Registry":
        """Full structural clone, including keys and salts"""
        registry = Registry.from_json(
            self.to_json(),
            coordinator_keypairs={
                poll_id: poll.coordinator_keypair
                for poll_id, poll in self.polls.items()
                if poll is not None and poll.coordinator_keypair is not None
            },
            salt_source=copy.deepcopy(self.salt_source),
        )
        for poll_id, poll in self.polls.items():
            if poll is not None:
                clone = poll.copy(registry=registry)
                clone.salt_source = registry.salt_source
                registry.polls[poll_id] = clone
        return registry

    def equals(self, other: "Registry") -> bool:
        return structurally_equal(self, other)

    def save_checkpoint(self, filepath: Path):
        save_output(self.to_json(), filepath)

    @classmethod
    def load_checkpoint(cls, filepath: Path,
                        coordinator_keypairs: Optional[Dict[int, Keypair]] = None,
                        salt_source: Optional[SaltSource] = None) -> "Registry":
        return cls.from_json(load_output(filepath), coordinator_keypairs, salt_source)
