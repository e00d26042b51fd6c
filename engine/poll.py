"""
Per-poll engine: message log, ballot state, batch message processing and
vote tallying.

Each call to process_messages() or tally_votes() consumes exactly one
fixed-size batch and returns the circuit inputs for it, as decimal strings.
Message batches are drained from the last to the first and the messages of
a batch are processed in reverse publication order, so that the circuit can
recompute the message chain forwards from inputBatchHash to
outputBatchHash.
"""

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from config.config import STATE_TREE_ARITY, ConfigurationError, PollConfig, VotingMode
from domainobjs.ballot import Ballot
from domainobjs.command import Command
from domainobjs.keys import PAD_KEY, Keypair, PrivateKey, PublicKey, gen_ecdh_shared_key, gen_poll_nullifier
from domainobjs.message import Message
from domainobjs.state_leaf import BLANK_STATE_LEAF, BLANK_STATE_LEAF_HASH, StateLeaf
from merkle.tree import IncrementalTree
from primitives.babyjub import InvalidCurvePoint
from primitives.cipher import DecryptionFailure
from primitives.field import NOTHING_UP_MY_SLEEVE, SaltSource, to_field, to_field_elements
from primitives.packing import pack_process_message_small_vals, pack_tally_votes_small_vals
from primitives.poseidon import hash_left_right
from utils.utils import stringify_ints, structurally_equal

from .commitments import (
    CommitmentChain,
    gen_sb_commitment,
    gen_spent_voice_credit_subtotal_commitment,
    gen_tally_commitment,
    gen_tree_commitment,
    process_messages_input_hash,
    tally_votes_input_hash,
)
from .errors import (
    AllBallotsTallied,
    AlreadyJoinedError,
    BalanceExceedsAllotment,
    CommitmentChainError,
    NoMoreMessages,
    PollClosedError,
    PreconditionError,
    ProcessingIncomplete,
    ProcessMessageError,
    ProcessMessageErrors,
    StateNotReady,
)

if TYPE_CHECKING:
    from .registry import Registry

logger = logging.getLogger(__name__)


class PollPhase(Enum):
    OPEN = "open"
    PROCESSING = "processing"
    TALLYING = "tallying"
    TALLIED = "tallied"


@dataclass
class ProcessMessageResult:
    """Outcome of one accepted message, with the pre-update witnesses"""
    state_leaf_index: int
    command: Command
    new_state_leaf: StateLeaf
    original_state_leaf: StateLeaf
    original_state_leaf_path_elements: List[List[int]]
    new_ballot: Ballot
    original_ballot: Ballot
    original_ballot_path_elements: List[List[int]]
    original_vote_weight: int
    original_vote_weights_path_elements: List[List[int]]


@dataclass
class _BatchWitness:
    state_leaf: StateLeaf
    state_leaf_path_elements: List[List[int]]
    ballot: Ballot
    ballot_path_elements: List[List[int]]
    vote_weight: int
    vote_weight_path_elements: List[List[int]]


class Poll:
    """One voting round, owned by a Registry"""

    def __init__(self, poll_id: int, config: PollConfig, coordinator_keypair: Optional[Keypair],
                 registry: Optional["Registry"] = None, salt_source: Optional[SaltSource] = None,
                 coordinator_public_key: Optional[PublicKey] = None):
        self.poll_id = poll_id
        self.config = config
        self.coordinator_keypair = coordinator_keypair
        if coordinator_keypair is not None:
            coordinator_public_key = coordinator_keypair.public_key
        if coordinator_public_key is None:
            raise ConfigurationError("A poll needs at least a coordinator public key")
        self.coordinator_public_key = coordinator_public_key
        self.registry = registry
        self.salt_source = salt_source or SaltSource()

        # Message log
        self.messages: List[Message] = []
        self.enc_pub_keys: List[PublicKey] = []
        self.chain_hash = NOTHING_UP_MY_SLEEVE
        self.batch_hashes: List[int] = [NOTHING_UP_MY_SLEEVE]

        # Registry snapshot, frozen when the join window closes
        self.state_leaves: List[StateLeaf] = []
        self.state_tree: Optional[IncrementalTree] = None
        self.num_signups = 0
        self.state_copied = False

        # Per-poll identities and ballots
        self.poll_nullifiers: Set[int] = set()
        self.empty_ballot = Ballot.blank(config.tree_depths.vote_option_tree_depth)
        self.empty_ballot_hash = self.empty_ballot.hash()
        self.poll_state_leaves: List[StateLeaf] = [BLANK_STATE_LEAF.copy()]
        self.ballots: List[Ballot] = [self.empty_ballot.copy()]
        self.poll_state_tree = IncrementalTree(
            config.state_tree_depth, BLANK_STATE_LEAF_HASH, STATE_TREE_ARITY)
        self.poll_state_tree.insert(BLANK_STATE_LEAF_HASH)
        self.ballot_tree = IncrementalTree(
            config.state_tree_depth, self.empty_ballot_hash, STATE_TREE_ARITY)
        self.ballot_tree.insert(self.empty_ballot_hash)

        # Message processing
        self.num_batches_processed = 0
        self.current_message_batch_index: Optional[int] = None
        self.actual_state_tree_depth: Optional[int] = None
        self.sb_salts: Dict[int, int] = {}
        self.sb_chain = CommitmentChain("state-ballot")

        # Tallying
        self.results: List[int] = [0] * config.vote_options
        self.per_vo_spent_voice_credits: List[int] = [0] * config.vote_options
        self.total_spent_voice_credits = 0
        self.num_batches_tallied = 0
        self.result_root_salts: Dict[int, int] = {}
        self.per_vo_spent_voice_credits_root_salts: Dict[int, int] = {}
        self.spent_voice_credit_subtotal_salts: Dict[int, int] = {}
        self.tally_chain = CommitmentChain("tally", 0)

    # ------------------------------------------------------------------
    # Phase and accessors
    # ------------------------------------------------------------------

    @property
    def is_qv(self) -> bool:
        return self.config.mode == VotingMode.QV

    @property
    def message_batch_size(self) -> int:
        return self.config.batch_sizes.message_batch_size

    @property
    def tally_batch_size(self) -> int:
        return self.config.batch_sizes.tally_batch_size

    @property
    def sb_commitment(self) -> Optional[int]:
        return self.sb_chain.current

    @property
    def tally_commitment(self) -> int:
        return self.tally_chain.current

    @property
    def phase(self) -> PollPhase:
        if self.current_message_batch_index is None:
            return PollPhase.OPEN
        if self.has_unprocessed_messages():
            return PollPhase.PROCESSING
        if self.has_untallied_ballots():
            return PollPhase.TALLYING
        return PollPhase.TALLIED

    def _require_open(self, action: str):
        if self.current_message_batch_index is not None:
            raise PollClosedError(f"Cannot {action}: poll {self.poll_id} is {self.phase.value}")

    def set_coordinator_keypair(self, keypair: Keypair):
        if keypair.public_key != self.coordinator_public_key:
            raise ConfigurationError(
                f"Keypair does not match the coordinator public key of poll {self.poll_id}")
        self.coordinator_keypair = keypair

    def set_num_signups(self, num_signups: int):
        self.num_signups = num_signups

    def get_num_signups(self) -> int:
        return self.num_signups

    # ------------------------------------------------------------------
    # Open phase
    # ------------------------------------------------------------------

    def _append_message(self, message: Message, enc_pub_key: PublicKey):
        self.messages.append(message.copy())
        self.enc_pub_keys.append(enc_pub_key)
        self.chain_hash = hash_left_right(self.chain_hash, message.hash(enc_pub_key))
        if len(self.messages) % self.message_batch_size == 0:
            self.batch_hashes.append(self.chain_hash)

    def publish_message(self, message: Message, enc_pub_key: PublicKey):
        """Append a message to the log; its validity is only judged during processing"""
        self._require_open("publish a message")
        to_field_elements(enc_pub_key.as_array())
        if not enc_pub_key.is_on_curve():
            logger.warning(f"Poll {self.poll_id}: message published with an off-curve key, it will be a no-op")
        self._append_message(message, enc_pub_key)
        logger.debug(f"Poll {self.poll_id}: message {len(self.messages) - 1} published")

    def has_joined(self, nullifier: int) -> bool:
        return nullifier in self.poll_nullifiers

    def join_poll(self, nullifier: int, poll_public_key: PublicKey, voice_credit_balance: int,
                  timestamp: int = 0, state_index: Optional[int] = None) -> int:
        """Bind a per-poll key to a nullifier and return its poll state index"""
        self._require_open("join")
        if self.state_copied:
            raise PollClosedError(f"Cannot join: the join window of poll {self.poll_id} is closed")
        nullifier = to_field(nullifier)
        if self.has_joined(nullifier):
            raise AlreadyJoinedError(f"Nullifier already used to join poll {self.poll_id}")
        if not poll_public_key.is_on_curve():
            raise InvalidCurvePoint(f"Poll public key {poll_public_key.serialize()} is not on the curve")

        allotment = None
        if self.registry is not None:
            allotment = self.registry.voice_credit_allotment(state_index)
        if voice_credit_balance < 0 or (allotment is not None and voice_credit_balance > allotment):
            raise BalanceExceedsAllotment(
                f"Balance {voice_credit_balance} exceeds the allotment of {allotment}")

        state_leaf = StateLeaf(poll_public_key, voice_credit_balance, timestamp)
        index = self.poll_state_tree.insert(state_leaf.hash())
        self.ballot_tree.insert(self.empty_ballot_hash)
        self.poll_state_leaves.append(state_leaf)
        self.ballots.append(self.empty_ballot.copy())
        self.poll_nullifiers.add(nullifier)

        logger.info(f"Poll {self.poll_id}: joined at state index {index}")
        return index

    def update_poll(self, num_signups: int):
        """Close the join window: freeze the first num_signups registry leaves and the state tree depth"""
        self._require_open("update the poll state")
        if self.state_copied:
            raise PreconditionError(f"Poll {self.poll_id} state has already been updated")
        if self.registry is not None:
            self.state_leaves = self.registry.snapshot_state_leaves(num_signups)
            self.state_tree = self._build_state_tree(self.state_leaves)
        self.num_signups = num_signups
        self.actual_state_tree_depth = self.poll_state_tree.real_depth
        self.state_copied = True
        logger.info(f"Poll {self.poll_id}: state updated with {num_signups} signups")

    def _build_state_tree(self, state_leaves: List[StateLeaf]) -> IncrementalTree:
        return IncrementalTree.from_leaves(
            self.config.state_tree_depth, BLANK_STATE_LEAF_HASH, STATE_TREE_ARITY,
            [leaf.hash() for leaf in state_leaves])

    def joining_circuit_inputs(self, maci_private_key: PrivateKey, state_leaf_index: int,
                               poll_public_key: PublicKey) -> Dict[str, Any]:
        """Inputs for the circuit proving registry membership when joining"""
        if self.state_tree is not None:
            state_leaves, state_tree = self.state_leaves, self.state_tree
        elif self.registry is not None:
            state_leaves, state_tree = self.registry.state_leaves, self.registry.state_tree
        else:
            raise StateNotReady("Joining inputs need the registry state tree")
        if not 0 < state_leaf_index < len(state_leaves):
            raise PreconditionError(f"No state leaf at index {state_leaf_index}")
        state_leaf = state_leaves[state_leaf_index]
        if state_leaf.public_key != Keypair(maci_private_key).public_key:
            raise PreconditionError(f"State leaf {state_leaf_index} does not belong to this key")

        proof = state_tree.gen_proof(state_leaf_index)
        return stringify_ints({
            "privateKey": maci_private_key.as_circuit_input(),
            "pollPublicKey": poll_public_key.as_array(),
            "siblings": proof.path_elements,
            "indices": proof.path_indices,
            "nullifier": gen_poll_nullifier(maci_private_key, self.poll_id),
            "stateRoot": proof.root,
            "actualStateTreeDepth": proof.real_depth,
            "pollId": self.poll_id,
        })

    # ------------------------------------------------------------------
    # Message processing
    # ------------------------------------------------------------------

    def total_message_batches(self) -> int:
        num_messages = len(self.messages)
        return max(1, -(-num_messages // self.message_batch_size))

    def has_unprocessed_messages(self) -> bool:
        return self.num_batches_processed < self.total_message_batches()

    def process_message(self, message: Message, enc_pub_key: PublicKey) -> ProcessMessageResult:
        """Validate one message against the current state without applying it.

        Raises ProcessMessageError with the first failed check.
        """
        if self.coordinator_keypair is None:
            raise StateNotReady(f"Poll {self.poll_id} has no coordinator keypair")

        try:
            shared_key = gen_ecdh_shared_key(self.coordinator_keypair.private_key, enc_pub_key)
            command, signature = Command.decrypt(message, shared_key)
        except (DecryptionFailure, InvalidCurvePoint) as e:
            raise ProcessMessageError(ProcessMessageErrors.FAILED_DECRYPTION) from e

        index = command.state_index
        if index < 1 or index >= len(self.ballots):
            raise ProcessMessageError(ProcessMessageErrors.INVALID_STATE_LEAF_INDEX)

        state_leaf = self.poll_state_leaves[index]
        ballot = self.ballots[index]

        if command.nonce != ballot.nonce + 1:
            raise ProcessMessageError(ProcessMessageErrors.INVALID_NONCE)

        if not command.verify_signature(signature, state_leaf.public_key):
            raise ProcessMessageError(ProcessMessageErrors.INVALID_SIGNATURE)

        vote_option_index = command.vote_option_index
        if vote_option_index >= self.config.vote_options:
            raise ProcessMessageError(ProcessMessageErrors.INVALID_VOTE_OPTION_INDEX)

        original_vote_weight = ballot.votes[vote_option_index]
        if self.is_qv:
            voice_credits_left = (state_leaf.voice_credit_balance
                                  + original_vote_weight * original_vote_weight
                                  - command.new_vote_weight * command.new_vote_weight)
        else:
            voice_credits_left = (state_leaf.voice_credit_balance
                                  + original_vote_weight
                                  - command.new_vote_weight)
        if voice_credits_left < 0:
            raise ProcessMessageError(ProcessMessageErrors.INSUFFICIENT_VOICE_CREDITS)

        # A command always carries a public key; a different one is a key change
        new_state_leaf = StateLeaf(command.new_pub_key, voice_credits_left, state_leaf.timestamp)
        new_ballot = ballot.copy()
        new_ballot.nonce += 1
        new_ballot.votes[vote_option_index] = command.new_vote_weight

        return ProcessMessageResult(
            state_leaf_index=index,
            command=command,
            new_state_leaf=new_state_leaf,
            original_state_leaf=state_leaf.copy(),
            original_state_leaf_path_elements=self.poll_state_tree.gen_proof(index).path_elements,
            new_ballot=new_ballot,
            original_ballot=ballot.copy(),
            original_ballot_path_elements=self.ballot_tree.gen_proof(index).path_elements,
            original_vote_weight=original_vote_weight,
            original_vote_weights_path_elements=ballot.vote_option_tree().gen_proof(vote_option_index).path_elements,
        )

    def _noop_witness(self, message: Message, enc_pub_key: PublicKey) -> _BatchWitness:
        """Witness for a rejected message: the leaf its decryption points at, or the pad leaf"""
        state_index = 0
        vote_option_index = 0
        if enc_pub_key.is_on_curve():
            shared_key = gen_ecdh_shared_key(self.coordinator_keypair.private_key, enc_pub_key)
            command, _ = Command.decrypt(message, shared_key, force=True)
            if command.state_index < len(self.ballots):
                state_index = command.state_index
            if command.vote_option_index < self.config.vote_options:
                vote_option_index = command.vote_option_index

        ballot = self.ballots[state_index]
        return _BatchWitness(
            state_leaf=self.poll_state_leaves[state_index].copy(),
            state_leaf_path_elements=self.poll_state_tree.gen_proof(state_index).path_elements,
            ballot=ballot.copy(),
            ballot_path_elements=self.ballot_tree.gen_proof(state_index).path_elements,
            vote_weight=ballot.votes[vote_option_index],
            vote_weight_path_elements=ballot.vote_option_tree().gen_proof(vote_option_index).path_elements,
        )

    def _apply(self, result: ProcessMessageResult):
        index = result.state_leaf_index
        self.poll_state_leaves[index] = result.new_state_leaf
        self.poll_state_tree.update(index, result.new_state_leaf.hash())
        self.ballots[index] = result.new_ballot
        self.ballot_tree.update(index, result.new_ballot.hash())

    def _pad_last_batch(self):
        """Fill the last batch with inert messages under the pad key"""
        remainder = len(self.messages) % self.message_batch_size
        if remainder or not self.messages:
            for _ in range(self.message_batch_size - remainder):
                self._append_message(Message(), PAD_KEY)

    def _start_processing(self):
        if self.registry is not None:
            self.registry.acquire_processing_lock(self.poll_id)
        self._pad_last_batch()
        self.current_message_batch_index = len(self.batch_hashes) - 1
        self.sb_salts[self.current_message_batch_index] = 0
        self.sb_chain.start(gen_sb_commitment(self.poll_state_tree.root, self.ballot_tree.root, 0))
        logger.info(f"Poll {self.poll_id}: processing {len(self.messages)} messages "
                    f"in {self.current_message_batch_index} batches")

    def process_messages(self) -> Dict[str, Any]:
        """Process one batch of messages and return its circuit inputs"""
        if not self.state_copied:
            raise StateNotReady(f"Poll {self.poll_id} state has not been updated")
        if self.coordinator_keypair is None:
            raise StateNotReady(f"Poll {self.poll_id} has no coordinator keypair")
        if not self.has_unprocessed_messages():
            raise NoMoreMessages("No more messages to process")

        if self.current_message_batch_index is None:
            self._start_processing()
        elif self.registry is not None:
            self.registry.acquire_processing_lock(self.poll_id)

        batch_size = self.message_batch_size
        index = self.current_message_batch_index
        batch_start_index = (index - 1) * batch_size
        batch_end_index = batch_start_index + batch_size

        if index not in self.sb_salts:
            raise StateNotReady(f"Poll {self.poll_id} was restored without its commitment salts")

        current_state_root = self.poll_state_tree.root
        current_ballot_root = self.ballot_tree.root
        current_sb_salt = self.sb_salts[index]
        current_sb_commitment = gen_sb_commitment(current_state_root, current_ballot_root, current_sb_salt)
        if current_sb_commitment != self.sb_chain.current:
            raise CommitmentChainError(
                f"Poll {self.poll_id} state does not match its state-ballot commitment")

        packed_vals = pack_process_message_small_vals(
            self.config.vote_options, len(self.poll_state_leaves), batch_start_index, batch_end_index)

        witnesses: List[_BatchWitness] = []
        for message_index in range(batch_end_index - 1, batch_start_index - 1, -1):
            message = self.messages[message_index]
            enc_pub_key = self.enc_pub_keys[message_index]
            try:
                result = self.process_message(message, enc_pub_key)
            except ProcessMessageError as e:
                logger.debug(f"Poll {self.poll_id}: message {message_index} is a no-op: {e}")
                witnesses.append(self._noop_witness(message, enc_pub_key))
                continue

            witnesses.append(_BatchWitness(
                state_leaf=result.original_state_leaf,
                state_leaf_path_elements=result.original_state_leaf_path_elements,
                ballot=result.original_ballot,
                ballot_path_elements=result.original_ballot_path_elements,
                vote_weight=result.original_vote_weight,
                vote_weight_path_elements=result.original_vote_weights_path_elements,
            ))
            self._apply(result)
        witnesses.reverse()

        self.num_batches_processed += 1
        self.current_message_batch_index -= 1

        new_sb_salt = self.salt_source.next_salt()
        while new_sb_salt == current_sb_salt:
            new_sb_salt = self.salt_source.next_salt()
        self.sb_salts[self.current_message_batch_index] = new_sb_salt

        new_sb_commitment = gen_sb_commitment(
            self.poll_state_tree.root, self.ballot_tree.root, new_sb_salt)
        self.sb_chain.advance(current_sb_commitment, new_sb_commitment)

        input_batch_hash = self.batch_hashes[index - 1]
        output_batch_hash = self.batch_hashes[index]
        input_hash = process_messages_input_hash(
            packed_vals,
            self.coordinator_public_key.hash(),
            input_batch_hash,
            output_batch_hash,
            current_sb_commitment,
            new_sb_commitment,
            self.config.poll_end_timestamp,
            self.actual_state_tree_depth,
        )

        if not self.has_unprocessed_messages() and self.registry is not None:
            self.registry.release_processing_lock(self.poll_id)

        logger.info(f"Poll {self.poll_id}: processed message batch {index} "
                    f"({self.num_batches_processed}/{self.total_message_batches()})")

        return stringify_ints({
            "pollEndTimestamp": self.config.poll_end_timestamp,
            "packedVals": packed_vals,
            "index": batch_start_index,
            "batchEndIndex": batch_end_index,
            "numSignUps": len(self.poll_state_leaves),
            "voteOptions": self.config.vote_options,
            "inputBatchHash": input_batch_hash,
            "outputBatchHash": output_batch_hash,
            "msgs": [m.as_circuit_inputs() for m in self.messages[batch_start_index:batch_end_index]],
            "coordPrivKey": self.coordinator_keypair.private_key.as_circuit_input(),
            "coordPubKey": self.coordinator_public_key.as_array(),
            "encPubKeys": [k.as_array() for k in self.enc_pub_keys[batch_start_index:batch_end_index]],
            "currentStateRoot": current_state_root,
            "currentBallotRoot": current_ballot_root,
            "currentSbCommitment": current_sb_commitment,
            "currentSbSalt": current_sb_salt,
            "currentStateLeaves": [w.state_leaf.as_circuit_inputs() for w in witnesses],
            "currentStateLeavesPathElements": [w.state_leaf_path_elements for w in witnesses],
            "currentBallots": [w.ballot.as_circuit_inputs() for w in witnesses],
            "currentBallotsPathElements": [w.ballot_path_elements for w in witnesses],
            "currentVoteWeights": [w.vote_weight for w in witnesses],
            "currentVoteWeightsPathElements": [w.vote_weight_path_elements for w in witnesses],
            "newSbSalt": new_sb_salt,
            "newSbCommitment": new_sb_commitment,
            "actualStateTreeDepth": self.actual_state_tree_depth,
            "inputHash": input_hash,
        })

    def process_all_messages(self) -> Tuple[List[StateLeaf], List[Ballot]]:
        """Drain every remaining batch and return the final leaves and ballots"""
        while self.has_unprocessed_messages():
            self.process_messages()
        return ([leaf.copy() for leaf in self.poll_state_leaves],
                [ballot.copy() for ballot in self.ballots])

    # ------------------------------------------------------------------
    # Tallying
    # ------------------------------------------------------------------

    def has_untallied_ballots(self) -> bool:
        return self.num_batches_tallied * self.tally_batch_size < len(self.ballots)

    def tally_votes(self) -> Dict[str, Any]:
        """Fold one batch of ballots into the results and return its circuit inputs"""
        if self.current_message_batch_index is None or self.has_unprocessed_messages():
            raise ProcessingIncomplete("You must process all messages before tallying the votes")
        if not self.has_untallied_ballots():
            raise AllBallotsTallied("No more ballots to tally")
        if self.current_message_batch_index not in self.sb_salts:
            raise StateNotReady(f"Poll {self.poll_id} was restored without its commitment salts")

        batch_size = self.tally_batch_size
        depth = self.config.tree_depths.vote_option_tree_depth
        batch_start_index = self.num_batches_tallied * batch_size

        if batch_start_index == 0:
            current_results_root_salt = 0
            current_per_vo_salt = 0
            current_spent_salt = 0
        else:
            previous = batch_start_index - batch_size
            if previous not in self.result_root_salts:
                raise StateNotReady(f"Poll {self.poll_id} was restored without its tally salts")
            current_results_root_salt = self.result_root_salts[previous]
            current_per_vo_salt = self.per_vo_spent_voice_credits_root_salts[previous]
            current_spent_salt = self.spent_voice_credit_subtotal_salts[previous]

        if batch_start_index == 0:
            current_tally_commitment = 0
        else:
            current_tally_commitment = gen_tally_commitment(
                gen_tree_commitment(self.results, current_results_root_salt, depth),
                gen_spent_voice_credit_subtotal_commitment(self.total_spent_voice_credits, current_spent_salt),
                gen_tree_commitment(self.per_vo_spent_voice_credits, current_per_vo_salt, depth),
            )

        current_results = list(self.results)
        current_per_vo_spent = list(self.per_vo_spent_voice_credits)
        current_spent_subtotal = self.total_spent_voice_credits

        ballots = []
        for i in range(batch_start_index, min(batch_start_index + batch_size, len(self.ballots))):
            ballot = self.ballots[i]
            ballots.append(ballot)
            for j in range(self.config.vote_options):
                v = ballot.votes[j]
                self.results[j] += v
                spent = v * v if self.is_qv else v
                self.per_vo_spent_voice_credits[j] += spent
                self.total_spent_voice_credits += spent
        while len(ballots) < batch_size:
            ballots.append(self.empty_ballot)

        new_results_root_salt = self.salt_source.next_salt()
        new_per_vo_salt = self.salt_source.next_salt()
        new_spent_salt = self.salt_source.next_salt()
        self.result_root_salts[batch_start_index] = new_results_root_salt
        self.per_vo_spent_voice_credits_root_salts[batch_start_index] = new_per_vo_salt
        self.spent_voice_credit_subtotal_salts[batch_start_index] = new_spent_salt

        new_tally_commitment = gen_tally_commitment(
            gen_tree_commitment(self.results, new_results_root_salt, depth),
            gen_spent_voice_credit_subtotal_commitment(self.total_spent_voice_credits, new_spent_salt),
            gen_tree_commitment(self.per_vo_spent_voice_credits, new_per_vo_salt, depth),
        )
        self.tally_chain.advance(current_tally_commitment, new_tally_commitment)

        state_root = self.poll_state_tree.root
        ballot_root = self.ballot_tree.root
        sb_salt = self.sb_salts[self.current_message_batch_index]
        sb_commitment = gen_sb_commitment(state_root, ballot_root, sb_salt)
        if sb_commitment != self.sb_chain.current:
            raise CommitmentChainError(
                f"Poll {self.poll_id} ballots do not match the final state-ballot commitment")

        num_signups = len(self.poll_state_leaves)
        packed_vals = pack_tally_votes_small_vals(batch_start_index, batch_size, num_signups)
        input_hash = tally_votes_input_hash(
            packed_vals, sb_commitment, current_tally_commitment, new_tally_commitment)
        subroot_proof = self.ballot_tree.gen_subroot_proof(
            batch_start_index, batch_start_index + batch_size)

        self.num_batches_tallied += 1
        logger.info(f"Poll {self.poll_id}: tallied ballot batch starting at {batch_start_index}")

        return stringify_ints({
            "stateRoot": state_root,
            "ballotRoot": ballot_root,
            "sbSalt": sb_salt,
            "index": batch_start_index,
            "numSignUps": num_signups,
            "sbCommitment": sb_commitment,
            "currentTallyCommitment": current_tally_commitment,
            "newTallyCommitment": new_tally_commitment,
            "packedVals": packed_vals,
            "inputHash": input_hash,
            "ballots": [b.as_circuit_inputs() for b in ballots],
            "ballotPathElements": subroot_proof.path_elements,
            "votes": [b.votes for b in ballots],
            "currentResults": current_results,
            "currentResultsRootSalt": current_results_root_salt,
            "currentSpentVoiceCreditSubtotal": current_spent_subtotal,
            "currentSpentVoiceCreditSubtotalSalt": current_spent_salt,
            "currentPerVOSpentVoiceCredits": current_per_vo_spent,
            "currentPerVOSpentVoiceCreditsRootSalt": current_per_vo_salt,
            "newResultsRootSalt": new_results_root_salt,
            "newPerVOSpentVoiceCreditsRootSalt": new_per_vo_salt,
            "newSpentVoiceCreditSubtotalSalt": new_spent_salt,
        })

    def last_tally_salts(self) -> Dict[str, int]:
        """Salts of the most recent tally commitment"""
        if self.num_batches_tallied == 0:
            raise ProcessingIncomplete("No ballots have been tallied yet")
        last = (self.num_batches_tallied - 1) * self.tally_batch_size
        return {
            "results": self.result_root_salts[last],
            "perVOSpentVoiceCredits": self.per_vo_spent_voice_credits_root_salts[last],
            "totalSpentVoiceCredits": self.spent_voice_credit_subtotal_salts[last],
        }

    # ------------------------------------------------------------------
    # Copy, equality and serialization
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        """Checkpoint form; excludes the coordinator private key and all salts"""
        return {
            "pollId": self.poll_id,
            "config": self.config.to_dict(),
            "coordinatorPublicKey": self.coordinator_public_key.serialize(),
            "messages": [m.to_json() for m in self.messages],
            "encPubKeys": [k.serialize() for k in self.enc_pub_keys],
            "chainHash": str(self.chain_hash),
            "batchHashes": [str(h) for h in self.batch_hashes],
            "stateLeaves": [leaf.to_json() for leaf in self.state_leaves],
            "numSignups": self.num_signups,
            "stateCopied": self.state_copied,
            "pollNullifiers": sorted(str(n) for n in self.poll_nullifiers),
            "pollStateLeaves": [leaf.to_json() for leaf in self.poll_state_leaves],
            "ballots": [b.to_json() for b in self.ballots],
            "numBatchesProcessed": self.num_batches_processed,
            "currentMessageBatchIndex": self.current_message_batch_index,
            "actualStateTreeDepth": self.actual_state_tree_depth,
            "sbCommitment": None if self.sb_commitment is None else str(self.sb_commitment),
            "results": [str(v) for v in self.results],
            "perVOSpentVoiceCredits": [str(v) for v in self.per_vo_spent_voice_credits],
            "totalSpentVoiceCredits": str(self.total_spent_voice_credits),
            "numBatchesTallied": self.num_batches_tallied,
            "tallyCommitment": str(self.tally_commitment),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any], coordinator_keypair: Optional[Keypair] = None,
                  registry: Optional["Registry"] = None,
                  salt_source: Optional[SaltSource] = None) -> "Poll":
        config = PollConfig.from_dict(data["config"])
        coordinator_public_key = PublicKey.deserialize(data["coordinatorPublicKey"])
        poll = cls(int(data["pollId"]), config, None, registry=registry, salt_source=salt_source,
                   coordinator_public_key=coordinator_public_key)
        if coordinator_keypair is not None:
            poll.set_coordinator_keypair(coordinator_keypair)

        poll.messages = [Message.from_json(m) for m in data["messages"]]
        poll.enc_pub_keys = [PublicKey.deserialize(k) for k in data["encPubKeys"]]
        poll.chain_hash = int(data["chainHash"])
        poll.batch_hashes = [int(h) for h in data["batchHashes"]]

        poll.state_leaves = [StateLeaf.from_json(leaf) for leaf in data["stateLeaves"]]
        poll.num_signups = int(data["numSignups"])
        poll.state_copied = bool(data["stateCopied"])
        if poll.state_copied and poll.state_leaves:
            poll.state_tree = poll._build_state_tree(poll.state_leaves)

        poll.poll_nullifiers = {int(n) for n in data["pollNullifiers"]}
        poll.poll_state_leaves = [StateLeaf.from_json(leaf) for leaf in data["pollStateLeaves"]]
        poll.ballots = [Ballot.from_json(b) for b in data["ballots"]]
        poll.poll_state_tree = IncrementalTree.from_leaves(
            config.state_tree_depth, BLANK_STATE_LEAF_HASH, STATE_TREE_ARITY,
            [leaf.hash() for leaf in poll.poll_state_leaves])
        poll.ballot_tree = IncrementalTree.from_leaves(
            config.state_tree_depth, poll.empty_ballot_hash, STATE_TREE_ARITY,
            [b.hash() for b in poll.ballots])

        poll.num_batches_processed = int(data["numBatchesProcessed"])
        poll.current_message_batch_index = data["currentMessageBatchIndex"]
        poll.actual_state_tree_depth = data["actualStateTreeDepth"]
        if data["sbCommitment"] is not None:
            poll.sb_chain.start(int(data["sbCommitment"]))

        poll.results = [int(v) for v in data["results"]]
        poll.per_vo_spent_voice_credits = [int(v) for v in data["perVOSpentVoiceCredits"]]
        poll.total_spent_voice_credits = int(data["totalSpentVoiceCredits"])
        poll.num_batches_tallied = int(data["numBatchesTallied"])
        poll.tally_chain.start(int(data["tallyCommitment"]))
        return poll

    def copy(self, registry: Optional["Registry"] = None) -> "Poll":
        """Structural clone through the canonical form, carrying keys and salts along"""
        poll = Poll.from_json(
            self.to_json(),
            coordinator_keypair=self.coordinator_keypair,
            registry=registry if registry is not None else self.registry,
            salt_source=copy.deepcopy(self.salt_source),
        )
        poll.sb_salts = dict(self.sb_salts)
        poll.result_root_salts = dict(self.result_root_salts)
        poll.per_vo_spent_voice_credits_root_salts = dict(self.per_vo_spent_voice_credits_root_salts)
        poll.spent_voice_credit_subtotal_salts = dict(self.spent_voice_credit_subtotal_salts)
        return poll

    def equals(self, other: "Poll") -> bool:
        return structurally_equal(self, other)
