"""
Vote-processing engine
Registry, per-poll batch processing and tallying, commitments, replay and batch driver
"""

from .errors import (
    EngineError,
    ProcessMessageErrors,
    ProcessMessageError,
    PreconditionError,
    StateNotReady,
    NoMoreMessages,
    ProcessingIncomplete,
    AllBallotsTallied,
    PollClosedError,
    AlreadyJoinedError,
    BalanceExceedsAllotment,
    PollProcessingLocked,
    PollNotFound,
    SignupCountMismatch,
    CommitmentChainError,
    TallyVerificationError,
)
from .commitments import (
    CommitmentChain,
    gen_sb_commitment,
    gen_tree_commitment,
    gen_tally_commitment,
    gen_spent_voice_credit_subtotal_commitment,
    gen_tally_results_commitment,
    process_messages_input_hash,
    tally_votes_input_hash,
)
from .poll import Poll, PollPhase, ProcessMessageResult
from .registry import Registry
from .tally import TallyData, verify_tally_data
from .replay import Action, ActionType, sort_actions, generate_registry_from_actions
from .runner import BatchRunner, RunSummary

__version__ = "1.0.0"
__author__ = "Vote Processing Engine Team"

__all__ = [
    # Core classes
    'Registry',
    'Poll',
    'PollPhase',
    'ProcessMessageResult',

    # Commitments
    'CommitmentChain',
    'gen_sb_commitment',
    'gen_tree_commitment',
    'gen_tally_commitment',
    'gen_spent_voice_credit_subtotal_commitment',
    'gen_tally_results_commitment',
    'process_messages_input_hash',
    'tally_votes_input_hash',

    # Tally, replay and driver
    'TallyData',
    'verify_tally_data',
    'Action',
    'ActionType',
    'sort_actions',
    'generate_registry_from_actions',
    'BatchRunner',
    'RunSummary',

    # Exceptions
    'EngineError',
    'ProcessMessageErrors',
    'ProcessMessageError',
    'PreconditionError',
    'StateNotReady',
    'NoMoreMessages',
    'ProcessingIncomplete',
    'AllBallotsTallied',
    'PollClosedError',
    'AlreadyJoinedError',
    'BalanceExceedsAllotment',
    'PollProcessingLocked',
    'PollNotFound',
    'SignupCountMismatch',
    'CommitmentChainError',
    'TallyVerificationError',
]
