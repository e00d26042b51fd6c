"""
Exception hierarchy of the vote-processing engine.

Protocol rejections are expected and never escape batch processing.
Precondition errors mean the driving loop is out of step with the poll.
Capacity and configuration errors abort the whole transition.
"""

from enum import Enum

from config.config import ConfigurationError
from merkle.tree import CapacityExceeded
from primitives.babyjub import InvalidCurvePoint
from primitives.cipher import DecryptionFailure
from primitives.field import InvalidFieldElement
from primitives.packing import PackingOverflow


class EngineError(Exception):
    """Base exception for engine operations"""
    pass


# ============================================================================
# PROTOCOL REJECTIONS
# ============================================================================


class ProcessMessageErrors(Enum):
    """Reasons a published message is turned into a no-op"""
    FAILED_DECRYPTION = "failed decryption due to either wrong encryption public key or corrupted ciphertext"
    INVALID_STATE_LEAF_INDEX = "invalid state leaf index"
    INVALID_NONCE = "invalid nonce"
    INVALID_SIGNATURE = "invalid signature"
    INVALID_VOTE_OPTION_INDEX = "invalid vote option index"
    INSUFFICIENT_VOICE_CREDITS = "insufficient voice credits"


class ProcessMessageError(EngineError):
    """Raised when a single message fails validation"""

    def __init__(self, reason: ProcessMessageErrors):
        super().__init__(reason.value)
        self.reason = reason


# ============================================================================
# PRECONDITION VIOLATIONS
# ============================================================================


class PreconditionError(EngineError):
    """The engine was driven out of phase"""
    pass


class StateNotReady(PreconditionError):
    """Raised when processing starts before the poll state was updated"""
    pass


class NoMoreMessages(PreconditionError):
    """Raised when every message batch has already been processed"""
    pass


class ProcessingIncomplete(PreconditionError):
    """Raised when tallying starts before message processing finished"""
    pass


class AllBallotsTallied(PreconditionError):
    """Raised when every ballot batch has already been tallied"""
    pass


class PollClosedError(PreconditionError):
    """Raised when publishing or joining after processing began"""
    pass


class AlreadyJoinedError(PreconditionError):
    """Raised when a nullifier is reused to join a poll"""
    pass


class BalanceExceedsAllotment(PreconditionError):
    """Raised when a joining balance exceeds the registrant's allotment"""
    pass


class PollProcessingLocked(PreconditionError):
    """Raised when another poll is mid-processing"""
    pass


class PollNotFound(PreconditionError):
    """Raised for an unknown or null poll id"""
    pass


class SignupCountMismatch(PreconditionError):
    """Raised when a poll is updated with more signups than exist"""
    pass


# ============================================================================
# CAPACITY / INTEGRITY VIOLATIONS
# ============================================================================


class CommitmentChainError(EngineError):
    """Raised when a batch does not start from the previous batch's commitment"""
    pass


class TallyVerificationError(EngineError):
    """Raised when a tally file does not match its commitments"""
    pass


__all__ = [
    'EngineError',
    'ProcessMessageErrors',
    'ProcessMessageError',
    'DecryptionFailure',
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
    'CapacityExceeded',
    'PackingOverflow',
    'InvalidCurvePoint',
    'InvalidFieldElement',
    'ConfigurationError',
]
