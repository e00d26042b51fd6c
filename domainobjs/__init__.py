"""
Domain objects for the vote-processing engine
Keys, state leaves, ballots, commands and messages
"""

from .keys import (
    PrivateKey,
    PublicKey,
    Keypair,
    PAD_KEY,
    gen_ecdh_shared_key,
    gen_poll_nullifier,

    # Exceptions
    KeyHandlingError,
    InvalidKeyFormat,
)
from .state_leaf import StateLeaf, BLANK_STATE_LEAF, BLANK_STATE_LEAF_HASH
from .ballot import Ballot, VOTE_OPTION_TREE_ARITY
from .message import Message, MESSAGE_DATA_LENGTH
from .command import Command

__version__ = "1.0.0"
__author__ = "Vote Processing Engine Team"

__all__ = [
    # Keys
    'PrivateKey',
    'PublicKey',
    'Keypair',
    'PAD_KEY',
    'gen_ecdh_shared_key',
    'gen_poll_nullifier',

    # State
    'StateLeaf',
    'BLANK_STATE_LEAF',
    'BLANK_STATE_LEAF_HASH',
    'Ballot',
    'VOTE_OPTION_TREE_ARITY',

    # Messages
    'Command',
    'Message',
    'MESSAGE_DATA_LENGTH',

    # Exceptions
    'KeyHandlingError',
    'InvalidKeyFormat',
]
