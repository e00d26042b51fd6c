"""
Field and curve primitives for the vote-processing engine
SNARK field, Poseidon, BLAKE-512, Baby Jubjub EdDSA/ECDH, Poseidon encryption, bit packing
"""

from .field import (
    SNARK_FIELD_SIZE,
    NOTHING_UP_MY_SLEEVE,
    Fr,
    FieldError,
    InvalidFieldElement,
    SaltSource,
    SeededSaltSource,
    gen_random_salt,
    sha256_hash,
    to_field,
    to_field_elements,
)
from .blake512 import blake512
from .poseidon import (
    poseidon,
    poseidon_perm,
    hash1,
    hash2,
    hash3,
    hash4,
    hash5,
    hash13,
    hash_left_right,
)
from .babyjub import (
    BASE8,
    SUB_ORDER,
    CurveError,
    InvalidCurvePoint,
    Signature,
    in_curve,
    ecdh_shared_key,
    derive_public_key,
    format_private_key,
)
from .cipher import (
    CipherError,
    DecryptionFailure,
    poseidon_encrypt,
    poseidon_decrypt,
    poseidon_decrypt_without_check,
)
from .packing import (
    PackLayout,
    PackingOverflow,
    COMMAND_LAYOUT,
    PROCESS_MESSAGES_LAYOUT,
    TALLY_VOTES_LAYOUT,
    pack_process_message_small_vals,
    unpack_process_message_small_vals,
    pack_tally_votes_small_vals,
    unpack_tally_votes_small_vals,
)

__version__ = "1.0.0"
__author__ = "Vote Processing Engine Team"

__all__ = [
    # Field
    'SNARK_FIELD_SIZE',
    'NOTHING_UP_MY_SLEEVE',
    'Fr',
    'SaltSource',
    'SeededSaltSource',
    'gen_random_salt',
    'sha256_hash',
    'to_field',
    'to_field_elements',

    # Hashing
    'blake512',
    'poseidon',
    'poseidon_perm',
    'hash1',
    'hash2',
    'hash3',
    'hash4',
    'hash5',
    'hash13',
    'hash_left_right',

    # Curve
    'BASE8',
    'SUB_ORDER',
    'Signature',
    'in_curve',
    'ecdh_shared_key',
    'derive_public_key',
    'format_private_key',

    # Encryption
    'poseidon_encrypt',
    'poseidon_decrypt',
    'poseidon_decrypt_without_check',

    # Packing
    'PackLayout',
    'COMMAND_LAYOUT',
    'PROCESS_MESSAGES_LAYOUT',
    'TALLY_VOTES_LAYOUT',
    'pack_process_message_small_vals',
    'unpack_process_message_small_vals',
    'pack_tally_votes_small_vals',
    'unpack_tally_votes_small_vals',

    # Exceptions
    'FieldError',
    'InvalidFieldElement',
    'CurveError',
    'InvalidCurvePoint',
    'CipherError',
    'DecryptionFailure',
    'PackingOverflow',
]
