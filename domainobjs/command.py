"""
Plaintext vote commands and their signed, encrypted wire form.

A command is encoded as four field elements: the packed small values
(state index, vote option, weight, nonce, poll id), the new public key and
a salt. The signature covers the Poseidon hash of that encoding, so the
poll id is bound into every signature.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

from primitives import babyjub
from primitives.babyjub import Point, Signature
from primitives.cipher import poseidon_decrypt, poseidon_decrypt_without_check, poseidon_encrypt
from primitives.field import gen_random_salt
from primitives.packing import COMMAND_LAYOUT
from primitives.poseidon import hash4

from .keys import PrivateKey, PublicKey
from .message import Message

COMMAND_PLAINTEXT_LENGTH = 7
COMMAND_NONCE = 0


@dataclass(frozen=True)
class Command:
    state_index: int
    new_pub_key: PublicKey
    vote_option_index: int
    new_vote_weight: int
    nonce: int
    poll_id: int
    salt: int = field(default_factory=gen_random_salt)

    def packed_params(self) -> int:
        return COMMAND_LAYOUT.pack_values(
            self.state_index,
            self.vote_option_index,
            self.new_vote_weight,
            self.nonce,
            self.poll_id,
        )

    def as_array(self) -> List[int]:
        return [self.packed_params(), self.new_pub_key.x, self.new_pub_key.y, self.salt]

    def as_circuit_inputs(self) -> List[int]:
        return self.as_array()

    def hash(self) -> int:
        return hash4(self.as_array())

    def sign(self, private_key: PrivateKey) -> Signature:
        return babyjub.sign(private_key.raw, self.hash())

    def verify_signature(self, signature: Signature, public_key: PublicKey) -> bool:
        return babyjub.verify(self.hash(), signature, public_key.point)

    def encrypt(self, signature: Signature, shared_key: Point) -> Message:
        """Encrypt the command and its signature under an ECDH shared key"""
        plaintext = self.as_array() + [signature.r8[0], signature.r8[1], signature.s]
        return Message(poseidon_encrypt(plaintext, shared_key, COMMAND_NONCE))

    @classmethod
    def decrypt(cls, message: Message, shared_key: Point, force: bool = False) -> Tuple["Command", Signature]:
        """Decrypt a message into a command and signature.

        Raises DecryptionFailure on a corrupted ciphertext or a wrong key,
        unless force is set, in which case whatever the key yields is decoded.
        """
        if force:
            decrypted = poseidon_decrypt_without_check(
                message.data, shared_key, COMMAND_NONCE, COMMAND_PLAINTEXT_LENGTH)
        else:
            decrypted = poseidon_decrypt(
                message.data, shared_key, COMMAND_NONCE, COMMAND_PLAINTEXT_LENGTH)

        params = COMMAND_LAYOUT.unpack(decrypted[0])
        command = cls(
            state_index=params["state_index"],
            new_pub_key=PublicKey(decrypted[1], decrypted[2]),
            vote_option_index=params["vote_option_index"],
            new_vote_weight=params["new_vote_weight"],
            nonce=params["nonce"],
            poll_id=params["poll_id"],
            salt=decrypted[3],
        )
        signature = Signature(r8=(decrypted[4], decrypted[5]), s=decrypted[6])
        return command, signature
