from dataclasses import dataclass
from typing import Any, Dict, List

from primitives.poseidon import hash4

from .keys import PAD_KEY, PublicKey


@dataclass
class StateLeaf:
    """A registrant's record: public key, voice credit balance and timestamp"""
    public_key: PublicKey
    voice_credit_balance: int
    timestamp: int = 0

    @classmethod
    def blank(cls) -> "StateLeaf":
        """Pad leaf stored at index 0 of every state tree"""
        return cls(PAD_KEY, 0, 0)

    def as_array(self) -> List[int]:
        return [self.public_key.x, self.public_key.y, self.voice_credit_balance, self.timestamp]

    def as_circuit_inputs(self) -> List[int]:
        return self.as_array()

    def hash(self) -> int:
        return hash4(self.as_array())

    def copy(self) -> "StateLeaf":
        return StateLeaf(self.public_key, self.voice_credit_balance, self.timestamp)

    def to_json(self) -> Dict[str, Any]:
        return {
            "publicKey": self.public_key.serialize(),
            "voiceCreditBalance": str(self.voice_credit_balance),
            "timestamp": str(self.timestamp),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "StateLeaf":
        return cls(
            PublicKey.deserialize(data["publicKey"]),
            int(data["voiceCreditBalance"]),
            int(data["timestamp"]),
        )


BLANK_STATE_LEAF = StateLeaf.blank()
BLANK_STATE_LEAF_HASH = BLANK_STATE_LEAF.hash()
