from dataclasses import dataclass, field
from typing import Any, Dict, List

from primitives.field import to_field_elements
from primitives.poseidon import hash13

from .keys import PublicKey

MESSAGE_DATA_LENGTH = 10


@dataclass
class Message:
    """Published ciphertext form of a command"""
    data: List[int] = field(default_factory=lambda: [0] * MESSAGE_DATA_LENGTH)

    def __post_init__(self):
        if len(self.data) != MESSAGE_DATA_LENGTH:
            raise ValueError(f"Message data must hold {MESSAGE_DATA_LENGTH} elements, got {len(self.data)}")
        self.data = to_field_elements(self.data)

    def as_array(self) -> List[int]:
        return list(self.data)

    def as_circuit_inputs(self) -> List[int]:
        return self.as_array()

    def hash(self, enc_pub_key: PublicKey) -> int:
        """Leaf of the message chain, binding the ephemeral key"""
        return hash13(self.data + enc_pub_key.as_array())

    def copy(self) -> "Message":
        return Message(list(self.data))

    def to_json(self) -> Dict[str, Any]:
        return {"data": [str(v) for v in self.data]}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Message":
        return cls([int(v) for v in data["data"]])
