"""
Bit packing of small bounded integers into a single field element.

Field widths are shared byte for byte with the circuits and the on-chain
verifier. A value that does not fit its range is rejected, never truncated.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple

from .field import SNARK_FIELD_SIZE


class PackingOverflow(Exception):
    """Raised when a value does not fit in its reserved bit range"""
    pass


@dataclass(frozen=True)
class PackLayout:
    """Ordered named fields, each with a fixed bit width, lowest bits first"""
    name: str
    version: int
    fields: Tuple[Tuple[str, int], ...]

    def __post_init__(self):
        if sum(width for _, width in self.fields) >= SNARK_FIELD_SIZE.bit_length():
            raise ValueError(f"Layout {self.name} does not fit in a field element")

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def offsets(self) -> Dict[str, Tuple[int, int]]:
        result = {}
        shift = 0
        for name, width in self.fields:
            result[name] = (shift, width)
            shift += width
        return result

    def pack(self, values: Mapping[str, int]) -> int:
        missing = set(self.names) - set(values)
        extra = set(values) - set(self.names)
        if missing or extra:
            raise KeyError(f"Layout {self.name} fields mismatch: missing={sorted(missing)} extra={sorted(extra)}")

        packed = 0
        for name, (shift, width) in self.offsets().items():
            value = int(values[name])
            if value < 0 or value >= 1 << width:
                raise PackingOverflow(
                    f"{self.name}.{name}={value} does not fit in {width} bits")
            packed |= value << shift
        return packed

    def pack_values(self, *values: int) -> int:
        """Positional variant of pack, in field order"""
        if len(values) != len(self.fields):
            raise KeyError(f"Layout {self.name} expects {len(self.fields)} values")
        return self.pack(dict(zip(self.names, values)))

    def unpack(self, packed: int) -> Dict[str, int]:
        if packed < 0 or packed >= SNARK_FIELD_SIZE:
            raise PackingOverflow(f"Packed value {packed} is not a field element")
        return {
            name: (packed >> shift) & ((1 << width) - 1)
            for name, (shift, width) in self.offsets().items()
        }

    def unpack_values(self, packed: int) -> Sequence[int]:
        unpacked = self.unpack(packed)
        return [unpacked[name] for name in self.names]


SMALL_VAL_BITS = 50

COMMAND_LAYOUT = PackLayout("command", 1, (
    ("state_index", SMALL_VAL_BITS),
    ("vote_option_index", SMALL_VAL_BITS),
    ("new_vote_weight", SMALL_VAL_BITS),
    ("nonce", SMALL_VAL_BITS),
    ("poll_id", SMALL_VAL_BITS),
))

PROCESS_MESSAGES_LAYOUT = PackLayout("process_messages", 1, (
    ("max_vote_options", SMALL_VAL_BITS),
    ("num_users", SMALL_VAL_BITS),
    ("batch_start_index", SMALL_VAL_BITS),
    ("batch_end_index", SMALL_VAL_BITS),
))

TALLY_VOTES_LAYOUT = PackLayout("tally_votes", 1, (
    ("batch_index", SMALL_VAL_BITS),
    ("num_signups", SMALL_VAL_BITS),
))


def pack_process_message_small_vals(max_vote_options: int, num_users: int,
                                    batch_start_index: int, batch_end_index: int) -> int:
    return PROCESS_MESSAGES_LAYOUT.pack_values(
        max_vote_options, num_users, batch_start_index, batch_end_index)


def unpack_process_message_small_vals(packed: int) -> Dict[str, int]:
    return PROCESS_MESSAGES_LAYOUT.unpack(packed)


def pack_tally_votes_small_vals(batch_start_index: int, batch_size: int, num_signups: int) -> int:
    if batch_start_index % batch_size:
        raise ValueError(f"Batch start {batch_start_index} is not aligned to batch size {batch_size}")
    return TALLY_VOTES_LAYOUT.pack_values(batch_start_index // batch_size, num_signups)


def unpack_tally_votes_small_vals(packed: int) -> Dict[str, int]:
    return TALLY_VOTES_LAYOUT.unpack(packed)
