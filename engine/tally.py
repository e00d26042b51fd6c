"""
Tally file produced after the last tally batch, and its verification.

The file reveals the results together with the salts of the final tally
commitment so that anyone can recompute every sub-commitment.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.utils import load_output, save_output

from .commitments import gen_spent_voice_credit_subtotal_commitment, gen_tally_commitment, gen_tree_commitment
from .errors import ProcessingIncomplete, TallyVerificationError
from .poll import Poll

logger = logging.getLogger(__name__)


@dataclass
class TallyData:
    poll_id: int
    mode: str
    vote_option_tree_depth: int
    new_tally_commitment: int
    results: List[int]
    results_salt: int
    total_spent_voice_credits: int
    total_spent_voice_credits_salt: int
    per_vo_spent_voice_credits: List[int]
    per_vo_spent_voice_credits_salt: int

    @classmethod
    def from_poll(cls, poll: Poll) -> "TallyData":
        """Collect the final results of a fully tallied poll"""
        if poll.has_untallied_ballots() or poll.num_batches_tallied == 0:
            raise ProcessingIncomplete(f"Poll {poll.poll_id} is not fully tallied")
        salts = poll.last_tally_salts()
        return cls(
            poll_id=poll.poll_id,
            mode=poll.config.mode.value,
            vote_option_tree_depth=poll.config.tree_depths.vote_option_tree_depth,
            new_tally_commitment=poll.tally_commitment,
            results=list(poll.results),
            results_salt=salts["results"],
            total_spent_voice_credits=poll.total_spent_voice_credits,
            total_spent_voice_credits_salt=salts["totalSpentVoiceCredits"],
            per_vo_spent_voice_credits=list(poll.per_vo_spent_voice_credits),
            per_vo_spent_voice_credits_salt=salts["perVOSpentVoiceCredits"],
        )

    def results_commitment(self) -> int:
        return gen_tree_commitment(self.results, self.results_salt, self.vote_option_tree_depth)

    def spent_voice_credits_commitment(self) -> int:
        return gen_spent_voice_credit_subtotal_commitment(
            self.total_spent_voice_credits, self.total_spent_voice_credits_salt)

    def per_vo_spent_voice_credits_commitment(self) -> int:
        return gen_tree_commitment(
            self.per_vo_spent_voice_credits, self.per_vo_spent_voice_credits_salt,
            self.vote_option_tree_depth)

    def to_json(self) -> Dict[str, Any]:
        return {
            "pollId": str(self.poll_id),
            "mode": self.mode,
            "voteOptionTreeDepth": self.vote_option_tree_depth,
            "newTallyCommitment": str(self.new_tally_commitment),
            "results": {
                "tally": [str(v) for v in self.results],
                "salt": str(self.results_salt),
                "commitment": str(self.results_commitment()),
            },
            "totalSpentVoiceCredits": {
                "spent": str(self.total_spent_voice_credits),
                "salt": str(self.total_spent_voice_credits_salt),
                "commitment": str(self.spent_voice_credits_commitment()),
            },
            "perVOSpentVoiceCredits": {
                "tally": [str(v) for v in self.per_vo_spent_voice_credits],
                "salt": str(self.per_vo_spent_voice_credits_salt),
                "commitment": str(self.per_vo_spent_voice_credits_commitment()),
            },
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TallyData":
        return cls(
            poll_id=int(data["pollId"]),
            mode=data["mode"],
            vote_option_tree_depth=int(data["voteOptionTreeDepth"]),
            new_tally_commitment=int(data["newTallyCommitment"]),
            results=[int(v) for v in data["results"]["tally"]],
            results_salt=int(data["results"]["salt"]),
            total_spent_voice_credits=int(data["totalSpentVoiceCredits"]["spent"]),
            total_spent_voice_credits_salt=int(data["totalSpentVoiceCredits"]["salt"]),
            per_vo_spent_voice_credits=[int(v) for v in data["perVOSpentVoiceCredits"]["tally"]],
            per_vo_spent_voice_credits_salt=int(data["perVOSpentVoiceCredits"]["salt"]),
        )

    def save(self, filepath: Path):
        save_output(self.to_json(), filepath)

    @classmethod
    def load(cls, filepath: Path) -> "TallyData":
        return cls.from_json(load_output(filepath))


def verify_tally_data(tally: TallyData, on_chain_commitment: Optional[int] = None) -> bool:
    """Recompute every sub-commitment of a tally file.

    Raises TallyVerificationError on the first mismatch.
    """
    if tally.total_spent_voice_credits != sum(tally.per_vo_spent_voice_credits):
        raise TallyVerificationError("Per-option spent voice credits do not add up to the total")

    recomputed = gen_tally_commitment(
        tally.results_commitment(),
        tally.spent_voice_credits_commitment(),
        tally.per_vo_spent_voice_credits_commitment(),
    )
    if recomputed != tally.new_tally_commitment:
        raise TallyVerificationError("Tally commitment does not match the revealed results")

    if on_chain_commitment is not None and on_chain_commitment != tally.new_tally_commitment:
        raise TallyVerificationError("Tally commitment does not match the on-chain commitment")

    logger.info(f"Tally of poll {tally.poll_id} verified")
    return True
