"""
Batch driver: drains a poll's processing and tally batches, hands each
batch's circuit inputs to an external prover and persists the outputs.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from utils.utils import PerformanceMonitor, format_duration, save_output

from .poll import Poll
from .tally import TallyData, verify_tally_data

logger = logging.getLogger(__name__)

# prover(circuit_name, batch_number, circuit_inputs) -> proof
Prover = Callable[[str, int, Dict[str, Any]], Any]

PROCESS_CIRCUIT = "processMessages"
TALLY_CIRCUIT = "tallyVotes"


@dataclass
class RunSummary:
    poll_id: int
    process_inputs: List[Dict[str, Any]] = field(default_factory=list)
    tally_inputs: List[Dict[str, Any]] = field(default_factory=list)
    proofs: List[Any] = field(default_factory=list)
    tally_data: Optional[TallyData] = None
    performance: Dict[str, Any] = field(default_factory=dict)


class BatchRunner:
    """Drive a poll from its first message batch to its final tally"""

    def __init__(self, poll: Poll, prover: Optional[Prover] = None,
                 output_dir: Optional[Path] = None, monitor: Optional[PerformanceMonitor] = None):
        self.poll = poll
        self.prover = prover
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.monitor = monitor or PerformanceMonitor()

    def _handle_batch(self, circuit: str, batch_number: int, inputs: Dict[str, Any],
                      summary: RunSummary):
        proof = None
        if self.prover is not None:
            with self.monitor.start_operation(f"{circuit}_proof"):
                proof = self.prover(circuit, batch_number, inputs)
            summary.proofs.append(proof)

        if self.output_dir is not None:
            prefix = "process" if circuit == PROCESS_CIRCUIT else "tally"
            document = {"circuit": circuit, "circuitInputs": inputs}
            if proof is not None:
                document["proof"] = proof
            save_output(document, self.output_dir / f"{prefix}_{batch_number}.json")

    def run_processing(self, summary: RunSummary):
        batch_number = 0
        while self.poll.has_unprocessed_messages():
            with self.monitor.start_operation(PROCESS_CIRCUIT):
                inputs = self.poll.process_messages()
            summary.process_inputs.append(inputs)
            self._handle_batch(PROCESS_CIRCUIT, batch_number, inputs, summary)
            batch_number += 1
        logger.info(f"Poll {self.poll.poll_id}: {batch_number} message batches processed")

    def run_tallying(self, summary: RunSummary):
        batch_number = 0
        while self.poll.has_untallied_ballots():
            with self.monitor.start_operation(TALLY_CIRCUIT):
                inputs = self.poll.tally_votes()
            summary.tally_inputs.append(inputs)
            self._handle_batch(TALLY_CIRCUIT, batch_number, inputs, summary)
            batch_number += 1
        logger.info(f"Poll {self.poll.poll_id}: {batch_number} ballot batches tallied")

    def run(self) -> RunSummary:
        summary = RunSummary(poll_id=self.poll.poll_id)
        self.run_processing(summary)
        self.run_tallying(summary)

        tally_data = TallyData.from_poll(self.poll)
        verify_tally_data(tally_data, self.poll.tally_commitment)
        summary.tally_data = tally_data
        summary.performance = self.monitor.get_summary()

        if self.output_dir is not None:
            tally_data.save(self.output_dir / "tally.json")
            self.monitor.save_metrics(self.output_dir / "performance.json")

        logger.info(f"Poll {self.poll.poll_id} done in "
                    f"{format_duration(summary.performance.get('total_duration', 0.0))}")
        return summary
