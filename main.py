import argparse
import logging
import math
import random
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from config.config import EngineConfig, load_config
from domainobjs import Command, Keypair, gen_ecdh_shared_key, gen_poll_nullifier
from engine import BatchRunner, Poll, Registry, TallyData, verify_tally_data
from primitives.field import SeededSaltSource
from utils.utils import setup_logging

logger = logging.getLogger(__name__)


def build_demo_poll(config: EngineConfig, num_voters: int, seed: int = 42) -> Tuple[Registry, Poll]:
    """Registry with one poll in which every voter casts one random vote"""
    capacity = 2 ** config.state_tree_depth
    if num_voters >= capacity:
        raise ValueError(f"{num_voters} voters do not fit in a state tree of depth {config.state_tree_depth}")

    rng = random.Random(seed)
    registry = Registry.from_config(config, SeededSaltSource(seed))
    coordinator = Keypair()
    poll_id = registry.deploy_poll_from_config(config.poll_config(int(time.time())), coordinator)
    poll = registry.get_poll(poll_id)

    credits = config.initial_voice_credits
    max_weight = math.isqrt(credits) if poll.is_qv else credits

    for i in range(num_voters):
        maci_keypair = Keypair()
        poll_keypair = Keypair()
        state_index = registry.sign_up(maci_keypair.public_key)
        poll_state_index = poll.join_poll(
            gen_poll_nullifier(maci_keypair.private_key, poll_id),
            poll_keypair.public_key,
            registry.voice_credit_allotment(state_index),
            state_index=state_index,
        )

        command = Command(
            state_index=poll_state_index,
            new_pub_key=poll_keypair.public_key,
            vote_option_index=rng.randrange(config.vote_options),
            new_vote_weight=rng.randint(1, max_weight),
            nonce=1,
            poll_id=poll_id,
        )
        ephemeral = Keypair()
        shared_key = gen_ecdh_shared_key(ephemeral.private_key, coordinator.public_key)
        poll.publish_message(command.encrypt(command.sign(poll_keypair.private_key), shared_key),
                             ephemeral.public_key)
        logger.debug(f"Voter {i} voted for option {command.vote_option_index}")

    poll.update_poll(registry.num_signups)
    return registry, poll


def run_demo(config: EngineConfig, num_voters: int, output_dir: Path, seed: int = 42) -> bool:
    print("=" * 80)
    print("VOTE PROCESSING ENGINE - DEMONSTRATION")
    print("   Encrypted messages, batch processing and salted tally commitments")
    print("=" * 80)

    try:
        print(f"\nSigning up {num_voters} voters and publishing their votes...")
        _, poll = build_demo_poll(config, num_voters, seed)

        print(f"Processing {len(poll.messages)} messages in batches of {poll.message_batch_size}...")
        summary = BatchRunner(poll, output_dir=output_dir).run()
    except Exception as e:
        logger.exception(f"Demo failed: {e}")
        return False

    print("\n" + "=" * 40)
    print("POLL RESULTS")
    print("=" * 40)
    for option, votes in enumerate(summary.tally_data.results[:config.vote_options]):
        print(f"  Option {option}: {votes}")
    print(f"\nTotal spent voice credits: {summary.tally_data.total_spent_voice_credits}")
    print(f"Message batches: {len(summary.process_inputs)}, tally batches: {len(summary.tally_inputs)}")
    print(f"Tally commitment: {summary.tally_data.new_tally_commitment}")
    print(f"\nCircuit inputs and tally saved to: {output_dir}")
    return True


def run_verify(tally_path: Path, commitment: Optional[int] = None) -> bool:
    try:
        tally = TallyData.load(tally_path)
        verify_tally_data(tally, commitment)
    except Exception as e:
        logger.error(f"Tally verification failed: {e}")
        print(f"Tally {tally_path} FAILED verification: {e}")
        return False

    print(f"Tally {tally_path} verified for poll {tally.poll_id}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Off-chain vote processing engine')
    parser.add_argument('--mode', choices=['demo', 'verify'], default='demo')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--voters', type=int, default=10,
                        help='Number of voters in demo mode')
    parser.add_argument('--seed', type=int, default=42,
                        help='Seed for demo votes and commitment salts')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Where to write circuit inputs and the tally file')
    parser.add_argument('--tally', type=str, default=None,
                        help='Tally file to check in verify mode')
    parser.add_argument('--commitment', type=int, default=None,
                        help='Expected tally commitment in verify mode')

    args = parser.parse_args(argv)

    config = load_config(Path(args.config))
    setup_logging(config.log_level, config.log_file)

    if args.mode == 'demo':
        output_dir = Path(args.output_dir) if args.output_dir else config.output_dir
        success = run_demo(config, args.voters, output_dir, args.seed)
    else:
        if args.tally is None:
            parser.error("--tally is required in verify mode")
        success = run_verify(Path(args.tally), args.commitment)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
