"""
Rebuild a Registry from an ordered log of external events.

Only the target poll is materialized; every other deployment becomes a
null poll so that poll ids stay in step with the external log.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from config.config import BatchSizes, ConfigurationError, TreeDepths, VotingMode
from domainobjs.keys import Keypair, PublicKey
from domainobjs.message import Message
from primitives.field import SaltSource

from .registry import Registry

logger = logging.getLogger(__name__)


class ActionType(Enum):
    SIGN_UP = "SignUp"
    DEPLOY_POLL = "DeployPoll"
    POLL_JOINED = "PollJoined"
    PUBLISH_MESSAGE = "PublishMessage"


@dataclass
class Action:
    """One external event, ordered by block and transaction index"""
    type: ActionType
    block_number: int
    transaction_index: int
    data: Dict[str, Any] = field(default_factory=dict)


def sort_actions(actions: Iterable[Action]) -> List[Action]:
    return sorted(actions, key=lambda a: (a.block_number, a.transaction_index))


def generate_registry_from_actions(actions: Iterable[Action], poll_id: int,
                                   coordinator_keypair: Keypair, state_tree_depth: int = 10,
                                   initial_voice_credits: int = 100,
                                   salt_source: Optional[SaltSource] = None) -> Registry:
    """Replay signups, deployments, joins and messages for one poll"""
    registry = Registry(state_tree_depth, initial_voice_credits, salt_source)
    counts = {action_type: 0 for action_type in ActionType}

    for action in sort_actions(actions):
        counts[action.type] += 1
        data = action.data

        if action.type == ActionType.SIGN_UP:
            registry.sign_up(
                data["public_key"],
                data.get("voice_credit_balance"),
                data.get("timestamp", 0),
            )

        elif action.type == ActionType.DEPLOY_POLL:
            expected_id = int(data["poll_id"])
            if expected_id != poll_id:
                deployed = registry.deploy_null_poll()
            else:
                coordinator_public_key: PublicKey = data["coordinator_public_key"]
                if coordinator_public_key != coordinator_keypair.public_key:
                    raise ConfigurationError(
                        f"Coordinator keypair does not match the one poll {poll_id} was deployed with")
                tree_depths = TreeDepths(data["int_state_tree_depth"], data["vote_option_tree_depth"])
                deployed = registry.deploy_poll(
                    data["poll_end_timestamp"],
                    tree_depths,
                    BatchSizes.for_tree_depths(data["message_batch_size"], tree_depths),
                    coordinator_keypair,
                    data["vote_options"],
                    VotingMode(data.get("mode", VotingMode.QV.value)),
                )
            if deployed != expected_id:
                raise ConfigurationError(
                    f"Replayed poll id {deployed} differs from the logged id {expected_id}")

        elif action.type == ActionType.POLL_JOINED:
            if int(data["poll_id"]) == poll_id:
                registry.get_poll(poll_id).join_poll(
                    data["nullifier"],
                    data["poll_public_key"],
                    data["voice_credit_balance"],
                    data.get("timestamp", 0),
                    data.get("state_index"),
                )

        elif action.type == ActionType.PUBLISH_MESSAGE:
            if int(data["poll_id"]) == poll_id:
                message: Message = data["message"]
                registry.get_poll(poll_id).publish_message(message, data["enc_pub_key"])

    poll = registry.get_poll(poll_id)
    poll.update_poll(registry.num_signups)

    logger.info(
        f"Replayed {counts[ActionType.SIGN_UP]} signups, {counts[ActionType.DEPLOY_POLL]} deployments, "
        f"{counts[ActionType.POLL_JOINED]} joins and {counts[ActionType.PUBLISH_MESSAGE]} messages")
    return registry
