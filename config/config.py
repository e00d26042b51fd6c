import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

STATE_TREE_ARITY = 2
VOTE_OPTION_TREE_ARITY = 5
MAX_SMALL_VAL = 2 ** 50


class ConfigurationError(Exception):
    """Raised when a configuration value is out of range or inconsistent"""
    pass


class VotingMode(Enum):
    """Voice credit cost of a vote weight"""
    QV = "qv"
    NON_QV = "non_qv"


@dataclass(frozen=True)
class TreeDepths:
    int_state_tree_depth: int
    vote_option_tree_depth: int

    def __post_init__(self):
        if self.int_state_tree_depth < 1:
            raise ConfigurationError("int_state_tree_depth must be at least 1")
        if self.vote_option_tree_depth < 1:
            raise ConfigurationError("vote_option_tree_depth must be at least 1")


@dataclass(frozen=True)
class BatchSizes:
    message_batch_size: int
    tally_batch_size: int

    def __post_init__(self):
        if self.message_batch_size < 1:
            raise ConfigurationError("message_batch_size must be at least 1")
        if self.tally_batch_size < 1:
            raise ConfigurationError("tally_batch_size must be at least 1")

    @classmethod
    def for_tree_depths(cls, message_batch_size: int, tree_depths: TreeDepths) -> "BatchSizes":
        """Tally batches cover one intermediate state subtree"""
        return cls(message_batch_size, STATE_TREE_ARITY ** tree_depths.int_state_tree_depth)


@dataclass(frozen=True)
class PollConfig:
    """Everything fixed about a poll at deploy time"""
    poll_end_timestamp: int
    tree_depths: TreeDepths
    batch_sizes: BatchSizes
    vote_options: int
    state_tree_depth: int
    mode: VotingMode = VotingMode.QV

    def __post_init__(self):
        max_vote_options = VOTE_OPTION_TREE_ARITY ** self.tree_depths.vote_option_tree_depth
        if not 1 <= self.vote_options <= max_vote_options:
            raise ConfigurationError(
                f"vote_options must be between 1 and {max_vote_options}, got {self.vote_options}")
        if self.batch_sizes.tally_batch_size != STATE_TREE_ARITY ** self.tree_depths.int_state_tree_depth:
            raise ConfigurationError(
                "tally_batch_size must equal 2 ** int_state_tree_depth")
        if self.tree_depths.int_state_tree_depth > self.state_tree_depth:
            raise ConfigurationError("int_state_tree_depth cannot exceed state_tree_depth")
        if self.batch_sizes.message_batch_size >= MAX_SMALL_VAL:
            raise ConfigurationError("message_batch_size does not fit in a packed value")
        if self.poll_end_timestamp < 0:
            raise ConfigurationError("poll_end_timestamp must be non-negative")
        if not isinstance(self.mode, VotingMode):
            raise ConfigurationError(f"Unknown voting mode {self.mode!r}")

    @property
    def max_vote_options(self) -> int:
        return VOTE_OPTION_TREE_ARITY ** self.tree_depths.vote_option_tree_depth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pollEndTimestamp": str(self.poll_end_timestamp),
            "intStateTreeDepth": self.tree_depths.int_state_tree_depth,
            "voteOptionTreeDepth": self.tree_depths.vote_option_tree_depth,
            "messageBatchSize": self.batch_sizes.message_batch_size,
            "tallyBatchSize": self.batch_sizes.tally_batch_size,
            "voteOptions": self.vote_options,
            "stateTreeDepth": self.state_tree_depth,
            "mode": self.mode.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PollConfig":
        return cls(
            poll_end_timestamp=int(data["pollEndTimestamp"]),
            tree_depths=TreeDepths(int(data["intStateTreeDepth"]), int(data["voteOptionTreeDepth"])),
            batch_sizes=BatchSizes(int(data["messageBatchSize"]), int(data["tallyBatchSize"])),
            vote_options=int(data["voteOptions"]),
            state_tree_depth=int(data["stateTreeDepth"]),
            mode=VotingMode(data["mode"]),
        )


@dataclass
class EngineConfig:
    state_tree_depth: int = 10
    initial_voice_credits: int = 100

    # Defaults for polls deployed from configuration
    int_state_tree_depth: int = 1
    vote_option_tree_depth: int = 2
    message_batch_size: int = 5
    vote_options: int = 25
    mode: VotingMode = VotingMode.QV

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    output_dir: Path = field(default_factory=lambda: Path("proofs"))

    def __post_init__(self):
        if self.state_tree_depth < 1:
            raise ConfigurationError("state_tree_depth must be at least 1")
        if self.initial_voice_credits < 0 or self.initial_voice_credits >= MAX_SMALL_VAL:
            raise ConfigurationError("initial_voice_credits out of range")
        self.mode = VotingMode(self.mode)
        self.output_dir = Path(self.output_dir)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)

    def tree_depths(self) -> TreeDepths:
        return TreeDepths(self.int_state_tree_depth, self.vote_option_tree_depth)

    def batch_sizes(self) -> BatchSizes:
        return BatchSizes.for_tree_depths(self.message_batch_size, self.tree_depths())

    def poll_config(self, poll_end_timestamp: int) -> PollConfig:
        return PollConfig(
            poll_end_timestamp=poll_end_timestamp,
            tree_depths=self.tree_depths(),
            batch_sizes=self.batch_sizes(),
            vote_options=self.vote_options,
            state_tree_depth=self.state_tree_depth,
            mode=self.mode,
        )


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """Load configuration from a YAML file or return defaults"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using default configuration")
        return EngineConfig()

    with open(config_path, 'r') as f:
        try:
            config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse config file {config_path}: {e}") from e

    registry_data = config_data.get('registry', {})
    poll_data = config_data.get('poll', {})
    logging_data = config_data.get('logging', {})
    defaults = EngineConfig()

    try:
        mode = VotingMode(poll_data.get('mode', defaults.mode.value))
    except ValueError as e:
        raise ConfigurationError(f"Unknown voting mode in {config_path}") from e

    return EngineConfig(
        state_tree_depth=registry_data.get('state_tree_depth', defaults.state_tree_depth),
        initial_voice_credits=registry_data.get('initial_voice_credits', defaults.initial_voice_credits),
        int_state_tree_depth=poll_data.get('int_state_tree_depth', defaults.int_state_tree_depth),
        vote_option_tree_depth=poll_data.get('vote_option_tree_depth', defaults.vote_option_tree_depth),
        message_batch_size=poll_data.get('message_batch_size', defaults.message_batch_size),
        vote_options=poll_data.get('vote_options', defaults.vote_options),
        mode=mode,
        log_level=logging_data.get('level', defaults.log_level),
        log_file=logging_data.get('file'),
        output_dir=Path(config_data.get('output_dir', defaults.output_dir)),
    )


def save_config(config: EngineConfig, config_path: Optional[Path] = None):
    """Save configuration to a YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    config_data = {
        'registry': {
            'state_tree_depth': config.state_tree_depth,
            'initial_voice_credits': config.initial_voice_credits,
        },
        'poll': {
            'int_state_tree_depth': config.int_state_tree_depth,
            'vote_option_tree_depth': config.vote_option_tree_depth,
            'message_batch_size': config.message_batch_size,
            'vote_options': config.vote_options,
            'mode': config.mode.value,
        },
        'logging': {
            'level': config.log_level,
            'file': str(config.log_file) if config.log_file else None,
        },
        'output_dir': str(config.output_dir),
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
