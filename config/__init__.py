"""Configuration management for the vote-processing engine."""

from .config import (
    ConfigurationError,
    VotingMode,
    TreeDepths,
    BatchSizes,
    PollConfig,
    EngineConfig,
    load_config,
    save_config,
)

__all__ = [
    'ConfigurationError',
    'VotingMode',
    'TreeDepths',
    'BatchSizes',
    'PollConfig',
    'EngineConfig',
    'load_config',
    'save_config',
]
