"""Utilities for the vote-processing engine."""

from .utils import (
    setup_logging,
    save_output,
    load_output,
    stringify_ints,
    canonical_json,
    structurally_equal,
    PerformanceMonitor,
    format_duration,
    get_system_info
)

__all__ = [
    'setup_logging',
    'save_output',
    'load_output',
    'stringify_ints',
    'canonical_json',
    'structurally_equal',
    'PerformanceMonitor',
    'format_duration',
    'get_system_info'
]
