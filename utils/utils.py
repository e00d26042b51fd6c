"""
Utilities for the vote-processing engine
Logging setup, performance monitoring, JSON persistence and canonical forms
"""

import json
import logging
import platform
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import psutil


@dataclass
class PerformanceMetrics:
    operation: str
    duration_seconds: float
    cpu_percent: float
    memory_mb: float
    timestamp: float
    additional_data: Dict[str, Any] = None


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None):
    """Configure root logging to stderr and, optionally, a log file"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # Clear existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        handlers=handlers
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")

    return logger


class PerformanceMonitor:
    """Performance monitor with context manager support"""

    def __init__(self):
        self.metrics: List[PerformanceMetrics] = []
        self.process = psutil.Process()

    def start_operation(self, operation_name: str) -> 'OperationContext':
        """Start monitoring an operation - returns context manager"""
        return OperationContext(self, operation_name)

    def record_metric(self, metric: PerformanceMetrics):
        self.metrics.append(metric)

    def get_summary(self) -> Dict[str, Any]:
        """Per-operation duration and memory statistics"""
        if not self.metrics:
            return {
                'total_operations': 0,
                'total_duration': 0.0,
                'operations': {}
            }

        operation_groups: Dict[str, List[PerformanceMetrics]] = {}
        for metric in self.metrics:
            operation_groups.setdefault(metric.operation, []).append(metric)

        summary = {
            'total_operations': len(self.metrics),
            'operations': {}
        }

        for op_name, metrics in operation_groups.items():
            durations = np.array([m.duration_seconds for m in metrics])
            memory_usages = [m.memory_mb for m in metrics if m.memory_mb > 0]
            total = float(durations.sum())

            summary['operations'][op_name] = {
                'count': len(metrics),
                'total_duration': total,
                'avg_duration': float(np.mean(durations)),
                'min_duration': float(durations.min()),
                'max_duration': float(durations.max()),
                'std_duration': float(np.std(durations)) if len(durations) > 1 else 0.0,
                'peak_memory_mb': max(memory_usages) if memory_usages else 0.0,
                'throughput_ops_per_sec': len(metrics) / total if total > 0 else 0.0
            }

        summary['total_duration'] = sum(
            op_data['total_duration']
            for op_data in summary['operations'].values()
        )

        return summary

    def save_metrics(self, filepath: Path):
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        metrics_data = {
            'metrics': [asdict(m) for m in self.metrics],
            'summary': self.get_summary(),
            'system_info': get_system_info(),
            'timestamp': datetime.now().isoformat()
        }

        with open(filepath, 'w') as f:
            json.dump(metrics_data, f, indent=2, default=str)


class OperationContext:
    """Context manager for performance monitoring"""

    def __init__(self, monitor: PerformanceMonitor, operation_name: str):
        self.monitor = monitor
        self.operation_name = operation_name
        self.start_time = None
        self.start_cpu = 0.0
        self.start_memory = 0.0

    def __enter__(self):
        self.start_time = time.time()
        self.start_cpu = self.monitor.process.cpu_percent()
        self.start_memory = self.monitor.process.memory_info().rss / 1024 / 1024
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        end_cpu = self.monitor.process.cpu_percent()
        end_memory = self.monitor.process.memory_info().rss / 1024 / 1024

        metric = PerformanceMetrics(
            operation=self.operation_name,
            duration_seconds=duration,
            cpu_percent=end_cpu,
            memory_mb=max(self.start_memory, end_memory),
            timestamp=self.start_time,
            additional_data={'exception': exc_type is not None}
        )

        self.monitor.record_metric(metric)


def get_system_info() -> Dict[str, Any]:
    vm = psutil.virtual_memory()
    return {
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'machine': platform.machine(),
        'cpu_count_logical': psutil.cpu_count(logical=True),
        'total_memory_gb': round(vm.total / 1024 / 1024 / 1024, 2),
        'timestamp': datetime.now().isoformat()
    }


def stringify_ints(obj: Any) -> Any:
    """Recursively turn ints into decimal strings, the circuit input encoding"""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: stringify_ints(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify_ints(v) for v in obj]
    return obj


def canonical_json(data: Any) -> str:
    """Canonical serialized form used for structural equality"""
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def structurally_equal(a: Any, b: Any) -> bool:
    """Compare two objects through their to_json() canonical forms"""
    if type(a) is not type(b):
        return False
    return canonical_json(a.to_json()) == canonical_json(b.to_json())


def save_output(data: Dict[str, Any], filepath: Path):
    """Write a JSON document, creating parent directories"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)

    logging.getLogger(__name__).info(f"Output saved to {filepath}")


def load_output(filepath: Path) -> Dict[str, Any]:
    with open(filepath, 'r') as f:
        return json.load(f)


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format"""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.1f}s"


__all__ = [
    'PerformanceMetrics',
    'PerformanceMonitor',
    'OperationContext',
    'setup_logging',
    'get_system_info',
    'stringify_ints',
    'canonical_json',
    'structurally_equal',
    'save_output',
    'load_output',
    'format_duration',
]
