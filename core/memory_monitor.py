"""
Memory monitoring for the reattribution pipeline.

Exact weight tables hold O(cells * count^2) Fractions, so memory is
checkpointed around their construction.
"""

import logging
from typing import Dict, Any

import psutil

logger = logging.getLogger(__name__)


class MemoryMonitor:
    """Record process and system memory at named checkpoints."""

    def __init__(self):
        self._process = psutil.Process()
        self._checkpoints: Dict[str, Dict[str, Any]] = {}

    def checkpoint(self, label: str) -> Dict[str, float]:
        """
        Log current memory usage.

        Args:
            label: Description of current checkpoint

        Returns:
            Dict with memory statistics (MB and %)
        """
        vm = psutil.virtual_memory()
        rss_mb = self._process.memory_info().rss / (1024**2)

        stats = {
            'label': label,
            'rss_mb': rss_mb,
            'system_percent': vm.percent,
            'available_gb': vm.available / (1024**3),
        }

        logger.info(
            f"[MEMORY] {label}: rss={rss_mb:.1f} MB, "
            f"system={vm.percent:.1f}%, available={stats['available_gb']:.2f} GB"
        )

        self._checkpoints[label] = stats
        return stats

    def delta_mb(self, start_label: str, end_label: str) -> float:
        """RSS growth between two recorded checkpoints."""
        if start_label not in self._checkpoints or end_label not in self._checkpoints:
            raise KeyError(f"Unknown checkpoint: {start_label!r} or {end_label!r}")
        return self._checkpoints[end_label]['rss_mb'] - self._checkpoints[start_label]['rss_mb']
