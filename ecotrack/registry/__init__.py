"""Persistent compatibility store.

Cumulative record of the ecosystem:
- Discovery snapshots (source and project counts over time)
- Project registry with per-project build history
- Per-track release download history
"""

from ecotrack.registry.store import (
    CompatibilityStore,
    StoreDecodeError,
    StoreError,
    StoreStats,
)

__all__ = [
    "CompatibilityStore",
    "StoreDecodeError",
    "StoreError",
    "StoreStats",
]
