"""Persisted mountmap."""

from aznfs.store.mountmap import MountmapEntry, MountmapError, MountmapStore, ReconcileReport

__all__ = [
    "MountmapEntry",
    "MountmapError",
    "MountmapStore",
    "ReconcileReport",
]
