"""Cluster stage core: vectorization, grouping and topic persistence."""

from .contracts import ClusterResult, QueuedItem
from .logic import ClusterLogic
from .store import ClusterStore

__all__ = [
    "ClusterLogic",
    "ClusterResult",
    "ClusterStore",
    "QueuedItem",
]
