"""
Store Libraries

Object store implementations and the indexed cache they share.
"""

from .indexer import Indexer, object_key
from .memory import MemoryStore, StoreAction, matches_labels
from .kube import KubeStore, format_label_selector

__all__ = [
    'Indexer',
    'object_key',
    'MemoryStore',
    'StoreAction',
    'matches_labels',
    'KubeStore',
    'format_label_selector'
]
