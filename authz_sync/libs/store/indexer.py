"""
Object Indexer

Thread-safe object cache with named secondary indexes, modeled on the
client-go cache.Indexer: objects are stored under a namespace/name key and
every registered index function maps an object to zero or more lookup keys.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Set

from ..core.exceptions import InvariantError
from ..core.protocols import IndexFunc

logger = logging.getLogger(__name__)


def object_key(obj: Dict[str, Any]) -> str:
    """Return the cache key of an object: 'namespace/name' or 'name' for cluster scope"""
    metadata = obj.get('metadata') or {}
    name = metadata.get('name')
    if not name:
        raise InvariantError(f"Cannot index object without metadata.name: {obj!r}")
    namespace = metadata.get('namespace')
    return f"{namespace}/{name}" if namespace else name


class Indexer:
    """Cache of one kind of object with named secondary indexes"""

    def __init__(self, kind: str):
        self.kind = kind
        self._lock = threading.RLock()
        self._items: Dict[str, Dict[str, Any]] = {}
        self._indexers: Dict[str, IndexFunc] = {}
        # index name -> index key -> set of object keys
        self._indices: Dict[str, Dict[str, Set[str]]] = {}

    def add_indexers(self, indexers: Dict[str, IndexFunc]) -> None:
        """
        Register index functions; existing items are indexed immediately

        Raises:
            InvariantError: If an index name is registered twice
        """
        with self._lock:
            for name, func in indexers.items():
                if name in self._indexers:
                    raise InvariantError(f"Index {name} already registered for {self.kind}")
                self._indexers[name] = func
                self._indices[name] = {}
                for key, obj in self._items.items():
                    self._index_one(name, func, key, obj)

    def _index_one(self, index_name: str, func: IndexFunc, key: str, obj: Dict[str, Any]) -> None:
        try:
            values = func(obj)
        except Exception as e:
            logger.critical(
                f"Index function {index_name} failed for {self.kind} {key}: {e}; object: {obj!r}"
            )
            raise InvariantError(f"Index function {index_name} failed for {self.kind} {key}: {e}") from e
        if not isinstance(values, (list, tuple, set)):
            logger.critical(
                f"Index function {index_name} returned {type(values).__name__} for {self.kind} {key}"
            )
            raise InvariantError(f"Malformed index entry from {index_name} for {self.kind} {key}")
        index = self._indices[index_name]
        for value in values:
            index.setdefault(value, set()).add(key)

    def _unindex(self, key: str) -> None:
        for index in self._indices.values():
            for value in list(index):
                members = index[value]
                members.discard(key)
                if not members:
                    del index[value]

    def add(self, obj: Dict[str, Any]) -> None:
        """Insert or replace an object and refresh its index entries"""
        key = object_key(obj)
        stored = copy.deepcopy(obj)
        with self._lock:
            if key in self._items:
                self._unindex(key)
            self._items[key] = stored
            for name, func in self._indexers.items():
                self._index_one(name, func, key, stored)

    update = add

    def delete(self, obj: Dict[str, Any]) -> None:
        """Remove an object and its index entries; absent objects are ignored"""
        key = object_key(obj)
        with self._lock:
            if self._items.pop(key, None) is not None:
                self._unindex(key)

    def replace(self, objects: List[Dict[str, Any]]) -> None:
        """Replace the whole content, as done after a fresh list"""
        with self._lock:
            self._items = {}
            self._indices = {name: {} for name in self._indexers}
            for obj in objects:
                self.add(obj)

    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            obj = self._items.get(key)
            return copy.deepcopy(obj) if obj is not None else None

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(obj) for obj in self._items.values()]

    def by_index(self, index_name: str, key: str) -> List[Dict[str, Any]]:
        """
        Return copies of the objects whose index function yielded the key

        Raises:
            InvariantError: If the index was never registered
        """
        with self._lock:
            if index_name not in self._indexers:
                logger.critical(
                    f"Query against undeclared index {index_name} for {self.kind} (key {key!r}); "
                    f"declared indexes: {sorted(self._indexers)}"
                )
                raise InvariantError(f"Index {index_name} is not declared for {self.kind}")
            members = self._indices[index_name].get(key, set())
            return [copy.deepcopy(self._items[member]) for member in sorted(members)]
