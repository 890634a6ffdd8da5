"""
In-Memory Store

Reference implementation of the ObjectStore protocol backed by one Indexer per
kind. Used by the simulate command and the test suite; it enforces the same
NotFound / AlreadyExists / Conflict semantics as the Kubernetes API.
"""

import copy
import itertools
import logging
import threading
import uuid
from typing import Any, Dict, List, NamedTuple, Optional

from ..core.exceptions import AlreadyExistsError, ConflictError, NotFoundError
from ..core.protocols import IndexFunc
from ..core.utils import format_scope
from .indexer import Indexer, object_key

logger = logging.getLogger(__name__)


class StoreAction(NamedTuple):
    """A write performed against the store"""
    verb: str
    kind: str
    key: str


def matches_labels(obj: Dict[str, Any], label_selector: Optional[Dict[str, Optional[str]]]) -> bool:
    """
    Check an object's labels against an equality selector.

    A selector value of None only requires the label to be present.
    """
    if not label_selector:
        return True
    labels = (obj.get('metadata') or {}).get('labels') or {}
    for label, value in label_selector.items():
        if label not in labels:
            return False
        if value is not None and labels[label] != value:
            return False
    return True


class MemoryStore:
    """ObjectStore implementation holding every object in process memory"""

    def __init__(self):
        self._lock = threading.RLock()
        self._indexers: Dict[str, Indexer] = {}
        self._versions = itertools.count(1)
        self.actions: List[StoreAction] = []

    def _indexer(self, kind: str) -> Indexer:
        with self._lock:
            if kind not in self._indexers:
                self._indexers[kind] = Indexer(str(kind))
            return self._indexers[kind]

    @staticmethod
    def _key(name: str, namespace: Optional[str]) -> str:
        return f"{namespace}/{name}" if namespace else name

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        obj = self._indexer(kind).get_by_key(self._key(name, namespace))
        if obj is None:
            raise NotFoundError(f"{kind} {name}{format_scope(namespace)} not found",
                                kind=kind, name=name, namespace=namespace)
        return obj

    def list(self, kind: str, namespace: Optional[str] = None,
             label_selector: Optional[Dict[str, Optional[str]]] = None) -> List[Dict[str, Any]]:
        result = []
        for obj in self._indexer(kind).list():
            if namespace is not None and obj['metadata'].get('namespace') != namespace:
                continue
            if matches_labels(obj, label_selector):
                result.append(obj)
        return result

    def create(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        indexer = self._indexer(kind)
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault('metadata', {})
        key = object_key(stored)
        with self._lock:
            if indexer.get_by_key(key) is not None:
                raise AlreadyExistsError(
                    f"{kind} {metadata['name']}{format_scope(metadata.get('namespace'))} already exists",
                    kind=kind, name=metadata['name'], namespace=metadata.get('namespace')
                )
            metadata.setdefault('uid', str(uuid.uuid4()))
            metadata['resourceVersion'] = str(next(self._versions))
            indexer.add(stored)
            self.actions.append(StoreAction('create', str(kind), key))
        return copy.deepcopy(stored)

    def update(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        indexer = self._indexer(kind)
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault('metadata', {})
        key = object_key(stored)
        context = {'kind': kind, 'name': metadata['name'], 'namespace': metadata.get('namespace')}
        with self._lock:
            current = indexer.get_by_key(key)
            if current is None:
                raise NotFoundError(f"{kind} {key} not found", **context)
            requested = metadata.get('resourceVersion')
            if requested and requested != current['metadata'].get('resourceVersion'):
                raise ConflictError(f"{kind} {key} was modified concurrently", **context)
            metadata['uid'] = current['metadata'].get('uid')
            metadata['resourceVersion'] = str(next(self._versions))
            indexer.update(stored)
            self.actions.append(StoreAction('update', str(kind), key))
        return copy.deepcopy(stored)

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        indexer = self._indexer(kind)
        key = self._key(name, namespace)
        with self._lock:
            current = indexer.get_by_key(key)
            if current is None:
                raise NotFoundError(f"{kind} {name}{format_scope(namespace)} not found",
                                    kind=kind, name=name, namespace=namespace)
            indexer.delete(current)
            self.actions.append(StoreAction('delete', str(kind), key))

    def add_indexers(self, kind: str, indexers: Dict[str, IndexFunc]) -> None:
        self._indexer(kind).add_indexers(indexers)

    def by_index(self, kind: str, index_name: str, key: str) -> List[Dict[str, Any]]:
        return self._indexer(kind).by_index(index_name, key)

    def clear_actions(self) -> None:
        self.actions = []
