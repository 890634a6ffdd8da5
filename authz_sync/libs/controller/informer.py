"""
Informers

List-then-watch loops feeding the KubeStore caches and the lifecycle registry.
One thread runs per watched kind; every cache is primed before any handler
runs so that index queries always see a synced cache.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

try:
    from kubernetes import watch
    from kubernetes.client.rest import ApiException
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")

from ..core.constants import KubernetesConstants, LifecycleEvent, NetworkConstants
from ..core.exceptions import InvariantError, StoreError
from ..store.indexer import object_key
from ..store.kube import KubeStore
from .hooks import LifecycleRegistry

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName

# Declarations and their inputs first, then the derived kinds whose caches the
# synchronizers read
WATCHED_KINDS = [
    Kinds.ROLE_TEMPLATES,
    Kinds.PROJECTS,
    Kinds.NAMESPACES,
    Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS,
    Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS,
    Kinds.CLUSTER_ROLES,
    Kinds.ROLE_BINDINGS,
    Kinds.CLUSTER_ROLE_BINDINGS,
]


class Informer:
    """Watches one kind, applies events to the store cache and dispatches them"""

    def __init__(self, store: KubeStore, kind: str, registry: LifecycleRegistry,
                 stop_event: threading.Event,
                 watch_timeout: int = NetworkConstants.WATCH_TIMEOUT):
        self.store = store
        self.kind = kind
        self.registry = registry
        self.stop_event = stop_event
        self.watch_timeout = watch_timeout
        self.resource_version: Optional[str] = None
        self._watcher: Optional[watch.Watch] = None
        self._lock = threading.Lock()

    def prime(self) -> None:
        self.resource_version = self.store.prime(self.kind)
        logger.info(f"Cache for {self.kind} synced at resourceVersion {self.resource_version}")

    def dispatch_initial(self) -> None:
        """Deliver a create for every object present at startup"""
        for obj in self.store.list(self.kind):
            self.registry.dispatch(self.kind, LifecycleEvent.CREATE, obj)

    def relist(self) -> None:
        """
        Re-list after the watch's resourceVersion expired.

        Objects that disappeared meanwhile get a remove; every other object
        gets an update, which handlers treat like any other reconciliation.
        """
        before = {object_key(obj): obj for obj in self.store.list(self.kind)}
        self.prime()
        after = {object_key(obj): obj for obj in self.store.list(self.kind)}
        for key in sorted(set(before) - set(after)):
            self.registry.dispatch(self.kind, LifecycleEvent.REMOVE, before[key])
        for key in sorted(after):
            self.registry.dispatch(self.kind, LifecycleEvent.UPDATE, after[key])

    def handle_event(self, event: Dict[str, Any]) -> None:
        event_type = str(event.get('type', ''))
        if event_type == 'ERROR':
            logger.warning(f"Watch error event for {self.kind}: {event.get('raw_object')}")
            return
        obj = event.get('object')
        if obj is None:
            return
        obj = self.store.to_dict(obj)
        resource_version = (obj.get('metadata') or {}).get('resourceVersion')
        if resource_version:
            self.resource_version = resource_version

        lifecycle_event = LifecycleEvent.from_watch_type(event_type)
        if lifecycle_event is None:
            logger.debug(f"Ignoring {event_type} event for {self.kind}")
            return
        self.store.apply_event(self.kind, event_type, obj)
        self.registry.dispatch(self.kind, lifecycle_event, obj)

    def stop(self) -> None:
        with self._lock:
            if self._watcher is not None:
                self._watcher.stop()

    def run(self) -> None:
        """
        Watch until the stop event is set, relisting on 410 Gone

        Raises:
            InvariantError: A handler found a programming error; the shared
                stop event is set first so every other informer stops too
        """
        try:
            self.dispatch_initial()
            self._watch()
        except InvariantError as e:
            logger.critical(f"Invariant violated while handling {self.kind}, stopping all informers: {e}")
            self.stop_event.set()
            raise
        logger.debug(f"Informer for {self.kind} stopped")

    def _watch(self) -> None:
        backoff_seconds = NetworkConstants.DEFAULT_BACKOFF_SECONDS

        while not self.stop_event.is_set():
            watcher = watch.Watch()
            with self._lock:
                self._watcher = watcher
            try:
                stream = watcher.stream(
                    self.store.watch_call(self.kind),
                    resource_version=self.resource_version,
                    timeout_seconds=self.watch_timeout,
                    _request_timeout=self.watch_timeout + self.store.request_timeout
                )
                for event in stream:
                    if self.stop_event.is_set():
                        break
                    self.handle_event(event)
                backoff_seconds = NetworkConstants.DEFAULT_BACKOFF_SECONDS
            except ApiException as e:
                if e.status == NetworkConstants.GONE:
                    logger.warning(f"Watch of {self.kind} expired, re-listing")
                    try:
                        self.relist()
                    except StoreError as relist_error:
                        logger.error(f"Failed to re-list {self.kind}: {relist_error}")
                        self.resource_version = None
                        self.stop_event.wait(backoff_seconds)
                    continue
                logger.error(f"Watch of {self.kind} failed with status {e.status}: {e.reason}")
                self.stop_event.wait(backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, NetworkConstants.MAX_BACKOFF_SECONDS)
            except InvariantError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected error watching {self.kind}: {e}")
                self.stop_event.wait(backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, NetworkConstants.MAX_BACKOFF_SECONDS)
            finally:
                watcher.stop()
                with self._lock:
                    if self._watcher is watcher:
                        self._watcher = None


class Controller:
    """Primes every informer, then runs each on its own thread"""

    def __init__(self, store: KubeStore, registry: LifecycleRegistry,
                 kinds: Optional[List[str]] = None,
                 watch_timeout: int = NetworkConstants.WATCH_TIMEOUT):
        self.stop_event = threading.Event()
        self.informers = [
            Informer(store, kind, registry, self.stop_event, watch_timeout)
            for kind in (kinds or WATCHED_KINDS)
        ]
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        """
        Prime every cache, then start one watch thread per kind

        Raises:
            StoreError: If a kind could not be listed; no thread is started
        """
        for informer in self.informers:
            informer.prime()
        for informer in self.informers:
            thread = threading.Thread(target=informer.run, name=f"informer-{informer.kind}",
                                      daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {len(self._threads)} informer(s)")

    def stop(self) -> None:
        self.stop_event.set()
        for informer in self.informers:
            informer.stop()

    def wait(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)
