"""
Kubernetes Store

ObjectStore implementation backed by the Kubernetes API. Reads of cached kinds
are served from informer-fed Indexers; writes go to the API server with a
request timeout and are written through to the cache so the rest of a
reconciliation pass sees them immediately.
"""

import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

try:
    from kubernetes import client
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")

from ..core.constants import KubernetesConstants, NetworkConstants
from ..core.exceptions import InvariantError, NotFoundError
from ..core.protocols import IndexFunc
from ..core.utils import handle_api_error, format_scope
from .indexer import Indexer
from .memory import matches_labels

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName


class KindOperations(NamedTuple):
    """API calls for one kind; namespaced calls take the namespace as keyword"""
    namespaced: bool
    get: Callable[..., Any]
    list_all: Callable[..., Any]
    list_namespaced: Optional[Callable[..., Any]]
    create: Callable[..., Any]
    replace: Callable[..., Any]
    delete: Callable[..., Any]


def format_label_selector(label_selector: Optional[Dict[str, Optional[str]]]) -> Optional[str]:
    """Render an equality selector as a Kubernetes label selector string"""
    if not label_selector:
        return None
    parts = []
    for label, value in sorted(label_selector.items()):
        parts.append(label if value is None else f"{label}={value}")
    return ','.join(parts)


class KubeStore:
    """ObjectStore backed by the Kubernetes API server"""

    def __init__(self, rbac_api: client.RbacAuthorizationV1Api, core_api: client.CoreV1Api,
                 custom_api: client.CustomObjectsApi,
                 request_timeout: float = NetworkConstants.DEFAULT_TIMEOUT):
        """
        Initialize the store

        Args:
            rbac_api: Kubernetes RbacAuthorizationV1Api client
            core_api: Kubernetes CoreV1Api client
            custom_api: Kubernetes CustomObjectsApi client
            request_timeout: Timeout in seconds applied to every API call
        """
        self.rbac_api = rbac_api
        self.core_api = core_api
        self.custom_api = custom_api
        self.request_timeout = request_timeout
        self._api_client = client.ApiClient()
        self._caches: Dict[str, Indexer] = {}
        self._synced = set()
        self._operations = self._build_operations()

    def _build_operations(self) -> Dict[str, KindOperations]:
        rbac = self.rbac_api
        core = self.core_api
        custom = self.custom_api
        group = KubernetesConstants.MANAGEMENT_API_GROUP
        version = KubernetesConstants.MANAGEMENT_API_VERSION

        def custom_cluster_ops(plural: str) -> KindOperations:
            common = {'group': group, 'version': version, 'plural': plural}
            return KindOperations(
                namespaced=False,
                get=lambda name, **kw: custom.get_cluster_custom_object(name=name, **common, **kw),
                list_all=lambda **kw: custom.list_cluster_custom_object(**common, **kw),
                list_namespaced=None,
                create=lambda body, **kw: custom.create_cluster_custom_object(body=body, **common, **kw),
                replace=lambda name, body, **kw: custom.replace_cluster_custom_object(
                    name=name, body=body, **common, **kw),
                delete=lambda name, **kw: custom.delete_cluster_custom_object(name=name, **common, **kw)
            )

        def custom_namespaced_ops(plural: str) -> KindOperations:
            common = {'group': group, 'version': version, 'plural': plural}
            return KindOperations(
                namespaced=True,
                get=lambda name, namespace, **kw: custom.get_namespaced_custom_object(
                    name=name, namespace=namespace, **common, **kw),
                list_all=lambda **kw: custom.list_cluster_custom_object(**common, **kw),
                list_namespaced=lambda namespace, **kw: custom.list_namespaced_custom_object(
                    namespace=namespace, **common, **kw),
                create=lambda body, namespace, **kw: custom.create_namespaced_custom_object(
                    body=body, namespace=namespace, **common, **kw),
                replace=lambda name, body, namespace, **kw: custom.replace_namespaced_custom_object(
                    name=name, body=body, namespace=namespace, **common, **kw),
                delete=lambda name, namespace, **kw: custom.delete_namespaced_custom_object(
                    name=name, namespace=namespace, **common, **kw)
            )

        return {
            Kinds.CLUSTER_ROLES: KindOperations(
                namespaced=False,
                get=rbac.read_cluster_role,
                list_all=rbac.list_cluster_role,
                list_namespaced=None,
                create=rbac.create_cluster_role,
                replace=rbac.replace_cluster_role,
                delete=rbac.delete_cluster_role
            ),
            Kinds.CLUSTER_ROLE_BINDINGS: KindOperations(
                namespaced=False,
                get=rbac.read_cluster_role_binding,
                list_all=rbac.list_cluster_role_binding,
                list_namespaced=None,
                create=rbac.create_cluster_role_binding,
                replace=rbac.replace_cluster_role_binding,
                delete=rbac.delete_cluster_role_binding
            ),
            Kinds.ROLE_BINDINGS: KindOperations(
                namespaced=True,
                get=rbac.read_namespaced_role_binding,
                list_all=rbac.list_role_binding_for_all_namespaces,
                list_namespaced=rbac.list_namespaced_role_binding,
                create=rbac.create_namespaced_role_binding,
                replace=rbac.replace_namespaced_role_binding,
                delete=rbac.delete_namespaced_role_binding
            ),
            Kinds.NAMESPACES: KindOperations(
                namespaced=False,
                get=core.read_namespace,
                list_all=core.list_namespace,
                list_namespaced=None,
                create=core.create_namespace,
                replace=core.replace_namespace,
                delete=core.delete_namespace
            ),
            Kinds.ROLE_TEMPLATES: custom_cluster_ops(Kinds.ROLE_TEMPLATES.value),
            Kinds.PROJECTS: custom_namespaced_ops(Kinds.PROJECTS.value),
            Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS: custom_namespaced_ops(
                Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS.value),
            Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS: custom_namespaced_ops(
                Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS.value),
        }

    def _ops(self, kind: str) -> KindOperations:
        try:
            return self._operations[kind]
        except KeyError:
            raise InvariantError(f"Unsupported kind: {kind}")

    def _cache(self, kind: str) -> Indexer:
        if kind not in self._caches:
            self._caches[kind] = Indexer(str(kind))
        return self._caches[kind]

    def to_dict(self, obj: Any) -> Dict[str, Any]:
        """Convert a typed API model (or a custom-object dict) to a plain dict"""
        if isinstance(obj, dict):
            return obj
        return self._api_client.sanitize_for_serialization(obj)

    def _items(self, response: Any) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        data = self.to_dict(response)
        items = data.get('items') or []
        resource_version = (data.get('metadata') or {}).get('resourceVersion')
        return items, resource_version

    # Informer support

    def is_synced(self, kind: str) -> bool:
        return kind in self._synced

    def list_from_api(self, kind: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        List every object of a kind from the API server

        Returns:
            Tuple of (items, list resourceVersion)
        """
        ops = self._ops(kind)
        try:
            response = ops.list_all(_request_timeout=self.request_timeout)
        except Exception as e:
            handle_api_error(e, 'list', str(kind), timeout=self.request_timeout)
        return self._items(response)

    def prime(self, kind: str) -> Optional[str]:
        """
        Fill the cache of a kind from a fresh list and mark it synced

        Returns:
            The list resourceVersion, to start a watch from
        """
        items, resource_version = self.list_from_api(kind)
        self._cache(kind).replace(items)
        self._synced.add(kind)
        logger.debug(f"Primed cache for {kind} with {len(items)} objects")
        return resource_version

    def watch_call(self, kind: str) -> Callable[..., Any]:
        """Return the list function a kubernetes.watch.Watch stream is opened on"""
        return self._ops(kind).list_all

    def apply_event(self, kind: str, event_type: str, obj: Dict[str, Any]) -> None:
        """Apply a watch event to the cache before it is dispatched to handlers"""
        cache = self._cache(kind)
        if event_type == 'DELETED':
            cache.delete(obj)
        else:
            cache.add(obj)

    # ObjectStore protocol

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        if self.is_synced(kind):
            key = f"{namespace}/{name}" if namespace else name
            obj = self._cache(kind).get_by_key(key)
            if obj is None:
                raise NotFoundError(f"{kind} {name}{format_scope(namespace)} not found",
                                    kind=kind, name=name, namespace=namespace)
            return obj

        ops = self._ops(kind)
        kwargs = {'namespace': namespace} if ops.namespaced else {}
        try:
            response = ops.get(name=name, _request_timeout=self.request_timeout, **kwargs)
        except Exception as e:
            handle_api_error(e, 'get', str(kind), name, namespace, self.request_timeout)
        return self.to_dict(response)

    def list(self, kind: str, namespace: Optional[str] = None,
             label_selector: Optional[Dict[str, Optional[str]]] = None) -> List[Dict[str, Any]]:
        if self.is_synced(kind):
            return [
                obj for obj in self._cache(kind).list()
                if (namespace is None or obj['metadata'].get('namespace') == namespace)
                and matches_labels(obj, label_selector)
            ]

        ops = self._ops(kind)
        kwargs = {'_request_timeout': self.request_timeout}
        selector = format_label_selector(label_selector)
        if selector:
            kwargs['label_selector'] = selector
        try:
            if namespace is not None and ops.list_namespaced is not None:
                response = ops.list_namespaced(namespace=namespace, **kwargs)
            else:
                response = ops.list_all(**kwargs)
        except Exception as e:
            handle_api_error(e, 'list', str(kind), namespace=namespace, timeout=self.request_timeout)
        items, _ = self._items(response)
        return items

    def create(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        ops = self._ops(kind)
        metadata = obj.get('metadata') or {}
        namespace = metadata.get('namespace')
        kwargs = {'namespace': namespace} if ops.namespaced else {}
        try:
            response = ops.create(body=obj, _request_timeout=self.request_timeout, **kwargs)
        except Exception as e:
            handle_api_error(e, 'create', str(kind), metadata.get('name', ''), namespace,
                             self.request_timeout)
        created = self.to_dict(response)
        if self.is_synced(kind):
            self._cache(kind).add(created)
        return created

    def update(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        ops = self._ops(kind)
        metadata = obj.get('metadata') or {}
        namespace = metadata.get('namespace')
        kwargs = {'namespace': namespace} if ops.namespaced else {}
        try:
            response = ops.replace(name=metadata['name'], body=obj,
                                   _request_timeout=self.request_timeout, **kwargs)
        except Exception as e:
            handle_api_error(e, 'update', str(kind), metadata.get('name', ''), namespace,
                             self.request_timeout)
        updated = self.to_dict(response)
        if self.is_synced(kind):
            self._cache(kind).update(updated)
        return updated

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        ops = self._ops(kind)
        kwargs = {'namespace': namespace} if ops.namespaced else {}
        try:
            ops.delete(name=name, _request_timeout=self.request_timeout, **kwargs)
        except Exception as e:
            handle_api_error(e, 'delete', str(kind), name, namespace, self.request_timeout)
        if self.is_synced(kind):
            self._cache(kind).delete({'metadata': {'name': name, 'namespace': namespace}})

    def add_indexers(self, kind: str, indexers: Dict[str, IndexFunc]) -> None:
        self._cache(kind).add_indexers(indexers)

    def by_index(self, kind: str, index_name: str, key: str) -> List[Dict[str, Any]]:
        if not self.is_synced(kind):
            logger.critical(f"Index query {index_name} on {kind} before its cache was primed")
            raise InvariantError(f"Cache for {kind} is not synced")
        return self._cache(kind).by_index(index_name, key)
