"""
Protocols and Interfaces

Defines protocols (interfaces) for dependency injection and type hints.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

try:
    from kubernetes import client
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")


IndexFunc = Callable[[Dict[str, Any]], List[str]]


class ObjectStore(Protocol):
    """Protocol for the cluster object store consumed by the reconciliation engine"""

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        """Get one object, raising NotFoundError if absent"""
        ...

    def list(self, kind: str, namespace: Optional[str] = None,
             label_selector: Optional[Dict[str, Optional[str]]] = None) -> List[Dict[str, Any]]:
        """List objects of a kind, optionally within a namespace and matching labels"""
        ...

    def create(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object, raising AlreadyExistsError on a name collision"""
        ...

    def update(self, kind: str, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Update an object, raising ConflictError on a stale resourceVersion"""
        ...

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        """Delete an object, raising NotFoundError if absent"""
        ...

    def add_indexers(self, kind: str, indexers: Dict[str, IndexFunc]) -> None:
        """Register secondary index functions for a kind"""
        ...

    def by_index(self, kind: str, index_name: str, key: str) -> List[Dict[str, Any]]:
        """Return objects of a kind whose index function yields the key"""
        ...


class LifecycleHandler(Protocol):
    """Protocol for coordinators registered with the lifecycle-hook framework"""

    def create(self, obj: Any) -> None:
        """React to an object appearing"""
        ...

    def updated(self, obj: Any) -> None:
        """React to an object changing"""
        ...

    def remove(self, obj: Any) -> None:
        """React to an object being removed"""
        ...


class AuthProvider(Protocol):
    """Protocol for cluster authentication providers"""

    def configure_auth(self, cluster_url: str = None, cluster_token: str = None) -> bool:
        """Configure authentication with provided URL and token, or discover from context"""
        ...

    def get_kubernetes_clients(self) -> Tuple[Optional[client.RbacAuthorizationV1Api],
                                              Optional[client.CoreV1Api],
                                              Optional[client.CustomObjectsApi]]:
        """Get initialized Kubernetes API clients"""
        ...

    def is_authenticated(self) -> bool:
        """Check if authentication is properly configured"""
        ...


class ConfigProvider(Protocol):
    """Protocol for configuration providers"""

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        ...

    def generate_config_template(self, output_dir: str = None) -> str:
        """Generate configuration template file"""
        ...

    def get_config_template_content(self) -> str:
        """Render the configuration template without writing it"""
        ...

    def get_value(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key"""
        ...
