"""
Constants Module

Centralized constants for the authz-sync engine to eliminate magic strings
and improve maintainability.
"""

from enum import Enum
from typing import Optional


class BaseStrEnum(str, Enum):
    """Base enum class that inherits from str"""

    def __str__(self) -> str:
        """Return the enum value as string"""
        return self.value

    def __repr__(self) -> str:
        """Return a detailed representation of the enum"""
        return f"{self.__class__.__name__}.{self.name}"


class KubernetesConstants:
    """Kubernetes-related constants"""

    # API Group constants
    MANAGEMENT_API_GROUP = "management.cattle.io"
    MANAGEMENT_API_VERSION = "v3"
    RBAC_API_GROUP = "rbac.authorization.k8s.io"
    CORE_API_GROUP = ""  # Core API group (empty string)

    # Label and annotation constants
    RTB_OWNER_LABEL = "authz.cluster.cattle.io/rtb-owner"
    PROJECT_NS_ACCESS_LABEL = "authz.cluster.cattle.io/project-ns-access"
    PROJECT_ID_ANNOTATION = "field.cattle.io/projectId"

    # Cluster constants
    DEFAULT_CLUSTER_NAME = "local"

    # Subject / roleRef kinds
    USER_KIND = "User"
    CLUSTER_ROLE_KIND = "ClusterRole"

    class RBACVerb(BaseStrEnum):
        """RBAC verbs used in generated role rules"""
        GET = "get"
        LIST = "list"
        WATCH = "watch"
        WILDCARD = "*"

    class ResourceName(BaseStrEnum):
        """Kinds handled by the store, named by their plural resource names"""
        # Management resources (watched)
        ROLE_TEMPLATES = "roletemplates"
        PROJECTS = "projects"
        PROJECT_ROLE_TEMPLATE_BINDINGS = "projectroletemplatebindings"
        CLUSTER_ROLE_TEMPLATE_BINDINGS = "clusterroletemplatebindings"

        # Core resources
        NAMESPACES = "namespaces"

        # RBAC resources (owned)
        CLUSTER_ROLES = "clusterroles"
        ROLE_BINDINGS = "rolebindings"
        CLUSTER_ROLE_BINDINGS = "clusterrolebindings"


class IndexConstants:
    """Secondary index names registered with the store"""

    PRTB_BY_PROJECT = "authz.cluster.cattle.io/prtb-by-project"
    PRTB_BY_PROJECT_USER = "authz.cluster.cattle.io/prtb-by-project-user"
    NS_BY_PROJECT = "authz.cluster.cattle.io/ns-by-project"
    CR_BY_NS = "authz.cluster.cattle.io/cr-by-ns"
    RB_BY_OWNER = "authz.cluster.cattle.io/rb-by-owner"
    CRB_BY_OWNER = "authz.cluster.cattle.io/crb-by-owner"


class LifecycleEvent(BaseStrEnum):
    """Operations delivered by the lifecycle-hook framework"""
    CREATE = "create"
    UPDATE = "updated"
    REMOVE = "remove"

    @classmethod
    def from_watch_type(cls, watch_type: str) -> Optional['LifecycleEvent']:
        """Map a Kubernetes watch event type to a lifecycle event; None for BOOKMARK and the like"""
        mapping = {
            "ADDED": cls.CREATE,
            "MODIFIED": cls.UPDATE,
            "DELETED": cls.REMOVE
        }
        return mapping.get(watch_type)


class HookNames(BaseStrEnum):
    """Names under which the coordinators are registered"""
    PROJECT = "project-namespace-auth"
    PROJECT_ROLE_BINDING = "cluster-prtb-sync"
    CLUSTER_ROLE_BINDING = "cluster-crtb-sync"
    ROLE_TEMPLATE = "cluster-roletemplate-sync"
    NAMESPACE = "namespace-auth"


class NetworkConstants:
    """Network-related constants"""

    # Timeout constants (seconds)
    DEFAULT_TIMEOUT = 30
    WATCH_TIMEOUT = 300

    # Hook retry defaults
    DEFAULT_MAX_RETRIES = 5
    DEFAULT_BACKOFF_SECONDS = 1.0
    MAX_BACKOFF_SECONDS = 60.0

    # HTTP status codes returned by the Kubernetes API
    NOT_FOUND = 404
    CONFLICT = 409
    GONE = 410


class ErrorMessages:
    """Centralized error message templates"""

    class StoreError(BaseStrEnum):
        """Store operation error message templates"""
        GET_FAILED = "Failed to get {kind} {name}{scope}: {error}"
        LIST_FAILED = "Failed to list {kind}{scope}: {error}"
        CREATE_FAILED = "Failed to create {kind} {name}{scope}: {error}"
        UPDATE_FAILED = "Failed to update {kind} {name}{scope}: {error}"
        DELETE_FAILED = "Failed to delete {kind} {name}{scope}: {error}"
        TIMEOUT = "Timed out after {timeout}s calling {operation} on {kind} {name}{scope}"

    class AuthError(BaseStrEnum):
        """Authentication-related error message templates"""
        NOT_CONFIGURED = "Authentication not configured. Configure authentication first."
        TOKEN_EXPIRED = "Authentication token has expired or is invalid."
        INSUFFICIENT_PERMISSIONS = "Insufficient permissions to access the requested resource."

    class SSLError(BaseStrEnum):
        """SSL-related error message templates"""
        VERIFICATION_DISABLED_WARNING = (
            "SSL verification disabled - connections will not verify certificates. "
            "This is insecure and should only be used in development environments"
        )

    class ConfigError(BaseStrEnum):
        """Configuration-related error message templates"""
        INVALID_URL = "Invalid cluster URL format: {url}"


class FileConstants:
    """File related constants"""

    DEFAULT_CONFIG_FILE = "authz-sync-config.yaml"
