"""
Core Libraries

Shared functionality and utilities for the authz-sync engine.
"""

from .auth import KubeAuth
from .config import ConfigManager
from .constants import (
    KubernetesConstants, IndexConstants, LifecycleEvent, HookNames,
    NetworkConstants, FileConstants, ErrorMessages
)
from .exceptions import (
    AuthzSyncError, AuthenticationError, ConfigurationError, StoreError,
    NotFoundError, ConflictError, AlreadyExistsError, CycleError, InvariantError
)
from .models import (
    RoleTemplate, ProjectRoleTemplateBinding, ClusterRoleTemplateBinding,
    Project, Namespace, MODEL_BY_KIND
)
from .protocols import ObjectStore, LifecycleHandler, AuthProvider, ConfigProvider, IndexFunc
from .utils import (
    setup_logging, validate_cluster_url,
    format_scope, handle_api_error, mask_sensitive_info
)

__all__ = [
    # Main classes
    'KubeAuth',
    'ConfigManager',
    # Constants
    'KubernetesConstants',
    'IndexConstants',
    'LifecycleEvent',
    'HookNames',
    'NetworkConstants',
    'FileConstants',
    'ErrorMessages',
    # Exceptions
    'AuthzSyncError',
    'AuthenticationError',
    'ConfigurationError',
    'StoreError',
    'NotFoundError',
    'ConflictError',
    'AlreadyExistsError',
    'CycleError',
    'InvariantError',
    # Models
    'RoleTemplate',
    'ProjectRoleTemplateBinding',
    'ClusterRoleTemplateBinding',
    'Project',
    'Namespace',
    'MODEL_BY_KIND',
    # Protocols
    'ObjectStore',
    'LifecycleHandler',
    'AuthProvider',
    'ConfigProvider',
    'IndexFunc',
    # Utilities
    'setup_logging',
    'validate_cluster_url',
    'format_scope',
    'handle_api_error',
    'mask_sensitive_info'
]
