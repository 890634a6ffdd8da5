"""
authz-sync

Reconciles hierarchical role templates and project / cluster role template
bindings into the ClusterRoles, RoleBindings and ClusterRoleBindings that grant
users the permissions their assignments imply.
"""

__version__ = "1.0.0"

from .libs import (
    # Core
    KubeAuth, ConfigManager, AuthzSyncError, AuthenticationError, ConfigurationError,
    StoreError, NotFoundError, ConflictError, AlreadyExistsError, CycleError, InvariantError,
    KubernetesConstants, IndexConstants, NetworkConstants, FileConstants, ErrorMessages,
    # Store
    MemoryStore, KubeStore, Indexer,
    # Authz
    AuthzManager, TemplateResolver, RoleSynchronizer, BindingSynchronizer, register_indexes, register,
    # Controller
    LifecycleRegistry, Controller,
    # Main
    AuthzSyncApp, main
)

__all__ = [
    # Core
    'KubeAuth',
    'ConfigManager',
    'AuthzSyncError',
    'AuthenticationError',
    'ConfigurationError',
    'StoreError',
    'NotFoundError',
    'ConflictError',
    'AlreadyExistsError',
    'CycleError',
    'InvariantError',
    'KubernetesConstants',
    'IndexConstants',
    'NetworkConstants',
    'FileConstants',
    'ErrorMessages',
    # Store
    'MemoryStore',
    'KubeStore',
    'Indexer',
    # Authz
    'AuthzManager',
    'TemplateResolver',
    'RoleSynchronizer',
    'BindingSynchronizer',
    'register_indexes',
    'register',
    # Controller
    'LifecycleRegistry',
    'Controller',
    # Main
    'AuthzSyncApp',
    'main'
]
