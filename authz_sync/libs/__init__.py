"""
authz-sync Library

Core utilities, object stores, reconciliation logic and the controller that
drives it.
"""

# Core libraries
from .core import (
    KubeAuth, ConfigManager,
    AuthzSyncError, AuthenticationError, ConfigurationError, StoreError,
    NotFoundError, ConflictError, AlreadyExistsError, CycleError, InvariantError,
    KubernetesConstants, IndexConstants, NetworkConstants, FileConstants, ErrorMessages
)

# Store libraries
from .store import MemoryStore, KubeStore, Indexer

# Reconciliation libraries
from .authz import (
    AuthzManager, TemplateResolver, RoleSynchronizer, BindingSynchronizer,
    register_indexes, register
)

# Controller libraries
from .controller import LifecycleRegistry, Controller

# Main application
from .main_app import AuthzSyncApp, main

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
