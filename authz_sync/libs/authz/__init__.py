"""
Authorization Libraries

Template resolution, ClusterRole and binding synchronization, and the
lifecycle coordinators that drive them.
"""

from .bindings import BindingSynchronizer
from .indexes import INDEXERS, register_indexes
from .lifecycles import (
    ProjectLifecycle, ProjectRoleBindingLifecycle, ClusterRoleBindingLifecycle,
    RoleTemplateLifecycle, NamespaceLifecycle, register
)
from .manager import AuthzManager
from .resolver import TemplateResolver
from .roles import RoleSynchronizer

__all__ = [
    'BindingSynchronizer',
    'INDEXERS',
    'register_indexes',
    'ProjectLifecycle',
    'ProjectRoleBindingLifecycle',
    'ClusterRoleBindingLifecycle',
    'RoleTemplateLifecycle',
    'NamespaceLifecycle',
    'register',
    'AuthzManager',
    'TemplateResolver',
    'RoleSynchronizer'
]
