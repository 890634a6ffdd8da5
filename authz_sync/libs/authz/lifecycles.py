"""
Lifecycle Coordinators

One coordinator per watched kind. Each receives its own model type from the
lifecycle registry and delegates to the AuthzManager; none keeps state between
invocations.
"""

import logging

from ..core.constants import HookNames, KubernetesConstants
from ..core.models import (
    ClusterRoleTemplateBinding, Namespace, Project, ProjectRoleTemplateBinding, RoleTemplate
)
from .manager import AuthzManager

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName


class ProjectLifecycle:
    """Keeps each project's namespace-access ClusterRole and its bindings"""

    def __init__(self, manager: AuthzManager):
        self.manager = manager

    def create(self, project: Project) -> None:
        self.manager.reconcile_project(project)

    def updated(self, project: Project) -> None:
        self.manager.reconcile_project(project)

    def remove(self, project: Project) -> None:
        logger.info(f"Project {project.project_id} removed, deleting its namespace access")
        self.manager.remove_project(project)


class ProjectRoleBindingLifecycle:
    """Binds a project declaration's roles in every namespace of the project"""

    def __init__(self, manager: AuthzManager):
        self.manager = manager

    def create(self, prtb: ProjectRoleTemplateBinding) -> None:
        self.manager.reconcile_prtb(prtb)

    def updated(self, prtb: ProjectRoleTemplateBinding) -> None:
        self.manager.reconcile_prtb(prtb)

    def remove(self, prtb: ProjectRoleTemplateBinding) -> None:
        logger.info(f"ProjectRoleTemplateBinding {prtb.name} removed, deleting its bindings")
        self.manager.remove_prtb(prtb)


class ClusterRoleBindingLifecycle:
    """Binds a cluster declaration's roles at cluster scope"""

    def __init__(self, manager: AuthzManager):
        self.manager = manager

    def create(self, crtb: ClusterRoleTemplateBinding) -> None:
        self.manager.reconcile_crtb(crtb)

    def updated(self, crtb: ClusterRoleTemplateBinding) -> None:
        self.manager.reconcile_crtb(crtb)

    def remove(self, crtb: ClusterRoleTemplateBinding) -> None:
        logger.info(f"ClusterRoleTemplateBinding {crtb.name} removed, deleting its bindings")
        self.manager.remove_crtb(crtb)


class RoleTemplateLifecycle:
    """Propagates template changes to every declaration that composes the template"""

    def __init__(self, manager: AuthzManager):
        self.manager = manager

    def create(self, template: RoleTemplate) -> None:
        self.manager.reconcile_role_template(template)

    def updated(self, template: RoleTemplate) -> None:
        self.manager.reconcile_role_template(template)

    def remove(self, template: RoleTemplate) -> None:
        # Derived ClusterRoles stay; declarations referencing the template fail to resolve
        logger.info(f"RoleTemplate {template.name} removed, leaving its ClusterRole in place")


class NamespaceLifecycle:
    """Moves a namespace's bindings along with its project annotation"""

    def __init__(self, manager: AuthzManager):
        self.manager = manager

    def create(self, namespace: Namespace) -> None:
        self.manager.reconcile_namespace(namespace)

    def updated(self, namespace: Namespace) -> None:
        self.manager.reconcile_namespace(namespace)

    def remove(self, namespace: Namespace) -> None:
        self.manager.refresh_for_removed_namespace(namespace.name)


def register(manager: AuthzManager, registry) -> None:
    """
    Bind one coordinator per watched kind to the lifecycle registry

    Args:
        manager: Manager shared by every coordinator
        registry: LifecycleRegistry receiving the handlers
    """
    registry.register(Kinds.PROJECTS, HookNames.PROJECT, ProjectLifecycle(manager))
    registry.register(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, HookNames.PROJECT_ROLE_BINDING,
                      ProjectRoleBindingLifecycle(manager))
    registry.register(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS, HookNames.CLUSTER_ROLE_BINDING,
                      ClusterRoleBindingLifecycle(manager))
    registry.register(Kinds.ROLE_TEMPLATES, HookNames.ROLE_TEMPLATE, RoleTemplateLifecycle(manager))
    registry.register(Kinds.NAMESPACES, HookNames.NAMESPACE, NamespaceLifecycle(manager))
