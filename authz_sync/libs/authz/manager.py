"""
Authorization Manager

Composition of the resolver and the role and binding synchronizers into the
reconciliation passes the lifecycle coordinators run: per project binding,
per cluster binding, per namespace and per project namespace-access role.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Union

from ..core.constants import IndexConstants, KubernetesConstants
from ..core.exceptions import CycleError, NotFoundError, StoreError
from ..core.models import (
    ClusterRoleTemplateBinding, Namespace, Project, ProjectRoleTemplateBinding, RoleTemplate
)
from ..core.protocols import ObjectStore
from .bindings import BindingSynchronizer
from .indexes import prtb_project_user_key
from .ownership import (
    namespace_access_owner, namespace_access_role_name, owner_index_key, owner_of, owner_selector
)
from .resolver import TemplateResolver
from .roles import RoleSynchronizer

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName

ReconcileError = Union[StoreError, CycleError]


def _raise_first(errors: List[ReconcileError]) -> None:
    if errors:
        raise errors[0]


class AuthzManager:
    """
    Derives ClusterRoles, RoleBindings and ClusterRoleBindings for one cluster.

    Every pass recomputes the desired state from the store, so any pass may be
    re-run at any time and in any order.
    """

    def __init__(self, store: ObjectStore,
                 cluster_name: str = KubernetesConstants.DEFAULT_CLUSTER_NAME):
        self.store = store
        self.cluster_name = cluster_name
        self.resolver = TemplateResolver(store)
        self.roles = RoleSynchronizer(store)
        self.bindings = BindingSynchronizer(store)

    # Scope checks

    def is_local_project_id(self, project_id: Optional[str]) -> bool:
        return bool(project_id) and project_id.startswith(f"{self.cluster_name}:")

    def handles_project_binding(self, prtb: ProjectRoleTemplateBinding) -> bool:
        return self.is_local_project_id(prtb.project_name)

    def handles_cluster_binding(self, crtb: ClusterRoleTemplateBinding) -> bool:
        return crtb.cluster_name == self.cluster_name

    def handles_project(self, project: Project) -> bool:
        return project.namespace == self.cluster_name

    # Index lookups

    def project_namespaces(self, project_id: str) -> List[str]:
        """Sorted names of the namespaces annotated with the project"""
        namespaces = self.store.by_index(Kinds.NAMESPACES, IndexConstants.NS_BY_PROJECT, project_id)
        return sorted({ns['metadata']['name'] for ns in namespaces})

    def project_bindings(self, project_id: str) -> List[ProjectRoleTemplateBinding]:
        """Project-role-template-bindings declared for the project"""
        objects = self.store.by_index(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS,
                                      IndexConstants.PRTB_BY_PROJECT, project_id)
        return [ProjectRoleTemplateBinding.from_object(obj) for obj in objects]

    def _owned_namespaces(self, owner_uid: str) -> Set[str]:
        bindings = self.store.list(Kinds.ROLE_BINDINGS, label_selector=owner_selector(owner_uid))
        return {rb['metadata']['namespace'] for rb in bindings if rb['metadata'].get('namespace')}

    def _projects_granting_access(self, user_name: str) -> Set[str]:
        """Projects whose namespace-access ClusterRole is bound to the user"""
        roles = self.store.list(Kinds.CLUSTER_ROLES,
                                label_selector={KubernetesConstants.PROJECT_NS_ACCESS_LABEL: None})
        projects = set()
        for role in roles:
            annotations = role['metadata'].get('annotations') or {}
            project_id = annotations.get(KubernetesConstants.PROJECT_ID_ANNOTATION)
            if not project_id:
                continue
            bindings = self.store.by_index(
                Kinds.CLUSTER_ROLE_BINDINGS, IndexConstants.CRB_BY_OWNER,
                owner_index_key(None, namespace_access_owner(project_id)))
            if any(subject.get('name') == user_name
                   for crb in bindings for subject in crb.get('subjects') or []):
                projects.add(project_id)
        return projects

    def _resolve_roles(self, template_name: str,
                       resolved: Optional[Dict[str, RoleTemplate]] = None) -> List[str]:
        if resolved is None:
            resolved = self.resolver.resolve(template_name)
        self.roles.ensure_roles(resolved)
        return sorted(resolved)

    # Project-role-template-bindings

    def reconcile_prtb(self, prtb: ProjectRoleTemplateBinding,
                       resolved: Optional[Dict[str, RoleTemplate]] = None) -> None:
        """
        Bind the declaration's resolved roles in every namespace of its project

        Args:
            prtb: The declaration
            resolved: Already resolved templates, to skip a second resolution

        Raises:
            NotFoundError, CycleError: The template closure could not be resolved;
                nothing is written in that case
            StoreError: The first per-namespace failure, after every namespace
                has been attempted
        """
        if not self.handles_project_binding(prtb):
            logger.debug(f"Ignoring ProjectRoleTemplateBinding {prtb.name} of project "
                         f"{prtb.project_name}: not in cluster {self.cluster_name}")
            return

        role_names = self._resolve_roles(prtb.role_template_name, resolved)

        errors: List[ReconcileError] = []
        namespaces = self.project_namespaces(prtb.project_name)
        for namespace in namespaces:
            try:
                self.bindings.ensure_bindings(namespace, role_names, prtb.uid, [prtb.user_name])
            except StoreError as e:
                errors.append(e)

        # bindings left in namespaces of a project the declaration moved away from
        for namespace in sorted(self._owned_namespaces(prtb.uid) - set(namespaces)):
            logger.info(f"Removing bindings of ProjectRoleTemplateBinding {prtb.name} from "
                        f"namespace {namespace}, not in project {prtb.project_name}")
            try:
                self.bindings.ensure_bindings(namespace, [], prtb.uid, [])
            except StoreError as e:
                errors.append(e)

        projects = self._projects_granting_access(prtb.user_name)
        projects.add(prtb.project_name)
        errors.extend(self._refresh_namespace_access(projects))
        _raise_first(errors)

    def remove_prtb(self, prtb: ProjectRoleTemplateBinding) -> None:
        """Delete every RoleBinding owned by the declaration"""
        if not self.handles_project_binding(prtb):
            return

        namespaces = set(self.project_namespaces(prtb.project_name))
        namespaces.update(self._owned_namespaces(prtb.uid))

        errors: List[ReconcileError] = []
        for namespace in sorted(namespaces):
            try:
                self.bindings.ensure_bindings(namespace, [], prtb.uid, [])
            except StoreError as e:
                errors.append(e)

        others = [
            obj for obj in self.store.by_index(
                Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, IndexConstants.PRTB_BY_PROJECT_USER,
                prtb_project_user_key(prtb.project_name, prtb.user_name))
            if (obj.get('metadata') or {}).get('uid') != prtb.uid
        ]
        if others:
            logger.debug(f"User {prtb.user_name} keeps namespace access to {prtb.project_name} "
                         f"through {len(others)} other binding(s)")
        else:
            try:
                self.ensure_namespace_access(prtb.project_name, exclude_uid=prtb.uid)
            except StoreError as e:
                errors.append(e)
        _raise_first(errors)

    # Cluster-role-template-bindings

    def reconcile_crtb(self, crtb: ClusterRoleTemplateBinding,
                       resolved: Optional[Dict[str, RoleTemplate]] = None) -> None:
        """Bind the declaration's resolved roles at cluster scope"""
        if not self.handles_cluster_binding(crtb):
            logger.debug(f"Ignoring ClusterRoleTemplateBinding {crtb.name} of cluster "
                         f"{crtb.cluster_name}: not cluster {self.cluster_name}")
            return
        role_names = self._resolve_roles(crtb.role_template_name, resolved)
        self.bindings.ensure_bindings(None, role_names, crtb.uid, [crtb.user_name])

    def remove_crtb(self, crtb: ClusterRoleTemplateBinding) -> None:
        if not self.handles_cluster_binding(crtb):
            return
        self.bindings.ensure_bindings(None, [], crtb.uid, [])

    # Role templates

    def ensure_template_roles(self, template: RoleTemplate) -> None:
        """
        Sync the ClusterRoles of a template and of its resolved children

        Raises:
            NotFoundError, CycleError: The closure could not be resolved; no
                ClusterRole is written in that case
            StoreError: A ClusterRole could not be synced
        """
        self.roles.ensure_roles(self.resolver.resolve(template.name))

    def reconcile_role_template(self, template: RoleTemplate) -> None:
        """
        Sync the ClusterRoles of the template and of every template composing
        it, then re-reconcile every declaration whose resolved closure contains it.

        A declaration that fails to resolve or reconcile is logged and the
        others still run; the first failure is raised at the end.
        """
        errors: List[ReconcileError] = []
        try:
            self.ensure_template_roles(template)
        except (StoreError, CycleError) as e:
            logger.error(f"Failed to sync ClusterRoles of RoleTemplate {template.name}: {e}")
            errors.append(e)

        # templates that compose this one
        for obj in self.store.list(Kinds.ROLE_TEMPLATES):
            parent = RoleTemplate.from_object(obj)
            if parent.name == template.name:
                continue
            try:
                resolved = self.resolver.resolve(parent.name)
            except (NotFoundError, CycleError) as e:
                logger.debug(f"RoleTemplate {parent.name} does not resolve: {e}")
                continue
            except StoreError as e:
                logger.error(f"Failed to resolve RoleTemplate {parent.name}: {e}")
                errors.append(e)
                continue
            if template.name not in resolved:
                continue
            try:
                self.roles.ensure_roles(resolved)
            except StoreError as e:
                logger.error(f"Failed to sync ClusterRoles of RoleTemplate {parent.name} "
                             f"after RoleTemplate {template.name} changed: {e}")
                errors.append(e)

        declarations = [
            (ProjectRoleTemplateBinding.from_object(obj), self.handles_project_binding,
             self.reconcile_prtb)
            for obj in self.store.list(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS)
        ] + [
            (ClusterRoleTemplateBinding.from_object(obj), self.handles_cluster_binding,
             self.reconcile_crtb)
            for obj in self.store.list(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS)
        ]

        for declaration, handles, reconcile in declarations:
            if not handles(declaration):
                continue
            try:
                resolved = self.resolver.resolve(declaration.role_template_name)
                if template.name not in resolved:
                    continue
                logger.info(f"RoleTemplate {template.name} changed, reconciling "
                            f"{type(declaration).__name__} {declaration.name}")
                reconcile(declaration, resolved)
            except (StoreError, CycleError) as e:
                logger.error(f"Failed to reconcile {type(declaration).__name__} "
                             f"{declaration.name} after RoleTemplate {template.name} changed: {e}")
                errors.append(e)
        _raise_first(errors)

    # Namespaces

    def reconcile_namespace(self, namespace: Namespace) -> None:
        """
        Converge the RoleBindings of one namespace to its current project.

        Owners that are not declarations of the namespace's project lose their
        bindings here; declarations of the project get theirs. The
        namespace-access roles that list the namespace, and the one of its
        current project, are refreshed.
        """
        project_id = namespace.project_id if self.is_local_project_id(namespace.project_id) else None
        current = {prtb.uid: prtb for prtb in self.project_bindings(project_id)} if project_id else {}

        observed = self.store.list(Kinds.ROLE_BINDINGS, namespace=namespace.name,
                                   label_selector=owner_selector())
        stale_owners = {owner_of(rb) for rb in observed} - set(current)

        errors: List[ReconcileError] = []
        for owner in sorted(stale_owners):
            logger.info(f"Removing bindings of owner {owner} from namespace {namespace.name}")
            try:
                self.bindings.ensure_bindings(namespace.name, [], owner, [])
            except StoreError as e:
                errors.append(e)

        for uid in sorted(current):
            prtb = current[uid]
            try:
                role_names = self._resolve_roles(prtb.role_template_name)
                self.bindings.ensure_bindings(namespace.name, role_names, prtb.uid,
                                              [prtb.user_name])
            except (StoreError, CycleError) as e:
                logger.error(f"Failed to reconcile ProjectRoleTemplateBinding {prtb.name} "
                             f"in namespace {namespace.name}: {e}")
                errors.append(e)

        projects = self.projects_referencing(namespace.name)
        if project_id:
            projects.add(project_id)
        errors.extend(self._refresh_namespace_access(projects))
        _raise_first(errors)

    def refresh_for_removed_namespace(self, name: str) -> None:
        """Drop a deleted namespace from the namespace-access roles that listed it"""
        _raise_first(self._refresh_namespace_access(self.projects_referencing(name)))

    def projects_referencing(self, namespace_name: str) -> Set[str]:
        """Projects whose namespace-access ClusterRole names the namespace"""
        roles = self.store.by_index(Kinds.CLUSTER_ROLES, IndexConstants.CR_BY_NS, namespace_name)
        projects = set()
        for role in roles:
            annotations = role['metadata'].get('annotations') or {}
            project_id = annotations.get(KubernetesConstants.PROJECT_ID_ANNOTATION)
            if project_id:
                projects.add(project_id)
        return projects

    def _refresh_namespace_access(self, projects: Set[str]) -> List[ReconcileError]:
        errors: List[ReconcileError] = []
        for project_id in sorted(projects):
            try:
                self.ensure_namespace_access(project_id)
            except StoreError as e:
                logger.error(f"Failed to refresh namespace access of project {project_id}: {e}")
                errors.append(e)
        return errors

    # Projects and namespace access

    def reconcile_project(self, project: Project) -> None:
        if not self.handles_project(project):
            logger.debug(f"Ignoring Project {project.project_id}: not in cluster {self.cluster_name}")
            return
        self.ensure_namespace_access(project.project_id)

    def remove_project(self, project: Project) -> None:
        if not self.handles_project(project):
            return
        self.remove_namespace_access(project.project_id)

    def namespace_access_rules(self, namespaces: List[str]) -> List[Dict[str, Any]]:
        """Rules of a namespace-access role; none at all when the project is empty"""
        if not namespaces:
            return []
        return [{
            'apiGroups': [KubernetesConstants.CORE_API_GROUP],
            'resources': [Kinds.NAMESPACES.value],
            'resourceNames': sorted(namespaces),
            'verbs': [KubernetesConstants.RBACVerb.GET.value]
        }]

    def ensure_namespace_access(self, project_id: str, exclude_uid: Optional[str] = None) -> None:
        """
        Let every user with a binding in the project get the project's namespaces

        Args:
            project_id: "<cluster>:<project>"
            exclude_uid: Binding uid to leave out of the user set, for a
                declaration being removed that may still be listed

        Raises:
            StoreError: If the role or one of its bindings could not be synced
        """
        if not self.is_local_project_id(project_id):
            return
        cluster, _, name = project_id.partition(':')
        try:
            self.store.get(Kinds.PROJECTS, name, cluster)
        except NotFoundError:
            logger.debug(f"Project {project_id} does not exist, removing its namespace access")
            self.remove_namespace_access(project_id)
            return

        role_name = namespace_access_role_name(project_id)
        owner = namespace_access_owner(project_id)
        self.roles.ensure_role(
            role_name,
            self.namespace_access_rules(self.project_namespaces(project_id)),
            labels={KubernetesConstants.PROJECT_NS_ACCESS_LABEL: owner},
            annotations={KubernetesConstants.PROJECT_ID_ANNOTATION: project_id}
        )
        users = sorted({
            prtb.user_name for prtb in self.project_bindings(project_id)
            if prtb.uid != exclude_uid and prtb.user_name
        })
        self.bindings.ensure_bindings(None, [role_name], owner, users)

    def remove_namespace_access(self, project_id: str) -> None:
        """Delete the project's namespace-access bindings, then its role"""
        self.bindings.ensure_bindings(None, [], namespace_access_owner(project_id), [])
        self.roles.delete_role(namespace_access_role_name(project_id))

    # Full pass

    def resync(self) -> List[ReconcileError]:
        """
        Reconcile every role template, project, declaration and namespace once.

        Returns:
            Every error encountered, in processing order; empty on success
        """
        errors: List[ReconcileError] = []

        def run(description: str, func, *args) -> None:
            try:
                func(*args)
            except (StoreError, CycleError) as e:
                logger.error(f"Resync of {description} failed: {e}")
                errors.append(e)

        for obj in self.store.list(Kinds.ROLE_TEMPLATES):
            template = RoleTemplate.from_object(obj)
            run(f"RoleTemplate {template.name}", self.ensure_template_roles, template)
        for obj in self.store.list(Kinds.PROJECTS):
            project = Project.from_object(obj)
            run(f"Project {project.project_id}", self.reconcile_project, project)
        for obj in self.store.list(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS):
            prtb = ProjectRoleTemplateBinding.from_object(obj)
            run(f"ProjectRoleTemplateBinding {prtb.name}", self.reconcile_prtb, prtb)
        for obj in self.store.list(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS):
            crtb = ClusterRoleTemplateBinding.from_object(obj)
            run(f"ClusterRoleTemplateBinding {crtb.name}", self.reconcile_crtb, crtb)
        for obj in self.store.list(Kinds.NAMESPACES):
            namespace = Namespace.from_object(obj)
            run(f"Namespace {namespace.name}", self.reconcile_namespace, namespace)

        if errors:
            logger.warning(f"Resync finished with {len(errors)} error(s)")
        else:
            logger.info("Resync finished without errors")
        return errors
