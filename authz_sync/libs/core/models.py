"""
Data Models

Typed views over the Kubernetes-shaped objects delivered by the store and the
lifecycle-hook framework.
"""

from typing import Any, Dict, List, NamedTuple, Optional

from .constants import KubernetesConstants
from .exceptions import InvariantError


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    metadata = obj.get('metadata')
    if not isinstance(metadata, dict) or not metadata.get('name'):
        raise InvariantError(f"Object has no metadata.name: {obj!r}")
    return metadata


class RoleTemplate(NamedTuple):
    """Named, composable set of permission rules"""
    name: str
    rules: List[Dict[str, Any]]
    role_template_names: List[str]
    external: bool = False

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> 'RoleTemplate':
        metadata = _metadata(obj)
        return cls(
            name=metadata['name'],
            rules=list(obj.get('rules') or []),
            role_template_names=list(obj.get('roleTemplateNames') or []),
            external=bool(obj.get('external', False))
        )


class ProjectRoleTemplateBinding(NamedTuple):
    """Grants a user a role template in every namespace of a project"""
    name: str
    namespace: Optional[str]
    uid: str
    project_name: str
    user_name: str
    role_template_name: str

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> 'ProjectRoleTemplateBinding':
        metadata = _metadata(obj)
        return cls(
            name=metadata['name'],
            namespace=metadata.get('namespace'),
            uid=metadata.get('uid', ''),
            project_name=obj.get('projectName', ''),
            user_name=obj.get('userName', ''),
            role_template_name=obj.get('roleTemplateName', '')
        )


class ClusterRoleTemplateBinding(NamedTuple):
    """Grants a user a role template across a whole cluster"""
    name: str
    namespace: Optional[str]
    uid: str
    cluster_name: str
    user_name: str
    role_template_name: str

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> 'ClusterRoleTemplateBinding':
        metadata = _metadata(obj)
        return cls(
            name=metadata['name'],
            namespace=metadata.get('namespace'),
            uid=metadata.get('uid', ''),
            cluster_name=obj.get('clusterName', ''),
            user_name=obj.get('userName', ''),
            role_template_name=obj.get('roleTemplateName', '')
        )


class Project(NamedTuple):
    """A set of namespaces inside one cluster"""
    name: str
    namespace: str
    uid: str

    @property
    def project_id(self) -> str:
        """Identifier carried by member namespaces in their project annotation"""
        return f"{self.namespace}:{self.name}"

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> 'Project':
        metadata = _metadata(obj)
        return cls(
            name=metadata['name'],
            namespace=metadata.get('namespace') or '',
            uid=metadata.get('uid', '')
        )


class Namespace(NamedTuple):
    """A namespace and the project it is annotated with, if any"""
    name: str
    project_id: Optional[str]

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> 'Namespace':
        metadata = _metadata(obj)
        annotations = metadata.get('annotations') or {}
        return cls(
            name=metadata['name'],
            project_id=annotations.get(KubernetesConstants.PROJECT_ID_ANNOTATION) or None
        )


# Model type each watched kind is converted to at the hook boundary
MODEL_BY_KIND = {
    KubernetesConstants.ResourceName.ROLE_TEMPLATES: RoleTemplate,
    KubernetesConstants.ResourceName.PROJECTS: Project,
    KubernetesConstants.ResourceName.PROJECT_ROLE_TEMPLATE_BINDINGS: ProjectRoleTemplateBinding,
    KubernetesConstants.ResourceName.CLUSTER_ROLE_TEMPLATE_BINDINGS: ClusterRoleTemplateBinding,
    KubernetesConstants.ResourceName.NAMESPACES: Namespace,
}
