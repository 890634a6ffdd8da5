"""
Ownership Tags

Single place where the owner label is written onto generated bindings and
read back from them, and where binding names and owner-tag index keys are
derived.
"""

from typing import Any, Dict, Optional

from ..core.constants import KubernetesConstants

OWNER_LABEL = KubernetesConstants.RTB_OWNER_LABEL


def owner_labels(owner_uid: str) -> Dict[str, str]:
    """Labels stamped on every binding generated for an owner"""
    return {OWNER_LABEL: owner_uid}


def owner_selector(owner_uid: Optional[str] = None) -> Dict[str, Optional[str]]:
    """Label selector for bindings of one owner, or of any owner when uid is None"""
    return {OWNER_LABEL: owner_uid}


def owner_of(obj: Dict[str, Any]) -> Optional[str]:
    """Owner tag carried by a generated binding, if any"""
    labels = (obj.get('metadata') or {}).get('labels') or {}
    return labels.get(OWNER_LABEL)


def owner_index_key(namespace: Optional[str], owner_uid: str) -> str:
    """Key of the owner-tag index: 'namespace/uid' for RoleBindings, 'uid' at cluster scope"""
    return f"{namespace}/{owner_uid}" if namespace else owner_uid


def binding_name(role_name: str, subject_name: str) -> str:
    """Deterministic binding name for a (role, subject) pair"""
    return f"{role_name}-{subject_name}".lower()


def namespace_access_role_name(project_id: str) -> str:
    """Name of the ClusterRole that lets project members see the project's namespaces"""
    return f"{project_id.replace(':', '-')}-namespaces-readonly".lower()


def namespace_access_owner(project_id: str) -> str:
    """Owner tag of the ClusterRoleBindings to a project's namespace-access role"""
    return f"{project_id.replace(':', '-')}-namespaces".lower()
