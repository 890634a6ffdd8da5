"""
Index Maintenance

Secondary index functions the coordinators query instead of scanning whole
kinds, and the registration of those indexes with a store.
"""

import logging
from typing import Any, Dict, List

from ..core.constants import IndexConstants, KubernetesConstants
from ..core.protocols import ObjectStore
from .ownership import owner_of, owner_index_key

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName


def prtb_project_user_key(project_name: str, user_name: str) -> str:
    return f"{project_name}.{user_name}"


def prtb_by_project_name(obj: Dict[str, Any]) -> List[str]:
    project_name = obj.get('projectName')
    return [project_name] if project_name else []


def prtb_by_project_and_user(obj: Dict[str, Any]) -> List[str]:
    project_name = obj.get('projectName')
    if not project_name:
        return []
    return [prtb_project_user_key(project_name, obj.get('userName', ''))]


def ns_by_project_id(obj: Dict[str, Any]) -> List[str]:
    annotations = (obj.get('metadata') or {}).get('annotations') or {}
    project_id = annotations.get(KubernetesConstants.PROJECT_ID_ANNOTATION)
    return [project_id] if project_id else []


def cr_by_namespace(obj: Dict[str, Any]) -> List[str]:
    """Namespaces a ClusterRole grants access to by name"""
    namespaces = set()
    for rule in obj.get('rules') or []:
        if Kinds.NAMESPACES.value in (rule.get('resources') or []):
            namespaces.update(rule.get('resourceNames') or [])
    return sorted(namespaces)


def rb_by_owner(obj: Dict[str, Any]) -> List[str]:
    owner = owner_of(obj)
    if not owner:
        return []
    return [owner_index_key((obj.get('metadata') or {}).get('namespace'), owner)]


def crb_by_owner(obj: Dict[str, Any]) -> List[str]:
    owner = owner_of(obj)
    return [owner] if owner else []


INDEXERS = {
    Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS: {
        IndexConstants.PRTB_BY_PROJECT: prtb_by_project_name,
        IndexConstants.PRTB_BY_PROJECT_USER: prtb_by_project_and_user,
    },
    Kinds.NAMESPACES: {
        IndexConstants.NS_BY_PROJECT: ns_by_project_id,
    },
    Kinds.CLUSTER_ROLES: {
        IndexConstants.CR_BY_NS: cr_by_namespace,
    },
    Kinds.ROLE_BINDINGS: {
        IndexConstants.RB_BY_OWNER: rb_by_owner,
    },
    Kinds.CLUSTER_ROLE_BINDINGS: {
        IndexConstants.CRB_BY_OWNER: crb_by_owner,
    },
}


def register_indexes(store: ObjectStore) -> None:
    """Declare every secondary index on the store"""
    for kind, indexers in INDEXERS.items():
        store.add_indexers(kind, indexers)
        logger.debug(f"Registered indexes {sorted(indexers)} for {kind}")
