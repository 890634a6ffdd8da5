"""
Shared fixtures and object factories for the authz-sync test suite
"""

from typing import Any, Dict, List, Optional

import pytest

from authz_sync.libs.authz import AuthzManager, register, register_indexes
from authz_sync.libs.controller import LifecycleRegistry
from authz_sync.libs.core.constants import KubernetesConstants
from authz_sync.libs.store import MemoryStore

Kinds = KubernetesConstants.ResourceName

CLUSTER = "local"

VIEW_RULES = [{"apiGroups": [""], "resources": ["pods"], "verbs": ["get", "list"]}]
EDIT_RULES = [{"apiGroups": ["apps"], "resources": ["deployments"], "verbs": ["update"]}]


def role_template(name: str, rules: Optional[List[Dict[str, Any]]] = None,
                  children: Optional[List[str]] = None, external: bool = False) -> Dict[str, Any]:
    obj = {
        "apiVersion": "management.cattle.io/v3",
        "kind": "RoleTemplate",
        "metadata": {"name": name},
        "rules": rules if rules is not None else VIEW_RULES,
        "roleTemplateNames": children or [],
    }
    if external:
        obj["external"] = True
    return obj


def project(name: str, cluster: str = CLUSTER) -> Dict[str, Any]:
    return {
        "apiVersion": "management.cattle.io/v3",
        "kind": "Project",
        "metadata": {"name": name, "namespace": cluster, "uid": f"uid-{name}"},
    }


def namespace(name: str, project_id: Optional[str] = None) -> Dict[str, Any]:
    metadata = {"name": name}
    if project_id:
        metadata["annotations"] = {KubernetesConstants.PROJECT_ID_ANNOTATION: project_id}
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": metadata}


def prtb(name: str, project_id: str, user: str, template: str) -> Dict[str, Any]:
    return {
        "apiVersion": "management.cattle.io/v3",
        "kind": "ProjectRoleTemplateBinding",
        "metadata": {"name": name, "namespace": project_id.split(":")[-1], "uid": f"uid-{name}"},
        "projectName": project_id,
        "userName": user,
        "roleTemplateName": template,
    }


def crtb(name: str, user: str, template: str, cluster: str = CLUSTER) -> Dict[str, Any]:
    return {
        "apiVersion": "management.cattle.io/v3",
        "kind": "ClusterRoleTemplateBinding",
        "metadata": {"name": name, "namespace": cluster, "uid": f"uid-{name}"},
        "clusterName": cluster,
        "userName": user,
        "roleTemplateName": template,
    }


def names(objects: List[Dict[str, Any]]) -> List[str]:
    return sorted(obj["metadata"]["name"] for obj in objects)


@pytest.fixture
def store():
    """In-memory store with every secondary index declared"""
    memory_store = MemoryStore()
    register_indexes(memory_store)
    return memory_store


@pytest.fixture
def manager(store):
    return AuthzManager(store, cluster_name=CLUSTER)


@pytest.fixture
def registry(manager):
    """Registry with every coordinator bound and retries disabled"""
    lifecycle_registry = LifecycleRegistry(max_retries=0, backoff_seconds=0, sleep=lambda _: None)
    register(manager, lifecycle_registry)
    return lifecycle_registry
