"""
Role Synchronizer

Keeps one ClusterRole per resolved role template with rules identical to the
template's, and maintains the per-project namespace-access ClusterRoles.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from ..core.constants import KubernetesConstants
from ..core.exceptions import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from ..core.models import RoleTemplate
from ..core.protocols import ObjectStore

logger = logging.getLogger(__name__)

CLUSTER_ROLES = KubernetesConstants.ResourceName.CLUSTER_ROLES


class RoleSynchronizer:
    """Creates and corrects the ClusterRoles backing role templates"""

    def __init__(self, store: ObjectStore):
        self.store = store

    def ensure_roles(self, resolved: Dict[str, RoleTemplate]) -> None:
        """
        Make a ClusterRole exist for every resolved, non-external template

        Args:
            resolved: Output of TemplateResolver.resolve

        Raises:
            StoreError: Wrapped with the template name; templates handled
                before the failure stay synchronized
        """
        for name in sorted(resolved):
            template = resolved[name]
            if template.external:
                logger.debug(f"Skipping external RoleTemplate {name}")
                continue
            try:
                self.ensure_role(template.name, template.rules)
            except StoreError as e:
                raise type(e)(f"couldn't sync role {name}: {e}",
                              kind=e.kind, name=e.name, namespace=e.namespace) from e

    def ensure_role(self, name: str, rules: List[Dict[str, Any]],
                    labels: Optional[Dict[str, str]] = None,
                    annotations: Optional[Dict[str, str]] = None) -> None:
        """
        Create the ClusterRole or overwrite its rules when they drifted

        Args:
            name: ClusterRole name
            rules: Desired rules, applied as a full overwrite
            labels: Labels to set on the ClusterRole (optional)
            annotations: Annotations to set on the ClusterRole (optional)
        """
        try:
            current = self.store.get(CLUSTER_ROLES, name)
        except NotFoundError:
            current = None

        if current is None:
            body = {
                'apiVersion': f"{KubernetesConstants.RBAC_API_GROUP}/v1",
                'kind': KubernetesConstants.CLUSTER_ROLE_KIND,
                'metadata': {'name': name},
                'rules': copy.deepcopy(rules)
            }
            if labels:
                body['metadata']['labels'] = dict(labels)
            if annotations:
                body['metadata']['annotations'] = dict(annotations)
            try:
                self.store.create(CLUSTER_ROLES, body)
                logger.info(f"Created ClusterRole {name}")
                return
            except AlreadyExistsError:
                logger.debug(f"ClusterRole {name} was created concurrently, comparing rules")
                current = self.store.get(CLUSTER_ROLES, name)

        try:
            self._update_if_drifted(current, rules, labels, annotations)
        except ConflictError:
            logger.debug(f"Conflict updating ClusterRole {name}, retrying once with a fresh read")
            current = self.store.get(CLUSTER_ROLES, name)
            self._update_if_drifted(current, rules, labels, annotations)

    @staticmethod
    def _contains(current: Optional[Dict[str, str]], wanted: Optional[Dict[str, str]]) -> bool:
        current = current or {}
        return all(current.get(k) == v for k, v in (wanted or {}).items())

    def _update_if_drifted(self, current: Dict[str, Any], rules: List[Dict[str, Any]],
                           labels: Optional[Dict[str, str]],
                           annotations: Optional[Dict[str, str]]) -> None:
        name = current['metadata']['name']
        metadata_match = (self._contains(current['metadata'].get('labels'), labels)
                          and self._contains(current['metadata'].get('annotations'), annotations))
        if (current.get('rules') or []) == rules and metadata_match:
            logger.debug(f"ClusterRole {name} is up to date")
            return

        updated = copy.deepcopy(current)
        updated['rules'] = copy.deepcopy(rules)
        if labels:
            updated['metadata'].setdefault('labels', {}).update(labels)
        if annotations:
            updated['metadata'].setdefault('annotations', {}).update(annotations)
        self.store.update(CLUSTER_ROLES, updated)
        logger.info(f"Updated rules of ClusterRole {name}")

    def delete_role(self, name: str) -> None:
        """Delete a ClusterRole; an absent role counts as deleted"""
        try:
            self.store.delete(CLUSTER_ROLES, name)
            logger.info(f"Deleted ClusterRole {name}")
        except NotFoundError:
            logger.debug(f"ClusterRole {name} already absent")
