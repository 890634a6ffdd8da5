"""
Binding Synchronizer

Computes the bindings an owner should have in one scope, diffs them against
the bindings carrying the owner's tag and applies the creates and deletes.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.constants import IndexConstants, KubernetesConstants
from ..core.exceptions import AlreadyExistsError, NotFoundError, StoreError
from ..core.protocols import ObjectStore
from ..core.utils import format_scope
from .ownership import OWNER_LABEL, binding_name, owner_labels, owner_index_key

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName


class BindingSynchronizer:
    """Reconciles RoleBindings (namespace scope) or ClusterRoleBindings (cluster scope) of one owner"""

    def __init__(self, store: ObjectStore):
        self.store = store

    @staticmethod
    def _kind(namespace: Optional[str]) -> str:
        return Kinds.ROLE_BINDINGS if namespace else Kinds.CLUSTER_ROLE_BINDINGS

    def build_binding(self, namespace: Optional[str], role_name: str, owner_uid: str,
                      subject_name: str) -> Dict[str, Any]:
        """Construct the binding granting one subject one ClusterRole"""
        name = binding_name(role_name, subject_name)
        metadata = {'name': name, 'labels': owner_labels(owner_uid)}
        if namespace:
            metadata['namespace'] = namespace
        return {
            'apiVersion': f"{KubernetesConstants.RBAC_API_GROUP}/v1",
            'kind': 'RoleBinding' if namespace else 'ClusterRoleBinding',
            'metadata': metadata,
            'subjects': [{
                'kind': KubernetesConstants.USER_KIND,
                'name': subject_name,
                'apiGroup': KubernetesConstants.RBAC_API_GROUP
            }],
            'roleRef': {
                'kind': KubernetesConstants.CLUSTER_ROLE_KIND,
                'name': role_name,
                'apiGroup': KubernetesConstants.RBAC_API_GROUP
            }
        }

    def desired_bindings(self, namespace: Optional[str], role_names: Iterable[str],
                         owner_uid: str, subjects: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Desired bindings keyed by name: one per (role, subject) pair"""
        subjects = [subject for subject in subjects if subject]
        desired = {}
        for role_name in sorted(set(role_names)):
            for subject in subjects:
                binding = self.build_binding(namespace, role_name, owner_uid, subject)
                desired[binding['metadata']['name']] = binding
        return desired

    def observed_bindings(self, namespace: Optional[str], owner_uid: str) -> List[Dict[str, Any]]:
        """Bindings in scope carrying the owner's tag, looked up through the owner index"""
        if namespace:
            return self.store.by_index(Kinds.ROLE_BINDINGS, IndexConstants.RB_BY_OWNER,
                                       owner_index_key(namespace, owner_uid))
        return self.store.by_index(Kinds.CLUSTER_ROLE_BINDINGS, IndexConstants.CRB_BY_OWNER,
                                   owner_index_key(None, owner_uid))

    def ensure_bindings(self, namespace: Optional[str], role_names: Iterable[str],
                        owner_uid: str, subjects: Iterable[str]) -> None:
        """
        Converge the owner's bindings in one scope to the desired set

        Args:
            namespace: Target namespace, or None for cluster scope
            role_names: Resolved ClusterRole names; empty removes everything owned
            owner_uid: Ownership tag (uid of the owning declaration)
            subjects: User names to bind

        Raises:
            StoreError: The first create/delete failure, after every other
                independent operation has been attempted
        """
        kind = self._kind(namespace)
        scope = format_scope(namespace) or " at cluster scope"
        desired = self.desired_bindings(namespace, role_names, owner_uid, subjects)

        to_delete = []
        processed = set()
        for binding in self.observed_bindings(namespace, owner_uid):
            name = binding['metadata']['name']
            # the same name listed twice is processed once
            if name in processed:
                continue
            processed.add(name)
            if name in desired:
                del desired[name]
            else:
                to_delete.append(name)

        errors: List[StoreError] = []
        for name in sorted(desired):
            try:
                self.store.create(kind, desired[name])
                logger.info(f"Created {kind} {name}{scope} for owner {owner_uid}")
            except AlreadyExistsError:
                try:
                    self._adopt(kind, desired[name], owner_uid, scope)
                except StoreError as e:
                    logger.error(f"Failed to adopt {kind} {name}{scope}: {e}")
                    errors.append(e)
            except StoreError as e:
                logger.error(f"Failed to create {kind} {name}{scope}: {e}")
                errors.append(e)

        for name in sorted(to_delete):
            try:
                self.store.delete(kind, name, namespace)
                logger.info(f"Deleted {kind} {name}{scope} no longer wanted by owner {owner_uid}")
            except NotFoundError:
                logger.debug(f"{kind} {name}{scope} already deleted")
            except StoreError as e:
                logger.error(f"Failed to delete {kind} {name}{scope}: {e}")
                errors.append(e)

        if errors:
            raise errors[0]

    def _adopt(self, kind: str, binding: Dict[str, Any], owner_uid: str, scope: str) -> None:
        """
        Handle a create that found the name taken.

        A binding already tagged with this owner was created by a concurrent
        pass. One tagged with another owner is retagged: two owners resolving
        to the same (role, subject) name share one binding and the last writer
        holds the tag and the subjects. Names are lowercased, so "Alice" and
        "alice" collide on one binding. roleRef is part of the name.

        Raises:
            StoreError: The binding vanished after the collision and could not
                be created again; the pass is retried
        """
        metadata = binding['metadata']
        try:
            existing = self.store.get(kind, metadata['name'], metadata.get('namespace'))
        except NotFoundError:
            logger.debug(f"{kind} {metadata['name']}{scope} vanished after AlreadyExists, "
                         f"creating it again")
            try:
                self.store.create(kind, binding)
            except AlreadyExistsError as e:
                raise StoreError(
                    f"{kind} {metadata['name']}{scope} keeps changing between create and get",
                    kind=kind, name=metadata['name'], namespace=metadata.get('namespace')
                ) from e
            logger.info(f"Created {kind} {metadata['name']}{scope} for owner {owner_uid}")
            return

        existing_labels = existing['metadata'].get('labels') or {}
        current_owner = existing_labels.get(OWNER_LABEL)
        subjects_match = existing.get('subjects') == binding['subjects']
        if current_owner == owner_uid and subjects_match:
            logger.debug(f"{kind} {metadata['name']}{scope} already exists")
            return

        if current_owner != owner_uid:
            logger.warning(
                f"{kind} {metadata['name']}{scope} is owned by {current_owner}; "
                f"retagging it for owner {owner_uid}"
            )
        if not subjects_match:
            logger.warning(
                f"{kind} {metadata['name']}{scope} binds {existing.get('subjects')}; "
                f"replacing them with {binding['subjects']}"
            )
        existing['metadata']['labels'] = {**existing_labels, **owner_labels(owner_uid)}
        existing['subjects'] = binding['subjects']
        self.store.update(kind, existing)
