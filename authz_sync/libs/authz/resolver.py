"""
Template Resolver

Flattens a role template and everything it composes into a mapping of
template name to RoleTemplate.
"""

import logging
from typing import Dict, List

from ..core.constants import KubernetesConstants
from ..core.exceptions import CycleError, NotFoundError
from ..core.models import RoleTemplate
from ..core.protocols import ObjectStore

logger = logging.getLogger(__name__)


class TemplateResolver:
    """Resolves role template inheritance against the store"""

    def __init__(self, store: ObjectStore):
        self.store = store

    def get_template(self, name: str) -> RoleTemplate:
        """
        Fetch one role template

        Raises:
            NotFoundError: If the template does not exist
        """
        try:
            obj = self.store.get(KubernetesConstants.ResourceName.ROLE_TEMPLATES, name)
        except NotFoundError as e:
            raise NotFoundError(f"RoleTemplate {name} not found", kind=e.kind, name=name) from e
        return RoleTemplate.from_object(obj)

    def resolve(self, template_name: str) -> Dict[str, RoleTemplate]:
        """
        Gather a template and every template it composes, depth first.

        Args:
            template_name: Name of the root template

        Returns:
            Dict mapping template name to RoleTemplate for the whole closure

        Raises:
            NotFoundError: If any template in the closure is missing
            CycleError: If the composition graph loops back on itself
        """
        resolved: Dict[str, RoleTemplate] = {}
        self._gather(template_name, resolved, visiting=[])
        logger.debug(f"Resolved RoleTemplate {template_name} to {sorted(resolved)}")
        return resolved

    def _gather(self, name: str, resolved: Dict[str, RoleTemplate], visiting: List[str]) -> None:
        if name in visiting:
            cycle = visiting[visiting.index(name):] + [name]
            raise CycleError(cycle)
        if name in resolved:
            return

        template = self.get_template(name)
        visiting.append(name)
        try:
            for child in template.role_template_names:
                try:
                    self._gather(child, resolved, visiting)
                except NotFoundError as e:
                    raise NotFoundError(f"couldn't gather RoleTemplate {name}: {e}",
                                        kind=e.kind, name=e.name) from e
        finally:
            visiting.pop()
        resolved[name] = template
