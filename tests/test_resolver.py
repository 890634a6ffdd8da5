"""
Tests for role template resolution
"""

import pytest
from unittest.mock import Mock

from authz_sync.libs.authz.resolver import TemplateResolver
from authz_sync.libs.core.exceptions import CycleError, NotFoundError
from authz_sync.libs.core.models import ProjectRoleTemplateBinding

from conftest import Kinds, namespace, prtb, project, role_template


class TestResolve:
    """Test flattening of the composition graph"""

    def test_single_template(self, store):
        """A template without children resolves to itself"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))

        # Act
        resolved = TemplateResolver(store).resolve("view")

        # Assert
        assert list(resolved) == ["view"]
        assert resolved["view"].rules[0]["resources"] == ["pods"]

    def test_multi_level_inheritance(self, store):
        """Every level of the composition is included"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("owner", children=["member"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("member", children=["view"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))

        # Act
        resolved = TemplateResolver(store).resolve("owner")

        # Assert
        assert sorted(resolved) == ["member", "owner", "view"]

    def test_diamond_is_expanded_once(self, store):
        """A template reachable through two paths is fetched once"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["b", "c"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("b", children=["d"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("c", children=["d"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("d"))
        spy = Mock(wraps=store)

        # Act
        resolved = TemplateResolver(spy).resolve("a")

        # Assert
        assert sorted(resolved) == ["a", "b", "c", "d"]
        fetched = [call.args[1] for call in spy.get.call_args_list]
        assert fetched.count("d") == 1


class TestResolveErrors:
    """Test cycle and missing-template handling"""

    def test_two_node_cycle(self, store):
        """A -> B -> A is rejected with the cycle path"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["b"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("b", children=["a"]))

        # Act & Assert
        with pytest.raises(CycleError) as exc_info:
            TemplateResolver(store).resolve("a")

        assert exc_info.value.path == ["a", "b", "a"]
        assert "a -> b -> a" in str(exc_info.value)

    def test_self_reference(self, store):
        """A template composing itself is a cycle"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["a"]))

        # Act & Assert
        with pytest.raises(CycleError) as exc_info:
            TemplateResolver(store).resolve("a")

        assert exc_info.value.path == ["a", "a"]

    def test_cycle_creates_no_cluster_role(self, store, manager):
        """Reconciling a declaration whose template loops writes nothing"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["b"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("b", children=["a"]))
        store.create(Kinds.PROJECTS, project("p1"))
        store.create(Kinds.NAMESPACES, namespace("ns1", "local:p1"))
        binding = ProjectRoleTemplateBinding.from_object(prtb("t-alice", "local:p1", "alice", "a"))

        # Act & Assert
        with pytest.raises(CycleError):
            manager.reconcile_prtb(binding)

        assert store.list(Kinds.CLUSTER_ROLES) == []
        assert store.list(Kinds.ROLE_BINDINGS) == []

    def test_missing_root(self, store):
        """An unknown root template raises NotFoundError"""
        # Act & Assert
        with pytest.raises(NotFoundError) as exc_info:
            TemplateResolver(store).resolve("missing")

        assert "RoleTemplate missing not found" in str(exc_info.value)

    def test_missing_child_names_parent(self, store):
        """An unknown composed template aborts the whole resolution"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member", children=["view", "gone"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))

        # Act & Assert
        with pytest.raises(NotFoundError) as exc_info:
            TemplateResolver(store).resolve("member")

        assert "couldn't gather RoleTemplate member" in str(exc_info.value)
        assert "gone" in str(exc_info.value)
