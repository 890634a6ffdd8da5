"""
End-to-end tests of the lifecycle coordinators against the memory store
"""

import itertools

import pytest

from authz_sync.libs.authz import AuthzManager, register, register_indexes
from authz_sync.libs.authz.lifecycles import (
    ClusterRoleBindingLifecycle, NamespaceLifecycle, ProjectLifecycle,
    ProjectRoleBindingLifecycle, RoleTemplateLifecycle
)
from authz_sync.libs.authz.ownership import owner_of
from authz_sync.libs.controller import LifecycleRegistry
from authz_sync.libs.core.constants import KubernetesConstants
from authz_sync.libs.core.exceptions import CycleError, NotFoundError
from authz_sync.libs.core.models import (
    ClusterRoleTemplateBinding, Namespace, Project, ProjectRoleTemplateBinding, RoleTemplate
)
from authz_sync.libs.store import MemoryStore

from conftest import (
    CLUSTER, EDIT_RULES, VIEW_RULES, Kinds, crtb, names, namespace, prtb, project, role_template
)

ACCESS_ROLE = "local-p1-namespaces-readonly"
ACCESS_OWNER = "local-p1-namespaces"


def seed_project(store, project_name="p1", namespaces=("ns1",)):
    store.create(Kinds.PROJECTS, project(project_name))
    for ns in namespaces:
        store.create(Kinds.NAMESPACES, namespace(ns, f"{CLUSTER}:{project_name}"))


def add_prtb(store, name="t-alice", user="alice", template="member", project_name="p1"):
    obj = store.create(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS,
                       prtb(name, f"{CLUSTER}:{project_name}", user, template))
    return ProjectRoleTemplateBinding.from_object(obj)


def role_binding_summary(store):
    return sorted(
        (rb["metadata"]["namespace"], rb["metadata"]["name"], owner_of(rb))
        for rb in store.list(Kinds.ROLE_BINDINGS)
    )


def snapshot(store):
    """Every derived object, without server-assigned fields"""
    return {
        "clusterroles": sorted((cr["metadata"]["name"], repr(cr["rules"]))
                               for cr in store.list(Kinds.CLUSTER_ROLES)),
        "rolebindings": role_binding_summary(store),
        "clusterrolebindings": sorted((crb["metadata"]["name"], owner_of(crb))
                                      for crb in store.list(Kinds.CLUSTER_ROLE_BINDINGS)),
    }


class TestProjectRoleBindingLifecycle:
    """Test project declarations"""

    def test_create_binds_in_every_project_namespace(self, store, manager):
        """A declaration gets one RoleBinding per resolved role in each namespace"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member", EDIT_RULES, children=["view"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        seed_project(store, namespaces=("ns1", "ns2"))
        binding = add_prtb(store)

        # Act
        ProjectRoleBindingLifecycle(manager).create(binding)

        # Assert
        assert role_binding_summary(store) == [
            ("ns1", "member-alice", "uid-t-alice"),
            ("ns1", "view-alice", "uid-t-alice"),
            ("ns2", "member-alice", "uid-t-alice"),
            ("ns2", "view-alice", "uid-t-alice"),
        ]
        assert store.get(Kinds.CLUSTER_ROLES, "member")["rules"] == EDIT_RULES

    def test_cascade_on_remove(self, store, manager):
        """t-alice created then deleted leaves no binding behind"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store)
        binding = add_prtb(store)
        lifecycle = ProjectRoleBindingLifecycle(manager)
        lifecycle.create(binding)
        assert role_binding_summary(store) == [("ns1", "member-alice", "uid-t-alice")]

        # Act
        store.delete(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, "t-alice", "p1")
        lifecycle.remove(binding)

        # Assert
        assert store.list(Kinds.ROLE_BINDINGS) == []
        assert store.list(Kinds.CLUSTER_ROLE_BINDINGS) == []

    def test_remove_cleans_namespaces_that_left_the_project(self, store, manager):
        """Bindings are found through the owner tag, not only the current namespace set"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store)
        binding = add_prtb(store)
        manager.reconcile_prtb(binding)
        moved = store.get(Kinds.NAMESPACES, "ns1")
        moved["metadata"]["annotations"] = {}
        store.update(Kinds.NAMESPACES, moved)

        # Act
        manager.remove_prtb(binding)

        # Assert
        assert store.list(Kinds.ROLE_BINDINGS) == []

    def test_project_change_moves_bindings(self, store, manager):
        """A declaration moved to another project leaves nothing behind in the old one"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store, "p1", ("ns1",))
        seed_project(store, "p2", ("ns2",))
        manager.reconcile_prtb(add_prtb(store))
        moved = store.get(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, "t-alice", "p1")
        moved["projectName"] = "local:p2"
        moved = store.update(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, moved)

        # Act
        ProjectRoleBindingLifecycle(manager).updated(ProjectRoleTemplateBinding.from_object(moved))

        # Assert
        assert role_binding_summary(store) == [("ns2", "member-alice", "uid-t-alice")]
        assert names(store.list(Kinds.CLUSTER_ROLE_BINDINGS)) == [
            "local-p2-namespaces-readonly-alice"
        ]
        assert names(store.list(Kinds.CLUSTER_ROLES)) == [
            ACCESS_ROLE, "local-p2-namespaces-readonly", "member"
        ]

    def test_project_change_keeps_access_granted_by_other_binding(self, store, manager):
        """The old project's access stays when the user still has a binding there"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        seed_project(store, "p1", ("ns1",))
        seed_project(store, "p2", ("ns2",))
        manager.reconcile_prtb(add_prtb(store))
        manager.reconcile_prtb(add_prtb(store, name="t-alice-view", template="view"))
        moved = store.get(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, "t-alice", "p1")
        moved["projectName"] = "local:p2"
        moved = store.update(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, moved)

        # Act
        manager.reconcile_prtb(ProjectRoleTemplateBinding.from_object(moved))

        # Assert
        assert role_binding_summary(store) == [
            ("ns1", "view-alice", "uid-t-alice-view"),
            ("ns2", "member-alice", "uid-t-alice"),
        ]
        assert names(store.list(Kinds.CLUSTER_ROLE_BINDINGS)) == [
            "local-p1-namespaces-readonly-alice", "local-p2-namespaces-readonly-alice"
        ]

    def test_missing_template_writes_nothing(self, store, manager):
        """NotFound during resolution aborts before any write"""
        # Arrange
        seed_project(store)
        binding = add_prtb(store, template="missing")
        store.clear_actions()

        # Act & Assert
        with pytest.raises(NotFoundError):
            manager.reconcile_prtb(binding)

        assert store.actions == []

    def test_other_cluster_is_ignored(self, store, manager):
        """Declarations for projects of another cluster are skipped"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        obj = store.create(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS,
                           prtb("t-remote", "other:p9", "alice", "member"))
        store.clear_actions()

        # Act
        ProjectRoleBindingLifecycle(manager).create(ProjectRoleTemplateBinding.from_object(obj))

        # Assert
        assert store.actions == []

    def test_external_template_is_bound_but_not_synced(self, store, manager):
        """Bindings reference an external template's role without creating it"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("cluster-admin", external=True))
        seed_project(store)
        binding = add_prtb(store, template="cluster-admin")

        # Act
        manager.reconcile_prtb(binding)

        # Assert
        assert names(store.list(Kinds.CLUSTER_ROLES)) == [ACCESS_ROLE]
        rb = store.get(Kinds.ROLE_BINDINGS, "cluster-admin-alice", "ns1")
        assert rb["roleRef"]["name"] == "cluster-admin"


class TestNamespaceAccess:
    """Test the per-project namespace-access ClusterRole"""

    def test_members_can_get_project_namespaces(self, store, manager):
        """The access role lists the project's namespaces and binds every member"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store, namespaces=("ns2", "ns1"))
        manager.reconcile_prtb(add_prtb(store))
        manager.reconcile_prtb(add_prtb(store, name="t-bob", user="bob"))

        # Act
        role = store.get(Kinds.CLUSTER_ROLES, ACCESS_ROLE)

        # Assert
        assert role["rules"] == [{
            "apiGroups": [""], "resources": ["namespaces"],
            "resourceNames": ["ns1", "ns2"], "verbs": ["get"]
        }]
        assert role["metadata"]["labels"][KubernetesConstants.PROJECT_NS_ACCESS_LABEL] == ACCESS_OWNER
        assert role["metadata"]["annotations"][KubernetesConstants.PROJECT_ID_ANNOTATION] == "local:p1"
        crbs = store.list(Kinds.CLUSTER_ROLE_BINDINGS)
        assert names(crbs) == [f"{ACCESS_ROLE}-alice", f"{ACCESS_ROLE}-bob"]
        assert {owner_of(crb) for crb in crbs} == {ACCESS_OWNER}

    def test_empty_project_has_no_rules(self, store, manager):
        """A project without namespaces grants nothing"""
        # Arrange
        store.create(Kinds.PROJECTS, project("p1"))

        # Act
        ProjectLifecycle(manager).create(Project.from_object(project("p1")))

        # Assert
        assert store.get(Kinds.CLUSTER_ROLES, ACCESS_ROLE)["rules"] == []

    def test_user_with_another_binding_keeps_access(self, store, manager):
        """Removing one of a user's two declarations keeps the access binding"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        seed_project(store)
        first = add_prtb(store)
        second = add_prtb(store, name="t-alice-view", template="view")
        manager.reconcile_prtb(first)
        manager.reconcile_prtb(second)

        # Act
        store.delete(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, "t-alice", "p1")
        manager.remove_prtb(first)

        # Assert
        assert names(store.list(Kinds.CLUSTER_ROLE_BINDINGS)) == [f"{ACCESS_ROLE}-alice"]
        assert role_binding_summary(store) == [("ns1", "view-alice", "uid-t-alice-view")]

    def test_project_remove_deletes_access(self, store, manager):
        """The access role and its bindings go with the project"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store)
        manager.reconcile_prtb(add_prtb(store))
        store.delete(Kinds.PROJECTS, "p1", CLUSTER)

        # Act
        ProjectLifecycle(manager).remove(Project.from_object(project("p1")))

        # Assert
        assert store.list(Kinds.CLUSTER_ROLE_BINDINGS) == []
        assert names(store.list(Kinds.CLUSTER_ROLES)) == ["member"]

    def test_removed_namespace_leaves_access_role(self, store, manager):
        """Deleting a namespace drops it from the roles that listed it"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store, namespaces=("ns1", "ns2"))
        manager.reconcile_prtb(add_prtb(store))
        store.delete(Kinds.NAMESPACES, "ns2")

        # Act
        NamespaceLifecycle(manager).remove(Namespace(name="ns2", project_id="local:p1"))

        # Assert
        assert store.get(Kinds.CLUSTER_ROLES, ACCESS_ROLE)["rules"][0]["resourceNames"] == ["ns1"]


class TestNamespaceLifecycle:
    """Test namespaces moving between projects"""

    def test_namespace_move_between_projects(self, store, manager):
        """Bindings follow the namespace from P1 to P2"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        seed_project(store, "p1", namespaces=("ns1",))
        seed_project(store, "p2", namespaces=())
        manager.reconcile_prtb(add_prtb(store))
        manager.reconcile_prtb(add_prtb(store, name="t-bob", user="bob", template="view",
                                        project_name="p2"))
        assert role_binding_summary(store) == [("ns1", "member-alice", "uid-t-alice")]

        moved = store.get(Kinds.NAMESPACES, "ns1")
        moved["metadata"]["annotations"] = {KubernetesConstants.PROJECT_ID_ANNOTATION: "local:p2"}
        store.update(Kinds.NAMESPACES, moved)

        # Act
        NamespaceLifecycle(manager).updated(Namespace.from_object(moved))

        # Assert
        assert role_binding_summary(store) == [("ns1", "view-bob", "uid-t-bob")]
        assert store.get(Kinds.CLUSTER_ROLES, ACCESS_ROLE)["rules"] == []
        p2_role = store.get(Kinds.CLUSTER_ROLES, "local-p2-namespaces-readonly")
        assert p2_role["rules"][0]["resourceNames"] == ["ns1"]

    def test_namespace_leaving_all_projects(self, store, manager):
        """A namespace without a project annotation loses every generated binding"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store)
        manager.reconcile_prtb(add_prtb(store))
        moved = store.get(Kinds.NAMESPACES, "ns1")
        moved["metadata"]["annotations"] = {}
        store.update(Kinds.NAMESPACES, moved)

        # Act
        NamespaceLifecycle(manager).updated(Namespace.from_object(moved))

        # Assert
        assert store.list(Kinds.ROLE_BINDINGS) == []

    def test_new_namespace_gets_project_bindings(self, store, manager):
        """Creating a namespace in a project binds the project's declarations there"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member"))
        seed_project(store)
        manager.reconcile_prtb(add_prtb(store))
        obj = store.create(Kinds.NAMESPACES, namespace("ns3", "local:p1"))

        # Act
        NamespaceLifecycle(manager).create(Namespace.from_object(obj))

        # Assert
        assert ("ns3", "member-alice", "uid-t-alice") in role_binding_summary(store)
        access = store.get(Kinds.CLUSTER_ROLES, ACCESS_ROLE)
        assert access["rules"][0]["resourceNames"] == ["ns1", "ns3"]


class TestClusterRoleBindingLifecycle:
    """Test cluster declarations"""

    def test_create_and_remove(self, store, manager):
        """A cluster declaration gets ClusterRoleBindings that go with it"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("cluster-member", children=["view"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        obj = store.create(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS, crtb("c-alice", "alice", "cluster-member"))
        binding = ClusterRoleTemplateBinding.from_object(obj)
        lifecycle = ClusterRoleBindingLifecycle(manager)

        # Act
        lifecycle.create(binding)
        created = names(store.list(Kinds.CLUSTER_ROLE_BINDINGS))
        lifecycle.remove(binding)

        # Assert
        assert created == ["cluster-member-alice", "view-alice"]
        assert store.list(Kinds.CLUSTER_ROLE_BINDINGS) == []
        assert names(store.list(Kinds.CLUSTER_ROLES)) == ["cluster-member", "view"]

    def test_other_cluster_is_ignored(self, store, manager):
        """Declarations naming another cluster are skipped"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        obj = store.create(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS,
                           crtb("c-remote", "alice", "view", cluster="downstream"))
        store.clear_actions()

        # Act
        ClusterRoleBindingLifecycle(manager).create(ClusterRoleTemplateBinding.from_object(obj))

        # Assert
        assert store.actions == []


class TestRoleTemplateLifecycle:
    """Test propagation of template changes"""

    def test_rule_change_updates_cluster_role(self, store, manager):
        """Updating a template's rules rewrites its ClusterRole"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        lifecycle = RoleTemplateLifecycle(manager)
        lifecycle.create(RoleTemplate.from_object(store.get(Kinds.ROLE_TEMPLATES, "view")))
        updated = store.get(Kinds.ROLE_TEMPLATES, "view")
        updated["rules"] = EDIT_RULES
        store.update(Kinds.ROLE_TEMPLATES, updated)

        # Act
        lifecycle.updated(RoleTemplate.from_object(updated))

        # Assert
        assert store.get(Kinds.CLUSTER_ROLES, "view")["rules"] == EDIT_RULES

    def test_new_child_fans_out_to_declarations(self, store, manager):
        """Composing a new template into a used one binds it for every declaration"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("member", children=["view"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        store.create(Kinds.ROLE_TEMPLATES, role_template("edit", EDIT_RULES))
        seed_project(store)
        manager.reconcile_prtb(add_prtb(store))
        obj = store.create(Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS, crtb("c-bob", "bob", "member"))
        manager.reconcile_crtb(ClusterRoleTemplateBinding.from_object(obj))

        member = store.get(Kinds.ROLE_TEMPLATES, "member")
        member["roleTemplateNames"] = ["view", "edit"]
        store.update(Kinds.ROLE_TEMPLATES, member)

        # Act
        RoleTemplateLifecycle(manager).updated(RoleTemplate.from_object(member))

        # Assert
        assert ("ns1", "edit-alice", "uid-t-alice") in role_binding_summary(store)
        assert "edit-bob" in names(store.list(Kinds.CLUSTER_ROLE_BINDINGS))
        assert store.get(Kinds.CLUSTER_ROLES, "edit")["rules"] == EDIT_RULES

    def test_broken_declaration_does_not_stop_others(self, store, manager):
        """A declaration that fails to resolve is reported after the others ran"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        seed_project(store)
        add_prtb(store, name="t-broken", user="carol", template="missing")
        add_prtb(store, name="t-alice", user="alice", template="view")

        # Act & Assert
        with pytest.raises(NotFoundError):
            RoleTemplateLifecycle(manager).updated(
                RoleTemplate.from_object(store.get(Kinds.ROLE_TEMPLATES, "view")))

        assert ("ns1", "view-alice", "uid-t-alice") in role_binding_summary(store)

    def test_cycle_creates_no_cluster_roles(self, store, registry):
        """Templates composing each other are reported without writing any ClusterRole"""
        # Arrange
        first = store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["b"]))
        second = store.create(Kinds.ROLE_TEMPLATES, role_template("b", children=["a"]))

        # Act
        handled = [registry.dispatch(Kinds.ROLE_TEMPLATES, "create", obj) for obj in (first, second)]

        # Assert
        assert handled == [False, False]
        assert store.list(Kinds.CLUSTER_ROLES) == []

    def test_resync_skips_cyclic_templates(self, store, manager):
        """A full pass reports the cycle and still syncs unrelated templates"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("a", children=["b"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("b", children=["a"]))
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))

        # Act
        errors = manager.resync()

        # Assert
        assert len(errors) == 2
        assert all(isinstance(error, CycleError) for error in errors)
        assert names(store.list(Kinds.CLUSTER_ROLES)) == ["view"]

    def test_remove_is_a_no_op(self, store, manager):
        """Derived ClusterRoles stay when their template is deleted"""
        # Arrange
        store.create(Kinds.ROLE_TEMPLATES, role_template("view"))
        template = RoleTemplate.from_object(store.get(Kinds.ROLE_TEMPLATES, "view"))
        lifecycle = RoleTemplateLifecycle(manager)
        lifecycle.create(template)
        store.delete(Kinds.ROLE_TEMPLATES, "view")
        store.clear_actions()

        # Act
        lifecycle.remove(template)

        # Assert
        assert store.actions == []
        assert names(store.list(Kinds.CLUSTER_ROLES)) == ["view"]


class TestConvergence:
    """Final state does not depend on event order or duplicates"""

    EVENTS = [
        (Kinds.ROLE_TEMPLATES, role_template("member", children=["view"])),
        (Kinds.ROLE_TEMPLATES, role_template("view", VIEW_RULES)),
        (Kinds.PROJECTS, project("p1")),
        (Kinds.NAMESPACES, namespace("ns1", "local:p1")),
        (Kinds.NAMESPACES, namespace("ns2", "local:p1")),
        (Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, prtb("t-alice", "local:p1", "alice", "member")),
        (Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS, crtb("c-bob", "bob", "view")),
    ]

    @staticmethod
    def run_steps(steps):
        """Apply (event, kind, object) steps to a fresh store, dispatching each"""
        store = MemoryStore()
        register_indexes(store)
        registry = LifecycleRegistry(max_retries=0, backoff_seconds=0, sleep=lambda _: None)
        register(AuthzManager(store, cluster_name=CLUSTER), registry)
        for event, kind, obj in steps:
            metadata = obj["metadata"]
            if event == "create":
                registry.dispatch(kind, event, store.create(kind, obj))
            elif event == "updated":
                registry.dispatch(kind, event, store.update(kind, obj))
            else:
                try:
                    store.delete(kind, metadata["name"], metadata.get("namespace"))
                except NotFoundError:
                    pass
                registry.dispatch(kind, event, obj)
        return store

    @classmethod
    def replay(cls, events, duplicate=False):
        steps = []
        for kind, obj in events:
            steps.append(("create", kind, obj))
            if duplicate:
                steps.append(("updated", kind, obj))
        return cls.run_steps(steps)

    @staticmethod
    def fresh(events):
        """State after one full pass over objects that were never reconciled"""
        store = MemoryStore()
        register_indexes(store)
        for kind, obj in events:
            store.create(kind, obj)
        assert AuthzManager(store, cluster_name=CLUSTER).resync() == []
        return store

    def test_any_order_converges(self):
        """Every permutation of a reduced event set ends in the same state"""
        # Arrange
        events = [self.EVENTS[0], self.EVENTS[1], self.EVENTS[3], self.EVENTS[5]]
        expected = snapshot(self.replay(events))

        # Act & Assert
        for permutation in itertools.permutations(events):
            assert snapshot(self.replay(list(permutation))) == expected

    def test_reversed_order_with_duplicates(self):
        """Declarations arriving before their templates, with every event repeated"""
        # Arrange
        expected = snapshot(self.replay(self.EVENTS))

        # Act
        actual = snapshot(self.replay(list(reversed(self.EVENTS)), duplicate=True))

        # Assert
        assert actual == expected
        assert ("ns2", "view-alice", "uid-t-alice") in actual["rolebindings"]
        assert ("view-bob", "uid-c-bob") in actual["clusterrolebindings"]

    def test_replay_matches_full_pass(self):
        """Incremental events and one full pass derive the same objects"""
        assert snapshot(self.replay(self.EVENTS)) == snapshot(self.fresh(self.EVENTS))

    def test_template_change_in_any_order(self):
        """Recomposing a template converges whether its new child exists yet or not"""
        # Arrange
        edit = (Kinds.ROLE_TEMPLATES, role_template("edit", EDIT_RULES))
        recomposed = role_template("member", children=["edit"])
        base = [self.EVENTS[0], self.EVENTS[1], self.EVENTS[2], self.EVENTS[3], self.EVENTS[5]]
        trailers = [
            [("create",) + edit, ("updated", Kinds.ROLE_TEMPLATES, recomposed)],
            [("updated", Kinds.ROLE_TEMPLATES, recomposed), ("create",) + edit],
        ]
        final = [(Kinds.ROLE_TEMPLATES, recomposed)] + base[1:] + [edit]
        expected = snapshot(self.fresh(final))

        # Act & Assert
        for permutation in itertools.permutations(base):
            for trailer in trailers:
                steps = [("create", kind, obj) for kind, obj in permutation] + trailer
                assert snapshot(self.run_steps(steps)) == expected
        assert ("ns1", "view-alice", "uid-t-alice") not in expected["rolebindings"]
        assert ("ns1", "edit-alice", "uid-t-alice") in expected["rolebindings"]

    def test_project_change_in_any_order(self):
        """Moving a declaration to another project converges for every creation order"""
        # Arrange
        moved = prtb("t-alice", "local:p2", "alice", "member")
        moved["metadata"]["namespace"] = "p1"
        fixed = [
            (Kinds.PROJECTS, project("p2")),
            (Kinds.NAMESPACES, namespace("ns3", "local:p2")),
        ]
        base = [self.EVENTS[0], self.EVENTS[1], self.EVENTS[2], self.EVENTS[3], self.EVENTS[5]]
        final = fixed + base[:4] + [(Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, moved)]
        expected = snapshot(self.fresh(final))

        # Act & Assert
        for permutation in itertools.permutations(base):
            steps = [("create", kind, obj) for kind, obj in fixed + list(permutation)]
            steps.append(("updated", Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS, moved))
            assert snapshot(self.run_steps(steps)) == expected
        assert expected["rolebindings"] == [
            ("ns3", "member-alice", "uid-t-alice"),
            ("ns3", "view-alice", "uid-t-alice"),
        ]
        assert expected["clusterrolebindings"] == [
            ("local-p2-namespaces-readonly-alice", "local-p2-namespaces")
        ]

    def test_removal_last_in_any_order(self):
        """Declarations created in any order and then removed leave only roles behind"""
        # Arrange
        base = [self.EVENTS[0], self.EVENTS[1], self.EVENTS[2], self.EVENTS[3],
                self.EVENTS[5], self.EVENTS[6]]
        removals = [("remove",) + self.EVENTS[5], ("remove",) + self.EVENTS[6]]
        expected = snapshot(self.fresh(base[:4]))

        # Act & Assert
        for permutation in itertools.permutations(base):
            steps = [("create", kind, obj) for kind, obj in permutation] + removals
            assert snapshot(self.run_steps(steps)) == expected
        assert expected["rolebindings"] == []
        assert expected["clusterrolebindings"] == []

    def test_remove_before_create(self):
        """A remove delivered ahead of its create, and a delete then re-create, both converge"""
        # Arrange
        declaration = self.EVENTS[5]
        expected = snapshot(self.fresh(self.EVENTS))
        early_remove = [("remove",) + declaration] + [("create",) + e for e in self.EVENTS]
        recreated = ([("create",) + e for e in self.EVENTS]
                     + [("remove",) + declaration, ("create",) + declaration])

        # Act & Assert
        assert snapshot(self.run_steps(early_remove)) == expected
        assert snapshot(self.run_steps(recreated)) == expected
