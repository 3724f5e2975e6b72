"""Tests for the feature graph, closures and feature grouping."""

import pytest

from common.diagnostics import DANGLING_FEATURE_REFERENCE, Diagnostics
from crates.features import (
    FeatureGraph,
    closure,
    default_needs_stanza,
    plan_feature_groups,
    unconditional,
)
from crates.models import CrateMetadata, Dependency, DependencyKind
from crates.semver_req import VersionRequirement


def dep(name, req="1", **kwargs):
    return Dependency(name, VersionRequirement.parse(req), **kwargs)


def crate(features=None, deps=()):
    return CrateMetadata("foo", "1.0.0", dependencies=tuple(deps), features=features or {})


@pytest.fixture
def serde_crate():
    return crate(
        features={"default": ["std"], "std": [], "derive": ["serde/derive"], "json": ["dep:serde_json"]},
        deps=[
            dep("libc", "0.2"),
            dep("serde", optional=True),
            dep("serde_json", optional=True),
            dep("tempfile", "3", kind=DependencyKind.DEV),
        ],
    )


def names(activation):
    return sorted(d.name for d in activation.dependencies)


class TestClosure:
    """Closure over activation edges."""

    def test_unconditional_holds_required_dependencies(self, serde_crate):
        """Ensure the empty selection holds the required dependencies."""
        assert names(unconditional(serde_crate)) == ["libc"]

    def test_dev_dependencies_never_activated(self, serde_crate):
        """Ensure dev-dependencies are never activated."""
        everything = closure(serde_crate, ("default", "derive", "json", "serde"))
        assert "tempfile" not in names(everything)

    def test_bare_vertex_always_reached(self, serde_crate):
        """Ensure the bare vertex is always reached."""
        assert "" in closure(serde_crate, ("std",)).features

    def test_implicit_optional_vertex(self, serde_crate):
        """Test the implicit feature of an optional dependency."""
        assert names(closure(serde_crate, ("serde",))) == ["libc", "serde"]

    def test_dep_prefix_hides_implicit_vertex(self, serde_crate):
        """Ensure dep: references hide the implicit feature."""
        graph = FeatureGraph.from_metadata(serde_crate)
        assert "serde_json" not in graph
        assert names(graph.closure(("json",))) == ["libc", "serde_json"]

    def test_dependency_feature_activates_and_requests(self, serde_crate):
        """Test dependency/feature values."""
        activation = closure(serde_crate, ("derive",))
        serde = [d for d in activation.dependencies if d.name == "serde"]
        assert any(d.features == () and d.default_features for d in serde)
        assert any(d.features == ("derive",) and not d.default_features for d in serde)

    def test_weak_dependency_feature(self):
        """Ensure weak dependency features do not activate the dependency."""
        metadata = crate(features={"std": ["serde?/std"]}, deps=[dep("serde", optional=True)])
        assert names(closure(metadata, ("std",))) == []
        activation = closure(metadata, ("std", "serde"))
        assert sorted(d.features for d in activation.dependencies) == [(), ("std",)]

    def test_cycles_terminate(self):
        """Ensure feature cycles terminate."""
        metadata = crate(features={"a": ["b"], "b": ["a"]})
        assert closure(metadata, ("a",)).features == frozenset({"", "a", "b"})

    def test_monotonic(self, serde_crate):
        """Ensure more features never activate fewer dependencies."""
        small = closure(serde_crate, ("std",))
        large = closure(serde_crate, ("std", "json"))
        assert small <= large

    def test_dangling_reference_reported(self):
        """Ensure dangling references are reported."""
        diagnostics = Diagnostics()
        metadata = crate(features={"a": ["nope", "ghost/feat"]})
        activation = closure(metadata, ("a",), diagnostics)
        assert activation.features == frozenset({"", "a"})
        dangling = diagnostics.by_code(DANGLING_FEATURE_REFERENCE)
        assert sorted(d.subject for d in dangling) == ["ghost/feat", "nope"]

    def test_unknown_requested_feature_reported(self):
        """Ensure unknown requested features are reported."""
        diagnostics = Diagnostics()
        closure(crate(), ("missing",), diagnostics)
        assert diagnostics.by_code(DANGLING_FEATURE_REFERENCE)[0].details["referenced_by"] == "<requested>"


class TestDefault:
    """Test whether default needs a package."""

    def test_implicit_default_adds_nothing(self):
        """Ensure an undeclared default adds nothing."""
        metadata = crate(deps=[dep("libc", "0.2")])
        assert closure(metadata).dependencies == unconditional(metadata).dependencies
        assert not default_needs_stanza(metadata)

    def test_default_with_optional_dependency(self):
        """Test a default feature that activates an optional dependency."""
        metadata = crate(features={"default": ["serde"]}, deps=[dep("serde", optional=True)])
        assert default_needs_stanza(metadata)


class TestPlan:
    """Grouping of features into packages."""

    def test_features_without_extra_dependencies_go_to_main(self, serde_crate):
        """Ensure features that add nothing are provided by the main package."""
        plan = plan_feature_groups(serde_crate)
        assert plan.main_provides == ("default", "std")

    def test_equal_closures_share_a_package(self):
        """Features with equal closures are provided by one package, owned by default."""
        metadata = crate(
            features={"default": ["serde"], "alias": ["serde"]},
            deps=[dep("serde", optional=True)],
        )
        plan = plan_feature_groups(metadata)
        assert [g.owner for g in plan.groups] == ["default"]
        assert plan.group("default").provides == ("alias", "serde")

    def test_default_owns_group_over_earlier_names(self):
        """default keeps its own package even when an earlier-sorting feature shares its closure."""
        metadata = crate(
            features={"default": ["a"], "alloc": ["a"]},
            deps=[dep("a", optional=True)],
        )
        plan = plan_feature_groups(metadata)
        assert [g.owner for g in plan.groups] == ["default"]
        assert plan.group("default").provides == ("a", "alloc")
        assert plan.group("a") is None

    def test_groups_sorted_by_owner(self, serde_crate):
        """Ensure groups are sorted by owner."""
        plan = plan_feature_groups(serde_crate)
        assert [g.owner for g in plan.groups] == ["derive", "json", "serde"]

    def test_requested_subset_always_includes_default(self, serde_crate):
        """Ensure default is always part of a requested subset."""
        plan = plan_feature_groups(serde_crate, ["json"])
        assert [g.owner for g in plan.groups] == ["json"]
        assert plan.main_provides == ("default",)

    def test_unknown_requested_feature_is_skipped(self, serde_crate):
        """Ensure unknown requested features are skipped."""
        diagnostics = Diagnostics()
        plan = plan_feature_groups(serde_crate, ["json", "missing"], diagnostics)
        assert [g.owner for g in plan.groups] == ["json"]
        assert diagnostics.by_code(DANGLING_FEATURE_REFERENCE)

    def test_all_activations_start_with_unconditional(self, serde_crate):
        """Test the activation sets of every package."""
        plan = plan_feature_groups(serde_crate)
        assert plan.all_activations[0] == plan.unconditional
        assert len(plan.all_activations) == 1 + len(plan.groups)
