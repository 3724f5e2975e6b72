"""Tests for leaves-first build order resolution."""

import pytest

from common.diagnostics import DANGLING_FEATURE_REFERENCE
from crates.models import CrateMetadata, Dependency, DependencyKind
from crates.semver_req import VersionRequirement
from errors import DependencyCycle, FetchError
from registry.base import InMemoryCrateSource
from translation.build_order import (
    BuildOrderContext,
    ResolutionMode,
    build_order,
    dependency_edges,
    format_build_order,
)

BINARY = ResolutionMode.BINARY_ALL_DEPS
SOURCE = ResolutionMode.SOURCE_BUILD_DEPS


def dep(name, req="1", **kwargs):
    return Dependency(name, VersionRequirement.parse(req), **kwargs)


def node(name, *deps, **kwargs):
    return CrateMetadata(name, kwargs.pop("version", "1.0.0"), dependencies=deps, **kwargs)


@pytest.fixture
def diamond():
    return InMemoryCrateSource([
        node("app", dep("left"), dep("right")),
        node("left", dep("base")),
        node("right", dep("base")),
        node("base"),
    ])


def assert_topological(order, source, mode):
    position = {n: i for i, n in enumerate(order)}
    for name, version in order:
        metadata = [m for m in source.versions(name) if str(m.version) == version][0]
        for child, requirement in dependency_edges(metadata, mode):
            [target] = [n for n in order if n[0] == child and requirement.matches(n[1])]
            assert position[target] < position[(name, version)]


class TestBuildOrder:
    """Ordering, determinism and error reporting."""

    def test_leaves_first(self, diamond):
        """Ensure dependencies come before their dependents."""
        order = build_order([("app", "1.0.0")], BINARY, diamond)
        assert order == [("base", "1.0.0"), ("left", "1.0.0"), ("right", "1.0.0"), ("app", "1.0.0")]
        assert_topological(order, diamond, BINARY)

    def test_deterministic(self, diamond):
        """Ensure repeated resolutions give the same order."""
        first = build_order([("app", "1.0.0")], BINARY, diamond)
        second = build_order([("app", "1.0.0")], BINARY, diamond)
        assert first == second

    def test_multiple_roots(self, diamond):
        """Test resolving several roots at once."""
        order = build_order([("right", "1.0.0"), ("left", "1.0.0")], BINARY, diamond)
        assert order == [("base", "1.0.0"), ("left", "1.0.0"), ("right", "1.0.0")]

    def test_highest_matching_version_is_used(self):
        """Ensure the highest matching version becomes the node."""
        source = InMemoryCrateSource([
            node("app", dep("lib", "^1")),
            node("lib", version="1.0.0"),
            node("lib", version="1.3.0"),
            node("lib", version="2.0.0"),
        ])
        assert build_order([("app", "1.0.0")], BINARY, source)[0] == ("lib", "1.3.0")

    def test_two_major_versions_are_distinct_nodes(self):
        """Ensure two major versions of one crate are separate nodes."""
        source = InMemoryCrateSource([
            node("app", dep("lib", "^1"), dep("mid")),
            node("mid", dep("lib", "^2")),
            node("lib", version="1.0.0"),
            node("lib", version="2.0.0"),
        ])
        order = build_order([("app", "1.0.0")], BINARY, source)
        assert ("lib", "1.0.0") in order and ("lib", "2.0.0") in order
        assert_topological(order, source, BINARY)

    def test_cycle_reports_full_path(self):
        """Ensure a cycle is reported with its full path."""
        source = InMemoryCrateSource([
            node("a", dep("b")),
            node("b", dep("c")),
            node("c", dep("a")),
        ])
        with pytest.raises(DependencyCycle) as excinfo:
            build_order([("a", "1.0.0")], BINARY, source)
        assert excinfo.value.path == (("a", "1.0.0"), ("b", "1.0.0"), ("c", "1.0.0"), ("a", "1.0.0"))

    def test_self_edges_are_ignored(self):
        """Ensure a crate depending on itself is not a cycle."""
        source = InMemoryCrateSource([node("a", dep("a"))])
        assert build_order([("a", "1.0.0")], BINARY, source) == [("a", "1.0.0")]

    def test_fetch_error_names_origin(self):
        """Ensure fetch errors name the node that needed the crate."""
        source = InMemoryCrateSource([node("a", dep("b")), node("b", dep("missing"))])
        with pytest.raises(FetchError) as excinfo:
            build_order([("a", "1.0.0")], BINARY, source)
        assert excinfo.value.name == "missing"
        assert excinfo.value.origin == ("b", "1.0.0")
        assert "required by b 1.0.0" in str(excinfo.value)

    def test_missing_root_has_no_origin(self):
        """Ensure a missing root carries no origin."""
        with pytest.raises(FetchError) as excinfo:
            build_order([("a", "1.0.0")], BINARY, InMemoryCrateSource())
        assert excinfo.value.origin is None


class TestModes:
    """Which dependencies count as edges."""

    @pytest.fixture
    def featured(self):
        return InMemoryCrateSource([
            node(
                "app",
                dep("core"),
                dep("extra", optional=True),
                dep("tool", kind=DependencyKind.BUILD),
                dep("tester", kind=DependencyKind.DEV),
                features={"fancy": ["extra"]},
            ),
            node("core"),
            node("extra"),
            node("tool"),
            node("tester"),
        ])

    def test_source_mode_uses_default_features(self, featured):
        """Test source mode edges from the default feature set."""
        order = build_order([("app", "1.0.0")], SOURCE, featured)
        assert [n for n, _ in order] == ["core", "tool", "app"]

    def test_binary_mode_covers_every_feature_package(self, featured):
        """Test binary mode edges from every feature package."""
        order = build_order([("app", "1.0.0")], BINARY, featured)
        assert [n for n, _ in order] == ["core", "extra", "tool", "app"]

    def test_edges_sorted_and_unique(self):
        """Ensure edges are sorted and de-duplicated."""
        metadata = node("app", dep("b"), dep("a"), dep("a", kind=DependencyKind.BUILD))
        assert [name for name, _ in dependency_edges(metadata, SOURCE)] == ["a", "b"]

    def test_collapse_features_uses_every_dependency(self, featured):
        """Collapsed packaging makes every non-dev dependency an edge, in either mode."""
        for mode in (SOURCE, BINARY):
            order = build_order([("app", "1.0.0")], mode, featured, collapse_features=True)
            assert [n for n, _ in order] == ["core", "extra", "tool", "app"]

    def test_collapsed_and_plain_results_cached_apart(self, featured):
        """The context keys finished orders by the collapse setting too."""
        context = BuildOrderContext()
        plain = build_order([("app", "1.0.0")], SOURCE, featured, context)
        collapsed = build_order([("app", "1.0.0")], SOURCE, featured, context, collapse_features=True)
        assert len(collapsed) == len(plain) + 1
        assert context.cached(SOURCE, frozenset({("app", "1.0.0")}), True) == tuple(collapsed)

    @pytest.mark.parametrize("mode", [SOURCE, BINARY])
    def test_dangling_feature_reference_is_recorded(self, mode):
        """Dangling feature values reach the context's diagnostics in both modes."""
        source = InMemoryCrateSource([node("leaf", features={"extra": ["nonexistent"]})])
        context = BuildOrderContext()
        build_order([("leaf", "1.0.0")], mode, source, context)
        assert context.diagnostics.by_code(DANGLING_FEATURE_REFERENCE)


class TestContext:
    """Invocation-scoped caching."""

    def test_results_are_reused(self, diamond):
        """Ensure a context reuses finished orders."""
        context = BuildOrderContext()
        first = build_order([("app", "1.0.0")], BINARY, diamond, context)
        fetches = diamond.fetch_count
        second = build_order([("app", "1.0.0")], BINARY, diamond, context)
        assert first == second
        assert diamond.fetch_count == fetches

    def test_metadata_fetched_once_per_requirement(self, diamond):
        """Ensure metadata is fetched once per requirement."""
        build_order([("app", "1.0.0")], BINARY, diamond, BuildOrderContext())
        # app, left, right, base
        assert diamond.fetch_count == 4

    def test_failures_are_not_cached(self):
        """Ensure failed resolutions are not cached."""
        source = InMemoryCrateSource([node("a", dep("b"))])
        context = BuildOrderContext()
        with pytest.raises(FetchError):
            build_order([("a", "1.0.0")], BINARY, source, context)
        assert context.cached(BINARY, frozenset({("a", "1.0.0")})) is None
        source.add(node("b"))
        assert build_order([("a", "1.0.0")], BINARY, source, context) == [("b", "1.0.0"), ("a", "1.0.0")]

    def test_separate_contexts_do_not_share(self, diamond):
        """Ensure separate contexts keep separate caches."""
        build_order([("app", "1.0.0")], BINARY, diamond, BuildOrderContext())
        fetches = diamond.fetch_count
        build_order([("app", "1.0.0")], BINARY, diamond, BuildOrderContext())
        assert diamond.fetch_count == 2 * fetches


def test_format_build_order():
    """Test the name-version line format."""
    assert format_build_order([("base", "1.0.0"), ("app", "0.2.1")]) == "base 1.0.0\napp 0.2.1\n"
