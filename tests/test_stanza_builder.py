"""Tests for building source and binary package stanzas."""

import pytest

from common.diagnostics import OVERRIDE_CONFLICT, UNREPRESENTABLE_PREDICATE
from config.loader import PackagingConfig
from constants import Constants
from crates.models import CrateMetadata, Dependency
from crates.semver_req import VersionRequirement
from debpkg.control import render_control
from debpkg.stanza import StanzaKind
from translation.stanza_builder import build_package, stanza_activation_sets


def dep(name, req="1", **kwargs):
    return Dependency(name, VersionRequirement.parse(req), **kwargs)


def rendered(relations):
    return [r.render() for r in relations]


@pytest.fixture
def foo():
    """Library whose default feature pulls in an optional dependency."""
    return CrateMetadata(
        "foo",
        "1.2.3",
        dependencies=(dep("libc", "0.2"), dep("serde", "1.0", optional=True)),
        features={"default": ["serde"]},
        description="Foo does things. It does them well.",
        homepage="https://example.org/foo",
        license="MIT",
    )


@pytest.fixture
def plain():
    """Library whose features add no dependencies."""
    return CrateMetadata(
        "plain",
        "0.4.1",
        dependencies=(dep("libc", "0.2"),),
        features={"std": []},
        description="Plain crate.",
    )


class TestLibraryStanzas:
    """Main, default and feature-group packages."""

    def test_default_stanza_carries_optional_dependency(self, foo):
        """Ensure the +default package carries the optional dependency."""
        result = build_package(foo)
        default = result.stanza("librust-foo+default-dev")
        assert default is not None
        assert default.kind is StanzaKind.DEFAULT
        assert "librust-serde-1+default-dev" in rendered(default.depends)
        assert "librust-serde-1+default-dev" not in rendered(result.stanza("librust-foo-dev").depends)

    def test_feature_stanza_depends_on_main(self, foo):
        """Ensure feature packages depend on the main package."""
        default = build_package(foo).stanza("librust-foo+default-dev")
        assert rendered(default.depends) == [
            "${misc:Depends}",
            "librust-foo-dev (= ${binary:Version})",
            "librust-libc-0.2+default-dev",
            "librust-serde-1+default-dev",
        ]

    def test_main_stanza(self, foo):
        """Test the main library package."""
        main = build_package(foo).stanza("librust-foo-dev")
        assert main.kind is StanzaKind.MAIN
        assert rendered(main.depends) == ["${misc:Depends}", "librust-libc-0.2+default-dev"]
        assert rendered(main.recommends) == ["librust-foo+default-dev (= ${binary:Version})"]
        assert main.suggests == ()
        assert rendered(main.provides) == [
            "librust-foo-1-dev (= ${binary:Version})",
            "librust-foo-1.2-dev (= ${binary:Version})",
            "librust-foo-1.2.3-dev (= ${binary:Version})",
        ]
        assert main.summary == "Foo does things - Rust source code"

    def test_grouped_feature_is_provided(self, foo):
        """Ensure grouped features are provided by the owning package."""
        default = build_package(foo).stanza("librust-foo+default-dev")
        provides = rendered(default.provides)
        assert "librust-foo+serde-dev (= ${binary:Version})" in provides
        assert "librust-foo-1.2.3+default-dev (= ${binary:Version})" in provides
        assert "librust-foo+default-dev (= ${binary:Version})" not in provides
        assert default.summary == 'Foo does things - feature "default" and 1 more'

    def test_no_default_stanza_when_default_adds_nothing(self, plain):
        """Ensure no +default package exists when default adds nothing."""
        result = build_package(plain)
        assert [s.identifier for s in result.stanzas] == ["librust-plain-dev"]
        provides = rendered(result.stanzas[0].provides)
        assert "librust-plain+default-dev (= ${binary:Version})" in provides
        assert "librust-plain+std-dev (= ${binary:Version})" in provides

    def test_feature_groups_are_suggested(self):
        """Ensure the main package suggests the feature packages."""
        metadata = CrateMetadata(
            "bar", "2.0.0",
            dependencies=(dep("serde_json", optional=True),),
            features={"json": ["dep:serde_json"]},
        )
        result = build_package(metadata)
        main = result.stanza("librust-bar-dev")
        assert main.recommends == ()
        assert rendered(main.suggests) == ["librust-bar+json-dev (= ${binary:Version})"]
        assert result.stanza("librust-bar+json-dev").kind is StanzaKind.FEATURE_GROUP

    def test_requested_feature_groups(self, foo):
        """Test building only the requested feature packages."""
        result = build_package(foo, feature_groups=[])
        assert [s.identifier for s in result.stanzas] == ["librust-foo-dev", "librust-foo+default-dev"]

    def test_collapse_features(self, foo):
        """Test folding every feature into the main package."""
        result = build_package(foo, PackagingConfig(collapse_features=True))
        assert len(result.stanzas) == 1
        main = result.stanzas[0]
        assert "librust-serde-1+default-dev" in rendered(main.depends)
        assert "librust-foo+serde-dev (= ${binary:Version})" in rendered(main.provides)
        assert main.recommends == () and main.suggests == ()

    def test_semver_suffix(self, foo):
        """Test package names with the series suffix."""
        result = build_package(foo, PackagingConfig(semver_suffix=True))
        assert result.source.name == "rust-foo-1"
        main = result.stanza("librust-foo-1-dev")
        assert "librust-foo-dev (= ${binary:Version})" in rendered(main.provides)
        assert "Replaces: librust-foo-1.2.3-dev" in main.extra_lines
        default = result.stanza("librust-foo-1+default-dev")
        assert "librust-foo-1-dev (= ${binary:Version})" in rendered(default.depends)

    def test_missing_summary_is_flagged(self):
        """Ensure a missing summary is flagged."""
        metadata = CrateMetadata("nodesc", "1.0.0")
        main = build_package(metadata).stanzas[0]
        assert main.summary == 'Rust crate "nodesc" - Rust source code'
        assert any("summary missing" in f for f in main.fixmes)

    def test_unrepresentable_dependency_is_marked(self):
        """Ensure unrepresentable dependencies are marked for review."""
        metadata = CrateMetadata("star", "1.0.0", dependencies=(dep("rand", "*"),))
        result = build_package(metadata)
        main = result.stanzas[0]
        assert "librust-rand+default-dev" in rendered(main.depends)
        assert any(f.startswith("rand *") for f in main.fixmes)
        assert result.diagnostics.by_code(UNREPRESENTABLE_PREDICATE)
        assert "# FIXME: rand *" in render_control(result.source, result.stanzas)

    def test_default_stanza_kept_when_earlier_feature_shares_closure(self):
        """A feature sorting before default with the same closure is provided by +default."""
        metadata = CrateMetadata(
            "foo",
            "1.0.0",
            dependencies=(dep("a", optional=True),),
            features={"default": ["a"], "alloc": ["a"]},
            description="Foo.",
        )
        result = build_package(metadata)
        assert [(s.identifier, s.kind) for s in result.stanzas] == [
            ("librust-foo-dev", StanzaKind.MAIN),
            ("librust-foo+default-dev", StanzaKind.DEFAULT),
        ]
        provides = rendered(result.stanza("librust-foo+default-dev").provides)
        assert "librust-foo+alloc-dev (= ${binary:Version})" in provides
        assert "librust-foo+a-dev (= ${binary:Version})" in provides

    def test_dependency_admitting_no_version_is_marked(self):
        """A requirement like <0 degrades to an unsatisfiable relation instead of failing the crate."""
        metadata = CrateMetadata("foo", "1.0.0", dependencies=(dep("bar", "<0"),))
        result = build_package(metadata)
        main = result.stanzas[0]
        assert "librust-bar+default-dev (<< 0-~~)" in rendered(main.depends)
        assert any(f.startswith("bar <0") for f in main.fixmes)
        assert result.diagnostics.by_code(UNREPRESENTABLE_PREDICATE)


class TestBinaryStanza:
    """Test the binary package."""

    def test_binary_only_crate(self):
        """Test a crate with only binary targets."""
        metadata = CrateMetadata("foo-cli", "0.5.0", has_lib=False, binaries=("foo-cli",))
        result = build_package(metadata)
        [stanza] = result.stanzas
        assert stanza.identifier == "foo-cli"
        assert stanza.kind is StanzaKind.BINARY
        assert stanza.multi_arch == "allowed"
        assert rendered(stanza.depends) == ["${misc:Depends}", "${shlibs:Depends}", "${cargo:Depends}"]
        assert result.source.section == Constants.NON_LIB_SECTION
        assert result.source.fixmes

    def test_semver_suffix_suppresses_binary(self):
        """Ensure the series suffix suppresses the binary package."""
        metadata = CrateMetadata("foo-cli", "0.5.0", has_lib=False, binaries=("foo-cli",))
        assert build_package(metadata, PackagingConfig(semver_suffix=True)).stanzas == ()

    def test_binary_sorted_last_and_listed(self):
        """Ensure the binary package comes last."""
        metadata = CrateMetadata("foo", "1.2.3", binaries=("foo-a", "foo-b"), description="Foo.")
        result = build_package(metadata, PackagingConfig(bin_name="foo-tools"))
        assert result.stanzas[-1].identifier == "foo-tools"
        assert "- foo-a" in result.stanzas[-1].description


class TestOverrides:
    """Config overrides are applied last and conflicts are reported."""

    def test_package_overrides(self, foo):
        """Test per-package overrides."""
        config = PackagingConfig.from_dict({
            "packages": {
                "lib": {
                    "summary": "Other summary",
                    "section": "devel",
                    "depends": ["librust-libc-0.2+default-dev (>= 0.2.5)"],
                },
            },
        })
        result = build_package(foo, config)
        main = result.stanza("librust-foo-dev")
        assert main.summary == "Other summary"
        assert main.section == "devel"
        assert "librust-libc-0.2+default-dev (>= 0.2.5)" in rendered(main.depends)
        assert "librust-libc-0.2+default-dev" not in rendered(main.depends)
        fields = sorted(d.details.get("field") for d in result.diagnostics.by_code(OVERRIDE_CONFLICT))
        assert fields == ["depends", "summary"]

    def test_provided_feature_key_reaches_owner(self, foo):
        """Ensure overrides for a provided feature reach its owner."""
        config = PackagingConfig.from_dict({"packages": {"lib+serde": {"depends": ["libextra"]}}})
        default = build_package(foo, config).stanza("librust-foo+default-dev")
        assert "libextra" in rendered(default.depends)

    def test_unknown_package_key_is_reported(self, foo):
        """Ensure unknown package keys are reported."""
        config = PackagingConfig.from_dict({"packages": {"lib+nothing": {"section": "x"}}})
        result = build_package(foo, config)
        messages = [d.message for d in result.diagnostics.by_code(OVERRIDE_CONFLICT)]
        assert any("lib+nothing" in m for m in messages)

    def test_global_summary_conflict(self, foo):
        """Ensure an overridden summary reports a conflict."""
        result = build_package(foo, PackagingConfig(summary="Replacement"))
        assert result.stanza("librust-foo-dev").summary == "Replacement - Rust source code"
        assert result.diagnostics.by_code(OVERRIDE_CONFLICT)


class TestSourceStanza:
    """Test the source package."""

    def test_defaults(self, foo):
        """Test the default source package."""
        source = build_package(foo).source
        assert source.name == "rust-foo"
        assert source.section == Constants.LIB_SECTION
        assert source.crate_name == "foo"
        assert source.homepage == "https://example.org/foo"
        assert source.vcs_git.endswith("[src/foo]")
        assert rendered(source.build_depends) == Constants.TOOLCHAIN_BUILD_DEPENDS + [
            "librust-libc-0.2+default-dev <!nocheck>",
            "librust-serde-1+default-dev <!nocheck>",
        ]

    def test_source_overrides(self, foo):
        """Test source package overrides."""
        config = PackagingConfig.from_dict({
            "source": {
                "section": "devel",
                "build_depends": ["pkg-config"],
                "build_depends_excludes": ["librust-serde-1+default-dev"],
                "requires_root": "binary-targets",
            },
        })
        source = build_package(foo, config).source
        assert source.section == "devel"
        assert source.requires_root == "binary-targets"
        deps = rendered(source.build_depends)
        assert "pkg-config" in deps
        assert not any(d.startswith("librust-serde") for d in deps)


class TestDeterminism:
    """Test stable output."""

    def test_repeated_builds_render_identically(self, foo):
        """Ensure repeated builds render identically."""
        first = build_package(foo)
        second = build_package(foo)
        assert render_control(first.source, first.stanzas) == render_control(second.source, second.stanzas)

    def test_stanza_order(self):
        """Ensure packages are ordered by kind."""
        metadata = CrateMetadata(
            "mix", "1.0.0",
            dependencies=(dep("a", optional=True), dep("b", optional=True)),
            features={"default": ["b"]},
            binaries=("mix",),
        )
        kinds = [s.kind for s in build_package(metadata).stanzas]
        assert kinds == sorted(kinds, key=lambda k: k.value)
        assert kinds[0] is StanzaKind.MAIN and kinds[-1] is StanzaKind.BINARY


def test_activation_sets_cover_every_library_package(foo):
    """Ensure activation sets cover every library package."""
    activations = stanza_activation_sets(foo)
    assert len(activations) == 2
    assert any("serde" in {d.name for d in a.dependencies} for a in activations)
