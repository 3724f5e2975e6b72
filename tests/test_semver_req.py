"""Tests for the Cargo version requirement grammar and matching."""

import pytest

from crates.semver_req import (
    InvalidRequirement,
    Op,
    VersionRequirement,
    parse_comparator,
)


class TestParse:
    """Parsing of requirement strings."""

    def test_bare_version_is_caret(self):
        """Ensure a version without an operator parses as a caret requirement."""
        req = VersionRequirement.parse("1.2")
        assert len(req.comparators) == 1
        assert req.comparators[0].op is Op.CARET
        assert req.comparators[0].components == (1, 2)

    @pytest.mark.parametrize("text", ["*", "", "  ", None])
    def test_full_wildcard_has_no_comparators(self, text):
        """Ensure the full wildcard parses to an empty comparator list."""
        assert VersionRequirement.parse(text).is_star

    def test_partial_wildcard(self):
        """Test wildcard minor and patch components."""
        comparator = parse_comparator("1.*")
        assert comparator.op is Op.WILDCARD
        assert comparator.components == (1,)

    def test_multiple_comparators(self):
        """Test comma-separated comparators."""
        req = VersionRequirement.parse(">= 1.2, < 2")
        assert [c.op for c in req.comparators] == [Op.GREATER_EQ, Op.LESS]

    def test_prerelease_tag(self):
        """Test parsing of pre-release tags."""
        req = VersionRequirement.parse("=2.0.0-rc.1")
        assert req.has_prerelease
        assert req.comparators[0].pre == ("rc", "1")
        assert not req.without_prerelease().has_prerelease

    @pytest.mark.parametrize("text", [
        "abc",
        ">= *",
        "1.*.3",
        "1.2-pre",
        "1.0,,2",
        "~>1.0",
    ])
    def test_invalid_requirements(self, text):
        """Ensure malformed requirements are rejected."""
        with pytest.raises(InvalidRequirement):
            VersionRequirement.parse(text)

    def test_invalid_is_value_error(self):
        """Ensure InvalidRequirement is a ValueError."""
        assert issubclass(InvalidRequirement, ValueError)


class TestStr:
    """Canonical string forms."""

    @pytest.mark.parametrize("text,expected", [
        ("1", "^1"),
        (">= 1.2, < 2", ">=1.2, <2"),
        ("1.*", "1.*"),
        ("~0.3.1", "~0.3.1"),
        ("*", "*"),
    ])
    def test_round_trip(self, text, expected):
        """Test the canonical string form."""
        assert str(VersionRequirement.parse(text)) == expected

    def test_exact(self):
        """Test building an exact requirement from a version."""
        assert str(VersionRequirement.exact("1.2.3")) == "=1.2.3"


class TestMatches:
    """Cargo matching semantics."""

    @pytest.mark.parametrize("req,version,expected", [
        ("^1.2.3", "1.2.3", True),
        ("^1.2.3", "1.9.0", True),
        ("^1.2.3", "2.0.0", False),
        ("^1.2.3", "1.2.2", False),
        ("^0.3", "0.3.9", True),
        ("^0.3", "0.4.0", False),
        ("^0.0.3", "0.0.3", True),
        ("^0.0.3", "0.0.4", False),
        ("~1.2.3", "1.2.9", True),
        ("~1.2.3", "1.3.0", False),
        ("~1", "1.9.0", True),
        ("<=1.2", "1.2.7", True),
        ("<=1.2", "1.3.0", False),
        (">1.2", "1.2.5", False),
        (">1.2", "1.3.0", True),
        ("<2", "1.9.9", True),
        ("<2", "2.0.0", False),
        ("1.*", "1.4.0", True),
        ("1.*", "2.0.0", False),
        ("=1.2", "1.2.4", True),
        ("*", "7.0.0", True),
    ])
    def test_release_versions(self, req, version, expected):
        """Test Cargo matching of release versions."""
        assert VersionRequirement.parse(req).matches(version) is expected

    def test_prerelease_needs_opt_in(self):
        """Ensure pre-release versions only match when a comparator names one."""
        assert not VersionRequirement.parse(">=1.0.0").matches("1.1.0-alpha")
        assert VersionRequirement.parse("=1.1.0-alpha").matches("1.1.0-alpha")

    def test_prerelease_opt_in_is_per_triple(self):
        """Ensure the pre-release opt-in only covers the named major.minor.patch."""
        req = VersionRequirement.parse(">=1.1.0-alpha")
        assert req.matches("1.1.0-beta")
        assert req.matches("1.2.0")
        assert not req.matches("1.2.0-alpha")

    def test_invalid_version(self):
        """Ensure unparsable versions are rejected by matches."""
        with pytest.raises(InvalidRequirement):
            VersionRequirement.parse("1").matches("not-a-version")
