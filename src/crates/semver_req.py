"""Cargo version requirements: parsing and matching.

Implements the requirement grammar used in Cargo manifests and the
crates.io index (``^1.2``, ``~0.3.1``, ``>=1, <3``, ``1.*``, ``=2.0.0-rc.1``)
with Cargo's matching rules, including its pre-release handling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import semantic_version


class InvalidRequirement(ValueError):
    """Raised when a version requirement string cannot be parsed."""


class Op(Enum):
    """Comparator operators of the Cargo requirement grammar."""
    EXACT = "="
    GREATER = ">"
    GREATER_EQ = ">="
    LESS = "<"
    LESS_EQ = "<="
    TILDE = "~"
    CARET = "^"
    WILDCARD = "*"


_OPS = {op.value: op for op in Op if op is not Op.WILDCARD}
_WILDCARDS = ("*", "x", "X")
_COMPARATOR_RE = re.compile(
    r"""^\s*
    (?P<op>>=|<=|>|<|=|~|\^)?\s*
    (?P<major>\d+|[*xX])
    (?:\.(?P<minor>\d+|[*xX]))?
    (?:\.(?P<patch>\d+|[*xX]))?
    (?:-(?P<pre>[0-9A-Za-z.-]+))?
    (?:\+(?P<build>[0-9A-Za-z.-]+))?
    \s*$""",
    re.VERBOSE,
)

VersionLike = Union[str, semantic_version.Version]


def parse_version(value: VersionLike) -> semantic_version.Version:
    """Parse a full semantic version; Version instances pass through."""
    if isinstance(value, semantic_version.Version):
        return value
    try:
        return semantic_version.Version(str(value).strip())
    except ValueError as exc:
        raise InvalidRequirement(f"Invalid version '{value}': {exc}") from exc


def _pre_version(pre: Tuple[str, ...]) -> semantic_version.Version:
    # Pre-release tags compare like the versions they belong to; an empty tag
    # sorts after every non-empty one.
    return semantic_version.Version(major=0, minor=0, patch=0, prerelease=pre)


def _pre_cmp(left: Tuple[str, ...], right: Tuple[str, ...]) -> int:
    a, b = _pre_version(left), _pre_version(right)
    return (a > b) - (a < b)


@dataclass(frozen=True)
class Comparator:
    """One comparator of a requirement, e.g. ``>=1.2`` or ``~0.3.1``.

    ``minor`` and ``patch`` are None when the component was not written
    (or was a wildcard).
    """
    op: Op
    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None
    pre: Tuple[str, ...] = ()

    @property
    def components(self) -> Tuple[int, ...]:
        """The written numeric components."""
        parts = [self.major]
        if self.minor is not None:
            parts.append(self.minor)
            if self.patch is not None:
                parts.append(self.patch)
        return tuple(parts)

    def without_pre(self) -> "Comparator":
        return Comparator(self.op, self.major, self.minor, self.patch, ())

    def __str__(self) -> str:
        version = ".".join(str(p) for p in self.components)
        if self.pre:
            version += "-" + ".".join(self.pre)
        if self.op is Op.WILDCARD:
            return version + ".*"
        return f"{self.op.value}{version}"

    # Matching follows Cargo's semver implementation component by component.

    def _matches_exact(self, v: semantic_version.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return False
        return tuple(v.prerelease) == self.pre

    def _matches_greater(self, v: semantic_version.Version) -> bool:
        if v.major != self.major:
            return v.major > self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor > self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch > self.patch
        return _pre_cmp(tuple(v.prerelease), self.pre) > 0

    def _matches_less(self, v: semantic_version.Version) -> bool:
        if v.major != self.major:
            return v.major < self.major
        if self.minor is None:
            return False
        if v.minor != self.minor:
            return v.minor < self.minor
        if self.patch is None:
            return False
        if v.patch != self.patch:
            return v.patch < self.patch
        return _pre_cmp(tuple(v.prerelease), self.pre) < 0

    def _matches_tilde(self, v: semantic_version.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is not None and v.minor != self.minor:
            return False
        if self.patch is not None and v.patch != self.patch:
            return v.patch > self.patch
        return _pre_cmp(tuple(v.prerelease), self.pre) >= 0

    def _matches_caret(self, v: semantic_version.Version) -> bool:
        if v.major != self.major:
            return False
        if self.minor is None:
            return True
        if self.patch is None:
            if self.major > 0:
                return v.minor >= self.minor
            return v.minor == self.minor
        if self.major > 0:
            if v.minor != self.minor:
                return v.minor > self.minor
            if v.patch != self.patch:
                return v.patch > self.patch
        elif self.minor > 0:
            if v.minor != self.minor:
                return False
            if v.patch != self.patch:
                return v.patch > self.patch
        elif v.minor != self.minor or v.patch != self.patch:
            return False
        return _pre_cmp(tuple(v.prerelease), self.pre) >= 0

    def matches(self, version: VersionLike) -> bool:
        v = parse_version(version)
        if self.op in (Op.EXACT, Op.WILDCARD):
            return self._matches_exact(v)
        if self.op is Op.GREATER:
            return self._matches_greater(v)
        if self.op is Op.GREATER_EQ:
            return self._matches_exact(v) or self._matches_greater(v)
        if self.op is Op.LESS:
            return self._matches_less(v)
        if self.op is Op.LESS_EQ:
            return self._matches_exact(v) or self._matches_less(v)
        if self.op is Op.TILDE:
            return self._matches_tilde(v)
        return self._matches_caret(v)

    def allows_prerelease_of(self, v: semantic_version.Version) -> bool:
        """True when this comparator opts the version's exact triple into pre-releases."""
        return (
            bool(self.pre)
            and self.major == v.major
            and self.minor == v.minor
            and self.patch == v.patch
        )


def _parse_component(text: Optional[str]) -> Tuple[Optional[int], bool]:
    """Return (value, is_wildcard) for one version component."""
    if text is None:
        return None, False
    if text in _WILDCARDS:
        return None, True
    return int(text), False


def parse_comparator(text: str) -> Optional[Comparator]:
    """Parse one comparator; returns None for a bare ``*`` (no constraint)."""
    m = _COMPARATOR_RE.match(text)
    if not m:
        raise InvalidRequirement(f"Invalid version comparator '{text.strip()}'")

    op_text = m.group("op")
    values = []
    wildcard_seen = False
    for name in ("major", "minor", "patch"):
        value, is_wild = _parse_component(m.group(name))
        if wildcard_seen and value is not None:
            raise InvalidRequirement(
                f"Invalid version comparator '{text.strip()}': number after wildcard"
            )
        wildcard_seen = wildcard_seen or is_wild
        values.append(value)
    major, minor, patch = values

    pre: Tuple[str, ...] = ()
    if m.group("pre"):
        if patch is None:
            raise InvalidRequirement(
                f"Invalid version comparator '{text.strip()}': pre-release needs major.minor.patch"
            )
        pre = tuple(m.group("pre").split("."))

    if major is None:
        if op_text not in (None, "="):
            raise InvalidRequirement(
                f"Invalid version comparator '{text.strip()}': operator with bare wildcard"
            )
        return None

    if wildcard_seen and op_text in (None, "="):
        op = Op.WILDCARD
    elif op_text is None:
        op = Op.CARET
    else:
        op = _OPS[op_text]
    return Comparator(op, major, minor, patch, pre)


@dataclass(frozen=True)
class VersionRequirement:
    """A parsed Cargo version requirement: the conjunction of its comparators.

    An empty comparator tuple is the full wildcard ``*``.
    """
    comparators: Tuple[Comparator, ...] = ()

    @classmethod
    def parse(cls, text: Optional[str]) -> "VersionRequirement":
        """Parse a requirement string; None or blank means ``*``."""
        if text is None or not text.strip():
            return cls(())
        comparators = []
        for part in text.split(","):
            if not part.strip():
                raise InvalidRequirement(f"Invalid version requirement '{text}': empty comparator")
            comparator = parse_comparator(part)
            if comparator is not None:
                comparators.append(comparator)
        return cls(tuple(comparators))

    @classmethod
    def exact(cls, version: VersionLike) -> "VersionRequirement":
        """Requirement matching exactly one full version."""
        v = parse_version(version)
        return cls((Comparator(Op.EXACT, v.major, v.minor, v.patch, tuple(v.prerelease)),))

    @property
    def is_star(self) -> bool:
        return not self.comparators

    @property
    def has_prerelease(self) -> bool:
        return any(c.pre for c in self.comparators)

    def without_prerelease(self) -> "VersionRequirement":
        return VersionRequirement(tuple(c.without_pre() for c in self.comparators))

    def matches(self, version: VersionLike) -> bool:
        """Return True when the version satisfies every comparator.

        A pre-release version additionally needs some comparator that names
        its exact major.minor.patch with a pre-release tag.
        """
        v = parse_version(version)
        if not all(c.matches(v) for c in self.comparators):
            return False
        if not v.prerelease:
            return True
        return any(c.allows_prerelease_of(v) for c in self.comparators)

    def __str__(self) -> str:
        if not self.comparators:
            return "*"
        return ", ".join(str(c) for c in self.comparators)
