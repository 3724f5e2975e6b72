"""Debian dependency relations.

A ``DebianConstraint`` is one entry of a ``Depends:`` style field: a set of
OR-alternatives, each alternative (``Clause``) naming one package and the
AND of its version bounds. Packages may embed a version series in their
name (``librust-foo-1-dev``), which implicitly bounds the versions they can
carry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import semantic_version

# Appended to rendered bounds so that every Debian revision of the bound
# version (1.2.3-1, 1.2.3-2, ...) compares greater or equal to it.
REVISION_FLOOR = "-~~"

_RELATION_RE = re.compile(
    r"^\s*(?P<package>[^\s(<\[]+)\s*(?:\((?P<relation>[^)]*)\))?\s*(?P<profile><[^>]*>)?\s*$"
)


@dataclass(frozen=True)
class Series:
    """Version prefix of one, two or three components (``1``, ``0.3``, ``1.2.3``)."""
    parts: Tuple[int, ...]

    def __post_init__(self):
        if not 1 <= len(self.parts) <= 3:
            raise ValueError(f"Series needs 1 to 3 components, got {self.parts!r}")

    @classmethod
    def of(cls, *parts: int) -> "Series":
        return cls(tuple(int(p) for p in parts))

    @classmethod
    def parse(cls, text: str) -> "Series":
        return cls(tuple(int(p) for p in text.split(".")))

    def triple(self) -> Tuple[int, int, int]:
        """Components padded with zeros, used for ordering."""
        padded = self.parts + (0,) * (3 - len(self.parts))
        return padded[0], padded[1], padded[2]

    def bump(self) -> "Series":
        """Increment the last written component: ``1.2`` -> ``1.3``."""
        return Series(self.parts[:-1] + (self.parts[-1] + 1,))

    def contains(self, triple: Tuple[int, int, int]) -> bool:
        return tuple(triple[:len(self.parts)]) == self.parts

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


class RelOp(Enum):
    """Version relation operators used in generated relations."""
    GE = ">="
    LT = "<<"


@dataclass(frozen=True)
class Bound:
    """A single ``(op version)`` relation."""
    op: RelOp
    version: Series

    def admits(self, triple: Tuple[int, int, int], is_release: bool = True) -> bool:
        # A pre-release (upstream "1.2.3~rc1") sorts below the bound "1.2.3-~~".
        key = (triple, 1 if is_release else 0)
        bound_key = (self.version.triple(), 1)
        if self.op is RelOp.GE:
            return key >= bound_key
        return key < bound_key

    def render(self) -> str:
        return f"({self.op.value} {self.version}{REVISION_FLOOR})"


@dataclass(frozen=True)
class Clause:
    """One alternative: a package and the conjunction of bounds on it.

    ``series`` is the version prefix embedded in the package name, if any.
    ``relation`` holds a verbatim relation (``= ${binary:Version}``) for
    relations that are not generated from bounds; ``profile`` holds a build
    profile restriction such as ``<!nocheck>``.
    """
    package: str
    series: Optional[Series] = None
    bounds: Tuple[Bound, ...] = ()
    relation: Optional[str] = None
    profile: Optional[str] = None

    @property
    def lower(self) -> Optional[Series]:
        found = [b.version for b in self.bounds if b.op is RelOp.GE]
        return max(found, key=Series.triple) if found else None

    @property
    def upper(self) -> Optional[Series]:
        found = [b.version for b in self.bounds if b.op is RelOp.LT]
        return min(found, key=Series.triple) if found else None

    def explicit_bounds(self) -> Tuple[Bound, ...]:
        """Bounds that the package name does not already imply."""
        if self.series is None:
            return self.bounds
        start, end = self.series.triple(), self.series.bump().triple()
        kept = []
        for b in self.bounds:
            if b.op is RelOp.GE and b.version.triple() <= start:
                continue
            if b.op is RelOp.LT and b.version.triple() >= end:
                continue
            kept.append(b)
        return tuple(kept)

    def matches(self, version: Union[str, semantic_version.Version], include_prerelease: bool = False) -> bool:
        v = version if isinstance(version, semantic_version.Version) else semantic_version.Version(version)
        if v.prerelease and not include_prerelease:
            return False
        triple = (v.major, v.minor, v.patch)
        if self.series is not None and not self.series.contains(triple):
            return False
        return all(b.admits(triple, not v.prerelease) for b in self.bounds)

    def with_profile(self, profile: str) -> "Clause":
        return replace(self, profile=profile)

    def render(self, bound: Optional[Bound] = None) -> str:
        """Render with at most one bound; ``bound`` picks which one."""
        text = self.package
        if self.relation:
            text += f" ({self.relation})"
        elif bound is not None:
            text += f" {bound.render()}"
        if self.profile:
            text += f" {self.profile}"
        return text


@dataclass(frozen=True)
class DebianConstraint:
    """OR-alternatives of clauses; renders as one comma-separated list entry.

    Attributes:
        alternatives: Clauses, any of which satisfies the constraint.
        fixme: Set when the constraint is an approximation that needs review.
    """
    alternatives: Tuple[Clause, ...]
    fixme: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.alternatives:
            raise ValueError("A Debian constraint needs at least one alternative")

    @classmethod
    def single(cls, package: str, relation: Optional[str] = None) -> "DebianConstraint":
        return cls((Clause(package, relation=relation),))

    @classmethod
    def parse(cls, text: str) -> "DebianConstraint":
        """Parse a hand-written relation such as ``foo (>= 1) | bar``.

        Version relations are kept verbatim; they are not evaluated.
        """
        clauses = []
        for part in text.split("|"):
            m = _RELATION_RE.match(part)
            if not m:
                raise ValueError(f"Invalid Debian relation '{text}'")
            relation = m.group("relation")
            clauses.append(Clause(
                m.group("package"),
                relation=" ".join(relation.split()) if relation else None,
                profile=m.group("profile"),
            ))
        return cls(tuple(clauses))

    @property
    def packages(self) -> Tuple[str, ...]:
        return tuple(c.package for c in self.alternatives)

    def matches(self, version: Union[str, semantic_version.Version], include_prerelease: bool = False) -> bool:
        """Evaluate the constraint against one upstream version of the target crate."""
        return any(c.matches(version, include_prerelease) for c in self.alternatives)

    def with_profile(self, profile: str) -> "DebianConstraint":
        return DebianConstraint(tuple(c.with_profile(profile) for c in self.alternatives), self.fixme)

    def render(self) -> str:
        """Render as Debian relation text.

        A single alternative with both bounds explicit renders as two
        comma-separated relations on the same package; OR-alternatives can
        each carry at most one explicit bound.
        """
        if len(self.alternatives) == 1:
            clause = self.alternatives[0]
            bounds = clause.explicit_bounds()
            if len(bounds) <= 1 or clause.relation:
                return clause.render(bounds[0] if bounds else None)
            return ", ".join(clause.render(b) for b in bounds)
        parts = []
        for clause in self.alternatives:
            bounds = clause.explicit_bounds()
            if len(bounds) > 1 and not clause.relation:
                raise ValueError(
                    f"Cannot render alternative {clause.package} with {len(bounds)} bounds inside an OR-group"
                )
            parts.append(clause.render(bounds[0] if bounds else None))
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.render()


def intersect(left: DebianConstraint, right: DebianConstraint) -> Optional[DebianConstraint]:
    """Merge two single-clause constraints on the same package.

    Returns None when they cannot be merged: either is an OR-group, they
    name different packages, carry verbatim relations, or the combined
    bounds leave no version at all.
    """
    if len(left.alternatives) != 1 or len(right.alternatives) != 1:
        return None
    a, b = left.alternatives[0], right.alternatives[0]
    if (a.package, a.series, a.profile) != (b.package, b.series, b.profile):
        return None
    if a.relation or b.relation:
        return None
    lowers = [x for x in (a.lower, b.lower) if x is not None]
    uppers = [x for x in (a.upper, b.upper) if x is not None]
    lower = max(lowers, key=Series.triple) if lowers else None
    upper = min(uppers, key=Series.triple) if uppers else None
    if lower is not None and upper is not None and lower.triple() >= upper.triple():
        return None
    bounds: List[Bound] = []
    if lower is not None:
        bounds.append(Bound(RelOp.GE, lower))
    if upper is not None:
        bounds.append(Bound(RelOp.LT, upper))
    fixme = left.fixme or right.fixme
    return DebianConstraint((replace(a, bounds=tuple(bounds)),), fixme)


def merge_constraints(constraints: Iterable[DebianConstraint]) -> List[DebianConstraint]:
    """De-duplicate and merge an AND-list of constraints, sorted by rendering.

    Constraints on the same package are intersected when that leaves a
    non-empty range; otherwise all of them are kept so that no bound is
    relaxed.
    """
    merged: List[DebianConstraint] = []
    for constraint in constraints:
        if constraint in merged:
            continue
        for i, existing in enumerate(merged):
            combined = intersect(existing, constraint)
            if combined is not None:
                merged[i] = combined
                break
        else:
            merged.append(constraint)
    unique: List[DebianConstraint] = []
    for constraint in merged:
        if constraint not in unique:
            unique.append(constraint)
    return sorted(unique, key=lambda c: c.render())


def render_list(constraints: Sequence[DebianConstraint], separator: str = ",\n ") -> str:
    return separator.join(c.render() for c in constraints)
