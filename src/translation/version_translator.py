"""Translate Cargo version requirements into Debian dependency relations.

Every comparator of a requirement narrows one half-open interval
``[lower, upper)``. Debian package names embed the leading version
components, so an interval spanning several series becomes OR-alternatives
over the per-series packages, each carrying its local bounds.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple, Union

from common.diagnostics import (
    PRERELEASE_COERCED,
    UNREPRESENTABLE_PREDICATE,
    Diagnostic,
    Diagnostics,
    Severity,
)
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from crates.models import Dependency
from crates.semver_req import Comparator, Op, VersionRequirement
from debpkg.constraint import Bound, Clause, DebianConstraint, RelOp, Series
from debpkg.naming import dependency_base, feature_suffix
from errors import UnrepresentablePredicate

logger = logging.getLogger(__name__)

_ZERO = (0, 0, 0)


class _Range:
    """Half-open interval built up from comparators."""

    def __init__(self) -> None:
        self.lower: Optional[Series] = None
        self.upper: Optional[Series] = None

    def constrain_lower(self, bound: Series) -> None:
        if self.lower is None or bound.triple() >= self.lower.triple():
            self.lower = bound

    def constrain_upper(self, bound: Series) -> None:
        if self.upper is None or bound.triple() < self.upper.triple():
            self.upper = bound


def _constrain(interval: _Range, comparator: Comparator) -> None:
    v = Series(comparator.components)
    op = comparator.op
    if op is Op.LESS:
        interval.constrain_upper(v)
    elif op is Op.LESS_EQ:
        interval.constrain_upper(v.bump())
    elif op is Op.GREATER:
        interval.constrain_lower(v.bump())
    elif op is Op.GREATER_EQ:
        interval.constrain_lower(v)
    elif op in (Op.EXACT, Op.WILDCARD):
        interval.constrain_lower(v)
        interval.constrain_upper(v.bump())
    elif op is Op.TILDE:
        interval.constrain_lower(v)
        if len(v.parts) == 3:
            interval.constrain_upper(Series.of(v.parts[0], v.parts[1] + 1))
        else:
            interval.constrain_upper(v.bump())
    else:
        interval.constrain_lower(v)
        major, minor, _ = v.triple()
        if major == 0 and len(v.parts) == 3 and minor == 0:
            interval.constrain_upper(v.bump())
        elif major == 0 and len(v.parts) >= 2:
            interval.constrain_upper(Series.of(0, minor + 1))
        else:
            interval.constrain_upper(Series.of(major + 1))


def _series_between(lower: Series, upper: Series) -> List[Tuple[Series, Optional[Bound]]]:
    """Cut [lower, upper) at the coarsest differing component.

    Returns (series, own bound) pairs in ascending order; the first carries
    the lower bound, the last the upper bound.
    """
    lo, hi = lower.triple(), upper.triple()
    if lo[0] < hi[0]:
        depth = 1
    elif lo[1] < hi[1]:
        depth = 2
    else:
        depth = 3
    prefix = lo[:depth - 1]
    first, last = lo[depth - 1], hi[depth - 1]
    ranges: List[Tuple[Series, Optional[Bound]]] = [(Series(prefix + (first,)), Bound(RelOp.GE, lower))]
    ranges.extend((Series(prefix + (n,)), None) for n in range(first + 1, last))
    ranges.append((Series(prefix + (last,)), Bound(RelOp.LT, upper)))
    return ranges


def _unsatisfiable(base: str, suffix: str) -> DebianConstraint:
    return DebianConstraint((Clause(base + suffix, bounds=(Bound(RelOp.LT, Series.of(0)),)),))


def _to_constraint(
    interval: _Range,
    base: str,
    suffix: str,
    predicate: VersionRequirement,
) -> DebianConstraint:
    lower, upper = interval.lower, interval.upper
    if lower is not None and lower.triple() == _ZERO:
        # ">= 0" restricts nothing.
        lower = None

    if upper is not None and upper.triple() == _ZERO:
        raise UnrepresentablePredicate(predicate, f"'{predicate}' admits no version", _unsatisfiable(base, suffix))
    if lower is None and upper is None:
        raise UnrepresentablePredicate(
            predicate,
            "no version bound to derive a package series from",
            DebianConstraint((Clause(base + suffix),)),
        )
    if lower is None or upper is None:
        bound = Bound(RelOp.GE, lower) if lower is not None else Bound(RelOp.LT, upper)
        return DebianConstraint((Clause(base + suffix, bounds=(bound,)),))
    if lower.triple() >= upper.triple():
        raise UnrepresentablePredicate(
            predicate,
            f"empty version range (>= {lower}, << {upper})",
            _unsatisfiable(base, suffix),
        )

    clauses = []
    for series, own in reversed(_series_between(lower, upper)):
        if own is not None and own.op is RelOp.LT and own.version.triple() == series.triple():
            continue
        start, end = series, series.bump()
        local_lower = max((lower, start), key=Series.triple)
        local_upper = min((upper, end), key=Series.triple)
        bounds = (Bound(RelOp.GE, local_lower), Bound(RelOp.LT, local_upper))
        clauses.append(Clause(f"{base}-{series}{suffix}", series=series, bounds=bounds))
    return DebianConstraint(tuple(clauses))


def translate(
    requirement: Union[VersionRequirement, str],
    base: str,
    suffix: str = Constants.DEV_SUFFIX,
    allow_prerelease: bool = False,
    diagnostics: Optional[Diagnostics] = None,
    subject: Optional[str] = None,
) -> DebianConstraint:
    """Translate one requirement for the packages named ``{base}[-{series}]{suffix}``.

    Args:
        requirement: Parsed or textual Cargo requirement.
        base: Package name prefix, e.g. ``librust-serde``.
        suffix: Feature suffix, e.g. ``+default-dev``.
        allow_prerelease: Strip pre-release tags (with a warning) instead of
            failing on them.
        diagnostics: Collector for coercion warnings.
        subject: Name used in diagnostics; defaults to ``base``.

    Raises:
        UnrepresentablePredicate: The requirement has no exact Debian form.
            ``approximation`` holds the closest constraint that is never looser.
    """
    if not isinstance(requirement, VersionRequirement):
        requirement = VersionRequirement.parse(requirement)

    if requirement.has_prerelease:
        stripped = requirement.without_prerelease()
        if not allow_prerelease:
            try:
                approximation = translate(stripped, base, suffix)
            except UnrepresentablePredicate as exc:
                approximation = exc.approximation
            raise UnrepresentablePredicate(
                requirement, "pre-release versions cannot be expressed in Debian relations", approximation
            )
        if diagnostics is not None:
            diagnostics.warn(
                PRERELEASE_COERCED,
                f"removed pre-release part of requirement '{requirement}'",
                subject=subject or base,
                requirement=str(requirement),
            )
        requirement = stripped

    interval = _Range()
    for comparator in requirement.comparators:
        _constrain(interval, comparator)
    constraint = _to_constraint(interval, base, suffix, requirement)

    if is_debug_enabled(logger):
        logger.debug(
            "Translated version requirement",
            extra=extra_context(
                event="translate",
                component="version_translator",
                target=subject or base,
                requirement=str(requirement),
                result=constraint.render(),
            )
        )
    return constraint


def suffixes_for(dependency: Dependency) -> List[str]:
    """Package suffixes a dependency needs: one per requested feature set."""
    suffixes = []
    if dependency.default_features:
        suffixes.append(feature_suffix(Constants.DEFAULT_FEATURE))
    suffixes.extend(feature_suffix(f) for f in dependency.features)
    if not suffixes:
        suffixes.append(feature_suffix(None))
    return suffixes


def dependency_constraints(
    dependency: Dependency,
    allow_prerelease: bool = False,
    diagnostics: Optional[Diagnostics] = None,
) -> List[DebianConstraint]:
    """AND-list of constraints for one dependency.

    Unrepresentable requirements degrade to their approximation; the
    constraint is marked for review and a diagnostic is recorded.
    """
    base = dependency_base(dependency.package)
    constraints = []
    for suffix in suffixes_for(dependency):
        try:
            constraints.append(translate(
                dependency.requirement,
                base,
                suffix,
                allow_prerelease=allow_prerelease,
                diagnostics=diagnostics,
                subject=dependency.package,
            ))
        except UnrepresentablePredicate as exc:
            note = f"{dependency.package} {exc.predicate}: {exc.reason}"
            if diagnostics is not None:
                diagnostics.add(Diagnostic(
                    UNREPRESENTABLE_PREDICATE,
                    exc.reason,
                    Severity.WARNING,
                    subject=f"{dependency.package} {exc.predicate}",
                    details={"predicate": str(exc.predicate), "package": base + suffix},
                ))
            constraints.append(DebianConstraint(exc.approximation.alternatives, fixme=note))
    return constraints
