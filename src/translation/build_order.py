"""Leaves-first build order over the transitive dependencies of some crates.

Nodes are (name, version) pairs. Which dependencies count as edges depends
on the resolution mode: the source package's build dependencies only, or
the run-time dependencies of every binary package the crate produces. With
collapsed features every non-dev dependency is an edge in either mode.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from common.diagnostics import Diagnostics
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants, ResolveTypes
from crates.features import FeatureGraph
from crates.models import CrateMetadata, Dependency
from crates.semver_req import VersionRequirement
from errors import DependencyCycle, FetchError
from registry.base import CrateSource
from translation.stanza_builder import stanza_activation_sets

logger = logging.getLogger(__name__)

Node = Tuple[str, str]


class ResolutionMode(Enum):
    """Edge-selection policies."""
    SOURCE_BUILD_DEPS = ResolveTypes.SOURCE_BUILD_DEPS.value
    BINARY_ALL_DEPS = ResolveTypes.BINARY_ALL_DEPS.value


class BuildOrderContext:
    """Caches shared by the resolutions of one batch invocation.

    Holds fetched metadata keyed by (name, requirement) and finished orders
    keyed by (mode, collapse_features, roots). Failed resolutions are never
    cached.
    """

    def __init__(self) -> None:
        self.diagnostics = Diagnostics()
        self._metadata: Dict[Tuple[str, str], CrateMetadata] = {}
        self._results: Dict[Tuple[ResolutionMode, bool, FrozenSet[Node]], Tuple[Node, ...]] = {}

    def fetch(self, source: CrateSource, name: str, requirement: VersionRequirement) -> CrateMetadata:
        key = (name, str(requirement))
        if key not in self._metadata:
            self._metadata[key] = source.fetch(name, requirement)
        return self._metadata[key]

    def cached(
        self, mode: ResolutionMode, roots: FrozenSet[Node], collapse_features: bool = False
    ) -> Optional[Tuple[Node, ...]]:
        return self._results.get((mode, collapse_features, roots))

    def store(
        self, mode: ResolutionMode, roots: FrozenSet[Node], order: Sequence[Node], collapse_features: bool = False
    ) -> None:
        self._results[(mode, collapse_features, roots)] = tuple(order)


def _edge_dependencies(
    metadata: CrateMetadata, mode: ResolutionMode, diagnostics: Diagnostics, collapse_features: bool = False
) -> Iterable[Dependency]:
    if collapse_features:
        # every feature lives in the one collapsed package
        return metadata.non_dev_dependencies()
    if mode is ResolutionMode.SOURCE_BUILD_DEPS:
        return FeatureGraph(metadata, diagnostics).closure((Constants.DEFAULT_FEATURE,)).dependencies
    deps: Set[Dependency] = set()
    for activation in stanza_activation_sets(metadata, diagnostics=diagnostics):
        deps.update(activation.dependencies)
    return deps


def dependency_edges(
    metadata: CrateMetadata,
    mode: ResolutionMode,
    diagnostics: Optional[Diagnostics] = None,
    collapse_features: bool = False,
) -> List[Tuple[str, VersionRequirement]]:
    """Sorted, de-duplicated (crate, requirement) edges of one node; self-edges dropped."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    edges = {
        (dep.package, dep.requirement)
        for dep in _edge_dependencies(metadata, mode, diagnostics, collapse_features)
        if dep.package != metadata.name
    }
    return sorted(edges, key=lambda e: (e[0], str(e[1])))


def build_order(
    roots: Iterable[Node],
    mode: ResolutionMode,
    source: CrateSource,
    context: Optional[BuildOrderContext] = None,
    collapse_features: bool = False,
) -> List[Node]:
    """Order every crate reachable from ``roots`` so dependencies come first.

    Args:
        roots: (name, version) pairs to start from.
        mode: Which dependencies count as edges.
        source: Where crate metadata comes from.
        context: Batch-scoped caches; a fresh one is used when None.
        collapse_features: Resolve as if every crate were packaged with its
            features collapsed into one package: every non-dev dependency
            is an edge.

    Raises:
        DependencyCycle: The selected graph has a cycle; ``path`` lists it.
        FetchError: Metadata could not be fetched; ``origin`` names the
            node whose dependency needed it.
    """
    context = context if context is not None else BuildOrderContext()
    root_set = frozenset((name, str(version)) for name, version in roots)
    cached = context.cached(mode, root_set, collapse_features)
    if cached is not None:
        logger.debug("Build order cache hit for %d root(s)", len(root_set))
        return list(cached)

    order: List[Node] = []
    done: Set[Node] = set()

    with Timer() as timer:
        for name, version in sorted(root_set):
            root = context.fetch(source, name, VersionRequirement.exact(version))
            if root.key in done:
                continue
            _visit(root, mode, source, context, order, done, collapse_features)

    context.store(mode, root_set, order, collapse_features)
    logger.info(
        "Resolved build order of %d crate(s)",
        len(order),
        extra=extra_context(
            event="build_order",
            component="build_order",
            action=mode.value,
            outcome="success",
            count=len(order),
            duration_ms=timer.duration_ms(),
        ),
    )
    return order


def _visit(
    root: CrateMetadata,
    mode: ResolutionMode,
    source: CrateSource,
    context: BuildOrderContext,
    order: List[Node],
    done: Set[Node],
    collapse_features: bool = False,
) -> None:
    path: List[Node] = [root.key]
    on_path: Set[Node] = {root.key}
    stack: List[Tuple[CrateMetadata, Iterator[Tuple[str, VersionRequirement]]]] = [
        (root, iter(dependency_edges(root, mode, context.diagnostics, collapse_features)))
    ]
    while stack:
        metadata, children = stack[-1]
        child_edge = next(children, None)
        if child_edge is None:
            stack.pop()
            path.pop()
            on_path.discard(metadata.key)
            done.add(metadata.key)
            order.append(metadata.key)
            if len(order) % Constants.BUILD_ORDER_PROGRESS_EVERY == 0:
                logger.info("Build order progress: %d crate(s) ordered", len(order))
            continue

        name, requirement = child_edge
        try:
            child = context.fetch(source, name, requirement)
        except FetchError as exc:
            raise exc.with_origin(metadata.key) from exc

        if child.key in on_path:
            start = path.index(child.key)
            raise DependencyCycle(path[start:] + [child.key])
        if child.key in done:
            continue
        if is_debug_enabled(logger):
            logger.debug(
                "Descending into dependency",
                extra=extra_context(
                    event="visit",
                    component="build_order",
                    crate=child.name,
                    version=str(child.version),
                    target=f"{metadata.name} {metadata.version}",
                ),
            )
        path.append(child.key)
        on_path.add(child.key)
        stack.append((child, iter(dependency_edges(child, mode, context.diagnostics, collapse_features))))


def format_build_order(order: Sequence[Node]) -> str:
    """One ``name version`` line per node."""
    return "".join(f"{name} {version}\n" for name, version in order)
