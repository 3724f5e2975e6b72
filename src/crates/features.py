"""Feature-closure resolution.

A crate's features form a directed graph over its declared features, one
implicit vertex per optional dependency and the bare vertex ``""`` that
carries every non-optional dependency. Closure over that graph decides which
dependencies a feature selection pulls in; grouping features by equal
closures decides which features need a package of their own.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from constants import Constants
from common.diagnostics import Diagnostics, dangling_feature_reference
from common.logging_utils import extra_context, is_debug_enabled
from crates.models import ActivationSet, CrateMetadata, Dependency

logger = logging.getLogger(__name__)

BARE = Constants.BARE_FEATURE
DEFAULT = Constants.DEFAULT_FEATURE


@dataclass
class _Vertex:
    features: List[str] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    # (dependency name, feature) requested only if that dependency is active anyway
    weak: List[Tuple[str, str]] = field(default_factory=list)


class FeatureGraph:
    """Activation edges of one crate, built from its metadata.

    Vertices are feature names; ``""`` is always present, and so is
    ``default`` (implicitly ``default = []`` when undeclared).
    """

    def __init__(self, metadata: CrateMetadata, diagnostics: Optional[Diagnostics] = None):
        self.metadata = metadata
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._vertices: Dict[str, _Vertex] = {}
        self._deps_by_name: Dict[str, List[Dependency]] = {}
        self._build()

    @classmethod
    def from_metadata(cls, metadata: CrateMetadata, diagnostics: Optional[Diagnostics] = None) -> "FeatureGraph":
        return cls(metadata, diagnostics)

    def _build(self) -> None:
        metadata = self.metadata
        # Build dependencies count as dependencies of the package.
        for dep in metadata.non_dev_dependencies():
            self._deps_by_name.setdefault(dep.name, []).append(dep)

        explicit_dep_refs: Set[str] = set()
        for values in metadata.features.values():
            for value in values:
                if value.startswith("dep:"):
                    explicit_dep_refs.add(value[4:])

        for feature in metadata.features:
            self._vertices[feature] = _Vertex(features=[BARE])

        required: List[Dependency] = []
        for deps in self._deps_by_name.values():
            for dep in deps:
                gate = dep.gating_feature
                if gate is None:
                    required.append(dep)
                elif gate not in explicit_dep_refs and gate not in metadata.features:
                    self._vertices.setdefault(gate, _Vertex(features=[BARE])).dependencies.append(dep)

        self._vertices[BARE] = _Vertex(dependencies=required)
        if DEFAULT not in self._vertices:
            self._vertices[DEFAULT] = _Vertex(features=[BARE])

        for feature, values in metadata.features.items():
            vertex = self._vertices[feature]
            for value in values:
                self._add_edge(feature, vertex, value)

    def _add_edge(self, feature: str, vertex: _Vertex, value: str) -> None:
        if value.startswith("dep:"):
            name = value[4:]
            deps = self._deps_by_name.get(name)
            if not deps:
                self.diagnostics.add(dangling_feature_reference(value, feature))
                return
            vertex.dependencies.extend(deps)
            return

        if "/" in value:
            name, dep_feature = value.split("/", 1)
            weak = name.endswith("?")
            name = name.rstrip("?")
            deps = self._deps_by_name.get(name)
            if not deps:
                self.diagnostics.add(dangling_feature_reference(value, feature))
                return
            if weak and any(d.optional for d in deps):
                vertex.weak.append((name, dep_feature))
                return
            if not weak and name in self._vertices and name not in self.metadata.features:
                vertex.features.append(name)
            vertex.dependencies.extend(
                d.requesting((dep_feature,), default_features=False) for d in deps
            )
            return

        if value in self._vertices:
            vertex.features.append(value)
        else:
            self.diagnostics.add(dangling_feature_reference(value, feature))

    @property
    def feature_names(self) -> Tuple[str, ...]:
        """Every vertex except the bare one, sorted."""
        return tuple(sorted(v for v in self._vertices if v != BARE))

    def __contains__(self, feature: str) -> bool:
        return feature in self._vertices

    def closure(self, features: Iterable[str] = (DEFAULT,)) -> ActivationSet:
        """Features and dependencies reachable from the given features.

        Unknown starting features are reported as dangling and skipped.
        """
        visited: Set[str] = set()
        worklist = deque([BARE])
        for feature in features:
            if feature in self._vertices:
                worklist.append(feature)
            else:
                self.diagnostics.add(dangling_feature_reference(feature, "<requested>"))

        dependencies: Set[Dependency] = set()
        weak: List[Tuple[str, str]] = []
        while worklist:
            current = worklist.popleft()
            if current in visited:
                continue
            visited.add(current)
            vertex = self._vertices[current]
            dependencies.update(vertex.dependencies)
            weak.extend(vertex.weak)
            for successor in vertex.features:
                if successor not in visited:
                    worklist.append(successor)

        active_names = {d.name for d in dependencies}
        for name, dep_feature in weak:
            if name in active_names:
                dependencies.update(
                    d.requesting((dep_feature,), default_features=False)
                    for d in self._deps_by_name[name]
                )

        result = ActivationSet(frozenset(visited), frozenset(dependencies))
        if is_debug_enabled(logger):
            logger.debug(
                "Computed feature closure",
                extra=extra_context(
                    event="closure",
                    component="features",
                    crate=self.metadata.name,
                    target=",".join(sorted(features)) or "<none>",
                    count=len(result.dependencies),
                )
            )
        return result


def closure(
    metadata: CrateMetadata,
    features: Iterable[str] = (DEFAULT,),
    diagnostics: Optional[Diagnostics] = None,
) -> ActivationSet:
    """Activation set of ``metadata`` under the given feature selection."""
    return FeatureGraph(metadata, diagnostics).closure(features)


def unconditional(metadata: CrateMetadata, diagnostics: Optional[Diagnostics] = None) -> ActivationSet:
    """Dependencies active with no features at all."""
    return closure(metadata, (), diagnostics)


def default_needs_stanza(metadata: CrateMetadata, diagnostics: Optional[Diagnostics] = None) -> bool:
    """True when enabling ``default`` pulls in dependencies beyond the unconditional set."""
    graph = FeatureGraph(metadata, diagnostics)
    base = graph.closure(())
    with_default = graph.closure((DEFAULT,))
    return with_default.dependencies > base.dependencies


@dataclass(frozen=True)
class FeatureGroup:
    """Features sharing one activation set; ``owner`` names the package."""
    owner: str
    provides: Tuple[str, ...]
    activation: ActivationSet


@dataclass(frozen=True)
class FeaturePlan:
    """Which features get their own package and which are provided.

    Attributes:
        unconditional: Closure of the empty feature selection.
        main_provides: Features whose closure adds nothing to the
            unconditional set; the main package provides them.
        groups: One entry per feature package, sorted by owner.
    """
    unconditional: ActivationSet
    main_provides: Tuple[str, ...]
    groups: Tuple[FeatureGroup, ...]

    def group(self, owner: str) -> Optional[FeatureGroup]:
        for g in self.groups:
            if g.owner == owner:
                return g
        return None

    @property
    def all_activations(self) -> Tuple[ActivationSet, ...]:
        return (self.unconditional,) + tuple(g.activation for g in self.groups)


def plan_feature_groups(
    metadata: CrateMetadata,
    requested: Optional[Sequence[str]] = None,
    diagnostics: Optional[Diagnostics] = None,
    graph: Optional[FeatureGraph] = None,
) -> FeaturePlan:
    """Group features by equal activation sets.

    The lexically first feature of a group owns its package, except that
    ``default`` owns any group it belongs to.

    Args:
        metadata: The crate.
        requested: Features to materialize; None means every feature.
            ``default`` is always considered.
        diagnostics: Collector for dangling references.
        graph: Pre-built graph to reuse.
    """
    graph = graph if graph is not None else FeatureGraph(metadata, diagnostics)
    base = graph.closure(())

    if requested is None:
        candidates = list(graph.feature_names)
    else:
        candidates = []
        for feature in requested:
            if feature == BARE:
                continue
            if feature not in graph:
                graph.diagnostics.add(dangling_feature_reference(feature, "<requested>"))
                continue
            candidates.append(feature)
        if DEFAULT not in candidates:
            candidates.append(DEFAULT)

    main_provides: List[str] = []
    by_dependencies: Dict[FrozenSet[Dependency], List[Tuple[str, ActivationSet]]] = {}
    for feature in sorted(set(candidates)):
        activation = graph.closure((feature,))
        if activation.dependencies == base.dependencies:
            main_provides.append(feature)
            continue
        by_dependencies.setdefault(activation.dependencies, []).append((feature, activation))

    groups = []
    for members in by_dependencies.values():
        # default always owns its group, so it keeps a package of its own
        members.sort(key=lambda m: (m[0] != DEFAULT, m[0]))
        owner, activation = members[0]
        provides = tuple(f for f, _ in members[1:])
        for _, other in members[1:]:
            activation = activation | other
        groups.append(FeatureGroup(owner, provides, activation))
    groups.sort(key=lambda g: g.owner)

    logger.debug(
        "Planned feature groups",
        extra=extra_context(
            event="plan",
            component="features",
            crate=metadata.name,
            count=len(groups),
        )
    )
    return FeaturePlan(base, tuple(main_provides), tuple(groups))
