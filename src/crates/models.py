"""Crate metadata model.

These values are built once from a manifest or index record and are never
mutated afterwards; every resolution step is a pure function of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import semantic_version

from crates.semver_req import VersionRequirement, parse_version


class DependencyKind(Enum):
    """Manifest section a dependency was declared in."""
    NORMAL = "normal"
    BUILD = "build"
    DEV = "dev"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "DependencyKind":
        if not value:
            return cls.NORMAL
        try:
            return cls(value.lower())
        except ValueError as exc:
            raise ValueError(f"Unknown dependency kind '{value}'") from exc


@dataclass(frozen=True)
class Dependency:
    """One dependency record.

    Attributes:
        name: Name the dependency is referred to by in the manifest (and in
            feature values); differs from ``package`` when renamed.
        package: Name of the depended-on crate.
        requirement: Parsed version requirement.
        optional: Only activated through a feature.
        default_features: Whether the depended-on crate's default features
            are requested.
        features: Features of the depended-on crate that are requested.
        kind: normal, build or dev.
        target: Platform cfg the dependency is restricted to, if any.
    """
    name: str
    requirement: VersionRequirement = field(default_factory=VersionRequirement)
    optional: bool = False
    default_features: bool = True
    features: Tuple[str, ...] = ()
    kind: DependencyKind = DependencyKind.NORMAL
    package: Optional[str] = None
    target: Optional[str] = None

    def __post_init__(self):
        if self.package is None:
            object.__setattr__(self, "package", self.name)
        object.__setattr__(self, "features", tuple(sorted(set(self.features))))

    @property
    def gating_feature(self) -> Optional[str]:
        """The implicit feature that activates an optional dependency."""
        return self.name if self.optional else None

    def requesting(self, features: Iterable[str], default_features: bool = False) -> "Dependency":
        """Copy of this dependency that requests exactly the given features."""
        return replace(self, features=tuple(features), default_features=default_features)

    def __str__(self) -> str:
        return f"{self.package} {self.requirement}"


@dataclass(frozen=True)
class CrateMetadata:
    """Everything the translation needs to know about one crate version."""
    name: str
    version: semantic_version.Version
    dependencies: Tuple[Dependency, ...] = ()
    features: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    has_lib: bool = True
    binaries: Tuple[str, ...] = ()
    description: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    license: Optional[str] = None
    authors: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "version", parse_version(self.version))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        frozen: Dict[str, Tuple[str, ...]] = {k: tuple(v) for k, v in sorted(self.features.items())}
        object.__setattr__(self, "features", MappingProxyType(frozen))
        object.__setattr__(self, "binaries", tuple(sorted(self.binaries)))
        object.__setattr__(self, "authors", tuple(self.authors))

    def __hash__(self):
        return hash((self.name, str(self.version)))

    @property
    def key(self) -> Tuple[str, str]:
        """The (name, version) build-graph node of this crate."""
        return self.name, str(self.version)

    def non_dev_dependencies(self) -> Tuple[Dependency, ...]:
        return tuple(d for d in self.dependencies if d.kind is not DependencyKind.DEV)


@dataclass(frozen=True)
class ActivationSet:
    """Result of a feature closure: reached features and activated dependencies."""
    features: FrozenSet[str] = frozenset()
    dependencies: FrozenSet[Dependency] = frozenset()

    def __le__(self, other: "ActivationSet") -> bool:
        return self.features <= other.features and self.dependencies <= other.dependencies

    def __lt__(self, other: "ActivationSet") -> bool:
        return self <= other and self != other

    def __or__(self, other: "ActivationSet") -> "ActivationSet":
        return ActivationSet(self.features | other.features, self.dependencies | other.dependencies)

    def sorted_dependencies(self) -> Tuple[Dependency, ...]:
        return tuple(sorted(
            self.dependencies,
            key=lambda d: (d.package, d.name, str(d.requirement), d.features, d.default_features, d.kind.value),
        ))
