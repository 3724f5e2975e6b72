"""Paragraph models of a ``debian/control`` file."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from debpkg.constraint import DebianConstraint


class StanzaKind(Enum):
    """Kinds of binary package stanzas, in output order."""
    MAIN = 0
    DEFAULT = 1
    FEATURE_GROUP = 2
    BINARY = 3


@dataclass(frozen=True)
class Classification:
    """Tagged variant: ``FEATURE_GROUP`` carries the owning feature name."""
    kind: StanzaKind
    feature: Optional[str] = None

    @classmethod
    def main(cls) -> "Classification":
        return cls(StanzaKind.MAIN)

    @classmethod
    def default(cls) -> "Classification":
        return cls(StanzaKind.DEFAULT, "default")

    @classmethod
    def feature_group(cls, feature: str) -> "Classification":
        return cls(StanzaKind.FEATURE_GROUP, feature)

    @classmethod
    def binary(cls) -> "Classification":
        return cls(StanzaKind.BINARY)

    @property
    def package_key(self) -> str:
        """Key used to address this stanza in per-package overrides."""
        if self.kind is StanzaKind.BINARY:
            return "bin"
        if self.kind is StanzaKind.MAIN:
            return "lib"
        return f"lib+{self.feature}"


@dataclass(frozen=True)
class PackageStanza:
    """One binary package paragraph.

    ``depends``, ``recommends``, ``suggests`` and ``provides`` are AND-lists
    of relations. ``fixmes`` are notes that need a human before upload;
    they render as comments above the paragraph.
    """
    identifier: str
    classification: Classification
    depends: Tuple[DebianConstraint, ...] = ()
    recommends: Tuple[DebianConstraint, ...] = ()
    suggests: Tuple[DebianConstraint, ...] = ()
    provides: Tuple[DebianConstraint, ...] = ()
    section: Optional[str] = None
    architecture: str = "any"
    multi_arch: str = "same"
    summary: str = ""
    description: str = ""
    extra_lines: Tuple[str, ...] = ()
    fixmes: Tuple[str, ...] = ()

    @property
    def kind(self) -> StanzaKind:
        return self.classification.kind

    def sort_key(self) -> Tuple[int, str]:
        return self.kind.value, self.identifier

    def with_fields(self, **changes) -> "PackageStanza":
        return replace(self, **changes)


@dataclass(frozen=True)
class SourceStanza:
    """The source package paragraph."""
    name: str
    crate_name: str
    section: str
    build_depends: Tuple[DebianConstraint, ...] = ()
    priority: str = "optional"
    maintainer: str = ""
    uploaders: Tuple[str, ...] = ()
    standards_version: str = ""
    vcs_git: str = ""
    vcs_browser: str = ""
    homepage: Optional[str] = None
    requires_root: str = "no"
    fixmes: Tuple[str, ...] = field(default=())

    def with_fields(self, **changes) -> "SourceStanza":
        return replace(self, **changes)
