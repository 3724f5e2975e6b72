"""Crate metadata sources used by build-order resolution."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from crates.models import CrateMetadata
from crates.semver_req import VersionRequirement
from errors import FetchError

logger = logging.getLogger(__name__)


def select_highest(
    name: str, candidates: Iterable[CrateMetadata], requirement: VersionRequirement
) -> CrateMetadata:
    """Highest candidate satisfying ``requirement``; FetchError when none does."""
    matching = [c for c in candidates if requirement.matches(c.version)]
    if not matching:
        raise FetchError(name, str(requirement), "no version matches the requirement")
    return max(matching, key=lambda c: c.version)


class CrateSource(ABC):
    """Capability to retrieve crate metadata by name and requirement."""

    @abstractmethod
    def versions(self, name: str) -> List[CrateMetadata]:
        """All known, non-yanked versions of a crate.

        Raises:
            FetchError: The crate is unknown or could not be retrieved.
        """

    def fetch(self, name: str, requirement: Optional[VersionRequirement] = None) -> CrateMetadata:
        """Highest version of ``name`` matching ``requirement`` (``*`` when None)."""
        requirement = requirement if requirement is not None else VersionRequirement()
        return select_highest(name, self.versions(name), requirement)


class InMemoryCrateSource(CrateSource):
    """Source backed by metadata values held in memory."""

    def __init__(self, crates: Iterable[CrateMetadata] = ()):
        self._crates: Dict[str, List[CrateMetadata]] = {}
        self.fetch_count = 0
        for crate in crates:
            self.add(crate)

    def add(self, crate: CrateMetadata) -> None:
        self._crates.setdefault(crate.name, []).append(crate)

    def versions(self, name: str) -> List[CrateMetadata]:
        self.fetch_count += 1
        if name not in self._crates:
            raise FetchError(name, "*", "crate not found")
        return list(self._crates[name])
