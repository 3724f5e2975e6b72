"""Exception types raised by the translation and resolution engine."""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple


class DebcrateError(Exception):
    """Base class for all errors raised by debcrate."""


class ConfigError(DebcrateError):
    """Raised when a packaging configuration file cannot be loaded or is invalid."""


class UnrepresentablePredicate(DebcrateError):
    """A version requirement has no exact expression in the Debian grammar.

    Attributes:
        predicate: The original requirement (kept for diagnostics).
        reason: Short human-readable explanation.
        approximation: Closest constraint that is never looser than the
            requirement, or None when no safe approximation exists.
    """

    def __init__(self, predicate: Any, reason: str, approximation: Optional[Any] = None):
        super().__init__(f"Unrepresentable version requirement '{predicate}': {reason}")
        self.predicate = predicate
        self.reason = reason
        self.approximation = approximation


class DependencyCycle(DebcrateError):
    """The selected dependency graph contains a cycle.

    Attributes:
        path: The cycle as a sequence of (name, version) nodes; the first
            node is repeated at the end.
    """

    def __init__(self, path: Sequence[Tuple[str, str]]):
        self.path = tuple(path)
        shown = " -> ".join(f"{name} {version}" for name, version in self.path)
        super().__init__(
            f"Dependency cycle detected: {shown}; patch the crate(s) to break the cycle"
        )


class FetchError(DebcrateError):
    """Crate metadata could not be retrieved.

    Attributes:
        name: Crate name being fetched.
        version: Version or requirement being fetched.
        cause: Underlying error message or exception.
        origin: The (name, version) node whose dependency triggered the fetch.
    """

    def __init__(
        self,
        name: str,
        version: str,
        cause: Any,
        origin: Optional[Tuple[str, str]] = None,
    ):
        self.name = name
        self.version = version
        self.cause = cause
        self.origin = origin
        message = f"Failed to fetch {name} {version}: {cause}"
        if origin is not None:
            message += f" (required by {origin[0]} {origin[1]})"
        super().__init__(message)

    def with_origin(self, origin: Tuple[str, str]) -> "FetchError":
        """Return a copy of this error attributed to the given requiring node."""
        return FetchError(self.name, self.version, self.cause, origin=origin)


class ManifestError(DebcrateError):
    """Crate metadata (a Cargo.toml or an index record) is malformed."""
