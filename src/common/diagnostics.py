"""Accumulated non-fatal diagnostics returned alongside successful results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from common.logging_utils import extra_context

logger = logging.getLogger(__name__)

UNREPRESENTABLE_PREDICATE = "UnrepresentablePredicate"
DANGLING_FEATURE_REFERENCE = "DanglingFeatureReference"
OVERRIDE_CONFLICT = "OverrideConflict"
PRERELEASE_COERCED = "PrereleaseCoerced"


class Severity(Enum):
    """How urgently a diagnostic needs human attention."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    """One non-fatal condition found while translating a crate."""
    code: str
    message: str
    severity: Severity = Severity.WARNING
    subject: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __str__(self) -> str:
        prefix = f"{self.subject}: " if self.subject else ""
        return f"[{self.code}] {prefix}{self.message}"


class Diagnostics:
    """Ordered, de-duplicated collection of diagnostics.

    Every recorded diagnostic is also logged, but the collection is what
    callers inspect to decide whether to act.
    """

    def __init__(self, items: Optional[Iterable[Diagnostic]] = None):
        self._items: List[Diagnostic] = []
        for item in items or ():
            self.add(item)

    def add(self, diagnostic: Diagnostic) -> Diagnostic:
        """Record a diagnostic unless an equal one was already recorded."""
        if diagnostic in self._items:
            return diagnostic
        self._items.append(diagnostic)
        level = {
            Severity.INFO: logging.INFO,
            Severity.WARNING: logging.WARNING,
            Severity.ERROR: logging.ERROR,
        }[diagnostic.severity]
        logger.log(
            level,
            "%s",
            diagnostic,
            extra=extra_context(
                event="diagnostic",
                component="diagnostics",
                action=diagnostic.code,
                target=diagnostic.subject,
            ),
        )
        return diagnostic

    def warn(self, code: str, message: str, subject: Optional[str] = None, **details: Any) -> Diagnostic:
        """Shortcut for recording a warning-level diagnostic."""
        return self.add(Diagnostic(code, message, Severity.WARNING, subject, dict(details)))

    def extend(self, other: Iterable[Diagnostic]) -> None:
        for item in other:
            self.add(item)

    def by_code(self, code: str) -> List[Diagnostic]:
        return [d for d in self._items if d.code == code]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)


def dangling_feature_reference(feature: str, referenced_by: str) -> Diagnostic:
    """A feature activation edge names something that does not exist."""
    return Diagnostic(
        DANGLING_FEATURE_REFERENCE,
        f"feature '{referenced_by}' references unknown feature or dependency '{feature}'; edge ignored",
        Severity.WARNING,
        subject=feature,
        details={"feature": feature, "referenced_by": referenced_by},
    )


def override_conflict(field_name: str, detected: Any, override: Any, subject: Optional[str] = None) -> Diagnostic:
    """An override replaced a different automatically detected value."""
    return Diagnostic(
        OVERRIDE_CONFLICT,
        f"override for {field_name} replaces detected value {detected!r} with {override!r}",
        Severity.WARNING,
        subject=subject,
        details={"field": field_name, "detected": detected, "override": override},
    )
