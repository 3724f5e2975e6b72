"""Build CrateMetadata from Cargo manifests and registry index records."""

from __future__ import annotations

import logging
import os
import re
import tomllib
from typing import Any, Dict, List, Mapping, Optional, Tuple

from crates.models import CrateMetadata, Dependency, DependencyKind
from crates.semver_req import InvalidRequirement, VersionRequirement, parse_version
from errors import ManifestError

logger = logging.getLogger(__name__)

_DEP_SECTIONS = (
    ("dependencies", DependencyKind.NORMAL),
    ("build-dependencies", DependencyKind.BUILD),
    ("build_dependencies", DependencyKind.BUILD),
    ("dev-dependencies", DependencyKind.DEV),
    ("dev_dependencies", DependencyKind.DEV),
)


def _requirement(text: Optional[str], crate: str, dep: str) -> VersionRequirement:
    try:
        return VersionRequirement.parse(text)
    except InvalidRequirement as exc:
        raise ManifestError(f"{crate}: dependency {dep}: {exc}") from exc


def _manifest_dependency(
    crate: str, name: str, value: Any, kind: DependencyKind, target: Optional[str]
) -> Dependency:
    if isinstance(value, str):
        return Dependency(name, _requirement(value, crate, name), kind=kind, target=target)
    if not isinstance(value, dict):
        raise ManifestError(f"{crate}: dependency {name} must be a string or a table")
    default_features = value.get("default-features", value.get("default_features", True))
    # path-, git- and workspace-only dependencies carry no requirement
    return Dependency(
        name,
        _requirement(value.get("version"), crate, name),
        optional=bool(value.get("optional", False)),
        default_features=bool(default_features),
        features=tuple(value.get("features", ())),
        kind=kind,
        package=value.get("package"),
        target=target,
    )


def _section_dependencies(crate: str, table: Mapping[str, Any], target: Optional[str]) -> List[Dependency]:
    deps = []
    for section, kind in _DEP_SECTIONS:
        for name, value in sorted(table.get(section, {}).items()):
            deps.append(_manifest_dependency(crate, name, value, kind, target))
    return deps


def _targets(data: Mapping[str, Any], name: str, crate_dir: Optional[str]) -> Tuple[bool, Tuple[str, ...]]:
    bins = [b["name"] for b in data.get("bin", []) if "name" in b]
    has_lib = "lib" in data
    if crate_dir is not None:
        has_lib = has_lib or os.path.exists(os.path.join(crate_dir, "src", "lib.rs"))
        autobins = data.get("package", {}).get("autobins", True)
        if autobins and not bins and os.path.exists(os.path.join(crate_dir, "src", "main.rs")):
            bins.append(name)
    if not bins:
        # no target detected at all: cargo's default is a library
        has_lib = True
    return has_lib, tuple(sorted(bins))


def parse_manifest(text: str, crate_dir: Optional[str] = None, origin: str = "Cargo.toml") -> CrateMetadata:
    """Parse ``Cargo.toml`` text.

    Args:
        text: Manifest contents.
        crate_dir: Crate root, used to detect ``src/lib.rs`` and
            ``src/main.rs`` targets; without it a crate with no ``[[bin]]``
            section is taken to be a library.
        origin: Shown in errors.

    Raises:
        ManifestError: The manifest is not valid TOML or lacks required fields.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestError(f"Could not parse {origin}: {exc}") from exc

    package = data.get("package")
    if not isinstance(package, dict) or "name" not in package:
        raise ManifestError(f"{origin} has no [package] name")
    name = package["name"]
    version = package.get("version", "0.0.0")
    if not isinstance(version, str):
        raise ManifestError(f"{origin}: workspace-inherited package version is not supported")

    deps = _section_dependencies(name, data, None)
    for cfg, table in sorted(data.get("target", {}).items()):
        deps.extend(_section_dependencies(name, table, cfg))

    has_lib, bins = _targets(data, name, crate_dir)
    authors = package.get("authors", ())
    try:
        return CrateMetadata(
            name=name,
            version=parse_version(version),
            dependencies=tuple(deps),
            features={k: tuple(v) for k, v in data.get("features", {}).items()},
            has_lib=has_lib,
            binaries=bins,
            description=_text(package.get("description")),
            homepage=_text(package.get("homepage")),
            repository=_text(package.get("repository")),
            license=_text(package.get("license")),
            authors=tuple(authors) if isinstance(authors, list) else (),
        )
    except InvalidRequirement as exc:
        raise ManifestError(f"{origin}: {exc}") from exc


def _text(value: Any) -> Optional[str]:
    # Workspace-inherited fields are tables; treat them as absent.
    return value if isinstance(value, str) else None


def load_manifest(path: str) -> CrateMetadata:
    """Read a Cargo.toml file (or a crate directory containing one)."""
    if os.path.isdir(path):
        path = os.path.join(path, "Cargo.toml")
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise ManifestError(f"Could not read {path}: {exc}") from exc
    logger.debug("Parsing manifest %s", path)
    return parse_manifest(text, crate_dir=os.path.dirname(os.path.abspath(path)), origin=path)


def from_index_record(record: Mapping[str, Any], api_metadata: Optional[Mapping[str, Any]] = None) -> CrateMetadata:
    """Build metadata from one line of the registry index.

    Index records name a renamed dependency by its local name in ``name``
    and the real crate in ``package``. Descriptive fields come from the
    optional API metadata.
    """
    try:
        name = record["name"]
        version = parse_version(record["vers"])
    except (KeyError, InvalidRequirement) as exc:
        raise ManifestError(f"Malformed index record: {exc}") from exc

    deps = []
    for entry in record.get("deps", []):
        dep_name = entry["name"]
        try:
            kind = DependencyKind.from_str(entry.get("kind"))
        except ValueError as exc:
            raise ManifestError(f"{name} {version}: {exc}") from exc
        deps.append(Dependency(
            dep_name,
            _requirement(entry.get("req"), name, dep_name),
            optional=bool(entry.get("optional", False)),
            default_features=bool(entry.get("default_features", True)),
            features=tuple(entry.get("features") or ()),
            kind=kind,
            package=entry.get("package"),
            target=entry.get("target"),
        ))

    features: Dict[str, Tuple[str, ...]] = {}
    for table in (record.get("features") or {}, record.get("features2") or {}):
        for feature, values in table.items():
            features[feature] = tuple(values)

    api = api_metadata or {}
    return CrateMetadata(
        name=name,
        version=version,
        dependencies=tuple(deps),
        features=features,
        description=api.get("description"),
        homepage=api.get("homepage"),
        repository=api.get("repository"),
        license=api.get("license") or record.get("license"),
    )


_PREFIX_ARTICLE = re.compile(r"^(a|an|the)\s+", re.IGNORECASE)
_PREFIX_KIND = re.compile(r"^(rust\s+)?(implementation|library|tool|crate)\s+(of|to|for)\s+", re.IGNORECASE)


def summary_description(crate_name: str, description: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split a crate description into a package summary and long description.

    Manual line wrapping is undone (a blank line is a real paragraph
    break), boilerplate openings such as "This crate is a library for" are
    trimmed, and the first sentence or line becomes the summary.
    """
    if not description:
        return None, None
    text = description.replace("\n\n", "\r").replace("\n", " ").replace("\r", "\n").strip()
    prefix = re.compile(
        rf"^({re.escape(crate_name)}|This(\s+\w+)?)(\s*,|\s+is|\s+provides)\s+", re.IGNORECASE
    )
    text = prefix.sub("", text, count=1)
    text = _PREFIX_ARTICLE.sub("", text, count=1)
    text = _PREFIX_KIND.sub("", text, count=1)
    if text:
        text = text[0].upper() + text[1:]

    cuts = [p for p in (text.find("\n"), text.find(". ")) if p >= 0]
    if not cuts:
        return text.rstrip("."), None
    cut = min(cuts)
    summary = text[:cut].rstrip(".")
    rest = text[cut + 1:].strip()
    return summary, rest or None
