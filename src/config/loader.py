"""Load per-crate packaging configs (TOML, YAML or JSON)."""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from constants import Constants
from common.logging_utils import extra_context
from config.schema import validate_config
from errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceOverride:
    section: Optional[str] = None
    policy: Optional[str] = None
    homepage: Optional[str] = None
    vcs_git: Optional[str] = None
    vcs_browser: Optional[str] = None
    build_depends: Tuple[str, ...] = ()
    build_depends_excludes: Tuple[str, ...] = ()
    requires_root: Optional[str] = None


@dataclass(frozen=True)
class PackageOverride:
    section: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    depends: Tuple[str, ...] = ()
    recommends: Tuple[str, ...] = ()
    suggests: Tuple[str, ...] = ()
    provides: Tuple[str, ...] = ()
    extra_lines: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FilesOverride:
    license: str
    copyright: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CopyrightOverride:
    source: Optional[str] = None
    ignore: Tuple[str, ...] = ()
    files: Mapping[str, FilesOverride] = field(default_factory=dict)


@dataclass(frozen=True)
class PackagingConfig:
    """Packaging options for one crate; every field has a usable default.

    ``bin`` None means "decide from the crate": binaries are packaged unless
    ``semver_suffix`` is set.
    """
    bin: Optional[bool] = None
    bin_name: Optional[str] = None
    semver_suffix: bool = False
    allow_prerelease_deps: bool = False
    collapse_features: bool = False
    features: Optional[Tuple[str, ...]] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    maintainer: str = Constants.MAINTAINER
    uploaders: Tuple[str, ...] = ()
    requires_root: Optional[str] = None
    source: SourceOverride = field(default_factory=SourceOverride)
    packages: Mapping[str, PackageOverride] = field(default_factory=dict)
    copyright: CopyrightOverride = field(default_factory=CopyrightOverride)

    @property
    def build_bin_package(self) -> bool:
        return self.bin if self.bin is not None else not self.semver_suffix

    def package(self, key: str) -> PackageOverride:
        """Override for a package key (``lib``, ``lib+{feature}``, ``bin``)."""
        return self.packages.get(key, PackageOverride())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], origin: str = "<config>") -> "PackagingConfig":
        """Validate and convert a decoded config mapping."""
        validate_config(dict(data), origin)
        source = SourceOverride(**_tuples(data.get("source", {})))
        packages = {k: PackageOverride(**_tuples(v)) for k, v in sorted(data.get("packages", {}).items())}
        copyright_data = dict(data.get("copyright", {}))
        files = {
            pattern: FilesOverride(entry["license"], tuple(entry.get("copyright", ())))
            for pattern, entry in sorted(copyright_data.pop("files", {}).items())
        }
        copyright_override = CopyrightOverride(files=files, **_tuples(copyright_data))
        top = {k: v for k, v in data.items() if k not in ("source", "packages", "copyright")}
        return cls(source=source, packages=packages, copyright=copyright_override, **_tuples(top))


def _tuples(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: tuple(v) if isinstance(v, list) else v for k, v in data.items()}


def _decode(path: str, text: str) -> Any:
    ext = os.path.splitext(path)[1].lower()
    try:
        if ext in (".yaml", ".yml"):
            return yaml.safe_load(text) or {}
        if ext == ".json":
            return json.loads(text)
        return tomllib.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Could not parse config {path}: {exc}") from exc


def load_config(path: Optional[str]) -> PackagingConfig:
    """Load a config file; None yields the defaults.

    Raises:
        ConfigError: The file is unreadable, unparsable or fails validation.
    """
    if path is None:
        return PackagingConfig()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc

    data = _decode(path, text)
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping at top level")
    config = PackagingConfig.from_dict(data, origin=path)
    logger.info(
        "Loaded packaging config",
        extra=extra_context(event="config_loaded", component="config", target=path, count=len(config.packages)),
    )
    return config


def discover_config(directory: str) -> Optional[str]:
    """Path of the conventional config file in a directory, if present."""
    candidate = os.path.join(directory, Constants.CONFIG_FILE)
    return candidate if os.path.isfile(candidate) else None


def package_keys(features: List[str]) -> List[str]:
    """All package keys that may carry overrides for the given features."""
    return ["lib", "bin"] + [f"lib+{f}" for f in sorted(features)]
