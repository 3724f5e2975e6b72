"""Draft-07 JSON Schema for the per-crate packaging config."""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft7Validator

from errors import ConfigError

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

SOURCE_OVERRIDE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "section": {"type": "string"},
        "policy": {"type": "string"},
        "homepage": {"type": "string"},
        "vcs_git": {"type": "string"},
        "vcs_browser": {"type": "string"},
        "build_depends": _STRING_LIST,
        "build_depends_excludes": _STRING_LIST,
        "requires_root": {"type": "string"},
    },
}

PACKAGE_OVERRIDE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "section": {"type": "string"},
        "summary": {"type": "string"},
        "description": {"type": "string"},
        "depends": _STRING_LIST,
        "recommends": _STRING_LIST,
        "suggests": _STRING_LIST,
        "provides": _STRING_LIST,
        "extra_lines": _STRING_LIST,
    },
}

COPYRIGHT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "source": {"type": "string"},
        "ignore": _STRING_LIST,
        "files": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "additionalProperties": False,
                "required": ["license"],
                "properties": {
                    "copyright": _STRING_LIST,
                    "license": {"type": "string"},
                },
            },
        },
    },
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "bin": {"type": "boolean"},
        "bin_name": {"type": "string"},
        "semver_suffix": {"type": "boolean"},
        "allow_prerelease_deps": {"type": "boolean"},
        "collapse_features": {"type": "boolean"},
        "features": _STRING_LIST,
        "summary": {"type": "string"},
        "description": {"type": "string"},
        "maintainer": {"type": "string"},
        "uploaders": _STRING_LIST,
        "requires_root": {"type": "string"},
        "source": SOURCE_OVERRIDE_SCHEMA,
        "packages": {
            "type": "object",
            "propertyNames": {"pattern": r"^(lib|bin|lib\+[A-Za-z0-9_.-]+)$"},
            "additionalProperties": PACKAGE_OVERRIDE_SCHEMA,
        },
        "copyright": COPYRIGHT_SCHEMA,
    },
}


def schema_errors(data: Any) -> List[str]:
    """All validation problems, as ``path: message`` strings sorted by path."""
    validator = Draft7Validator(CONFIG_SCHEMA)
    errs = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    return [f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errs]


def validate_config(data: Any, origin: str = "<config>") -> None:
    """Raise ConfigError on the first schema violation."""
    errs = schema_errors(data)
    if errs:
        raise ConfigError(f"Invalid config {origin} at '{errs[0]}'")
