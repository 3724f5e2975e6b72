"""Debian package naming for Rust crates."""

from typing import Optional

import semantic_version

from constants import Constants


def base_deb_name(crate_name: str) -> str:
    """Crate or feature name in Debian form: lowercase, ``_`` becomes ``-``."""
    return crate_name.replace("_", "-").lower()


def semver_suffix(version: semantic_version.Version) -> str:
    """Series suffix embedded in package names: ``-0.{minor}`` or ``-{major}``."""
    if version.major == 0:
        return f"-0.{version.minor}"
    return f"-{version.major}"


def pkgbase(crate_name: str, suffix: Optional[str] = None) -> str:
    return base_deb_name(crate_name) + (suffix or "")


def dsc_name(base: str) -> str:
    """Source package name for a package base."""
    return f"{Constants.SRC_PREFIX}-{base}"


def deb_name(base: str) -> str:
    """Library package name: ``librust-{base}-dev``."""
    return f"{Constants.PKG_PREFIX}-{base}{Constants.DEV_SUFFIX}"


def deb_feature_name(base: str, feature: str) -> str:
    """Feature package name; the bare feature ``""`` is the library package."""
    if feature == Constants.BARE_FEATURE:
        return deb_name(base)
    return f"{Constants.PKG_PREFIX}-{base}+{base_deb_name(feature)}{Constants.DEV_SUFFIX}"


def dependency_base(crate_name: str) -> str:
    """Prefix of every package name of a crate, before any series or feature."""
    return f"{Constants.PKG_PREFIX}-{base_deb_name(crate_name)}"


def feature_suffix(feature: Optional[str]) -> str:
    """``+{feature}-dev``, or plain ``-dev`` when no feature is requested."""
    if not feature:
        return Constants.DEV_SUFFIX
    return f"+{base_deb_name(feature)}{Constants.DEV_SUFFIX}"
