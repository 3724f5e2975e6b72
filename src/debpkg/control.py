"""Serialize stanzas to the ``debian/control`` paragraph grammar."""

from __future__ import annotations

import textwrap
from typing import Iterable, List, Optional, Sequence

from constants import Constants
from debpkg.constraint import DebianConstraint, render_list
from debpkg.stanza import PackageStanza, SourceStanza

LIST_SEPARATOR = ",\n "


def _relation_field(key: str, relations: Sequence[DebianConstraint]) -> List[str]:
    if not relations:
        return []
    return [f"{key}:\n " + render_list(relations, LIST_SEPARATOR)]


def _fixme_lines(fixmes: Iterable[str]) -> List[str]:
    return [f"# FIXME: {note}" for note in fixmes]


def format_description(summary: str, description: str, width: int = Constants.DESCRIPTION_WIDTH) -> str:
    """``Description:`` field: summary line, then the wrapped long description.

    Blank lines become `` .``; list items (``- ``) keep an extra indent.
    """
    lines = [f"Description: {summary}"]
    for paragraph_index, paragraph in enumerate(description.strip().split("\n\n")):
        if paragraph_index:
            lines.append(" .")
        for raw in paragraph.split("\n"):
            raw = raw.strip()
            if not raw:
                continue
            if raw.startswith("- "):
                wrapped = textwrap.wrap(raw, width=width - 2, subsequent_indent="  ")
                lines.extend("  " + line for line in wrapped)
            else:
                lines.extend(" " + line for line in textwrap.wrap(raw, width=width - 1))
    return "\n".join(lines)


def render_source(source: SourceStanza) -> str:
    lines = _fixme_lines(source.fixmes)
    lines.append(f"Source: {source.name}")
    lines.append(f"Section: {source.section}")
    lines.append(f"Priority: {source.priority}")
    lines.extend(_relation_field("Build-Depends", source.build_depends))
    lines.append(f"Maintainer: {source.maintainer}")
    if source.uploaders:
        lines.append("Uploaders:\n " + LIST_SEPARATOR.join(source.uploaders))
    lines.append(f"Standards-Version: {source.standards_version}")
    lines.append(f"Vcs-Git: {source.vcs_git}")
    lines.append(f"Vcs-Browser: {source.vcs_browser}")
    if source.homepage:
        lines.append(f"Homepage: {source.homepage}")
    lines.append(f"X-Cargo-Crate: {source.crate_name}")
    lines.append(f"Rules-Requires-Root: {source.requires_root}")
    return "\n".join(lines)


def render_package(stanza: PackageStanza) -> str:
    lines = _fixme_lines(stanza.fixmes)
    lines.append(f"Package: {stanza.identifier}")
    lines.append(f"Architecture: {stanza.architecture}")
    lines.append(f"Multi-Arch: {stanza.multi_arch}")
    if stanza.section:
        lines.append(f"Section: {stanza.section}")
    lines.extend(_relation_field("Depends", stanza.depends))
    lines.extend(_relation_field("Recommends", stanza.recommends))
    lines.extend(_relation_field("Suggests", stanza.suggests))
    lines.extend(_relation_field("Provides", stanza.provides))
    lines.extend(stanza.extra_lines)
    lines.append(format_description(stanza.summary, stanza.description))
    return "\n".join(lines)


def render_control(source: Optional[SourceStanza], stanzas: Sequence[PackageStanza]) -> str:
    """Full control file: source paragraph first, blank-line separated."""
    paragraphs = []
    if source is not None:
        paragraphs.append(render_source(source))
    paragraphs.extend(render_package(s) for s in stanzas)
    return "\n\n".join(paragraphs) + "\n"
