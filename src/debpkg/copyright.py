"""Machine-readable ``debian/copyright`` (DEP-5) skeletons."""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from constants import Constants

DEP5_FORMAT = "https://www.debian.org/doc/packaging-manuals/copyright-format/1.0/"
UNKNOWN_YEARS = "FIXME (overlay) UNKNOWN-YEARS"
UNKNOWN_LICENSE = "UNKNOWN-LICENSE; FIXME (overlay)"

_LICENSE_SEPARATOR = re.compile(r"(?i)\s(?:or|and)\s|/")
_COMMON_LICENSES = {
    "apache-2.0": "Apache-2.0",
    "cc0-1.0": "CC0-1.0",
    "gpl-2.0": "GPL-2",
    "gpl-3.0": "GPL-3",
    "lgpl-2.0": "LGPL-2",
    "lgpl-2.1": "LGPL-2.1",
    "lgpl-3.0": "LGPL-3",
    "mpl-1.1": "MPL-1.1",
    "mpl-2.0": "MPL-2.0",
}
_YEARS_COMMENT = (
    "FIXME (overlay): Since upstream copyright years are not available in "
    "Cargo.toml, they were left unknown. Review and fix this before uploading "
    "to the archive."
)


@dataclass(frozen=True)
class FilesParagraph:
    files: str
    copyright: Tuple[str, ...]
    license: str
    comment: str = ""

    def render(self) -> str:
        lines = [f"Files: {self.files}"]
        if len(self.copyright) == 1:
            lines.append(f"Copyright: {self.copyright[0]}")
        else:
            lines.append("Copyright:")
            lines.extend(f" {c}" for c in self.copyright)
        lines.append(f"License: {self.license}")
        if self.comment:
            lines.append("Comment:")
            lines.append(_para(self.comment))
        return "\n".join(lines)


@dataclass(frozen=True)
class LicenseParagraph:
    name: str
    text: str

    def render(self) -> str:
        return f"License: {self.name}\n{_para(self.text)}"


@dataclass(frozen=True)
class Copyright:
    upstream_name: str
    contacts: Tuple[str, ...]
    source: str
    files: Tuple[FilesParagraph, ...]
    licenses: Tuple[LicenseParagraph, ...]
    excluded: Tuple[str, ...] = ()

    def render(self) -> str:
        header = [f"Format: {DEP5_FORMAT}", f"Upstream-Name: {self.upstream_name}"]
        if len(self.contacts) == 1:
            header.append(f"Upstream-Contact: {self.contacts[0]}")
        elif self.contacts:
            header.append("Upstream-Contact:")
            header.extend(f" {c}" for c in self.contacts)
        if self.source:
            header.append(f"Source: {self.source}")
        if self.excluded:
            header.append("Files-Excluded:\n " + "\n ".join(self.excluded))
        paragraphs = ["\n".join(header)]
        paragraphs.extend(f.render() for f in self.files)
        paragraphs.extend(lic.render() for lic in self.licenses)
        return "\n\n".join(paragraphs) + "\n"


def _para(text: str) -> str:
    """Continuation-line body: indented lines, `` .`` for blank lines."""
    lines = []
    for i, paragraph in enumerate(text.strip().split("\n\n")):
        if i:
            lines.append(" .")
        lines.extend(" " + line for line in textwrap.wrap(paragraph, width=Constants.DESCRIPTION_WIDTH - 1))
    return "\n".join(lines)


def debian_license_expression(license_expr: str) -> str:
    """SPDX-ish crate license expression in DEP-5 spelling."""
    return (
        license_expr.strip()
        .replace("/", " or ")
        .replace(" OR ", " or ")
        .replace(" AND ", " and ")
    )


def license_paragraphs(license_expr: str) -> List[LicenseParagraph]:
    names = sorted({part.strip() for part in _LICENSE_SEPARATOR.split(license_expr) if part.strip()})
    paragraphs = []
    for name in names:
        key = name.lower().rstrip("+")
        key = key[:-len("-or-later")] if key.endswith("-or-later") else key
        common = _COMMON_LICENSES.get(key)
        if common is not None:
            text = (
                "On Debian systems, the complete text of this license can be found in "
                f"/usr/share/common-licenses/{common}."
            )
        else:
            text = (
                "FIXME (overlay): Unrecognized crate license, please find the full license "
                "text in the rest of the crate source code and copy-paste it here"
            )
        paragraphs.append(LicenseParagraph(name, text))
    return paragraphs


def build_copyright(
    upstream_name: str,
    authors: Sequence[str],
    repository: Optional[str],
    license_expr: Optional[str],
    year: int,
    maintainer: str = Constants.MAINTAINER,
    uploaders: Sequence[str] = (),
    source: Optional[str] = None,
    excluded: Sequence[str] = (),
    files: Optional[Mapping[str, Tuple[str, Sequence[str]]]] = None,
) -> Copyright:
    """Assemble a DEP-5 skeleton.

    Args:
        upstream_name: Crate name.
        authors: Upstream authors; used for contact and notices.
        repository: Upstream source URL, replaced by ``source`` when given.
        license_expr: Crate license expression; None leaves a FIXME.
        year: Year for the ``debian/*`` notices.
        maintainer: Packaging maintainer.
        uploaders: Additional packaging copyright holders.
        source: Override for the ``Source:`` field.
        excluded: Globs for ``Files-Excluded:``.
        files: Extra paragraphs, glob -> (license, copyright notices).
    """
    license_name = debian_license_expression(license_expr) if license_expr else UNKNOWN_LICENSE
    contacts = tuple(authors) or ("FIXME (overlay) UNKNOWN-CONTACT",)
    notices = tuple(f"{UNKNOWN_YEARS} {a}" for a in authors) or (UNKNOWN_YEARS,)

    paragraphs = [FilesParagraph("*", notices, license_name, _YEARS_COMMENT)]
    for pattern, (lic, holders) in sorted((files or {}).items()):
        paragraphs.append(FilesParagraph(pattern, tuple(holders) or (UNKNOWN_YEARS,), lic))
    deb_notices = (f"{year} {maintainer}",) + tuple(f"{year} {u}" for u in uploaders)
    paragraphs.append(FilesParagraph("debian/*", deb_notices, license_name))

    licenses = license_paragraphs(license_expr) if license_expr else [
        LicenseParagraph(UNKNOWN_LICENSE, "FIXME (overlay): the crate declares no license")
    ]
    return Copyright(
        upstream_name=upstream_name,
        contacts=contacts,
        source=source if source is not None else (repository or ""),
        files=tuple(paragraphs),
        licenses=tuple(licenses),
        excluded=tuple(excluded),
    )
