"""Build the Debian source and binary package stanzas for one crate.

The main library package carries the unconditional dependencies. Features
whose closure adds dependencies get packages of their own (grouped when
their closures are equal); the rest are provided by an existing package.
Overrides from the packaging config are applied last.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from common.diagnostics import OVERRIDE_CONFLICT, Diagnostics, override_conflict
from common.logging_utils import Timer, extra_context
from config.loader import PackageOverride, PackagingConfig, package_keys
from constants import Constants
from crates.features import FeatureGraph, FeaturePlan, plan_feature_groups
from crates.manifest import summary_description
from crates.models import ActivationSet, CrateMetadata, Dependency
from debpkg.constraint import DebianConstraint, merge_constraints
from debpkg.copyright import Copyright, build_copyright
from debpkg.naming import (
    base_deb_name,
    deb_feature_name,
    deb_name,
    dsc_name,
    pkgbase,
    semver_suffix,
)
from debpkg.stanza import Classification, PackageStanza, SourceStanza, StanzaKind
from translation.version_translator import dependency_constraints

logger = logging.getLogger(__name__)

BINARY_VERSION = "= ${binary:Version}"
MISC_DEPENDS = DebianConstraint.single("${misc:Depends}")
NOCHECK = "<!nocheck>"


@dataclass(frozen=True)
class BuildResult:
    """Stanzas for one crate plus everything non-fatal found on the way."""
    source: SourceStanza
    stanzas: Tuple[PackageStanza, ...]
    plan: FeaturePlan
    diagnostics: Diagnostics = field(compare=False)

    def stanza(self, identifier: str) -> Optional[PackageStanza]:
        for s in self.stanzas:
            if s.identifier == identifier:
                return s
        return None


class _Translator:
    """Per-build cache of dependency translations."""

    def __init__(self, allow_prerelease: bool, diagnostics: Diagnostics):
        self.allow_prerelease = allow_prerelease
        self.diagnostics = diagnostics
        self._cache: Dict[Dependency, List[DebianConstraint]] = {}

    def constraints(self, deps: Iterable[Dependency]) -> List[DebianConstraint]:
        result = []
        for dep in deps:
            if dep not in self._cache:
                self._cache[dep] = dependency_constraints(dep, self.allow_prerelease, self.diagnostics)
            result.extend(self._cache[dep])
        return result


def _self_relation(package: str) -> DebianConstraint:
    return DebianConstraint.single(package, BINARY_VERSION)


def _fixmes(constraints: Iterable[DebianConstraint]) -> Tuple[str, ...]:
    return tuple(sorted({c.fixme for c in constraints if c.fixme}))


def _version_aliases(crate_base: str, metadata: CrateMetadata) -> List[str]:
    v = metadata.version
    return [
        crate_base,
        f"{crate_base}-{v.major}",
        f"{crate_base}-{v.major}.{v.minor}",
        f"{crate_base}-{v.major}.{v.minor}.{v.patch}",
    ]


def _provides(crate_base: str, metadata: CrateMetadata, feature: str, provided: Sequence[str], own: str) -> List[DebianConstraint]:
    """Every name this package answers to, except its own."""
    names = []
    for alias in _version_aliases(crate_base, metadata):
        names.append(deb_feature_name(alias, feature))
        names.extend(deb_feature_name(alias, f) for f in provided)
    seen = set()
    relations = []
    for name in names:
        if name == own or name in seen:
            continue
        seen.add(name)
        relations.append(_self_relation(name))
    return relations


def _quote_list(features: Sequence[str]) -> str:
    quoted = [f'"{f}"' for f in features]
    if len(quoted) == 1:
        return quoted[0]
    return ", ".join(quoted[:-1]) + f", and {quoted[-1]}"


class _Descriptions:
    """Detected summary/description text and the per-kind boilerplate."""

    def __init__(self, metadata: CrateMetadata, config: PackagingConfig):
        self.crate = metadata.name
        summary, description = summary_description(metadata.name, metadata.description)
        self.detected_summary = summary
        self.detected_description = description
        self.summary = config.summary or summary
        self.description = config.description or description

    def _prefix(self) -> Tuple[str, Tuple[str, ...]]:
        if self.summary:
            return self.summary, ()
        return f'Rust crate "{self.crate}"', ("summary missing; set one in the packaging config",)

    def library(self, feature: Optional[str], provided: Sequence[str]) -> Tuple[str, str, Tuple[str, ...]]:
        prefix, fixmes = self._prefix()
        if feature is None:
            summary = f"{prefix} - Rust source code"
            boilerplate = (
                f"This package contains the source for the Rust {self.crate} crate, "
                "packaged by debcargo for use with cargo and dh-cargo."
            )
        else:
            more = f" and {len(provided)} more" if provided else ""
            summary = f'{prefix} - feature "{feature}"{more}'
            boilerplate = (
                f'This metapackage enables feature "{feature}" for the Rust {self.crate} crate, '
                "by pulling in any additional dependencies needed by that feature."
            )
            if provided:
                boilerplate += f"\n\nAdditionally, this package also provides the {_quote_list(provided)} features."
        if len(summary) > Constants.SUMMARY_MAX_LEN:
            fixmes = fixmes + (f"summary is longer than {Constants.SUMMARY_MAX_LEN} characters",)
        return summary, self._join(boilerplate), fixmes

    def binary(self, binaries: Sequence[str], bin_name: str) -> Tuple[str, str, Tuple[str, ...]]:
        prefix, fixmes = self._prefix()
        boilerplate = ""
        if len(binaries) > 1 or (binaries and binaries[0] != bin_name):
            listed = "\n".join(f"- {b}" for b in binaries)
            boilerplate = f'This package contains the following binaries built from the Rust "{self.crate}" crate:\n{listed}'
        return prefix, self._join(boilerplate), fixmes

    def _join(self, boilerplate: str) -> str:
        parts = [p for p in (self.description, boilerplate) if p]
        return "\n\n".join(parts)


class StanzaBuilder:
    """Builds and post-processes the stanzas of one crate."""

    def __init__(
        self,
        metadata: CrateMetadata,
        config: Optional[PackagingConfig] = None,
        feature_groups: Optional[Sequence[str]] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self.metadata = metadata
        self.config = config or PackagingConfig()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.graph = FeatureGraph(metadata, self.diagnostics)
        requested = feature_groups if feature_groups is not None else self.config.features
        self.plan = plan_feature_groups(metadata, requested, self.diagnostics, graph=self.graph)
        self.translator = _Translator(self.config.allow_prerelease_deps, self.diagnostics)
        self.series = semver_suffix(metadata.version) if self.config.semver_suffix else ""
        self.crate_base = base_deb_name(metadata.name)
        self.base = pkgbase(metadata.name, self.series)
        self.texts = _Descriptions(metadata, self.config)

    # library stanzas

    def _library_stanza(
        self,
        classification: Classification,
        activation: ActivationSet,
        provided: Sequence[str],
    ) -> PackageStanza:
        feature = classification.feature
        identifier = deb_feature_name(self.base, feature or Constants.BARE_FEATURE)
        translated = self.translator.constraints(activation.sorted_dependencies())
        depends = [MISC_DEPENDS] + translated
        if feature is not None:
            depends.append(_self_relation(deb_name(self.base)))
        summary, description, fixmes = self.texts.library(feature, provided)
        extra_lines: Tuple[str, ...] = ()
        if self.series and feature is None:
            full = deb_name(f"{self.crate_base}-{self.metadata.version}")
            extra_lines = (f"Replaces: {full}", f"Breaks: {full}")
        return PackageStanza(
            identifier=identifier,
            classification=classification,
            depends=tuple(merge_constraints(depends)),
            provides=tuple(_provides(
                self.crate_base, self.metadata, feature or Constants.BARE_FEATURE, provided, identifier
            )),
            summary=summary,
            description=description,
            extra_lines=extra_lines,
            fixmes=_fixmes(translated) + fixmes,
        )

    def _library_stanzas(self) -> List[PackageStanza]:
        plan = self.plan
        if self.config.collapse_features:
            activation = plan.unconditional
            provided = list(plan.main_provides)
            for group in plan.groups:
                activation = activation | group.activation
                provided.extend((group.owner,) + group.provides)
            return [self._library_stanza(Classification.main(), activation, sorted(provided))]

        stanzas = []
        feature_packages = []
        default_owner = None
        for group in plan.groups:
            if group.owner == Constants.DEFAULT_FEATURE:
                classification = Classification.default()
            else:
                classification = Classification.feature_group(group.owner)
            if Constants.DEFAULT_FEATURE in (group.owner,) + group.provides:
                default_owner = group.owner
            stanzas.append(self._library_stanza(classification, group.activation, group.provides))
            feature_packages.append(deb_feature_name(self.base, group.owner))

        main = self._library_stanza(Classification.main(), plan.unconditional, plan.main_provides)
        recommends = []
        if default_owner is not None:
            recommends.append(_self_relation(deb_feature_name(self.base, default_owner)))
        rendered_recommends = {r.packages[0] for r in recommends}
        suggests = [_self_relation(p) for p in feature_packages if p not in rendered_recommends]
        main = main.with_fields(recommends=tuple(recommends), suggests=tuple(suggests))
        return [main] + stanzas

    # binary stanza

    def _binary_stanza(self) -> PackageStanza:
        bin_name = self.config.bin_name or self.crate_base
        identifier = bin_name + self.series
        provides = []
        if self.series:
            provides.append(_self_relation(bin_name))
        provides.append(DebianConstraint.single("${cargo:Provides}"))
        summary, description, fixmes = self.texts.binary(self.metadata.binaries, bin_name)
        return PackageStanza(
            identifier=identifier,
            classification=Classification.binary(),
            depends=tuple(DebianConstraint.single(d) for d in ("${misc:Depends}", "${shlibs:Depends}", "${cargo:Depends}")),
            recommends=(DebianConstraint.single("${cargo:Recommends}"),),
            suggests=(DebianConstraint.single("${cargo:Suggests}"),),
            provides=tuple(provides),
            multi_arch="allowed",
            summary=summary,
            description=description,
            extra_lines=(
                "Built-Using: ${cargo:Built-Using}",
                "Static-Built-Using: ${cargo:Static-Built-Using}",
            ),
            fixmes=fixmes,
        )

    # overrides

    def _conflict(self, field_name: str, detected, override, subject: str) -> None:
        if detected is not None and detected != override:
            self.diagnostics.add(override_conflict(field_name, detected, override, subject))

    def _override_keys(self, stanza: PackageStanza) -> List[str]:
        key = stanza.classification.package_key
        if stanza.kind in (StanzaKind.DEFAULT, StanzaKind.FEATURE_GROUP):
            group = self.plan.group(stanza.classification.feature)
            provided = group.provides if group is not None else ()
            return [key] + [f"lib+{f}" for f in provided]
        if stanza.kind is StanzaKind.MAIN:
            return [key] + [f"lib+{f}" for f in self.plan.main_provides]
        return [key]

    def _merge_depends(self, stanza: PackageStanza, extra: Sequence[str]) -> Tuple[DebianConstraint, ...]:
        depends = list(stanza.depends)
        for text in extra:
            relation = DebianConstraint.parse(text)
            rendered = relation.render()
            clashes = [
                i for i, d in enumerate(depends)
                if set(d.packages) & set(relation.packages) and d.render() != rendered
            ]
            if any(d.render() == rendered for d in depends):
                continue
            if clashes:
                for i in reversed(clashes):
                    self.diagnostics.add(override_conflict("depends", depends[i].render(), rendered, stanza.identifier))
                    del depends[i]
            depends.append(relation)
        return tuple(merge_constraints(depends))

    @staticmethod
    def _merge_list(current: Sequence[DebianConstraint], extra: Sequence[str]) -> Tuple[DebianConstraint, ...]:
        merged = list(current)
        for text in extra:
            relation = DebianConstraint.parse(text)
            if relation not in merged:
                merged.append(relation)
        return tuple(merged)

    def _apply_package_overrides(self, stanza: PackageStanza) -> PackageStanza:
        for key in self._override_keys(stanza):
            override: PackageOverride = self.config.package(key)
            own = key == stanza.classification.package_key
            changes = {}
            if own and override.section is not None:
                self._conflict("section", stanza.section, override.section, stanza.identifier)
                changes["section"] = override.section
            if own and override.summary is not None:
                self._conflict("summary", self.texts.detected_summary, override.summary, stanza.identifier)
                changes["summary"] = override.summary
                changes["fixmes"] = tuple(f for f in stanza.fixmes if not f.startswith("summary"))
            if own and override.description is not None:
                self._conflict("description", self.texts.detected_description, override.description, stanza.identifier)
                changes["description"] = override.description
            if override.depends:
                changes["depends"] = self._merge_depends(stanza, override.depends)
            if override.recommends:
                changes["recommends"] = self._merge_list(stanza.recommends, override.recommends)
            if override.suggests:
                changes["suggests"] = self._merge_list(stanza.suggests, override.suggests)
            if override.provides:
                changes["provides"] = self._merge_list(stanza.provides, override.provides)
            if own and override.extra_lines:
                changes["extra_lines"] = stanza.extra_lines + override.extra_lines
            if changes:
                stanza = stanza.with_fields(**changes)
        return stanza

    def _check_global_overrides(self) -> None:
        subject = self.metadata.name
        if self.config.summary is not None:
            self._conflict("summary", self.texts.detected_summary, self.config.summary, subject)
        if self.config.description is not None:
            self._conflict("description", self.texts.detected_description, self.config.description, subject)

    def _check_unknown_keys(self, stanzas: Sequence[PackageStanza]) -> None:
        known = set(package_keys(list(self.graph.feature_names)))
        emitted = {s.classification.package_key for s in stanzas}
        for key in sorted(self.config.packages):
            if key not in known or (key in ("lib", "bin") and key not in emitted):
                self.diagnostics.warn(
                    OVERRIDE_CONFLICT,
                    f"override for package key '{key}' matches no generated package; ignored",
                    subject=self.metadata.name,
                )

    # source stanza

    def _source_stanza(self) -> SourceStanza:
        metadata = self.metadata
        override = self.config.source
        default_set = self.graph.closure((Constants.DEFAULT_FEATURE,))
        translated = merge_constraints(self.translator.constraints(default_set.sorted_dependencies()))
        if metadata.has_lib and not metadata.binaries:
            translated = [c.with_profile(NOCHECK) for c in translated]
        build_depends = [DebianConstraint.parse(d) for d in Constants.TOOLCHAIN_BUILD_DEPENDS] + translated
        build_depends.extend(DebianConstraint.parse(d) for d in override.build_depends)
        excludes = set(override.build_depends_excludes)
        build_depends = [
            d for d in build_depends
            if d.render() not in excludes and not set(d.packages) & excludes
        ]
        unique: List[DebianConstraint] = []
        for d in build_depends:
            if d not in unique:
                unique.append(d)

        fixmes: List[str] = list(_fixmes(translated))
        section = Constants.LIB_SECTION if metadata.has_lib else Constants.NON_LIB_SECTION
        if override.section is not None:
            section = override.section
        elif not metadata.has_lib:
            fixmes.append("choose a source section for this non-library crate")

        homepage = metadata.homepage or metadata.repository
        if override.homepage is not None:
            homepage = override.homepage
        requires_root = override.requires_root or self.config.requires_root or Constants.REQUIRES_ROOT
        return SourceStanza(
            name=dsc_name(self.base),
            crate_name=metadata.name,
            section=section,
            build_depends=tuple(unique),
            priority=Constants.PRIORITY,
            maintainer=self.config.maintainer,
            uploaders=self.config.uploaders,
            standards_version=override.policy or Constants.STANDARDS_VERSION,
            vcs_git=override.vcs_git or Constants.VCS_GIT_TEMPLATE.format(pkgbase=self.base),
            vcs_browser=override.vcs_browser or Constants.VCS_BROWSER_TEMPLATE.format(pkgbase=self.base),
            homepage=homepage,
            requires_root=requires_root,
            fixmes=tuple(fixmes),
        )

    def build(self) -> BuildResult:
        with Timer() as timer:
            stanzas: List[PackageStanza] = []
            if self.metadata.has_lib:
                stanzas.extend(self._library_stanzas())
            if self.metadata.binaries and self.config.build_bin_package:
                stanzas.append(self._binary_stanza())
            self._check_global_overrides()
            self._check_unknown_keys(stanzas)
            stanzas = [self._apply_package_overrides(s) for s in stanzas]
            stanzas.sort(key=PackageStanza.sort_key)
            source = self._source_stanza()

        logger.info(
            "Built %d package stanza(s) for %s %s",
            len(stanzas),
            self.metadata.name,
            self.metadata.version,
            extra=extra_context(
                event="build_package",
                component="stanza_builder",
                outcome="success",
                crate=self.metadata.name,
                version=str(self.metadata.version),
                count=len(stanzas),
                duration_ms=timer.duration_ms(),
            ),
        )
        return BuildResult(source, tuple(stanzas), self.plan, self.diagnostics)


def build_package(
    metadata: CrateMetadata,
    config: Optional[PackagingConfig] = None,
    feature_groups: Optional[Sequence[str]] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> BuildResult:
    """Build every stanza for ``metadata``.

    Args:
        metadata: The crate.
        config: Packaging options and overrides.
        feature_groups: Features to materialize as packages; None takes the
            config's ``features`` and, failing that, every feature.
        diagnostics: Collector to append to; a new one is created otherwise.
    """
    return StanzaBuilder(metadata, config, feature_groups, diagnostics).build()


def stanza_activation_sets(
    metadata: CrateMetadata,
    config: Optional[PackagingConfig] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Tuple[ActivationSet, ...]:
    """Activation sets of every library package the crate would produce."""
    config = config or PackagingConfig()
    plan = plan_feature_groups(metadata, config.features, diagnostics)
    return plan.all_activations


def copyright_for(metadata: CrateMetadata, config: Optional[PackagingConfig] = None, year: Optional[int] = None) -> Copyright:
    """DEP-5 skeleton for the crate, with the config's copyright overrides applied."""
    config = config or PackagingConfig()
    override = config.copyright
    return build_copyright(
        upstream_name=metadata.name,
        authors=metadata.authors,
        repository=metadata.repository,
        license_expr=metadata.license,
        year=year if year is not None else datetime.date.today().year,
        maintainer=config.maintainer,
        uploaders=config.uploaders,
        source=override.source,
        excluded=override.ignore,
        files={pattern: (f.license, f.copyright) for pattern, f in override.files.items()},
    )
