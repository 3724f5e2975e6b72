"""debcrate: translate Rust crates into Debian packaging metadata.

Entry point for the ``control`` and ``build-order`` commands.
"""

import logging
import os
import sys

from args import parse_args
from constants import Constants, ExitCodes
from common.diagnostics import Diagnostics
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from config.loader import discover_config, load_config
from crates.manifest import load_manifest
from crates.semver_req import VersionRequirement
from debpkg.control import render_control
from errors import (
    ConfigError,
    DependencyCycle,
    FetchError,
    ManifestError,
    UnrepresentablePredicate,
)
from registry.crates_io import SparseIndexSource
from translation.build_order import BuildOrderContext, ResolutionMode, build_order, format_build_order
from translation.stanza_builder import build_package, copyright_for

logger = logging.getLogger(__name__)


def _setup_logging(args):
    configure_logging(args.LOG_LEVEL)
    if args.LOG_FILE:
        handler = logging.FileHandler(args.LOG_FILE, encoding="utf-8")
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def _emit(text, path, quiet):
    if path:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        logging.info("Wrote %s", path)
    elif not quiet:
        sys.stdout.write(text)


def _requirement(version):
    return VersionRequirement.exact(version) if version else VersionRequirement()


def _load_crate(args):
    """Return (metadata, default config path) for the control command."""
    if args.MANIFEST:
        metadata = load_manifest(args.MANIFEST)
        directory = args.MANIFEST if os.path.isdir(args.MANIFEST) else os.path.dirname(os.path.abspath(args.MANIFEST))
        return metadata, discover_config(directory)
    if not args.CRATE:
        raise ManifestError("Either a crate name or --manifest is required")
    api_url = Constants.REGISTRY_URL_API if args.USE_API else None
    source = SparseIndexSource(args.INDEX_URL, api_url)
    return source.fetch(args.CRATE, _requirement(args.VERSION)), None


def run_control(args):
    """Build and write the control file; returns the diagnostics."""
    metadata, discovered = _load_crate(args)
    config = load_config(args.CONFIG or discovered)
    result = build_package(metadata, config, args.FEATURES)
    _emit(render_control(result.source, result.stanzas), args.OUTPUT, args.QUIET)
    if args.COPYRIGHT:
        _emit(copyright_for(metadata, config).render(), args.COPYRIGHT, True)
    return result.diagnostics


def run_build_order(args):
    """Resolve and write the build order; returns the diagnostics."""
    source = SparseIndexSource(args.INDEX_URL)
    version = args.VERSION
    if not version:
        version = str(source.fetch(args.CRATE).version)
    context = BuildOrderContext()
    order = build_order(
        [(args.CRATE, version)],
        ResolutionMode(args.RESOLVE_TYPE),
        source,
        context,
        collapse_features=args.EMULATE_COLLAPSE_FEATURES,
    )
    _emit(format_build_order(order), args.OUTPUT, args.QUIET)
    return context.diagnostics


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.ACTION)
        )

    diagnostics = Diagnostics()
    try:
        if args.ACTION == "control":
            diagnostics = run_control(args)
        else:
            diagnostics = run_build_order(args)
    except (ConfigError, ManifestError, OSError) as exc:
        logging.error("%s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except FetchError as exc:
        logging.error("%s", exc)
        sys.exit(ExitCodes.CONNECTION_ERROR.value)
    except (DependencyCycle, UnrepresentablePredicate) as exc:
        logging.error("%s", exc)
        sys.exit(ExitCodes.RESOLUTION_ERROR.value)

    if diagnostics:
        logging.warning("%d warning(s) need review", len(diagnostics))
        if args.ERROR_ON_WARNINGS:
            sys.exit(ExitCodes.EXIT_WARNINGS.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
