"""Argument parsing functionality for debcrate."""

import argparse
from constants import Constants, ResolveTypes


def _add_common(parser):
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")
    parser.add_argument("--error-on-warnings",
                        dest="ERROR_ON_WARNINGS",
                        help="Exit with a non-zero status code if warnings are present.",
                        action="store_true")
    parser.add_argument("--index-url",
                        dest="INDEX_URL",
                        help="Base URL of the crates.io sparse index",
                        action="store",
                        type=str,
                        default=Constants.REGISTRY_URL_INDEX)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="debcrate",
        description=(
            "debcrate - Translate Rust crates into Debian package stanzas"
        ),
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="ACTION", required=True)

    control = subparsers.add_parser("control",
                                    help="Print the debian/control stanzas for one crate")
    _add_common(control)
    control.add_argument("CRATE",
                         help="Crate name to fetch from the registry",
                         nargs="?")
    control.add_argument("VERSION",
                         help="Crate version (default: latest)",
                         nargs="?")
    control.add_argument("-m", "--manifest",
                         dest="MANIFEST",
                         help="Read a local Cargo.toml (or crate directory) instead of the registry",
                         action="store",
                         type=str)
    control.add_argument("-c", "--config",
                         dest="CONFIG",
                         help=f"Packaging config (TOML, YAML or JSON; default: {Constants.CONFIG_FILE} beside the manifest)",
                         action="store",
                         type=str)
    control.add_argument("-f", "--feature",
                         dest="FEATURES",
                         help="Feature to give its own package (repeatable; default: all)",
                         action="append",
                         type=str)
    control.add_argument("-o", "--output",
                         dest="OUTPUT",
                         help="Write the control file here instead of stdout",
                         action="store",
                         type=str)
    control.add_argument("--copyright",
                         dest="COPYRIGHT",
                         help="Also write a DEP-5 copyright skeleton to this path",
                         action="store",
                         type=str)
    control.add_argument("--api",
                         dest="USE_API",
                         help="Fetch descriptive metadata from the crates.io API",
                         action="store_true")

    order = subparsers.add_parser("build-order",
                                  help="Print a leaves-first build order for crates and their dependencies")
    _add_common(order)
    order.add_argument("CRATE",
                       help="Root crate name")
    order.add_argument("VERSION",
                       help="Root crate version (default: latest)",
                       nargs="?")
    order.add_argument("--resolve-type",
                       dest="RESOLVE_TYPE",
                       help="Which dependencies count as edges",
                       action="store",
                       type=str,
                       choices=[t.value for t in ResolveTypes],
                       default=ResolveTypes.BINARY_ALL_DEPS.value)
    order.add_argument("--emulate-collapse-features",
                       dest="EMULATE_COLLAPSE_FEATURES",
                       help="Resolve as if every crate were packaged with collapse_features",
                       action="store_true")
    order.add_argument("-o", "--output",
                       dest="OUTPUT",
                       help="Write the order here instead of stdout",
                       action="store",
                       type=str)

    return parser.parse_args(argv)
