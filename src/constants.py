"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    RESOLUTION_ERROR = 4


class ResolveTypes(Enum):
    """Build-order resolution types accepted on the command line.

    Args:
        Enum (string): Names of the dependency-edge selection policies.
    """

    SOURCE_BUILD_DEPS = "SourceBuildDeps"
    BINARY_ALL_DEPS = "BinaryAllDeps"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    # Naming
    PKG_PREFIX = "librust"
    SRC_PREFIX = "rust"
    DEV_SUFFIX = "-dev"
    DEFAULT_FEATURE = "default"
    BARE_FEATURE = ""

    # Control file defaults
    MAINTAINER = "Debian Rust Maintainers <pkg-rust-maintainers@alioth-lists.debian.net>"
    STANDARDS_VERSION = "4.6.2"
    PRIORITY = "optional"
    LIB_SECTION = "rust"
    NON_LIB_SECTION = "FIXME-IN-THE-SOURCE-SECTION"
    REQUIRES_ROOT = "no"
    VCS_GIT_TEMPLATE = "https://salsa.debian.org/rust-team/debcargo-conf.git [src/{pkgbase}]"
    VCS_BROWSER_TEMPLATE = "https://salsa.debian.org/rust-team/debcargo-conf/tree/master/src/{pkgbase}"
    TOOLCHAIN_BUILD_DEPENDS = [
        "debhelper-compat (= 13)",
        "dh-sequence-cargo",
        "cargo:native",
        "rustc:native",
        "libstd-rust-dev",
    ]
    DESCRIPTION_WIDTH = 79
    SUMMARY_MAX_LEN = 80

    # Config
    CONFIG_FILE = "debcargo.toml"
    ENV_LOG_LEVEL = "DEBCRATE_LOG_LEVEL"
    LOG_FORMAT = "[%(levelname)s] %(message)s"

    # Registry
    REGISTRY_URL_INDEX = "https://index.crates.io/"
    REGISTRY_URL_API = "https://crates.io/api/v1/crates/"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    USER_AGENT = "debcrate"

    # Build order progress is logged every N visited nodes
    BUILD_ORDER_PROGRESS_EVERY = 16
