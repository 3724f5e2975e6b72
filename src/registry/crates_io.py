"""crates.io client: sparse index records plus optional API metadata."""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from constants import Constants
from common.http_client import get_json, robust_get
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from crates.manifest import from_index_record
from crates.models import CrateMetadata
from errors import FetchError, ManifestError
from registry.base import CrateSource

logger = logging.getLogger(__name__)


def index_path(name: str) -> str:
    """Relative sparse-index path of a crate name."""
    lower = name.lower()
    if len(lower) <= 2:
        return f"{len(lower)}/{lower}"
    if len(lower) == 3:
        return f"3/{lower[0]}/{lower}"
    return f"{lower[0:2]}/{lower[2:4]}/{lower}"


def parse_index(name: str, text: str) -> List[dict]:
    """Decode newline-delimited JSON index records, skipping yanked ones."""
    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise FetchError(name, "*", f"malformed index line {lineno}: {exc}") from exc
        if not record.get("yanked", False):
            records.append(record)
    return records


class SparseIndexSource(CrateSource):
    """Crate source reading the crates.io sparse index over HTTP.

    Args:
        index_url: Base URL of the sparse index.
        api_url: Base URL of the crates API, used for descriptive metadata;
            None skips those requests.
    """

    def __init__(self, index_url: str = Constants.REGISTRY_URL_INDEX, api_url: Optional[str] = None):
        self.index_url = index_url if index_url.endswith("/") else index_url + "/"
        self.api_url = api_url
        self._versions: Dict[str, List[CrateMetadata]] = {}

    def _api_metadata(self, name: str) -> Optional[dict]:
        if self.api_url is None:
            return None
        status, _, data = get_json(self.api_url + name)
        if status != 200 or not isinstance(data, dict):
            logger.warning(
                "No API metadata for %s (status %s)",
                name,
                status,
                extra=extra_context(event="http_response", component="crates_io", outcome="missing", crate=name),
            )
            return None
        return data.get("crate")

    def versions(self, name: str) -> List[CrateMetadata]:
        if name in self._versions:
            return list(self._versions[name])

        url = self.index_url + index_path(name)
        with Timer() as timer:
            status, _, text = robust_get(url)
        if is_debug_enabled(logger):
            logger.debug(
                "Index response",
                extra=extra_context(
                    event="http_response",
                    component="crates_io",
                    action="GET",
                    status_code=status,
                    duration_ms=timer.duration_ms(),
                    target=safe_url(url),
                ),
            )
        if status == 0:
            raise FetchError(name, "*", text)
        if status == 404:
            raise FetchError(name, "*", "crate not found in index")
        if status != 200:
            raise FetchError(name, "*", f"unexpected HTTP status {status}")

        api = self._api_metadata(name)
        result = []
        for record in parse_index(name, text):
            try:
                result.append(from_index_record(record, api))
            except ManifestError as exc:
                logger.warning(
                    "Skipping unreadable index record %s %s: %s",
                    name,
                    record.get("vers", "*"),
                    exc,
                    extra=extra_context(event="parse", component="crates_io", outcome="skipped", crate=name),
                )
        self._versions[name] = result
        return list(result)
