"""In-memory copy of the NuGet vulnerability feed.

NuGet publishes every known advisory as a small set of JSON pages listed
by ``/v3/vulnerabilities/index.json``. Each page maps a lowercase package
id to its advisories::

    {"newtonsoft.json": [{"severity": 2,
                          "url": "https://github.com/advisories/GHSA-5crp-9r3c-p9vr",
                          "versions": "(, 13.0.1)"}]}

:class:`VulnerabilityDatabase` downloads all pages once, merges them and
answers lookups from memory. Concurrent callers on a cold cache share a
single in-flight load. Once the data is older than the staleness window
it is still served while one background reload refreshes it.

Typical usage::

    async with HTTPClient() as client:
        db = VulnerabilityDatabase(client)
        for vuln in await db.check_vulnerabilities("Newtonsoft.Json", "12.0.3"):
            print(vuln.severity, vuln.advisory_url)
"""

from __future__ import annotations

import time
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from cpmkeeper.constants import (
    DEFAULT_VULNERABILITY_DB_TTL_MINUTES,
    NUGET_FLAT_CONTAINER_VERSIONS,
    NUGET_VULNERABILITY_INDEX,
)
from cpmkeeper.exceptions import NetworkError
from cpmkeeper.models.conflict import Vulnerability
from cpmkeeper.models.package import normalize_id
from cpmkeeper.utils.http import HTTPClient
from cpmkeeper.utils.logger import get_logger, log_duration
from cpmkeeper.utils.version_utils import severity_to_string, version_in_range

logger = get_logger("vulnerability_db")

__all__ = ["VulnerabilityDatabase", "VulnerabilityDbEntry"]


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VulnerabilityDbEntry:
    """One advisory for one package.

    Attributes:
        severity: Numeric rank, 0 (Low) to 3 (Critical).
        advisory_url: Link to the advisory.
        versions: Affected versions in NuGet interval notation.
    """

    severity: int
    advisory_url: str
    versions: str

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "VulnerabilityDbEntry":
        severity = raw.get("severity")
        return cls(
            severity=severity if isinstance(severity, int) else -1,
            advisory_url=str(raw.get("url", "")),
            versions=str(raw.get("versions", "")),
        )

    def affects(self, version: str) -> bool:
        return version_in_range(version, self.versions)

    def to_vulnerability(self) -> Vulnerability:
        return Vulnerability(
            severity=severity_to_string(self.severity),
            advisory_url=self.advisory_url,
        )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class VulnerabilityDatabase:
    """Load-once, refresh-in-background cache of the advisory feed.

    Args:
        http_client: Shared :class:`HTTPClient`.
        ttl: Staleness window in seconds.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        http_client: HTTPClient,
        *,
        ttl: float = DEFAULT_VULNERABILITY_DB_TTL_MINUTES * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http_client = http_client
        self.ttl = ttl
        self._clock = clock

        self._entries: Dict[str, List[VulnerabilityDbEntry]] = {}
        self._loaded_at: Optional[float] = None
        self._load_task: Optional["asyncio.Task[None]"] = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._loaded_at is not None

    def is_stale(self) -> bool:
        return (
            self._loaded_at is None
            or self._clock() - self._loaded_at >= self.ttl
        )

    async def ensure_loaded(self) -> None:
        """Make sure advisory data is available.

        A cold cache is loaded before returning; every concurrent caller
        awaits the same load. A stale cache returns immediately and
        schedules a single background reload.

        Raises:
            NetworkError: The cold load failed.
        """
        if self._loaded_at is not None:
            if self.is_stale() and self._load_task is None:
                logger.debug("Advisory data is stale, reloading in background")
                self._load_task = asyncio.ensure_future(self._load())
                self._load_task.add_done_callback(self._log_background_failure)
            return

        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        # A cancelled waiter must not cancel the load other callers share.
        await asyncio.shield(self._load_task)

    async def _load(self) -> None:
        try:
            with log_duration(logger, "vulnerability feed load"):
                index = await self.http_client.get_json(
                    NUGET_VULNERABILITY_INDEX, expected=list
                )
                page_urls = [
                    str(page["@id"])
                    for page in index
                    if isinstance(page, Mapping) and page.get("@id")
                ]
                pages = await asyncio.gather(
                    *(self.http_client.get_json(url) for url in page_urls)
                )

            merged: Dict[str, List[VulnerabilityDbEntry]] = {}
            for page in pages:
                for package_id, raw_entries in page.items():
                    if not isinstance(raw_entries, list):
                        continue
                    merged.setdefault(normalize_id(package_id), []).extend(
                        VulnerabilityDbEntry.from_dict(raw)
                        for raw in raw_entries
                        if isinstance(raw, Mapping)
                    )

            self._entries = merged
            self._loaded_at = self._clock()
            logger.info(
                "Loaded advisories for %d package(s) from %d page(s)",
                len(merged),
                len(page_urls),
            )
        finally:
            self._load_task = None

    @staticmethod
    def _log_background_failure(task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background advisory reload failed: %s", exc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entries(self, package_id: str) -> List[VulnerabilityDbEntry]:
        """Return cached advisories for *package_id* (no I/O)."""
        return list(self._entries.get(normalize_id(package_id), []))

    def _match(self, package_id: str, version: str) -> List[Vulnerability]:
        return [
            entry.to_vulnerability()
            for entry in self._entries.get(normalize_id(package_id), [])
            if entry.affects(version)
        ]

    async def check_vulnerabilities(
        self,
        package_id: str,
        version: str,
    ) -> List[Vulnerability]:
        """Return the advisories affecting one package version.

        Raises:
            NetworkError: The advisory feed could not be loaded.
        """
        await self.ensure_loaded()
        return self._match(package_id, version)

    async def get_version_vulnerabilities(
        self,
        package_id: str,
    ) -> Dict[str, List[Vulnerability]]:
        """Map every published version of *package_id* to its advisories.

        Only affected versions appear in the result. Network failures
        yield an empty mapping.
        """
        url = NUGET_FLAT_CONTAINER_VERSIONS.format(package=normalize_id(package_id))
        try:
            await self.ensure_loaded()
            listing = await self.http_client.get_json(url)
        except NetworkError as exc:
            logger.warning("Could not list versions of %s: %s", package_id, exc)
            return {}

        result: Dict[str, List[Vulnerability]] = {}
        for version in listing.get("versions", []):
            if not isinstance(version, str):
                continue
            found = self._match(package_id, version)
            if found:
                result[version.lower()] = found
        return result
