"""Identifier → folder lookup cache.

Reading every marker document is slow, so single-transaction runs look
the owning folder up here. ``refresh()`` builds a complete new snapshot
and swaps it in at the end; readers never see a half-built map.
Concurrent refreshes share one in-flight build.
"""

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from sisusync.schemas.sync import FolderRecord, IdentifierMode, ResolvedIdentifier
from sisusync.store.base import DocumentStore
from sisusync.sync.discovery import DEFAULT_MAX_DEPTH, discover
from sisusync.sync.identifier import Absent, MarkerReadError, read_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheSnapshot:
    entries: Mapping[str, FolderRecord] = field(default_factory=lambda: MappingProxyType({}))
    refreshed_at: datetime | None = None


@dataclass(frozen=True)
class RefreshStats:
    total_folders: int
    cached: int
    errors: int
    duration_seconds: float


def _key(identifier: ResolvedIdentifier | str) -> str:
    return str(identifier).strip().lower()


class LookupCache:
    """Swap-on-refresh map from normalized identifier to its owning folder.

    When several folders carry the same identifier the shallowest wins,
    matching ownership resolution.
    """

    def __init__(
        self,
        store: DocumentStore,
        marker_name: str,
        *,
        mode: IdentifierMode = IdentifierMode.AUTO,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._store = store
        self._marker_name = marker_name
        self._mode = mode
        self._max_depth = max_depth
        self._snapshot = CacheSnapshot()
        self._inflight: asyncio.Task[RefreshStats] | None = None

    @property
    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    @property
    def is_initialized(self) -> bool:
        return self._snapshot.refreshed_at is not None

    def get(self, identifier: ResolvedIdentifier | str) -> FolderRecord | None:
        return self._snapshot.entries.get(_key(identifier))

    async def lookup(self, identifier: ResolvedIdentifier | str) -> FolderRecord | None:
        """Get, refreshing once on a miss."""
        found = self.get(identifier)
        if found is None:
            await self.refresh()
            found = self.get(identifier)
        return found

    async def refresh(self) -> RefreshStats:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._build())
        else:
            logger.info("Cache refresh already in progress, waiting...")
        return await asyncio.shield(self._inflight)

    async def _build(self) -> RefreshStats:
        started = time.monotonic()
        discovery = await discover(self._store, self._marker_name, max_depth=self._max_depth)
        entries: dict[str, FolderRecord] = {}
        errors = len(discovery.failures)

        for record in sorted(discovery.records, key=lambda r: r.depth):
            try:
                identifier = await read_identifier(self._store, record.marker_document_id, self._mode)
            except MarkerReadError:
                logger.exception("Failed to read marker for %s", record.path_string)
                errors += 1
                continue
            if isinstance(identifier, Absent):
                continue
            entries.setdefault(_key(identifier), record)

        self._snapshot = CacheSnapshot(MappingProxyType(entries), datetime.now(UTC))
        stats = RefreshStats(
            total_folders=len(discovery.records),
            cached=len(entries),
            errors=errors,
            duration_seconds=round(time.monotonic() - started, 2),
        )
        logger.info(
            "Cache refresh completed in %.2fs: %d cached, %d error(s)",
            stats.duration_seconds,
            stats.cached,
            stats.errors,
        )
        return stats
