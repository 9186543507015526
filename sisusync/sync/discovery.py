"""Find every folder that carries a marker document.

Searches the whole store for marker files by name, then walks each
marker's ancestors to rebuild the folder's full path. The walk is
bounded; on hitting the bound (or a cycle) the path is truncated to
what was collected and the record is still returned.
"""

import logging
from dataclasses import dataclass, field

from sisusync.schemas.sync import FileRef, FolderRecord, OutcomeStatus, Stage, TransferOutcome
from sisusync.store.base import DocumentStore, StoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass
class Discovery:
    """Discovered folder records plus markers whose folder couldn't be read."""

    records: list[FolderRecord] = field(default_factory=list)
    failures: list[TransferOutcome] = field(default_factory=list)


async def build_folder_path(
    store: DocumentStore, folder_id: str, *, max_depth: int = DEFAULT_MAX_DEPTH
) -> tuple[list[str], bool]:
    """Return ``(names root-first, truncated)`` for a folder.

    Raises:
        StoreError: If the folder itself can't be fetched. Failures further
            up the chain truncate the path instead.
    """
    names: list[str] = []
    seen: set[str] = set()
    current: str | None = folder_id
    while current is not None:
        if len(names) >= max_depth or current in seen:
            logger.warning("Ancestor walk for %s truncated at %d level(s)", folder_id, len(names))
            return names, True
        seen.add(current)
        try:
            folder = await store.get_folder(current)
        except StoreError:
            if not names:
                raise
            logger.warning("Could not fetch ancestor %s of %s; truncating path", current, folder_id)
            return names, True
        names.insert(0, folder.name)
        current = folder.parent_id
    return names, False


async def discover(
    store: DocumentStore, marker_name: str, *, max_depth: int = DEFAULT_MAX_DEPTH
) -> Discovery:
    """Return one ``FolderRecord`` per marker document, in search order.

    Does not deduplicate overlapping folders; see ``sync.ownership``.
    """
    markers = await store.find_files_by_name(marker_name)
    logger.info("Found %d %s marker(s)", len(markers), marker_name)

    result = Discovery()
    for marker in markers:
        if not marker.parent_id:
            logger.warning("Marker %s has no parent folder; ignoring", marker.id)
            continue
        try:
            result.records.append(await _record_for(store, marker, max_depth))
        except StoreError as exc:
            logger.exception("Failed to get folder info for %s", marker.parent_id)
            result.failures.append(
                TransferOutcome(
                    status=OutcomeStatus.FAILURE,
                    stage=Stage.DISCOVER,
                    folder_id=marker.parent_id,
                    detail=str(exc),
                )
            )
    return result


async def _record_for(store: DocumentStore, marker: FileRef, max_depth: int) -> FolderRecord:
    path, truncated = await build_folder_path(store, marker.parent_id, max_depth=max_depth)
    return FolderRecord(
        folder_id=marker.parent_id,
        display_name=path[-1],
        full_path=path,
        marker_document_id=marker.id,
        path_truncated=truncated,
    )
