"""Operator maintenance: undo the transferred suffix and seed marker documents."""

import logging
from dataclasses import dataclass, field

from sisusync.schemas.sync import PATH_SEPARATOR, IdentifierMode, ResolvedIdentifier
from sisusync.store.base import PDF_MIME_TYPE, DocumentStore, StoreError
from sisusync.sync.discovery import DEFAULT_MAX_DEPTH, discover
from sisusync.sync.identifier import Absent, MarkerReadError, parse_identifier, read_identifier
from sisusync.sync.transfer import DEFAULT_EXTENSIONS, has_extension, is_transferred, untransferred_name, walk_files

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Remove suffix
# ------------------------------------------------------------------


@dataclass
class RemoveSuffixResult:
    identifier: str
    folders_processed: int = 0
    renamed: list[tuple[str, str]] = field(default_factory=list)  # (old name, new name)
    errors: list[str] = field(default_factory=list)

    @property
    def files_renamed(self) -> int:
        return len(self.renamed)


async def remove_suffix(
    store: DocumentStore,
    identifier: str,
    *,
    marker_name: str = "SISU_ID",
    mode: IdentifierMode = IdentifierMode.AUTO,
    max_depth: int = DEFAULT_MAX_DEPTH,
    mime_type: str = PDF_MIME_TYPE,
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
) -> RemoveSuffixResult:
    """Make files beneath every folder marked with ``identifier`` eligible again.

    Renames ``name_UPLOADED.ext`` → ``name.ext``. A failed rename is
    recorded in ``errors`` and does not stop the others.

    Raises:
        ValueError: If ``identifier`` is not a transaction id or email.
    """
    target = parse_identifier(identifier, mode)
    if isinstance(target, Absent):
        raise ValueError(f"Not a valid identifier: {identifier!r} ({target.reason})")

    result = RemoveSuffixResult(identifier=str(target))
    discovery = await discover(store, marker_name, max_depth=max_depth)
    seen: set[str] = set()

    for record in discovery.records:
        if record.folder_id in seen:
            continue
        try:
            found = await read_identifier(store, record.marker_document_id, mode)
        except MarkerReadError as exc:
            logger.warning("Skipping %s: %s", record.path_string, exc)
            continue
        if not isinstance(found, ResolvedIdentifier) or found != target:
            continue
        seen.add(record.folder_id)
        result.folders_processed += 1

        files = await walk_files(
            store,
            record.folder_id,
            mime_type=mime_type,
            predicate=lambda f: has_extension(f.name, extensions) and is_transferred(f.name),
        )
        for file in files:
            new_name = untransferred_name(file.name)
            try:
                await store.rename(file.id, new_name)
            except StoreError as exc:
                logger.error("Failed to rename %s: %s", file.name, exc)
                result.errors.append(f"{file.name}: {exc}")
                continue
            logger.info("Renamed %s → %s", file.name, new_name)
            result.renamed.append((file.name, new_name))

    return result


# ------------------------------------------------------------------
# Create markers
# ------------------------------------------------------------------


@dataclass(frozen=True)
class MarkerRoot:
    """A folder whose descendants at ``depth`` each represent one deal.

    With ``subfolder`` set, the walk starts from the root's child of that
    name (e.g. ``*Active`` under Listings) instead of the root itself.
    """

    folder_id: str
    depth: int = 1
    subfolder: str | None = None


def parse_marker_root(entry: str) -> MarkerRoot:
    """Parse ``folder_id[:depth[:subfolder]]``."""
    parts = entry.strip().split(":", 2)
    if not parts[0]:
        raise ValueError(f"Marker root is missing a folder id: {entry!r}")
    depth = int(parts[1]) if len(parts) > 1 and parts[1] else 1
    if depth < 1:
        raise ValueError(f"Marker root depth must be at least 1: {entry!r}")
    subfolder = parts[2] if len(parts) > 2 and parts[2] else None
    return MarkerRoot(folder_id=parts[0], depth=depth, subfolder=subfolder)


@dataclass
class CreateMarkersResult:
    folders_scanned: int = 0
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (path, error)


async def _leaf_folders(store: DocumentStore, root: MarkerRoot) -> list[tuple[str, str]]:
    """``(folder_id, display path)`` for each folder ``root.depth`` levels down."""
    top = await store.get_folder(root.folder_id)
    level = [(top.id, top.name)]
    if root.subfolder:
        children = await store.list_folders(top.id)
        match = next((c for c in children if c.name == root.subfolder), None)
        if match is None:
            logger.warning("No %r folder under %s", root.subfolder, top.name)
            return []
        level = [(match.id, f"{top.name}{PATH_SEPARATOR}{match.name}")]

    for _ in range(root.depth):
        next_level = []
        for folder_id, path in level:
            for child in sorted(await store.list_folders(folder_id), key=lambda f: f.name):
                next_level.append((child.id, f"{path}{PATH_SEPARATOR}{child.name}"))
        level = next_level
    return level


async def create_markers(
    store: DocumentStore, roots: list[MarkerRoot], *, marker_name: str = "SISU_ID"
) -> CreateMarkersResult:
    """Create an empty marker document in every leaf folder that lacks one.

    Operators then type the identifier into the new document. Folders that
    already hold a marker are skipped; per-folder errors are collected.
    """
    result = CreateMarkersResult()
    for root in roots:
        try:
            leaves = await _leaf_folders(store, root)
        except StoreError as exc:
            logger.exception("Failed to walk marker root %s", root.folder_id)
            result.errors.append((root.folder_id, str(exc)))
            continue

        for folder_id, path in leaves:
            result.folders_scanned += 1
            try:
                existing = [f for f in await store.list_files(folder_id) if f.name == marker_name]
                if existing:
                    result.skipped.append(path)
                    continue
                await store.create_document(folder_id, marker_name)
            except (StoreError, NotImplementedError) as exc:
                logger.error("Failed to create %s in %s: %s", marker_name, path, exc)
                result.errors.append((path, str(exc)))
                continue
            logger.info("Created %s in %s", marker_name, path)
            result.created.append(path)

    logger.info(
        "Marker creation: %d created, %d skipped, %d error(s)",
        len(result.created),
        len(result.skipped),
        len(result.errors),
    )
    return result
