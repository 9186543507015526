"""Decide which marker folder is authoritative for each overlapping subtree.

Records are visited shallowest first (stable, so ties keep discovery
order). A record whose path lies strictly beneath an already-accepted
path is absorbed by that owner; a second marker in an already-accepted
folder is a duplicate. Everything else is accepted.
"""

import logging
from dataclasses import dataclass, field

from sisusync.schemas.sync import FolderRecord

logger = logging.getLogger(__name__)


@dataclass
class Ownership:
    authoritative: list[FolderRecord] = field(default_factory=list)
    # (discarded record, the authoritative record that covers it)
    nested: list[tuple[FolderRecord, FolderRecord]] = field(default_factory=list)


def is_descendant(path: list[str], prefix: list[str]) -> bool:
    """True if ``path`` lies strictly beneath ``prefix``."""
    return len(path) > len(prefix) and path[: len(prefix)] == prefix


def resolve_ownership(records: list[FolderRecord]) -> Ownership:
    result = Ownership()
    by_folder: dict[str, FolderRecord] = {}

    for record in sorted(records, key=lambda r: r.depth):
        owner = by_folder.get(record.folder_id)
        if owner is None:
            owner = next(
                (o for o in result.authoritative if is_descendant(record.full_path, o.full_path)),
                None,
            )
        if owner is not None:
            logger.info("Nested marker at %s skipped (owned by %s)", record.path_string, owner.path_string)
            result.nested.append((record, owner))
            continue
        result.authoritative.append(record)
        by_folder[record.folder_id] = record

    return result
