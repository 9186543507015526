"""Append-only audit log for sync run results.

Three logical tables (Errors, Skipped, Multi-Transaction-Flags), each
with a fixed row schema from ``schemas.sync``. The local backend writes
one JSON Lines file per table, created on first append.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from sisusync.schemas.sync import ROW_TYPES, AuditRow, AuditTable

logger = logging.getLogger(__name__)


class AuditLog(ABC):
    """Tabular append-only sink."""

    @abstractmethod
    def append_rows(self, table: AuditTable, rows: Sequence[AuditRow]) -> None:
        """Append rows to a table, creating it with its header on first use."""

    @staticmethod
    def _check_rows(table: AuditTable, rows: Sequence[AuditRow]) -> None:
        row_type = ROW_TYPES[table]
        for row in rows:
            if not isinstance(row, row_type):
                raise TypeError(f"{table} expects {row_type.__name__}, got {type(row).__name__}")


class JsonlAuditLog(AuditLog):
    """One JSONL file per table under a directory.

    Usage::

        audit = JsonlAuditLog("/path/to/audit")
        audit.append_rows(AuditTable.ERRORS, [row])
        rows = audit.read_rows(AuditTable.ERRORS, since=some_datetime)
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, table: AuditTable) -> Path:
        return self._dir / f"{table.value.lower()}.jsonl"

    def append_rows(self, table: AuditTable, rows: Sequence[AuditRow]) -> None:
        if not rows:
            return
        self._check_rows(table, rows)
        with self.path_for(table).open("a") as f:
            for row in rows:
                f.write(row.model_dump_json() + "\n")
        logger.debug("Audit: %d row(s) → %s", len(rows), table)

    def read_rows(
        self,
        table: AuditTable,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditRow]:
        """Read rows from a table, oldest first.

        Args:
            since: Only return rows after this timestamp.
            limit: Maximum number of rows to return (newest after filtering).
        """
        path = self.path_for(table)
        if not path.exists():
            return []

        row_type = ROW_TYPES[table]
        rows: list[AuditRow] = []
        with path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                row = row_type.model_validate_json(line)
                if since and row.timestamp <= since:
                    continue
                rows.append(row)

        if limit is not None:
            rows = rows[-limit:]

        return rows
