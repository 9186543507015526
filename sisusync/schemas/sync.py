"""Schemas for the folder-to-transaction sync pipeline.

Covers store references, discovered folders, resolved identifiers,
registry transactions, per-file outcomes, run results, and audit rows.
"""

from datetime import datetime
from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

PATH_SEPARATOR = " > "


# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class IdentifierKind(StrEnum):
    """What a marker document encodes."""

    TRANSACTION_ID = "transaction_id"
    EMAIL = "email"


class IdentifierMode(StrEnum):
    """Which identifier kinds the reader accepts."""

    AUTO = "auto"
    ID = "id"
    EMAIL = "email"


class TransactionRole(StrEnum):
    """Side of the deal a registry record represents."""

    BUYER = "buyer"
    SELLER = "seller"
    UNKNOWN = "unknown"


class OutcomeStatus(StrEnum):
    """Result of processing one item."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class Stage(StrEnum):
    """Pipeline step an outcome was produced at."""

    DISCOVER = "discover"
    OWNERSHIP = "ownership"
    READ_IDENTIFIER = "read_identifier"
    RESOLVE_TRANSACTION = "resolve_transaction"
    ENUMERATE_FILES = "enumerate_files"
    DOWNLOAD = "download"
    SUBMIT = "submit"
    MARK_TRANSFERRED = "mark_transferred"
    PROCESS_FOLDER = "process_folder"
    FATAL = "fatal"


class AuditTable(StrEnum):
    """Logical destinations in the audit log."""

    ERRORS = "Errors"
    SKIPPED = "Skipped"
    MULTI_TRANSACTION_FLAGS = "Multi-Transaction-Flags"


# ------------------------------------------------------------------
# Document store references
# ------------------------------------------------------------------


class FolderRef(BaseModel):
    """A folder as reported by the document store."""

    id: str
    name: str
    parent_id: str | None = None


class FileRef(BaseModel):
    """A file as reported by the document store."""

    id: str
    name: str
    mime_type: str = ""
    parent_id: str | None = None


class FolderRecord(BaseModel):
    """A folder carrying a marker document, with its reconstructed path."""

    folder_id: str
    display_name: str
    full_path: list[str] = Field(description="Ancestor names, root first, ending with this folder")
    marker_document_id: str
    path_truncated: bool = False

    @property
    def depth(self) -> int:
        return len(self.full_path)

    @property
    def path_string(self) -> str:
        return PATH_SEPARATOR.join(self.full_path)


class ResolvedIdentifier(BaseModel):
    """Normalized marker content: a numeric transaction id or a lower-cased email."""

    model_config = ConfigDict(frozen=True)

    kind: IdentifierKind
    value: str

    @property
    def transaction_id(self) -> int | None:
        if self.kind == IdentifierKind.TRANSACTION_ID:
            return int(self.value)
        return None

    def __str__(self) -> str:
        return self.value


class TransactionRecord(BaseModel):
    """One buyer or seller side of a deal in the registry."""

    transaction_id: int
    role: TransactionRole = TransactionRole.UNKNOWN
    property_address: str = ""
    status_code: str = ""
    status_name: str = ""


class CandidateFile(BaseModel):
    """A not-yet-transferred file beneath an authoritative folder."""

    file_id: str
    name: str
    mime_type: str = ""


# ------------------------------------------------------------------
# Outcomes and results
# ------------------------------------------------------------------


class TransferOutcome(BaseModel):
    """What happened to one item: a (file, transaction) pair, a folder, or an identifier."""

    status: OutcomeStatus
    stage: Stage
    folder_path: str = ""
    folder_id: str = ""
    file_name: str = ""
    file_id: str = ""
    identifier: str = ""
    transaction_id: int | None = None
    detail: str = Field(default="", description="Skip reason or error message")


class MultiTransactionFlag(BaseModel):
    """An identifier that resolved to more than one transaction."""

    folder_path: str
    folder_id: str = ""
    identifier: str
    transaction_ids: list[int]
    addresses: list[str] = Field(default_factory=list)

    @property
    def transaction_count(self) -> int:
        return len(self.transaction_ids)


class SummaryCounts(BaseModel):
    folders_discovered: int = 0
    folders_authoritative: int = 0
    successes: int = 0
    failures: int = 0
    skipped: int = 0
    multi_transaction_flags: int = 0


class BatchResult(BaseModel):
    """Structured result of one batch run."""

    successes: list[TransferOutcome] = Field(default_factory=list)
    failures: list[TransferOutcome] = Field(default_factory=list)
    skipped: list[TransferOutcome] = Field(default_factory=list)
    multi_transaction_flags: list[MultiTransactionFlag] = Field(default_factory=list)
    summary: SummaryCounts = Field(default_factory=SummaryCounts)


class SingleTransactionResult(BaseModel):
    """Structured result of a single-transaction run."""

    transaction_id: int
    message: str
    found: bool = True
    address: str = "N/A"
    folder_path: str = ""
    documents_uploaded: int = 0
    documents_failed: int = 0
    successes: list[TransferOutcome] = Field(default_factory=list)
    failures: list[TransferOutcome] = Field(default_factory=list)


# ------------------------------------------------------------------
# Audit rows (fixed column schema per destination)
# ------------------------------------------------------------------


class AuditRow(BaseModel):
    """Base for audit rows. ``HEADER`` lists the column titles in field order."""

    HEADER: ClassVar[tuple[str, ...]] = ()

    timestamp: datetime

    def cells(self) -> list[str]:
        """Render the row as strings in header order."""
        cells = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            if isinstance(value, datetime):
                cells.append(value.isoformat())
            elif value is None:
                cells.append("")
            else:
                cells.append(str(value))
        return cells


class ErrorRow(AuditRow):
    HEADER: ClassVar[tuple[str, ...]] = (
        "Timestamp",
        "Stage",
        "Folder Path",
        "Folder ID",
        "File Name",
        "File ID",
        "Identifier",
        "Transaction ID",
        "Error",
    )

    stage: Stage
    folder_path: str = ""
    folder_id: str = ""
    file_name: str = ""
    file_id: str = ""
    identifier: str = ""
    transaction_id: int | None = None
    error: str = ""


class SkipRow(AuditRow):
    HEADER: ClassVar[tuple[str, ...]] = (
        "Timestamp",
        "Folder Path",
        "Folder ID",
        "Identifier",
        "Reason",
    )

    folder_path: str = ""
    folder_id: str = ""
    identifier: str = ""
    reason: str = ""


class FlagRow(AuditRow):
    HEADER: ClassVar[tuple[str, ...]] = (
        "Timestamp",
        "Folder Path",
        "Identifier",
        "Transaction Count",
        "Transaction IDs",
        "Addresses",
    )

    folder_path: str = ""
    identifier: str = ""
    transaction_count: int = 0
    transaction_ids: str = ""
    addresses: str = ""


ROW_TYPES: dict[AuditTable, type[AuditRow]] = {
    AuditTable.ERRORS: ErrorRow,
    AuditTable.SKIPPED: SkipRow,
    AuditTable.MULTI_TRANSACTION_FLAGS: FlagRow,
}
