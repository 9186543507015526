"""Accumulate run outcomes and forward them to the audit log."""

import asyncio
import logging
from datetime import UTC, datetime

from sisusync.audit.log import AuditLog
from sisusync.schemas.sync import (
    AuditTable,
    BatchResult,
    ErrorRow,
    FlagRow,
    MultiTransactionFlag,
    OutcomeStatus,
    SkipRow,
    Stage,
    SummaryCounts,
    TransferOutcome,
)

logger = logging.getLogger(__name__)


class OutcomeAggregator:
    """Collects outcomes and multi-transaction flags for one run.

    Usage::

        agg = OutcomeAggregator()
        agg.extend(outcomes)
        await agg.flush(audit_log)
        result = agg.result()
    """

    def __init__(self) -> None:
        self.successes: list[TransferOutcome] = []
        self.failures: list[TransferOutcome] = []
        self.skipped: list[TransferOutcome] = []
        self.flags: list[MultiTransactionFlag] = []
        self.folders_discovered = 0
        self.folders_authoritative = 0

    def add(self, outcome: TransferOutcome) -> None:
        if outcome.status == OutcomeStatus.SUCCESS:
            self.successes.append(outcome)
        elif outcome.status == OutcomeStatus.FAILURE:
            self.failures.append(outcome)
        else:
            self.skipped.append(outcome)

    def extend(self, outcomes: list[TransferOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def flag(self, flag: MultiTransactionFlag) -> None:
        self.flags.append(flag)

    def result(self) -> BatchResult:
        return BatchResult(
            successes=list(self.successes),
            failures=list(self.failures),
            skipped=list(self.skipped),
            multi_transaction_flags=list(self.flags),
            summary=SummaryCounts(
                folders_discovered=self.folders_discovered,
                folders_authoritative=self.folders_authoritative,
                successes=len(self.successes),
                failures=len(self.failures),
                skipped=len(self.skipped),
                multi_transaction_flags=len(self.flags),
            ),
        )

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def flush(self, audit_log: AuditLog) -> None:
        """Best-effort write of failures, skips, and flags.

        Backend writes run in a worker thread so a slow sink does not block
        the event loop. A failing table write is logged and never raised.
        """
        now = datetime.now(UTC)
        tables = [
            (AuditTable.ERRORS, [error_row(o, now) for o in self.failures]),
            (AuditTable.SKIPPED, [skip_row(o, now) for o in self.skipped]),
            (AuditTable.MULTI_TRANSACTION_FLAGS, [flag_row(f, now) for f in self.flags]),
        ]
        for table, rows in tables:
            if not rows:
                continue
            try:
                await asyncio.to_thread(audit_log.append_rows, table, rows)
            except Exception:
                logger.exception("Failed to write %d row(s) to audit table %s", len(rows), table)


async def record_fatal(audit_log: AuditLog, exc: BaseException, *, context: str = "") -> None:
    """Last-chance single error row for an unexpected run-level exception."""
    row = ErrorRow(
        timestamp=datetime.now(UTC),
        stage=Stage.FATAL,
        folder_path=context,
        error=f"{type(exc).__name__}: {exc}",
    )
    try:
        await asyncio.to_thread(audit_log.append_rows, AuditTable.ERRORS, [row])
    except Exception:
        logger.exception("Failed to write fatal error to audit log")


def error_row(outcome: TransferOutcome, timestamp: datetime) -> ErrorRow:
    return ErrorRow(
        timestamp=timestamp,
        stage=outcome.stage,
        folder_path=outcome.folder_path,
        folder_id=outcome.folder_id,
        file_name=outcome.file_name,
        file_id=outcome.file_id,
        identifier=outcome.identifier,
        transaction_id=outcome.transaction_id,
        error=outcome.detail,
    )


def skip_row(outcome: TransferOutcome, timestamp: datetime) -> SkipRow:
    return SkipRow(
        timestamp=timestamp,
        folder_path=outcome.folder_path,
        folder_id=outcome.folder_id,
        identifier=outcome.identifier,
        reason=outcome.detail,
    )


def flag_row(flag: MultiTransactionFlag, timestamp: datetime) -> FlagRow:
    return FlagRow(
        timestamp=timestamp,
        folder_path=flag.folder_path,
        identifier=flag.identifier,
        transaction_count=flag.transaction_count,
        transaction_ids=", ".join(str(t) for t in flag.transaction_ids),
        addresses="; ".join(flag.addresses),
    )
