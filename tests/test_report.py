"""Tests for outcome aggregation and audit flushing."""

import threading
from unittest.mock import MagicMock

from sisusync.audit.log import JsonlAuditLog
from sisusync.schemas.sync import (
    AuditTable,
    MultiTransactionFlag,
    OutcomeStatus,
    Stage,
    TransferOutcome,
)
from sisusync.sync.report import OutcomeAggregator, record_fatal


def _outcome(status: OutcomeStatus, stage: Stage = Stage.SUBMIT, **kwargs) -> TransferOutcome:
    return TransferOutcome(status=status, stage=stage, folder_path="Root > A", **kwargs)


def _flag() -> MultiTransactionFlag:
    return MultiTransactionFlag(
        folder_path="Root > A",
        identifier="jane@example.com",
        transaction_ids=[1, 2],
        addresses=["1 Oak", "2 Elm"],
    )


class TestAggregation:
    def test_partition_by_status(self):
        agg = OutcomeAggregator()
        agg.extend(
            [
                _outcome(OutcomeStatus.SUCCESS),
                _outcome(OutcomeStatus.FAILURE, detail="boom"),
                _outcome(OutcomeStatus.SKIPPED, Stage.READ_IDENTIFIER, detail="marker empty"),
                _outcome(OutcomeStatus.SUCCESS),
            ]
        )
        agg.flag(_flag())
        agg.folders_discovered = 3
        agg.folders_authoritative = 2

        result = agg.result()
        assert result.summary.successes == 2
        assert result.summary.failures == 1
        assert result.summary.skipped == 1
        assert result.summary.multi_transaction_flags == 1
        assert result.summary.folders_discovered == 3
        assert result.multi_transaction_flags[0].transaction_count == 2

    def test_empty_result(self):
        result = OutcomeAggregator().result()
        assert result.successes == []
        assert result.summary.failures == 0


class TestFlush:
    async def test_writes_each_table(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        agg = OutcomeAggregator()
        agg.add(_outcome(OutcomeStatus.SUCCESS))
        agg.add(_outcome(OutcomeStatus.FAILURE, file_name="a.pdf", transaction_id=7, detail="boom"))
        agg.add(_outcome(OutcomeStatus.SKIPPED, Stage.RESOLVE_TRANSACTION, identifier="x@y.com", detail="gone"))
        agg.flag(_flag())

        await agg.flush(audit)

        errors = audit.read_rows(AuditTable.ERRORS)
        assert len(errors) == 1
        assert errors[0].file_name == "a.pdf"
        assert errors[0].error == "boom"
        assert errors[0].stage == Stage.SUBMIT
        skipped = audit.read_rows(AuditTable.SKIPPED)
        assert skipped[0].reason == "gone"
        assert skipped[0].identifier == "x@y.com"
        flags = audit.read_rows(AuditTable.MULTI_TRANSACTION_FLAGS)
        assert flags[0].transaction_count == 2
        assert flags[0].transaction_ids == "1, 2"
        assert flags[0].addresses == "1 Oak; 2 Elm"

    async def test_successes_not_logged(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        agg = OutcomeAggregator()
        agg.add(_outcome(OutcomeStatus.SUCCESS))
        await agg.flush(audit)
        assert list(tmp_path.iterdir()) == []

    async def test_write_failure_swallowed_per_table(self):
        audit = MagicMock()
        audit.append_rows.side_effect = [OSError("disk full"), None, None]
        agg = OutcomeAggregator()
        agg.add(_outcome(OutcomeStatus.FAILURE, detail="boom"))
        agg.add(_outcome(OutcomeStatus.SKIPPED, detail="skip"))
        agg.flag(_flag())

        await agg.flush(audit)

        tables = [c.args[0] for c in audit.append_rows.call_args_list]
        assert tables == [AuditTable.ERRORS, AuditTable.SKIPPED, AuditTable.MULTI_TRANSACTION_FLAGS]

    async def test_writes_off_event_loop_thread(self):
        writer_threads = []
        audit = MagicMock()
        audit.append_rows.side_effect = lambda table, rows: writer_threads.append(threading.get_ident())
        agg = OutcomeAggregator()
        agg.add(_outcome(OutcomeStatus.FAILURE, detail="boom"))

        await agg.flush(audit)

        assert len(writer_threads) == 1
        assert writer_threads[0] != threading.get_ident()


class TestRecordFatal:
    async def test_writes_fatal_row(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        await record_fatal(audit, RuntimeError("kaboom"), context="batch")
        rows = audit.read_rows(AuditTable.ERRORS)
        assert len(rows) == 1
        assert rows[0].stage == Stage.FATAL
        assert rows[0].error == "RuntimeError: kaboom"
        assert rows[0].folder_path == "batch"

    async def test_audit_failure_swallowed(self):
        audit = MagicMock()
        audit.append_rows.side_effect = OSError("no sheet")
        await record_fatal(audit, RuntimeError("kaboom"))
        audit.append_rows.assert_called_once()
