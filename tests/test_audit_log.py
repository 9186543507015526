"""Tests for the audit log backends."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from sisusync.audit.log import JsonlAuditLog
from sisusync.audit.sheets import SheetsAuditLog, _column_letter
from sisusync.schemas.sync import AuditTable, ErrorRow, FlagRow, SkipRow, Stage


def _error(stage: Stage = Stage.SUBMIT, *, ts: datetime | None = None, file_name: str = "a.pdf") -> ErrorRow:
    return ErrorRow(
        timestamp=ts or datetime.now(UTC),
        stage=stage,
        folder_path="Root > ClientA",
        folder_id="a",
        file_name=file_name,
        file_id="f1",
        identifier="jane@example.com",
        transaction_id=7,
        error="boom",
    )


class TestRowCells:
    def test_error_row_matches_header(self):
        row = _error()
        assert len(row.cells()) == len(ErrorRow.HEADER)
        assert row.cells()[1] == "submit"
        assert row.cells()[7] == "7"

    def test_none_renders_empty(self):
        row = ErrorRow(timestamp=datetime.now(UTC), stage=Stage.FATAL)
        assert row.cells()[7] == ""

    def test_flag_and_skip_headers(self):
        assert FlagRow.HEADER[3] == "Transaction Count"
        assert SkipRow.HEADER[-1] == "Reason"


class TestJsonlAuditLog:
    def test_append_creates_per_table_file(self, tmp_path):
        audit = JsonlAuditLog(tmp_path / "audit")
        audit.append_rows(AuditTable.ERRORS, [_error()])
        assert audit.path_for(AuditTable.ERRORS).exists()
        assert not audit.path_for(AuditTable.SKIPPED).exists()

    def test_roundtrip(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        audit.append_rows(AuditTable.ERRORS, [_error(file_name="a.pdf"), _error(file_name="b.pdf")])
        audit.append_rows(AuditTable.SKIPPED, [SkipRow(timestamp=datetime.now(UTC), reason="marker empty")])

        errors = audit.read_rows(AuditTable.ERRORS)
        assert [r.file_name for r in errors] == ["a.pdf", "b.pdf"]
        assert errors[0].transaction_id == 7
        assert audit.read_rows(AuditTable.SKIPPED)[0].reason == "marker empty"

    def test_empty_rows_noop(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        audit.append_rows(AuditTable.ERRORS, [])
        assert not audit.path_for(AuditTable.ERRORS).exists()

    def test_wrong_row_type_rejected(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        with pytest.raises(TypeError):
            audit.append_rows(AuditTable.SKIPPED, [_error()])

    def test_since_and_limit(self, tmp_path):
        audit = JsonlAuditLog(tmp_path)
        now = datetime.now(UTC)
        audit.append_rows(
            AuditTable.ERRORS,
            [
                _error(ts=now - timedelta(hours=2), file_name="old.pdf"),
                _error(ts=now - timedelta(minutes=5), file_name="new1.pdf"),
                _error(ts=now, file_name="new2.pdf"),
            ],
        )
        recent = audit.read_rows(AuditTable.ERRORS, since=now - timedelta(hours=1))
        assert [r.file_name for r in recent] == ["new1.pdf", "new2.pdf"]
        assert [r.file_name for r in audit.read_rows(AuditTable.ERRORS, limit=1)] == ["new2.pdf"]

    def test_read_missing_table(self, tmp_path):
        assert JsonlAuditLog(tmp_path).read_rows(AuditTable.MULTI_TRANSACTION_FLAGS) == []


class TestColumnLetter:
    @pytest.mark.parametrize(("index", "letter"), [(1, "A"), (9, "I"), (26, "Z"), (27, "AA"), (52, "AZ")])
    def test_letters(self, index, letter):
        assert _column_letter(index) == letter


class TestSheetsAuditLog:
    def _services(self, *, existing: bool, tabs: list[str]):
        drive = MagicMock()
        drive.files().list().execute.return_value = {"files": [{"id": "sheet1"}] if existing else []}
        drive.files().create().execute.return_value = {"id": "sheet-new"}
        sheets = MagicMock()
        sheets.spreadsheets().get().execute.return_value = {
            "sheets": [{"properties": {"title": t}} for t in tabs]
        }
        return drive, sheets

    def test_creates_tab_with_header_then_appends(self):
        drive, sheets = self._services(existing=True, tabs=["Sheet1"])
        audit = SheetsAuditLog(drive, sheets, "SISU_Upload_Errors", "drive-1")

        audit.append_rows(AuditTable.ERRORS, [_error()])

        sheets.spreadsheets().batchUpdate.assert_called()
        update_calls = sheets.spreadsheets().values().update.call_args_list
        assert any(c.kwargs.get("body", {}).get("values") == [list(ErrorRow.HEADER)] for c in update_calls)
        append_calls = sheets.spreadsheets().values().append.call_args_list
        appended = [c.kwargs["body"]["values"] for c in append_calls if "body" in c.kwargs]
        assert appended and appended[-1][0][2] == "Root > ClientA"

    def test_existing_tab_not_recreated(self):
        drive, sheets = self._services(existing=True, tabs=["Errors"])
        audit = SheetsAuditLog(drive, sheets, "SISU_Upload_Errors", "drive-1")

        audit.append_rows(AuditTable.ERRORS, [_error()])

        batch_calls = [c for c in sheets.spreadsheets().batchUpdate.call_args_list if c.kwargs]
        assert batch_calls == []

    def test_creates_spreadsheet_when_missing(self):
        drive, sheets = self._services(existing=False, tabs=[])
        audit = SheetsAuditLog(drive, sheets, "SISU_Upload_Errors", "drive-1")

        audit.append_rows(AuditTable.SKIPPED, [SkipRow(timestamp=datetime.now(UTC), reason="x")])

        create_calls = [c for c in drive.files().create.call_args_list if c.kwargs]
        assert create_calls
        body = create_calls[-1].kwargs["body"]
        assert body["name"] == "SISU_Upload_Errors"
        assert body["parents"] == ["drive-1"]
