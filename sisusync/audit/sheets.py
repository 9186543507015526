"""Google Sheets audit log backend.

Writes each table to a tab of one spreadsheet in the shared drive. The
spreadsheet and its tabs are created on first use, each tab starting
with its header row.
"""

import logging
from collections.abc import Sequence

from googleapiclient.discovery import build

from sisusync.audit.log import AuditLog
from sisusync.schemas.sync import ROW_TYPES, AuditRow, AuditTable

logger = logging.getLogger(__name__)

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


def _column_letter(index: int) -> str:
    """1 → A, 26 → Z, 27 → AA."""
    letters = ""
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


class SheetsAuditLog(AuditLog):
    """Audit tables as tabs of a named spreadsheet.

    Usage::

        audit = SheetsAuditLog.from_credentials(creds, "SISU_Upload_Errors", drive_id)
        audit.append_rows(AuditTable.ERRORS, rows)
    """

    def __init__(self, drive_service, sheets_service, spreadsheet_name: str, shared_drive_id: str) -> None:
        self._drive = drive_service
        self._sheets = sheets_service
        self._name = spreadsheet_name
        self._drive_id = shared_drive_id
        self._spreadsheet_id: str | None = None
        self._tabs: set[str] | None = None

    @classmethod
    def from_credentials(cls, credentials, spreadsheet_name: str, shared_drive_id: str) -> "SheetsAuditLog":
        drive = build("drive", "v3", credentials=credentials, cache_discovery=False)
        sheets = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return cls(drive, sheets, spreadsheet_name, shared_drive_id)

    def _spreadsheet(self) -> str:
        if self._spreadsheet_id is not None:
            return self._spreadsheet_id

        escaped = self._name.replace("\\", "\\\\").replace("'", "\\'")
        found = self._drive.files().list(
            q=f"name='{escaped}' and mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
            driveId=self._drive_id,
            corpora="drive",
            includeItemsFromAllDrives=True,
            supportsAllDrives=True,
            fields="files(id, name)",
        ).execute()
        files = found.get("files", [])
        if files:
            self._spreadsheet_id = files[0]["id"]
        else:
            created = self._drive.files().create(
                body={"name": self._name, "mimeType": SPREADSHEET_MIME_TYPE, "parents": [self._drive_id]},
                supportsAllDrives=True,
                fields="id",
            ).execute()
            self._spreadsheet_id = created["id"]
            logger.info("Created audit spreadsheet %s (%s)", self._name, self._spreadsheet_id)
        return self._spreadsheet_id

    def _ensure_tab(self, table: AuditTable) -> None:
        spreadsheet_id = self._spreadsheet()
        if self._tabs is None:
            meta = self._sheets.spreadsheets().get(
                spreadsheetId=spreadsheet_id, fields="sheets.properties.title"
            ).execute()
            self._tabs = {s["properties"]["title"] for s in meta.get("sheets", [])}
        if table.value in self._tabs:
            return

        self._sheets.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": table.value}}}]},
        ).execute()
        header = list(ROW_TYPES[table].HEADER)
        self._sheets.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=f"'{table.value}'!A1:{_column_letter(len(header))}1",
            valueInputOption="RAW",
            body={"values": [header]},
        ).execute()
        self._tabs.add(table.value)

    def append_rows(self, table: AuditTable, rows: Sequence[AuditRow]) -> None:
        if not rows:
            return
        self._check_rows(table, rows)
        self._ensure_tab(table)
        width = len(ROW_TYPES[table].HEADER)
        self._sheets.spreadsheets().values().append(
            spreadsheetId=self._spreadsheet(),
            range=f"'{table.value}'!A:{_column_letter(width)}",
            valueInputOption="RAW",
            body={"values": [row.cells() for row in rows]},
        ).execute()
        logger.debug("Audit: %d row(s) → sheet %s", len(rows), table)
