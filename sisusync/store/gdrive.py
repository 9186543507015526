"""Google Shared Drive document store.

Wraps the synchronous Drive v3 client. Each request runs in a worker
thread via ``asyncio.to_thread``; requests are serialized with a lock
because the underlying ``httplib2`` transport is not thread-safe.
"""

import asyncio
import base64
import binascii
import io
import json
import logging

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from sisusync.schemas.sync import FileRef, FolderRef
from sisusync.store.base import DocumentStore, StoreError, TransientStoreError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"

TRANSIENT_HTTP_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

PAGE_SIZE = 1000


def _escape_query_value(value: str) -> str:
    """Escape a value for use in Google Drive API query strings."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def load_credentials(credentials_base64: str) -> service_account.Credentials:
    """Decode base64-encoded service account JSON into Drive credentials."""
    try:
        info = json.loads(base64.b64decode(credentials_base64))
    except (binascii.Error, ValueError) as exc:
        raise StoreError(f"Invalid GOOGLE_CREDENTIALS_BASE64: {exc}") from exc
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


def _to_file_ref(item: dict) -> FileRef:
    parents = item.get("parents") or []
    return FileRef(
        id=item["id"],
        name=item["name"],
        mime_type=item.get("mimeType", ""),
        parent_id=parents[0] if parents else None,
    )


class GoogleDriveStore(DocumentStore):
    """Document store backed by one Google Shared Drive.

    Usage::

        store = GoogleDriveStore.from_base64(GOOGLE_CREDENTIALS_BASE64, GOOGLE_SHARED_DRIVE_ID)
        markers = await store.find_files_by_name("SISU_ID")
    """

    def __init__(self, service, shared_drive_id: str) -> None:
        self._service = service
        self._drive_id = shared_drive_id
        self._lock = asyncio.Lock()

    @classmethod
    def from_base64(cls, credentials_base64: str, shared_drive_id: str) -> "GoogleDriveStore":
        creds = load_credentials(credentials_base64)
        service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return cls(service, shared_drive_id)

    @property
    def service(self):
        return self._service

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    async def _execute(self, request):
        """Execute a Drive request off the event loop, mapping errors."""
        async with self._lock:
            try:
                return await asyncio.to_thread(request.execute)
            except HttpError as exc:
                raise _map_http_error(exc) from exc
            except (OSError, TimeoutError) as exc:
                raise TransientStoreError(f"Drive request failed: {exc}") from exc

    async def _list_all(self, **params) -> list[dict]:
        """Fetch all pages of a ``files.list`` query."""
        items: list[dict] = []
        page_token = None
        while True:
            response = await self._execute(
                self._service.files().list(
                    pageSize=PAGE_SIZE,
                    pageToken=page_token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                    **params,
                )
            )
            items.extend(response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def _download(self, request) -> bytes:
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)
        async with self._lock:
            try:
                done = False
                while not done:
                    _status, done = await asyncio.to_thread(downloader.next_chunk)
            except HttpError as exc:
                raise _map_http_error(exc) from exc
            except (OSError, TimeoutError) as exc:
                raise TransientStoreError(f"Drive download failed: {exc}") from exc
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def find_files_by_name(self, name: str) -> list[FileRef]:
        items = await self._list_all(
            q=f"name='{_escape_query_value(name)}' and trashed=false",
            driveId=self._drive_id,
            corpora="drive",
            fields="nextPageToken, files(id, name, mimeType, parents)",
        )
        return [_to_file_ref(item) for item in items]

    async def get_folder(self, folder_id: str) -> FolderRef:
        item = await self._execute(
            self._service.files().get(
                fileId=folder_id,
                fields="id, name, parents",
                supportsAllDrives=True,
            )
        )
        parents = item.get("parents") or []
        return FolderRef(id=item["id"], name=item["name"], parent_id=parents[0] if parents else None)

    async def list_folders(self, parent_id: str) -> list[FolderRef]:
        items = await self._list_all(
            q=(
                f"'{_escape_query_value(parent_id)}' in parents and trashed=false"
                f" and mimeType='{FOLDER_MIME_TYPE}'"
            ),
            fields="nextPageToken, files(id, name)",
            orderBy="name",
        )
        return [FolderRef(id=item["id"], name=item["name"], parent_id=parent_id) for item in items]

    async def list_files(self, parent_id: str, mime_type: str | None = None) -> list[FileRef]:
        q = f"'{_escape_query_value(parent_id)}' in parents and trashed=false"
        if mime_type:
            q += f" and mimeType='{_escape_query_value(mime_type)}'"
        else:
            q += f" and mimeType!='{FOLDER_MIME_TYPE}'"
        items = await self._list_all(q=q, fields="nextPageToken, files(id, name, mimeType)")
        return [
            FileRef(id=item["id"], name=item["name"], mime_type=item.get("mimeType", ""), parent_id=parent_id)
            for item in items
        ]

    async def read_text(self, file_id: str) -> str:
        meta = await self._execute(
            self._service.files().get(fileId=file_id, fields="id, mimeType", supportsAllDrives=True)
        )
        if meta.get("mimeType") == GOOGLE_DOC_MIME_TYPE:
            content = await self._execute(
                self._service.files().export(fileId=file_id, mimeType="text/plain")
            )
        else:
            content = await self._download(
                self._service.files().get_media(fileId=file_id, supportsAllDrives=True)
            )
        if not isinstance(content, bytes):
            return content
        try:
            # Google Docs exports start with a UTF-8 BOM
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise StoreError(f"File {file_id} is not UTF-8 text: {exc}") from exc

    async def download_binary(self, file_id: str) -> bytes:
        return await self._download(
            self._service.files().get_media(fileId=file_id, supportsAllDrives=True)
        )

    async def rename(self, file_id: str, new_name: str) -> None:
        await self._execute(
            self._service.files().update(
                fileId=file_id,
                body={"name": new_name},
                supportsAllDrives=True,
            )
        )

    async def create_document(self, parent_id: str, name: str) -> FileRef:
        item = await self._execute(
            self._service.files().create(
                body={"name": name, "mimeType": GOOGLE_DOC_MIME_TYPE, "parents": [parent_id]},
                fields="id, name, mimeType, parents",
                supportsAllDrives=True,
            )
        )
        return _to_file_ref(item)


def _map_http_error(exc: HttpError) -> StoreError:
    status = exc.resp.status
    if status in TRANSIENT_HTTP_STATUS_CODES:
        return TransientStoreError(f"Drive HTTP {status}: {exc}")
    return StoreError(f"Drive HTTP {status}: {exc}")
