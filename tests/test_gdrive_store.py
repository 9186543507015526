"""Tests for the Google Drive document store against a mocked service."""

from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from sisusync.store.base import StoreError, TransientStoreError
from sisusync.store.gdrive import (
    FOLDER_MIME_TYPE,
    GOOGLE_DOC_MIME_TYPE,
    GoogleDriveStore,
    _escape_query_value,
    load_credentials,
)


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "nope"}}')


@pytest.fixture()
def service():
    return MagicMock()


@pytest.fixture()
def drive(service):
    return GoogleDriveStore(service, "shared-1")


class TestQueryEscaping:
    def test_quotes_and_backslashes(self):
        assert _escape_query_value("O'Brien\\x") == "O\\'Brien\\\\x"


class TestFindFilesByName:
    async def test_paginates_and_maps_parents(self, drive, service):
        service.files().list().execute.side_effect = [
            {"files": [{"id": "1", "name": "SISU_ID", "parents": ["fa"]}], "nextPageToken": "p2"},
            {"files": [{"id": "2", "name": "SISU_ID", "mimeType": GOOGLE_DOC_MIME_TYPE, "parents": ["fb"]}]},
        ]

        refs = await drive.find_files_by_name("SISU_ID")

        assert [(r.id, r.parent_id) for r in refs] == [("1", "fa"), ("2", "fb")]
        kwargs = service.files().list.call_args.kwargs
        assert kwargs["q"] == "name='SISU_ID' and trashed=false"
        assert kwargs["driveId"] == "shared-1"
        assert kwargs["corpora"] == "drive"
        assert kwargs["pageToken"] == "p2"


class TestListing:
    async def test_list_folders_query(self, drive, service):
        service.files().list().execute.return_value = {"files": [{"id": "c", "name": "Child"}]}
        folders = await drive.list_folders("p")
        assert folders[0].parent_id == "p"
        assert f"mimeType='{FOLDER_MIME_TYPE}'" in service.files().list.call_args.kwargs["q"]

    async def test_list_files_by_type(self, drive, service):
        service.files().list().execute.return_value = {
            "files": [{"id": "f", "name": "a.pdf", "mimeType": "application/pdf"}]
        }
        files = await drive.list_files("p", "application/pdf")
        assert files[0].mime_type == "application/pdf"
        assert "mimeType='application/pdf'" in service.files().list.call_args.kwargs["q"]

    async def test_list_files_excludes_folders(self, drive, service):
        service.files().list().execute.return_value = {"files": []}
        await drive.list_files("p")
        assert f"mimeType!='{FOLDER_MIME_TYPE}'" in service.files().list.call_args.kwargs["q"]

    async def test_get_folder_root_has_no_parent(self, drive, service):
        service.files().get().execute.return_value = {"id": "r", "name": "Drive"}
        folder = await drive.get_folder("r")
        assert folder.parent_id is None


class TestReadText:
    async def test_google_doc_exported_and_bom_stripped(self, drive, service):
        service.files().get().execute.return_value = {"id": "m", "mimeType": GOOGLE_DOC_MIME_TYPE}
        service.files().export().execute.return_value = b"\xef\xbb\xbf12345\r\n"

        text = await drive.read_text("m")

        assert text.strip() == "12345"
        assert service.files().export.call_args.kwargs["mimeType"] == "text/plain"

    async def test_undecodable_content_is_store_error(self, drive, service):
        service.files().get().execute.return_value = {"id": "m", "mimeType": GOOGLE_DOC_MIME_TYPE}
        service.files().export().execute.return_value = b"\xff\xfe\x00bad"

        with pytest.raises(StoreError) as exc_info:
            await drive.read_text("m")
        assert not isinstance(exc_info.value, TransientStoreError)


class TestErrors:
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_transient_status(self, drive, service, status):
        service.files().get().execute.side_effect = _http_error(status)
        with pytest.raises(TransientStoreError):
            await drive.get_folder("x")

    @pytest.mark.parametrize("status", [403, 404])
    async def test_permanent_status(self, drive, service, status):
        service.files().get().execute.side_effect = _http_error(status)
        with pytest.raises(StoreError) as exc_info:
            await drive.get_folder("x")
        assert not isinstance(exc_info.value, TransientStoreError)

    async def test_network_error_transient(self, drive, service):
        service.files().update().execute.side_effect = ConnectionResetError("reset")
        with pytest.raises(TransientStoreError):
            await drive.rename("f", "new.pdf")


class TestMutations:
    async def test_rename(self, drive, service):
        service.files().update().execute.return_value = {}
        await drive.rename("f", "doc_UPLOADED.pdf")
        kwargs = service.files().update.call_args.kwargs
        assert kwargs["fileId"] == "f"
        assert kwargs["body"] == {"name": "doc_UPLOADED.pdf"}

    async def test_create_document(self, drive, service):
        service.files().create().execute.return_value = {
            "id": "new",
            "name": "SISU_ID",
            "mimeType": GOOGLE_DOC_MIME_TYPE,
            "parents": ["p"],
        }
        ref = await drive.create_document("p", "SISU_ID")
        assert ref.id == "new"
        assert ref.parent_id == "p"
        body = service.files().create.call_args.kwargs["body"]
        assert body["mimeType"] == GOOGLE_DOC_MIME_TYPE


def test_invalid_credentials():
    with pytest.raises(StoreError):
        load_credentials("not base64 json!")
