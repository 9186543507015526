"""In-memory document store.

Holds a folder tree and file contents in dictionaries. Used by the test
suite and for dry runs against a fixture tree.
"""

import itertools

from sisusync.schemas.sync import FileRef, FolderRef
from sisusync.store.base import DocumentStore, StoreError


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed store preserving insertion order.

    Usage::

        store = InMemoryDocumentStore()
        store.add_folder("root", "Root")
        store.add_folder("a", "ClientA", parent_id="root")
        store.add_file("m1", "SISU_ID", parent_id="a", content="111")
    """

    def __init__(self) -> None:
        self.folders: dict[str, FolderRef] = {}
        self.files: dict[str, FileRef] = {}
        self.contents: dict[str, bytes] = {}
        self.renames: list[tuple[str, str, str]] = []
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Fixture helpers
    # ------------------------------------------------------------------

    def add_folder(self, folder_id: str, name: str, parent_id: str | None = None) -> FolderRef:
        folder = FolderRef(id=folder_id, name=name, parent_id=parent_id)
        self.folders[folder_id] = folder
        return folder

    def add_file(
        self,
        file_id: str,
        name: str,
        *,
        parent_id: str,
        content: bytes | str = b"",
        mime_type: str = "",
    ) -> FileRef:
        file = FileRef(id=file_id, name=name, mime_type=mime_type, parent_id=parent_id)
        self.files[file_id] = file
        self.contents[file_id] = content.encode() if isinstance(content, str) else content
        return file

    def name_of(self, file_id: str) -> str:
        return self.files[file_id].name

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def find_files_by_name(self, name: str) -> list[FileRef]:
        return [f for f in self.files.values() if f.name == name]

    async def get_folder(self, folder_id: str) -> FolderRef:
        try:
            return self.folders[folder_id]
        except KeyError:
            raise StoreError(f"Folder not found: {folder_id}") from None

    async def list_folders(self, parent_id: str) -> list[FolderRef]:
        return [f for f in self.folders.values() if f.parent_id == parent_id]

    async def list_files(self, parent_id: str, mime_type: str | None = None) -> list[FileRef]:
        return [
            f
            for f in self.files.values()
            if f.parent_id == parent_id and (mime_type is None or f.mime_type == mime_type)
        ]

    async def read_text(self, file_id: str) -> str:
        data = await self.download_binary(file_id)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StoreError(f"File {file_id} is not UTF-8 text: {exc}") from exc

    async def download_binary(self, file_id: str) -> bytes:
        try:
            return self.contents[file_id]
        except KeyError:
            raise StoreError(f"File not found: {file_id}") from None

    async def rename(self, file_id: str, new_name: str) -> None:
        file = self.files.get(file_id)
        if file is None:
            raise StoreError(f"File not found: {file_id}")
        self.renames.append((file_id, file.name, new_name))
        self.files[file_id] = file.model_copy(update={"name": new_name})

    async def create_document(self, parent_id: str, name: str) -> FileRef:
        if parent_id not in self.folders:
            raise StoreError(f"Folder not found: {parent_id}")
        return self.add_file(f"doc-{next(self._ids)}", name, parent_id=parent_id)
