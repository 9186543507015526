"""Base classes for document stores.

This module defines the asynchronous interface the sync pipeline consumes
from a hierarchical file store. Identity is the store-assigned id; names
are only used for display and for the transferred-suffix convention.
"""

from abc import ABC, abstractmethod

from sisusync.schemas.sync import FileRef, FolderRef

PDF_MIME_TYPE = "application/pdf"


class StoreError(Exception):
    """Base exception for document store operations."""


class TransientStoreError(StoreError):
    """A store call failed in a way that may succeed on retry (network, 5xx)."""


class DocumentStore(ABC):
    """Abstract base class for document store backends.

    Read operations are required. ``create_document`` may raise
    NotImplementedError for read-only backends.
    """

    @abstractmethod
    async def find_files_by_name(self, name: str) -> list[FileRef]:
        """Store-wide search for every non-trashed file with exactly this name.

        Returned ``FileRef`` objects carry ``parent_id`` of their folder.
        """

    @abstractmethod
    async def get_folder(self, folder_id: str) -> FolderRef:
        """Fetch a folder's name and parent.

        Raises:
            StoreError: If the folder doesn't exist or can't be accessed
        """

    @abstractmethod
    async def list_folders(self, parent_id: str) -> list[FolderRef]:
        """List immediate subfolders of a folder."""

    @abstractmethod
    async def list_files(self, parent_id: str, mime_type: str | None = None) -> list[FileRef]:
        """List immediate (non-folder) files of a folder, optionally by content type."""

    @abstractmethod
    async def read_text(self, file_id: str) -> str:
        """Read a text document (marker) and return its contents."""

    @abstractmethod
    async def download_binary(self, file_id: str) -> bytes:
        """Download a file's binary content."""

    @abstractmethod
    async def rename(self, file_id: str, new_name: str) -> None:
        """Rename a file in place."""

    async def create_document(self, parent_id: str, name: str) -> FileRef:
        """Create an empty text document inside a folder."""
        raise NotImplementedError(f"{type(self).__name__} does not support creating documents")
