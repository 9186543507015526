"""Shared fixtures for sisusync tests."""

import pytest

from sisusync.integrations.sisu import IdentifierNotFound
from sisusync.schemas.sync import IdentifierKind, ResolvedIdentifier, TransactionRecord
from sisusync.store.base import PDF_MIME_TYPE
from sisusync.store.memory import InMemoryDocumentStore
from sisusync.sync.retry import RetryPolicy


@pytest.fixture(autouse=True)
def _no_sops(monkeypatch):
    """Ensure tests never try to invoke SOPS."""
    monkeypatch.setenv("SISUSYNC_USE_SOPS", "false")


class FakeRegistry:
    """Stateful stand-in for ``SisuRegistry``.

    ``records`` maps identifier value → transactions; unknown identifiers
    raise ``IdentifierNotFound``. ``fail_uploads`` maps transaction id →
    exception raised on every upload to it.
    """

    def __init__(self, records: dict[str, list[TransactionRecord]] | None = None) -> None:
        self.records = records or {}
        self.fail_uploads: dict[int, Exception] = {}
        self.lookups: list[str] = []
        self.uploads: list[tuple[int, str, bytes]] = []

    async def resolve_identifier(self, identifier: ResolvedIdentifier) -> list[TransactionRecord]:
        self.lookups.append(identifier.value)
        if identifier.value not in self.records:
            raise IdentifierNotFound(f"SISU has no client for {identifier}")
        return list(self.records[identifier.value])

    async def upload_document(
        self, transaction_id: int, filename: str, content: bytes, *, content_type: str = PDF_MIME_TYPE
    ) -> dict:
        if transaction_id in self.fail_uploads:
            raise self.fail_uploads[transaction_id]
        self.uploads.append((transaction_id, filename, content))
        return {"success": True}


def txn(transaction_id: int, address: str = "", status: str = "Active") -> TransactionRecord:
    return TransactionRecord(
        transaction_id=transaction_id, property_address=address, status_code=status, status_name=status
    )


def ident(value: str) -> ResolvedIdentifier:
    kind = IdentifierKind.TRANSACTION_ID if value.isdigit() else IdentifierKind.EMAIL
    return ResolvedIdentifier(kind=kind, value=value)


def add_pdf(store: InMemoryDocumentStore, file_id: str, name: str, parent_id: str) -> None:
    store.add_file(file_id, name, parent_id=parent_id, content=f"%PDF {file_id}", mime_type=PDF_MIME_TYPE)


@pytest.fixture()
def store():
    return InMemoryDocumentStore()


@pytest.fixture()
def registry():
    return FakeRegistry()


@pytest.fixture()
def no_delay():
    return RetryPolicy(attempts=3, delay=0)
