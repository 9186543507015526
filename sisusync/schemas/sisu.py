"""Pydantic models mirroring SISU API response shapes."""

from pydantic import BaseModel, ConfigDict

from sisusync.schemas.sync import TransactionRecord, TransactionRole

_ROLES = {"b": TransactionRole.BUYER, "s": TransactionRole.SELLER}


class SisuClient(BaseModel):
    """A client (one side of a transaction) from ``/client/find-client``.

    Only includes fields relevant to the sync pipeline.
    """

    model_config = ConfigDict(extra="ignore")

    client_id: int
    type_id: str | None = None
    address_1: str | None = None
    status_code: str | int | None = None
    status_name: str | None = None
    email: str | None = None

    def to_transaction(self) -> TransactionRecord:
        return TransactionRecord(
            transaction_id=self.client_id,
            role=_ROLES.get((self.type_id or "").lower(), TransactionRole.UNKNOWN),
            property_address=self.address_1 or "",
            status_code="" if self.status_code is None else str(self.status_code),
            status_name=self.status_name or "",
        )


class SisuDocumentUpload(BaseModel):
    """Request body for ``POST /client/documents``."""

    client_id: int
    filename: str
    data: str
    file_extension: str
    file_type: str
    content_type: str
