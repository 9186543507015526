"""Async client for the SISU transaction registry API."""

import base64
import logging
from pathlib import PurePosixPath

import httpx
from pydantic import ValidationError

from sisusync.schemas.sisu import SisuClient, SisuDocumentUpload
from sisusync.schemas.sync import IdentifierKind, ResolvedIdentifier, TransactionRecord

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base exception for registry calls that should not be retried."""


class TransientRegistryError(RegistryError):
    """Network error, 5xx, or malformed payload. Safe to retry."""


class IdentifierNotFound(RegistryError):
    """The registry definitively has no transaction for an identifier."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SubmissionRejected(RegistryError):
    """The registry refused a document (4xx on upload)."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"SISU rejected document: {status_code} - {detail}")
        self.status_code = status_code
        self.detail = detail


def _extract_clients(data: object) -> list[dict]:
    """Normalize the several shapes ``find-client`` answers with."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("clients"), list):
            return data["clients"]
        if "data" in data and data["data"]:
            return _extract_clients(data["data"])
        if "client_id" in data:
            return [data]
        return []
    raise TransientRegistryError(f"Unexpected find-client payload type: {type(data).__name__}")


class SisuRegistry:
    """Async HTTP client for SISU.

    Usage::

        async with SisuRegistry(base_url, auth_header) as registry:
            transactions = await registry.resolve_identifier(identifier)
    """

    def __init__(
        self,
        base_url: str,
        auth_header: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": auth_header,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SisuRegistry":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        """POST JSON, converting transport failures and 5xx to transient errors."""
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TransportError as exc:
            raise TransientRegistryError(f"SISU {path} request failed: {exc!r}") from exc
        if response.status_code >= 500:
            raise TransientRegistryError(
                f"SISU {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    # ------------------------------------------------------------------
    # Clients / transactions
    # ------------------------------------------------------------------

    async def resolve_identifier(self, identifier: ResolvedIdentifier) -> list[TransactionRecord]:
        """Look up every transaction matching an email or client id.

        Uses ``POST /client/find-client``.

        Raises:
            IdentifierNotFound: 404 or an empty match.
            TransientRegistryError: Network, 5xx, or unparseable response.
            RegistryError: Any other 4xx.
        """
        if identifier.kind == IdentifierKind.EMAIL:
            payload: dict = {"email": identifier.value}
        else:
            payload = {"client_id": identifier.transaction_id}

        response = await self._post("/client/find-client", payload)
        if response.status_code == 404:
            raise IdentifierNotFound(
                f"SISU has no client for {identifier}: {response.text[:200] or 'not found'}"
            )
        if response.status_code >= 400:
            raise RegistryError(
                f"SISU find-client failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            raw = _extract_clients(response.json())
            clients = [SisuClient.model_validate(item) for item in raw]
        except (ValueError, ValidationError) as exc:
            raise TransientRegistryError(f"Malformed find-client response: {exc}") from exc

        if not clients:
            raise IdentifierNotFound(f"SISU returned no transactions for {identifier}")

        logger.debug("SISU resolved %s to %d transaction(s)", identifier, len(clients))
        return [client.to_transaction() for client in clients]

    async def upload_document(
        self,
        transaction_id: int,
        filename: str,
        content: bytes,
        *,
        content_type: str = "application/pdf",
    ) -> dict:
        """Attach a document to a transaction.

        Uses ``POST /client/documents`` with the file base64-encoded in JSON.

        Returns:
            The registry's acknowledgement body (empty dict if not JSON).
        """
        extension = PurePosixPath(filename).suffix.lstrip(".").lower() or "pdf"
        body = SisuDocumentUpload(
            client_id=transaction_id,
            filename=filename,
            data=base64.b64encode(content).decode("ascii"),
            file_extension=extension,
            file_type=extension,
            content_type=content_type,
        )
        response = await self._post("/client/documents", body.model_dump())
        if response.status_code >= 400:
            raise SubmissionRejected(response.status_code, response.text[:200])

        try:
            return response.json()
        except ValueError:
            return {}
