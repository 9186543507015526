"""Read and normalize the identifier stored in a marker document."""

import logging
import re
from dataclasses import dataclass

from sisusync.schemas.sync import IdentifierKind, IdentifierMode, ResolvedIdentifier
from sisusync.store.base import DocumentStore, StoreError

logger = logging.getLogger(__name__)

MARKER_EMPTY = "marker empty"
MARKER_UNPARSEABLE = "marker unparseable"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ID_RE = re.compile(r"^\d+$")


class MarkerReadError(Exception):
    """The store could not return the marker's content."""

    def __init__(self, marker_document_id: str, cause: Exception) -> None:
        super().__init__(f"Failed to read marker {marker_document_id}: {cause}")
        self.marker_document_id = marker_document_id


@dataclass(frozen=True)
class Absent:
    """Marker present but carrying no usable identifier. Skipped, never an error."""

    reason: str
    raw: str = ""


def parse_identifier(
    text: str, mode: IdentifierMode = IdentifierMode.AUTO
) -> ResolvedIdentifier | Absent:
    """Normalize raw marker text into an identifier.

    Whitespace (and a leading byte-order mark) is trimmed; emails are
    lower-cased. Blank content is ``Absent(MARKER_EMPTY)``; content that
    doesn't fit the accepted kinds is ``Absent(MARKER_UNPARSEABLE)``.
    """
    value = text.replace("\ufeff", "").strip()
    if not value:
        return Absent(MARKER_EMPTY)

    if mode in (IdentifierMode.AUTO, IdentifierMode.ID) and _ID_RE.match(value):
        return ResolvedIdentifier(kind=IdentifierKind.TRANSACTION_ID, value=str(int(value)))
    if mode in (IdentifierMode.AUTO, IdentifierMode.EMAIL) and _EMAIL_RE.match(value):
        return ResolvedIdentifier(kind=IdentifierKind.EMAIL, value=value.lower())
    return Absent(MARKER_UNPARSEABLE, raw=value[:100])


async def read_identifier(
    store: DocumentStore,
    marker_document_id: str,
    mode: IdentifierMode = IdentifierMode.AUTO,
) -> ResolvedIdentifier | Absent:
    """Read a marker document and parse it.

    Raises:
        MarkerReadError: If the store read fails (distinct from ``Absent``).
    """
    try:
        text = await store.read_text(marker_document_id)
    except StoreError as exc:
        raise MarkerReadError(marker_document_id, exc) from exc
    return parse_identifier(text, mode)
