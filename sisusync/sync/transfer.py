"""File transfer pipeline: enumerate, download, submit, mark transferred.

Idempotence comes from the file name. A file that was submitted is
renamed ``name.ext`` → ``name_UPLOADED.ext`` and is never eligible
again until the suffix is stripped.

Mark policy for multi-transaction fan-out: a file is downloaded once,
submitted to every resolved transaction, and renamed once after all
submissions were attempted, if at least one succeeded. Pairs that
failed stay in the outcomes for manual follow-up.
"""

import logging
from collections.abc import Callable
from pathlib import PurePosixPath

from sisusync.integrations.sisu import SisuRegistry
from sisusync.schemas.sync import (
    CandidateFile,
    FileRef,
    FolderRecord,
    OutcomeStatus,
    ResolvedIdentifier,
    Stage,
    TransactionRecord,
    TransferOutcome,
)
from sisusync.store.base import PDF_MIME_TYPE, DocumentStore
from sisusync.sync.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

UPLOADED_SUFFIX = "_UPLOADED"
DEFAULT_EXTENSIONS = (".pdf",)


# ------------------------------------------------------------------
# Naming convention
# ------------------------------------------------------------------


def _split_name(name: str) -> tuple[str, str]:
    suffix = PurePosixPath(name).suffix
    return (name[: -len(suffix)], suffix) if suffix else (name, "")


def is_transferred(name: str) -> bool:
    stem, _ext = _split_name(name)
    return stem.endswith(UPLOADED_SUFFIX)


def has_extension(name: str, extensions: tuple[str, ...] = DEFAULT_EXTENSIONS) -> bool:
    return _split_name(name)[1].lower() in extensions


def transferred_name(name: str) -> str:
    """``doc.pdf`` → ``doc_UPLOADED.pdf`` (unchanged if already marked)."""
    if is_transferred(name):
        return name
    stem, ext = _split_name(name)
    return f"{stem}{UPLOADED_SUFFIX}{ext}"


def untransferred_name(name: str) -> str:
    """Strip exactly one transferred suffix: ``doc_UPLOADED.pdf`` → ``doc.pdf``."""
    if not is_transferred(name):
        return name
    stem, ext = _split_name(name)
    return f"{stem[: -len(UPLOADED_SUFFIX)]}{ext}"


# ------------------------------------------------------------------
# Enumeration
# ------------------------------------------------------------------


async def walk_files(
    store: DocumentStore,
    folder_id: str,
    *,
    mime_type: str | None = None,
    predicate: Callable[[FileRef], bool] | None = None,
) -> list[FileRef]:
    """Every matching file beneath a folder, depth-first, files before subfolders."""
    found: list[FileRef] = []
    visited: set[str] = set()

    async def visit(current: str) -> None:
        if current in visited:
            return
        visited.add(current)
        for file in await store.list_files(current, mime_type):
            if predicate is None or predicate(file):
                found.append(file)
        for sub in await store.list_folders(current):
            await visit(sub.id)

    await visit(folder_id)
    return found


async def enumerate_candidates(
    store: DocumentStore,
    folder_id: str,
    *,
    mime_type: str = PDF_MIME_TYPE,
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
) -> list[CandidateFile]:
    """Eligible files beneath a folder: right type, right extension, not yet transferred."""
    files = await walk_files(
        store,
        folder_id,
        mime_type=mime_type,
        predicate=lambda f: has_extension(f.name, extensions) and not is_transferred(f.name),
    )
    return [CandidateFile(file_id=f.id, name=f.name, mime_type=f.mime_type or mime_type) for f in files]


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------


class TransferPipeline:
    """Moves files from one authoritative folder into its resolved transactions.

    Every failure is caught at the item boundary (folder, file, or
    file/transaction pair) and returned as a FAILURE outcome.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: SisuRegistry,
        *,
        retry: RetryPolicy | None = None,
        mime_type: str = PDF_MIME_TYPE,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
    ) -> None:
        self._store = store
        self._registry = registry
        self._retry = retry or RetryPolicy()
        self._mime_type = mime_type
        self._extensions = extensions

    async def process_folder(
        self,
        folder: FolderRecord,
        identifier: ResolvedIdentifier,
        transactions: list[TransactionRecord],
    ) -> list[TransferOutcome]:
        try:
            candidates = await call_with_retry(
                self._retry,
                f"List files under {folder.path_string}",
                enumerate_candidates,
                self._store,
                folder.folder_id,
                mime_type=self._mime_type,
                extensions=self._extensions,
            )
        except Exception as exc:
            logger.exception("Failed to enumerate files under %s", folder.path_string)
            return [
                _outcome(OutcomeStatus.FAILURE, Stage.ENUMERATE_FILES, folder, identifier, detail=str(exc))
            ]

        logger.info("%s: %d new file(s)", folder.path_string, len(candidates))
        outcomes: list[TransferOutcome] = []
        for candidate in candidates:
            outcomes.extend(await self.process_file(folder, identifier, candidate, transactions))
        return outcomes

    async def process_file(
        self,
        folder: FolderRecord,
        identifier: ResolvedIdentifier,
        candidate: CandidateFile,
        transactions: list[TransactionRecord],
    ) -> list[TransferOutcome]:
        try:
            content = await call_with_retry(
                self._retry, f"Download {candidate.name}", self._store.download_binary, candidate.file_id
            )
        except Exception as exc:
            logger.exception("Failed to download %s", candidate.name)
            return [
                _outcome(
                    OutcomeStatus.FAILURE, Stage.DOWNLOAD, folder, identifier, candidate, detail=str(exc)
                )
            ]

        outcomes: list[TransferOutcome] = []
        for txn in transactions:
            try:
                await call_with_retry(
                    self._retry,
                    f"Submit {candidate.name} to {txn.transaction_id}",
                    self._registry.upload_document,
                    txn.transaction_id,
                    candidate.name,
                    content,
                    content_type=candidate.mime_type or self._mime_type,
                )
            except Exception as exc:
                logger.exception("Failed to submit %s to %d", candidate.name, txn.transaction_id)
                outcomes.append(
                    _outcome(
                        OutcomeStatus.FAILURE,
                        Stage.SUBMIT,
                        folder,
                        identifier,
                        candidate,
                        txn,
                        detail=str(exc),
                    )
                )
                continue
            logger.info("Uploaded %s → transaction %d", candidate.name, txn.transaction_id)
            outcomes.append(
                _outcome(OutcomeStatus.SUCCESS, Stage.SUBMIT, folder, identifier, candidate, txn)
            )

        if any(o.status == OutcomeStatus.SUCCESS for o in outcomes):
            new_name = transferred_name(candidate.name)
            try:
                await call_with_retry(
                    self._retry, f"Rename {candidate.name}", self._store.rename, candidate.file_id, new_name
                )
            except Exception as exc:
                logger.exception("Submitted %s but failed to mark it transferred", candidate.name)
                outcomes.append(
                    _outcome(
                        OutcomeStatus.FAILURE,
                        Stage.MARK_TRANSFERRED,
                        folder,
                        identifier,
                        candidate,
                        detail=str(exc),
                    )
                )
        return outcomes


def _outcome(
    status: OutcomeStatus,
    stage: Stage,
    folder: FolderRecord,
    identifier: ResolvedIdentifier,
    candidate: CandidateFile | None = None,
    txn: TransactionRecord | None = None,
    *,
    detail: str = "",
) -> TransferOutcome:
    return TransferOutcome(
        status=status,
        stage=stage,
        folder_path=folder.path_string,
        folder_id=folder.folder_id,
        file_name=candidate.name if candidate else "",
        file_id=candidate.file_id if candidate else "",
        identifier=str(identifier),
        transaction_id=txn.transaction_id if txn else None,
        detail=detail,
    )
