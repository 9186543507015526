"""Batch and single-transaction sync runs.

Batch:  discover → ownership → per folder {read identifier, resolve,
        transfer} → aggregate → audit log.
Single: validate id → resolve (all statuses) → cache lookup → transfer
        → aggregate → audit log.

Per-item failures become FAILURE outcomes. Anything escaping those
boundaries is fatal: one best-effort audit row is written and the
exception is re-raised to the entry point.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sisusync import config
from sisusync.audit.log import AuditLog
from sisusync.integrations.sisu import SisuRegistry
from sisusync.schemas.sync import (
    BatchResult,
    FolderRecord,
    IdentifierKind,
    IdentifierMode,
    MultiTransactionFlag,
    OutcomeStatus,
    ResolvedIdentifier,
    SingleTransactionResult,
    Stage,
    TransferOutcome,
)
from sisusync.store.base import PDF_MIME_TYPE, DocumentStore
from sisusync.sync.cache import LookupCache
from sisusync.sync.discovery import discover
from sisusync.sync.identifier import Absent, MarkerReadError, read_identifier
from sisusync.sync.ownership import resolve_ownership
from sisusync.sync.report import OutcomeAggregator, record_fatal
from sisusync.sync.resolver import ActiveStatusPolicy, TransactionResolver
from sisusync.sync.retry import RetryPolicy
from sisusync.sync.transfer import DEFAULT_EXTENSIONS, TransferPipeline

logger = logging.getLogger(__name__)


@dataclass
class SyncSettings:
    """Tunables for a run."""

    marker_name: str = "SISU_ID"
    identifier_mode: IdentifierMode = IdentifierMode.AUTO
    max_ancestor_depth: int = 10
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    status_policy: ActiveStatusPolicy = field(default_factory=ActiveStatusPolicy)
    max_concurrent_folders: int = 1
    mime_type: str = PDF_MIME_TYPE
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS

    @classmethod
    def from_config(cls) -> "SyncSettings":
        """Build settings from ``sisusync.config``.

        Raises:
            ConfigError: If a configured value is out of range.
        """
        try:
            mode = IdentifierMode(config.IDENTIFIER_MODE.strip().lower())
        except ValueError:
            raise config.ConfigError(
                f"IDENTIFIER_MODE must be one of {[m.value for m in IdentifierMode]}, got {config.IDENTIFIER_MODE!r}"
            ) from None
        if config.MAX_ANCESTOR_DEPTH < 1 or config.RETRY_ATTEMPTS < 1:
            raise config.ConfigError("MAX_ANCESTOR_DEPTH and RETRY_ATTEMPTS must be at least 1")
        return cls(
            marker_name=config.MARKER_NAME,
            identifier_mode=mode,
            max_ancestor_depth=config.MAX_ANCESTOR_DEPTH,
            retry=RetryPolicy(config.RETRY_ATTEMPTS, config.RETRY_DELAY_SECONDS),
            status_policy=ActiveStatusPolicy.from_names(config.INACTIVE_STATUSES),
            max_concurrent_folders=config.MAX_CONCURRENT_FOLDERS,
        )


class SyncRunner:
    """Wires the pipeline components around one store, registry, and audit log.

    Usage::

        runner = SyncRunner(store, registry, audit_log, settings=SyncSettings.from_config())
        result = await runner.run_batch()
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: SisuRegistry,
        audit_log: AuditLog,
        *,
        settings: SyncSettings | None = None,
        cache: LookupCache | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._audit_log = audit_log
        self._settings = settings or SyncSettings()
        self._cache = cache or LookupCache(
            store,
            self._settings.marker_name,
            mode=self._settings.identifier_mode,
            max_depth=self._settings.max_ancestor_depth,
        )
        self._pipeline = TransferPipeline(
            store,
            registry,
            retry=self._settings.retry,
            mime_type=self._settings.mime_type,
            extensions=self._settings.extensions,
        )

    @property
    def cache(self) -> LookupCache:
        return self._cache

    def _resolver(self, include_closed: bool) -> TransactionResolver:
        policy = self._settings.status_policy
        if include_closed:
            policy = policy.accepting_all()
        return TransactionResolver(self._registry, policy=policy, retry=self._settings.retry)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def run_batch(self, *, include_closed: bool = False) -> BatchResult:
        """Process every authoritative marker folder in the store."""
        agg = OutcomeAggregator()
        try:
            discovery = await discover(
                self._store, self._settings.marker_name, max_depth=self._settings.max_ancestor_depth
            )
            agg.folders_discovered = len(discovery.records)
            agg.extend(discovery.failures)

            ownership = resolve_ownership(discovery.records)
            agg.folders_authoritative = len(ownership.authoritative)
            for record, owner in ownership.nested:
                agg.add(
                    TransferOutcome(
                        status=OutcomeStatus.SKIPPED,
                        stage=Stage.OWNERSHIP,
                        folder_path=record.path_string,
                        folder_id=record.folder_id,
                        detail=f"nested under {owner.path_string}",
                    )
                )

            resolver = self._resolver(include_closed)
            limit = asyncio.Semaphore(max(1, self._settings.max_concurrent_folders))

            async def guarded(folder: FolderRecord):
                async with limit:
                    return await self._process_folder(folder, resolver)

            results = await asyncio.gather(*(guarded(f) for f in ownership.authoritative))
            for outcomes, flag in results:
                agg.extend(outcomes)
                if flag is not None:
                    agg.flag(flag)
        except Exception as exc:
            logger.exception("Fatal error in batch run")
            await record_fatal(self._audit_log, exc, context="batch")
            raise

        await agg.flush(self._audit_log)
        result = agg.result()
        logger.info(
            "Batch complete: %d uploaded, %d failed, %d skipped, %d flagged",
            result.summary.successes,
            result.summary.failures,
            result.summary.skipped,
            result.summary.multi_transaction_flags,
        )
        return result

    async def _process_folder(
        self, folder: FolderRecord, resolver: TransactionResolver
    ) -> tuple[list[TransferOutcome], MultiTransactionFlag | None]:
        try:
            return await self._process_folder_steps(folder, resolver)
        except Exception as exc:
            logger.exception("Unexpected error processing %s", folder.path_string)
            failure = TransferOutcome(
                status=OutcomeStatus.FAILURE,
                stage=Stage.PROCESS_FOLDER,
                folder_path=folder.path_string,
                folder_id=folder.folder_id,
                detail=f"{type(exc).__name__}: {exc}",
            )
            return [failure], None

    async def _process_folder_steps(
        self, folder: FolderRecord, resolver: TransactionResolver
    ) -> tuple[list[TransferOutcome], MultiTransactionFlag | None]:
        def outcome(status: OutcomeStatus, stage: Stage, detail: str, identifier: str = "") -> TransferOutcome:
            return TransferOutcome(
                status=status,
                stage=stage,
                folder_path=folder.path_string,
                folder_id=folder.folder_id,
                identifier=identifier,
                detail=detail,
            )

        try:
            identifier = await read_identifier(
                self._store, folder.marker_document_id, self._settings.identifier_mode
            )
        except MarkerReadError as exc:
            logger.exception("Failed to read marker in %s", folder.path_string)
            return [outcome(OutcomeStatus.FAILURE, Stage.READ_IDENTIFIER, str(exc))], None

        if isinstance(identifier, Absent):
            logger.info("Skipping %s: %s", folder.path_string, identifier.reason)
            return [outcome(OutcomeStatus.SKIPPED, Stage.READ_IDENTIFIER, identifier.reason)], None

        try:
            resolution = await resolver.resolve(identifier)
        except Exception as exc:
            logger.exception("Failed to resolve %s for %s", identifier, folder.path_string)
            return [
                outcome(OutcomeStatus.FAILURE, Stage.RESOLVE_TRANSACTION, str(exc), str(identifier))
            ], None

        if not resolution.found:
            return [
                outcome(OutcomeStatus.SKIPPED, Stage.RESOLVE_TRANSACTION, resolution.reason, str(identifier))
            ], None

        flag = None
        if resolution.is_multi:
            flag = MultiTransactionFlag(
                folder_path=folder.path_string,
                folder_id=folder.folder_id,
                identifier=str(identifier),
                transaction_ids=[t.transaction_id for t in resolution.transactions],
                addresses=[t.property_address for t in resolution.transactions],
            )

        outcomes = await self._pipeline.process_folder(folder, identifier, resolution.transactions)
        return outcomes, flag

    # ------------------------------------------------------------------
    # Single transaction
    # ------------------------------------------------------------------

    async def run_for_identifier(
        self, transaction_id: str, *, include_closed: bool = True
    ) -> SingleTransactionResult:
        """Upload new files for one transaction id.

        Raises:
            ValueError: If ``transaction_id`` is not a number.
        """
        value = transaction_id.strip()
        if not value.isdigit():
            raise ValueError("Transaction ID must be a number")
        identifier = ResolvedIdentifier(kind=IdentifierKind.TRANSACTION_ID, value=str(int(value)))
        txn_id = int(identifier.value)

        agg = OutcomeAggregator()
        try:
            result = await self._run_single(identifier, txn_id, agg, include_closed)
        except Exception as exc:
            logger.exception("Fatal error uploading transaction %s", identifier)
            await record_fatal(self._audit_log, exc, context=f"transaction {identifier}")
            raise

        await agg.flush(self._audit_log)
        return result

    async def _run_single(
        self,
        identifier: ResolvedIdentifier,
        txn_id: int,
        agg: OutcomeAggregator,
        include_closed: bool,
    ) -> SingleTransactionResult:
        try:
            resolution = await self._resolver(include_closed).resolve(identifier)
        except Exception as exc:
            logger.exception("Could not verify transaction %s", identifier)
            agg.add(
                TransferOutcome(
                    status=OutcomeStatus.FAILURE,
                    stage=Stage.RESOLVE_TRANSACTION,
                    identifier=str(identifier),
                    transaction_id=txn_id,
                    detail=str(exc),
                )
            )
            return SingleTransactionResult(
                transaction_id=txn_id,
                found=False,
                message=f"Could not verify transaction in SISU: {exc}",
                failures=list(agg.failures),
                documents_failed=len(agg.failures),
            )

        if not resolution.found:
            return SingleTransactionResult(
                transaction_id=txn_id,
                found=False,
                message=f"Transaction ID not found in SISU: {resolution.reason}",
            )

        txn = resolution.transactions[0]
        address = txn.property_address or "N/A"

        folder = await self._cache.lookup(identifier)
        if folder is None:
            return SingleTransactionResult(
                transaction_id=txn_id,
                found=False,
                address=address,
                message="No folder found with a marker matching this transaction ID",
            )
        logger.info("Found matching folder: %s", folder.path_string)

        agg.extend(await self._pipeline.process_folder(folder, identifier, [txn]))
        uploaded = len(agg.successes)
        failed = len(agg.failures)
        if uploaded == 0 and failed == 0:
            message = "No new documents found for this transaction"
        else:
            message = "Single transaction upload completed"
        return SingleTransactionResult(
            transaction_id=txn_id,
            message=message,
            address=address,
            folder_path=folder.path_string,
            documents_uploaded=uploaded,
            documents_failed=failed,
            successes=list(agg.successes),
            failures=list(agg.failures),
        )
