"""Map a marker identifier to the registry transactions it refers to."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from sisusync.integrations.sisu import IdentifierNotFound, SisuRegistry
from sisusync.schemas.sync import IdentifierKind, ResolvedIdentifier, TransactionRecord
from sisusync.sync.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_INACTIVE_STATUSES = frozenset(
    {"closed", "withdrawn", "lost", "expired", "inactive", "cancelled"}
)


@dataclass(frozen=True)
class ActiveStatusPolicy:
    """Which transaction statuses count as active.

    A record is inactive when its status code or status name (case- and
    whitespace-insensitive) is in ``inactive_statuses``. With
    ``include_all`` every record is accepted, for runs that intentionally
    target closed deals.
    """

    inactive_statuses: frozenset[str] = DEFAULT_INACTIVE_STATUSES
    include_all: bool = False

    @classmethod
    def from_names(cls, names: Iterable[str], *, include_all: bool = False) -> "ActiveStatusPolicy":
        return cls(frozenset(n.strip().lower() for n in names if n.strip()), include_all)

    def accepting_all(self) -> "ActiveStatusPolicy":
        return replace(self, include_all=True)

    def is_active(self, record: TransactionRecord) -> bool:
        if self.include_all:
            return True
        statuses = {record.status_code.strip().lower(), record.status_name.strip().lower()}
        return statuses.isdisjoint(self.inactive_statuses)


@dataclass
class Resolution:
    found: bool
    transactions: list[TransactionRecord] = field(default_factory=list)
    reason: str = ""

    @property
    def is_multi(self) -> bool:
        return len(self.transactions) > 1


class TransactionResolver:
    """Resolve identifiers with retry on transient failure and status filtering.

    A definitive not-found from the registry is returned as
    ``Resolution(found=False)`` after a single attempt. Transient failures
    that outlast the retry budget raise ``RetriesExhausted``; other registry
    errors propagate unchanged.
    """

    def __init__(
        self,
        registry: SisuRegistry,
        *,
        policy: ActiveStatusPolicy | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._policy = policy or ActiveStatusPolicy()
        self._retry = retry or RetryPolicy()

    @property
    def policy(self) -> ActiveStatusPolicy:
        return self._policy

    async def resolve(self, identifier: ResolvedIdentifier) -> Resolution:
        try:
            records = await call_with_retry(
                self._retry,
                f"Resolve {identifier}",
                self._registry.resolve_identifier,
                identifier,
            )
        except IdentifierNotFound as exc:
            logger.info("Identifier %s not found: %s", identifier, exc.reason)
            return Resolution(found=False, reason=exc.reason)

        if identifier.kind == IdentifierKind.TRANSACTION_ID:
            records = [r for r in records if r.transaction_id == identifier.transaction_id][:1]
            if not records:
                return Resolution(
                    found=False, reason=f"SISU returned no record with client_id {identifier}"
                )

        active = [r for r in records if self._policy.is_active(r)]
        if not active:
            statuses = sorted({r.status_name or r.status_code or "unknown" for r in records})
            return Resolution(
                found=False,
                reason=f"No active transactions ({len(records)} inactive: {', '.join(statuses)})",
            )
        if len(active) > 1:
            logger.warning(
                "Identifier %s matches %d active transactions: %s",
                identifier,
                len(active),
                [r.transaction_id for r in active],
            )
        return Resolution(found=True, transactions=active)
