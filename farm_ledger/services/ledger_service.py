"""
LedgerService -- atomic ledger writes and idempotency lookups.

Responsibility:
    Persists a LedgerTransaction together with all of its LedgerEntry rows
    and finds transactions by their posting idempotency key.

Architecture position:
    Services -- imperative shell.  Flush-only; the posting engine commits.

Invariants enforced:
    - Header and entries are added to the session together and flushed
      once, so a commit either contains the whole transaction or none of
      it.  A reader never observes a header without its entries.
    - Entries balance within BALANCE_TOLERANCE; this holds for reversals
      too, which never pass through GL-line computation.
    - ``(tenant_id, idempotency_key)`` uniqueness is left to the database
      constraint; a concurrent duplicate surfaces as IntegrityError on flush.

Failure modes:
    - UnbalancedTransactionError before anything is written.
    - IntegrityError on a duplicate idempotency key (caller rolls back and
      re-reads with find_by_idempotency_key).
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.domain.gl_rules import validate_balance
from farm_ledger.logging_config import get_logger
from farm_ledger.models.ledger import LedgerEntry, LedgerTransaction, TransactionStatus

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class EntrySpec:
    """A ledger entry with its account already resolved."""

    account_id: UUID
    debit: Decimal
    credit: Decimal
    entity_type: str | None = None
    entity_id: str | None = None
    memo: str | None = None


class LedgerService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def create_transaction_with_entries(
        self,
        *,
        tenant_id: str,
        site_id: str,
        event_id: UUID,
        occurred_at: datetime,
        idempotency_key: str,
        entries: list[EntrySpec],
        memo: str | None = None,
        created_by: str = "system",
        reverses_transaction_id: UUID | None = None,
    ) -> LedgerTransaction:
        """
        Write one POSTED transaction and its entries in a single flush.

        Raises:
            UnbalancedTransactionError: the entries do not balance; nothing
                is added to the session.
            IntegrityError: the idempotency key is already used by the tenant.
        """
        validate_balance(entries)

        transaction = LedgerTransaction(
            tenant_id=tenant_id,
            site_id=site_id,
            event_id=event_id,
            occurred_at=occurred_at,
            posted_at=self._clock.now(),
            status=TransactionStatus.POSTED,
            memo=memo,
            idempotency_key=idempotency_key,
            reverses_transaction_id=reverses_transaction_id,
            created_by=created_by,
        )
        transaction.entries = [
            LedgerEntry(
                tenant_id=tenant_id,
                line_no=line_no,
                account_id=spec.account_id,
                debit=spec.debit,
                credit=spec.credit,
                entity_type=spec.entity_type,
                entity_id=spec.entity_id,
                memo=spec.memo,
                created_by=created_by,
            )
            for line_no, spec in enumerate(entries)
        ]

        self._session.add(transaction)
        self._session.flush()

        logger.info(
            "ledger_transaction_written",
            extra={
                "transaction_id": str(transaction.id),
                "entry_count": len(entries),
                "total_debits": str(transaction.total_debits),
                "reverses_transaction_id": (
                    str(reverses_transaction_id) if reverses_transaction_id else None
                ),
            },
        )
        return transaction

    def find_by_idempotency_key(
        self, tenant_id: str, idempotency_key: str
    ) -> LedgerTransaction | None:
        return self._session.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.tenant_id == tenant_id,
                LedgerTransaction.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def get_transaction(
        self, tenant_id: str, transaction_id: UUID, for_update: bool = False
    ) -> LedgerTransaction | None:
        """Transaction by id, scoped to the tenant."""
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.id == transaction_id,
            LedgerTransaction.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_transactions_for_event(self, tenant_id: str, event_id: UUID) -> list[LedgerTransaction]:
        """The posting and any reversals for an event, oldest first."""
        return list(
            self._session.execute(
                select(LedgerTransaction)
                .where(
                    LedgerTransaction.tenant_id == tenant_id,
                    LedgerTransaction.event_id == event_id,
                )
                .order_by(LedgerTransaction.posted_at)
            ).scalars()
        )
