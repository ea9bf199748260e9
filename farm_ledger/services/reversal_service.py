"""
ReversalService -- compensating transactions for posted ledger transactions.

Responsibility:
    Negates a POSTED transaction by writing a new transaction with every
    entry's debit and credit swapped, then marks the original REVERSED.
    Nothing is deleted or edited beyond the original's status and its link
    to the reversal.

Architecture position:
    Services -- imperative shell.  Flush-only; the caller commits.

Invariants enforced:
    - A transaction is reversed at most once.  The original is read with
      SELECT ... FOR UPDATE, so a concurrent reverse blocks and then sees
      REVERSED.
    - For each original entry the reversal has one entry on the same account
      and entity tags with debit and credit swapped; the reversal therefore
      balances whenever the original did.
    - The original and its reversal link to each other
      (``reversed_by_transaction_id`` / ``reverses_transaction_id``).

Failure modes:
    - TransactionNotFoundError: unknown id or another tenant's transaction.
    - AlreadyReversedError: the transaction is already REVERSED.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.exceptions import AlreadyReversedError, TransactionNotFoundError
from farm_ledger.logging_config import LogContext, get_logger
from farm_ledger.models.ledger import TransactionStatus
from farm_ledger.services.ledger_service import EntrySpec, LedgerService
from farm_ledger.utils.idempotency import reversal_key

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    original_transaction_id: UUID
    reversal_transaction_id: UUID
    entries_count: int
    total_debits: Decimal
    total_credits: Decimal


class ReversalService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: LedgerService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = ledger or LedgerService(session, clock=self._clock)

    def reverse_transaction(
        self,
        tenant_id: str,
        transaction_id: UUID | str,
        reason: str,
        actor: str = "system",
    ) -> ReversalResult:
        """
        Reverse one POSTED transaction.

        Raises:
            TransactionNotFoundError: no such transaction for the tenant.
            AlreadyReversedError: the transaction was reversed before.
        """
        transaction_id = UUID(str(transaction_id))
        with LogContext.bind(tenant_id=tenant_id, transaction_id=str(transaction_id)):
            original = self._ledger.get_transaction(tenant_id, transaction_id, for_update=True)
            if original is None:
                raise TransactionNotFoundError(str(transaction_id))
            if original.status == TransactionStatus.REVERSED:
                raise AlreadyReversedError(
                    str(transaction_id),
                    str(original.reversed_by_transaction_id)
                    if original.reversed_by_transaction_id
                    else None,
                )

            now = self._clock.now()
            reversal = self._ledger.create_transaction_with_entries(
                tenant_id=tenant_id,
                site_id=original.site_id,
                event_id=original.event_id,
                occurred_at=now,
                idempotency_key=reversal_key(original.id, now),
                memo=f"Reversal: {reason}",
                created_by=actor,
                reverses_transaction_id=original.id,
                entries=[
                    EntrySpec(
                        account_id=entry.account_id,
                        debit=entry.credit,
                        credit=entry.debit,
                        entity_type=entry.entity_type,
                        entity_id=entry.entity_id,
                        memo=entry.memo,
                    )
                    for entry in original.entries
                ],
            )

            # Separate flush: the reversal row must exist before the
            # original points at it.
            original.status = TransactionStatus.REVERSED
            original.reversed_by_transaction_id = reversal.id
            self._session.flush()

            logger.info(
                "transaction_reversed",
                extra={
                    "reversal_transaction_id": str(reversal.id),
                    "reason": reason,
                    "actor": actor,
                    "entry_count": len(reversal.entries),
                },
            )

            return ReversalResult(
                original_transaction_id=original.id,
                reversal_transaction_id=reversal.id,
                entries_count=len(reversal.entries),
                total_debits=reversal.total_debits,
                total_credits=reversal.total_credits,
            )
