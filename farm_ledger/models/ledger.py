"""
Module: farm_ledger.models.ledger
Responsibility: Ledger transactions and their entries -- the financial record.
Architecture position: Models.  Imports db.base only.

Invariants enforced:
    - ``(tenant_id, idempotency_key)`` is unique; this is the posting dedup key.
    - A transaction and its entries are inserted in one flush by LedgerService.
    - Entries never change; a transaction only ever changes ``status``
      (POSTED -> REVERSED) and ``reversed_by_transaction_id``
      (db.immutability).

Failure modes:
    - IntegrityError on a duplicate idempotency key.
    - ImmutabilityViolationError on any other UPDATE, or on DELETE.

Audit relevance:
    Sum of debits equals sum of credits (within 0.001) for every transaction;
    the posting engine validates this before the write.  Reversals are new
    transactions linked both ways, never edits.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farm_ledger.db.base import TrackedBase, UUIDString


class TransactionStatus(str, Enum):
    """Lifecycle of a ledger transaction.  One-way: POSTED -> REVERSED."""

    POSTED = "POSTED"
    REVERSED = "REVERSED"


class LedgerTransaction(TrackedBase):
    """
    Header of one balanced posting.

    Contract:
        One per posted event, plus one per reversal (which shares the
        original's ``event_id``).  Always created together with its entries.
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_ledger_txn_tenant_idempotency"
        ),
        Index("idx_ledger_txn_event", "event_id"),
        Index("idx_ledger_txn_tenant_occurred", "tenant_id", "occurred_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[str] = mapped_column(String(100), nullable=False)

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("events.id"),
        nullable=False,
    )

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(10),
        nullable=False,
        default=TransactionStatus.POSTED,
    )

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)

    # Set on a reversal: the transaction it negates
    reverses_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )

    # Set on the original once it has been reversed
    reversed_by_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="transaction",
        order_by="LedgerEntry.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.id} status={self.status}>"

    @property
    def is_reversed(self) -> bool:
        return self.status == TransactionStatus.REVERSED

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit for e in self.entries), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit for e in self.entries), Decimal("0"))


class LedgerEntry(TrackedBase):
    """
    One debit or credit leg.

    Contract:
        Belongs to exactly one transaction; one of ``debit`` / ``credit`` is
        zero.  ``entity_type`` / ``entity_id`` tag the line for sub-ledger
        drill-down (ANIMAL_GROUP, INVENTORY_ITEM).
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("idx_ledger_entry_transaction", "transaction_id"),
        Index("idx_ledger_entry_account", "account_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=False,
    )

    # Position within the transaction, from 0
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    entity_type: Mapped[str | None] = mapped_column(String(30), nullable=True)

    entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    transaction: Mapped[LedgerTransaction] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.line_no} dr={self.debit} cr={self.credit}>"
