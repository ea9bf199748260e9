"""
Module: farm_ledger.models.account
Responsibility: Chart-of-accounts rows -- the target of every ledger entry.
Architecture position: Models.  Imports db.base only.

Invariants enforced:
    - ``code`` is unique per tenant (uq_account_tenant_code).
    - Accounts are never deleted; they are deactivated (db.immutability).

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code).
    - ImmutabilityViolationError on DELETE.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import TrackedBase


class AccountType(str, Enum):
    """Account classification."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    COGS = "COGS"


class NormalBalance(str, Enum):
    """Side on which the account naturally increases."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class Account(TrackedBase):
    """
    Tenant-scoped chart-of-accounts entry.

    Contract:
        Looked up by ``(tenant_id, code)``; only active accounts resolve.
        System accounts (seeded at provisioning) cannot be deactivated.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_active", "tenant_id", "is_active"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Sortable account number, e.g. "1200"
    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    # Finer classification, e.g. CURRENT_ASSET, OPERATING_EXPENSE
    subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.name}>"
