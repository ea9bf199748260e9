"""
Module: farm_ledger.models.requisition
Responsibility: Purchase requisitions raised by the reorder trigger.
Architecture position: Models.  Imports db.base only.

Rows are created here and then owned by the purchase-to-pay workflow, which
moves them through approval and ordering.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import TrackedBase


class RequisitionStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ORDERED = "ORDERED"
    CANCELLED = "CANCELLED"


OPEN_REQUISITION_STATUSES = (
    RequisitionStatus.DRAFT,
    RequisitionStatus.PENDING_APPROVAL,
    RequisitionStatus.APPROVED,
)


class PurchaseRequisition(TrackedBase):
    """Request to buy ``qty`` of an item for a site."""

    __tablename__ = "purchase_requisitions"

    __table_args__ = (
        Index("idx_requisition_tenant_site_item", "tenant_id", "site_id", "item_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[str] = mapped_column(String(100), nullable=False)

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    qty: Mapped[Decimal] = mapped_column(nullable=False)

    estimated_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[RequisitionStatus] = mapped_column(String(20), nullable=False)

    auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Quantity on hand when the reorder trigger fired
    trigger_balance: Mapped[Decimal | None] = mapped_column(nullable=True)

    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PurchaseRequisition {self.item_id}@{self.site_id} {self.status}>"
