"""
Module: farm_ledger.models.inventory
Responsibility: Item catalogue, per-site balances and the movement audit trail.
Architecture position: Models.  Imports db.base only.

Invariants enforced:
    - One balance row per (tenant, site, item), created lazily on the first
      movement.  Rows carry a version counter; concurrent writers that both
      read the same version cannot both commit.
    - Movements are append-only (db.immutability).
    - ``(tenant_id, idempotency_key)`` is unique on movements, so a side-effect
      step replayed after a partial failure is detected instead of
      double-counted.

Failure modes:
    - StaleDataError when a balance row was changed by another writer
      between read and write.
    - IntegrityError on a duplicate movement idempotency key.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import Base, TrackedBase, UUIDString


class MovementType(str, Enum):
    """Kind of inventory change recorded by a movement row."""

    RECEIPT = "receipt"
    ISSUE = "issue"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    ADJUSTMENT_IN = "adjustment_in"
    ADJUSTMENT_OUT = "adjustment_out"
    CONSUMPTION = "consumption"


class InventoryItem(TrackedBase):
    """
    Catalogue entry for a stocked item.

    ``reorder_point`` of None disables reorder checks for the item.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", name="uq_inventory_item_tenant_item"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # External item identifier carried in event payloads
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    sku: Mapped[str | None] = mapped_column(String(50), nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # FEED, SUPPLY, MEDICAL, ...
    item_type: Mapped[str] = mapped_column(String(30), nullable=False, default="SUPPLY")

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")

    default_unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    reorder_point: Mapped[Decimal | None] = mapped_column(nullable=True)

    reorder_qty: Mapped[Decimal | None] = mapped_column(nullable=True)

    preferred_vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<InventoryItem {self.item_id} {self.name}>"


class SiteInventoryBalance(Base):
    """
    Quantity on hand and weighted-average unit cost for one item at one site.

    Mutated only by InventoryService.apply_movement.
    """

    __tablename__ = "site_inventory_balances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "site_id", "item_id", name="uq_site_balance_tenant_site_item"
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[str] = mapped_column(String(100), nullable=False)

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    qty_on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    avg_cost_per_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    last_movement_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_value(self) -> Decimal:
        return self.qty_on_hand * self.avg_cost_per_unit

    def __repr__(self) -> str:
        return (
            f"<SiteInventoryBalance {self.site_id}/{self.item_id} "
            f"qty={self.qty_on_hand} avg={self.avg_cost_per_unit}>"
        )


class InventoryMovement(TrackedBase):
    """
    Append-only record of one balance change.

    ``qty`` is signed (negative for decreases); ``total_cost`` is the absolute
    value moved; ``balance_after`` is the site quantity right after the change.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_movement_tenant_idempotency"
        ),
        Index("idx_movement_tenant_site_item", "tenant_id", "site_id", "item_id"),
        Index("idx_movement_event", "event_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[str] = mapped_column(String(100), nullable=False)

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    qty: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    # Other side of a transfer
    related_site_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=True
    )

    transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )

    # "{event_id}:{step}" for movements driven by posting
    idempotency_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<InventoryMovement {self.movement_type} {self.item_id} qty={self.qty}>"
