"""
Module: farm_ledger.models.livestock
Responsibility: Livestock groups and the audit trail of their cost basis.
Architecture position: Models.  Imports db.base only.

Invariants enforced:
    - ``total_cost_basis`` never goes below zero (InventoryService clamps).
    - Cost basis adjustments are append-only and deduplicated by
      ``(tenant_id, idempotency_key)``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import TrackedBase, UUIDString


class AnimalGroup(TrackedBase):
    """A herd, flock or pen tracked as one cost centre."""

    __tablename__ = "animal_groups"

    __table_args__ = (
        UniqueConstraint("tenant_id", "group_id", name="uq_animal_group_tenant_group"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # External group identifier carried in event payloads (livestockGroupId)
    group_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    site_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    head_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_cost_basis: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<AnimalGroup {self.group_id} basis={self.total_cost_basis}>"


class CostBasisAdjustment(TrackedBase):
    """One change to a group's cost basis, with the values before and after."""

    __tablename__ = "cost_basis_adjustments"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_cost_basis_tenant_idempotency"
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    group_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Requested change; the applied change differs when clamped at zero
    cost_delta: Mapped[Decimal] = mapped_column(nullable=False)

    previous_cost: Mapped[Decimal] = mapped_column(nullable=False)

    new_cost: Mapped[Decimal] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("events.id"), nullable=True
    )

    idempotency_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
