"""
InventoryService -- item catalogue, site balances, movements and herd cost basis.

Responsibility:
    The Inventory Store: reads and updates per-site item balances using
    weighted-average costing, appends movement rows, and keeps the cost
    basis of livestock groups together with its audit trail.

Architecture position:
    Services -- imperative shell.  Flush-only; the posting engine commits.
    Costing arithmetic lives in domain.costing.

Invariants enforced:
    - A balance row is read with SELECT ... FOR UPDATE and carries a version
      counter, so concurrent movements against one (site, item) serialize
      instead of losing updates.
    - apply_movement writes the balance change and its movement row inside
      one SAVEPOINT; either both are written or neither is.
    - A movement or cost basis adjustment with an idempotency key that
      already exists is never written twice; the existing row is returned.
    - Cost basis never goes below zero.

Failure modes:
    - InventoryItemNotFoundError from set_reorder_policy.
    - AnimalGroupNotFoundError from adjust_cost_basis.
    - StaleDataError if a balance row changed underneath a writer (only
      possible on databases without row locks).
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.domain.costing import ZERO, weighted_average
from farm_ledger.exceptions import AnimalGroupNotFoundError, InventoryItemNotFoundError
from farm_ledger.logging_config import get_logger
from farm_ledger.models.inventory import (
    InventoryItem,
    InventoryMovement,
    MovementType,
    SiteInventoryBalance,
)
from farm_ledger.models.livestock import AnimalGroup, CostBasisAdjustment

logger = get_logger("services.inventory")


@dataclass(frozen=True)
class BalanceView:
    """Read-only snapshot of a site balance; zeros when no row exists yet."""

    tenant_id: str
    site_id: str
    item_id: str
    qty_on_hand: Decimal
    avg_cost_per_unit: Decimal
    last_movement_at: datetime | None = None

    @property
    def total_value(self) -> Decimal:
        return self.qty_on_hand * self.avg_cost_per_unit


class InventoryService:
    """
    Session-backed inventory store.

    Args:
        session: SQLAlchemy session.
        clock: Time source for movement timestamps.
        avg_cost_places: Decimal places kept on the weighted-average cost.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        avg_cost_places: int = 2,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._avg_cost_places = avg_cost_places

    # ------------------------------------------------------------------
    # Item catalogue
    # ------------------------------------------------------------------

    def create_item(
        self,
        tenant_id: str,
        item_id: str,
        name: str,
        item_type: str = "SUPPLY",
        unit: str = "EA",
        default_unit_cost: Decimal = ZERO,
        reorder_point: Decimal | None = None,
        reorder_qty: Decimal | None = None,
        preferred_vendor_id: str | None = None,
        sku: str | None = None,
        created_by: str = "system",
    ) -> InventoryItem:
        item = InventoryItem(
            tenant_id=tenant_id,
            item_id=item_id,
            sku=sku,
            name=name,
            item_type=item_type,
            unit=unit,
            default_unit_cost=default_unit_cost,
            reorder_point=reorder_point,
            reorder_qty=reorder_qty,
            preferred_vendor_id=preferred_vendor_id,
            is_active=True,
            created_by=created_by,
        )
        self._session.add(item)
        self._session.flush()
        logger.info(
            "inventory_item_created",
            extra={"tenant_id": tenant_id, "item_id": item_id, "item_type": item_type},
        )
        return item

    def get_item(self, tenant_id: str, item_id: str) -> InventoryItem | None:
        return self._session.execute(
            select(InventoryItem).where(
                InventoryItem.tenant_id == tenant_id,
                InventoryItem.item_id == item_id,
            )
        ).scalar_one_or_none()

    def set_reorder_policy(
        self,
        tenant_id: str,
        item_id: str,
        reorder_point: Decimal | None,
        reorder_qty: Decimal | None = None,
    ) -> InventoryItem:
        """Set or clear (None) the item's reorder point and quantity."""
        item = self.get_item(tenant_id, item_id)
        if item is None:
            raise InventoryItemNotFoundError(item_id)
        item.reorder_point = reorder_point
        item.reorder_qty = reorder_qty
        self._session.flush()
        return item

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_site_inventory_balance(
        self, tenant_id: str, site_id: str, item_id: str
    ) -> BalanceView:
        balance = self._session.execute(
            select(SiteInventoryBalance)
            .where(
                SiteInventoryBalance.tenant_id == tenant_id,
                SiteInventoryBalance.site_id == site_id,
                SiteInventoryBalance.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if balance is None:
            return BalanceView(tenant_id, site_id, item_id, ZERO, ZERO)
        return BalanceView(
            tenant_id=tenant_id,
            site_id=site_id,
            item_id=item_id,
            qty_on_hand=balance.qty_on_hand,
            avg_cost_per_unit=balance.avg_cost_per_unit,
            last_movement_at=balance.last_movement_at,
        )

    def update_site_inventory_balance(
        self,
        tenant_id: str,
        site_id: str,
        item_id: str,
        qty_delta: Decimal,
        unit_cost: Decimal,
        movement_type: MovementType,
    ) -> SiteInventoryBalance:
        """
        Apply ``qty_delta`` to the (site, item) balance, creating the row on
        first use.

        Increases with a positive ``unit_cost`` fold into the weighted
        average; decreases leave the average unchanged.  Quantities may go
        negative (stock counts lag physical use).
        """
        balance = self._lock_balance(tenant_id, site_id, item_id)
        change = weighted_average(
            balance.qty_on_hand,
            balance.avg_cost_per_unit,
            qty_delta,
            unit_cost,
            places=self._avg_cost_places,
        )
        balance.qty_on_hand = change.new_qty
        balance.avg_cost_per_unit = change.new_avg_cost
        balance.last_movement_at = self._clock.now()
        self._session.flush()

        logger.debug(
            "site_balance_updated",
            extra={
                "site_id": site_id,
                "item_id": item_id,
                "movement_type": movement_type,
                "previous_qty": change.previous_qty,
                "new_qty": change.new_qty,
                "previous_avg_cost": change.previous_avg_cost,
                "new_avg_cost": change.new_avg_cost,
            },
        )
        return balance

    def _lock_balance(self, tenant_id: str, site_id: str, item_id: str) -> SiteInventoryBalance:
        stmt = (
            select(SiteInventoryBalance)
            .where(
                SiteInventoryBalance.tenant_id == tenant_id,
                SiteInventoryBalance.site_id == site_id,
                SiteInventoryBalance.item_id == item_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balance = self._session.execute(stmt).scalar_one_or_none()
        if balance is not None:
            return balance

        try:
            with self._session.begin_nested():
                balance = SiteInventoryBalance(
                    tenant_id=tenant_id,
                    site_id=site_id,
                    item_id=item_id,
                    qty_on_hand=ZERO,
                    avg_cost_per_unit=ZERO,
                )
                self._session.add(balance)
        except IntegrityError:
            # Another writer created the row first
            balance = self._session.execute(stmt).scalar_one()
        return balance

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def record_inventory_movement(
        self,
        tenant_id: str,
        *,
        site_id: str,
        item_id: str,
        movement_type: MovementType,
        qty: Decimal,
        unit_cost: Decimal,
        total_cost: Decimal,
        balance_after: Decimal,
        event_id: UUID | None = None,
        transaction_id: UUID | None = None,
        related_site_id: str | None = None,
        idempotency_key: str | None = None,
        notes: str | None = None,
        occurred_at: datetime | None = None,
        created_by: str = "system",
    ) -> InventoryMovement:
        movement = InventoryMovement(
            tenant_id=tenant_id,
            site_id=site_id,
            item_id=item_id,
            movement_type=movement_type,
            qty=qty,
            unit_cost=unit_cost,
            total_cost=abs(total_cost),
            balance_after=balance_after,
            related_site_id=related_site_id,
            event_id=event_id,
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
            notes=notes,
            occurred_at=occurred_at or self._clock.now(),
            created_by=created_by,
        )
        self._session.add(movement)
        self._session.flush()
        return movement

    def find_movement_by_key(
        self, tenant_id: str, idempotency_key: str
    ) -> InventoryMovement | None:
        return self._session.execute(
            select(InventoryMovement).where(
                InventoryMovement.tenant_id == tenant_id,
                InventoryMovement.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def apply_movement(
        self,
        tenant_id: str,
        *,
        site_id: str,
        item_id: str,
        movement_type: MovementType,
        qty_delta: Decimal,
        unit_cost: Decimal,
        total_cost: Decimal,
        idempotency_key: str,
        event_id: UUID | None = None,
        transaction_id: UUID | None = None,
        related_site_id: str | None = None,
        notes: str | None = None,
        created_by: str = "system",
    ) -> tuple[InventoryMovement, bool]:
        """
        Update the balance and append the movement as one unit.

        Returns:
            ``(movement, created)``; ``created`` is False when a movement with
            ``idempotency_key`` already existed and nothing was changed.
        """
        existing = self.find_movement_by_key(tenant_id, idempotency_key)
        if existing is not None:
            logger.info(
                "inventory_movement_already_applied",
                extra={"idempotency_key": idempotency_key, "movement_id": str(existing.id)},
            )
            return existing, False

        try:
            with self._session.begin_nested():
                balance = self.update_site_inventory_balance(
                    tenant_id, site_id, item_id, qty_delta, unit_cost, movement_type
                )
                movement = self.record_inventory_movement(
                    tenant_id,
                    site_id=site_id,
                    item_id=item_id,
                    movement_type=movement_type,
                    qty=qty_delta,
                    unit_cost=unit_cost,
                    total_cost=total_cost,
                    balance_after=balance.qty_on_hand,
                    event_id=event_id,
                    transaction_id=transaction_id,
                    related_site_id=related_site_id,
                    idempotency_key=idempotency_key,
                    notes=notes,
                    created_by=created_by,
                )
        except IntegrityError:
            existing = self.find_movement_by_key(tenant_id, idempotency_key)
            if existing is None:
                raise
            return existing, False

        logger.info(
            "inventory_movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "site_id": site_id,
                "item_id": item_id,
                "movement_type": movement_type,
                "qty": qty_delta,
                "total_cost": movement.total_cost,
                "balance_after": movement.balance_after,
            },
        )
        return movement, True

    def list_movements(
        self,
        tenant_id: str,
        site_id: str | None = None,
        item_id: str | None = None,
        event_id: UUID | None = None,
    ) -> list[InventoryMovement]:
        stmt = select(InventoryMovement).where(InventoryMovement.tenant_id == tenant_id)
        if site_id is not None:
            stmt = stmt.where(InventoryMovement.site_id == site_id)
        if item_id is not None:
            stmt = stmt.where(InventoryMovement.item_id == item_id)
        if event_id is not None:
            stmt = stmt.where(InventoryMovement.event_id == event_id)
        return list(
            self._session.execute(
                stmt.order_by(InventoryMovement.occurred_at, InventoryMovement.idempotency_key)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Livestock cost basis
    # ------------------------------------------------------------------

    def create_animal_group(
        self,
        tenant_id: str,
        group_id: str,
        name: str,
        site_id: str | None = None,
        head_count: int = 0,
        total_cost_basis: Decimal = ZERO,
        created_by: str = "system",
    ) -> AnimalGroup:
        group = AnimalGroup(
            tenant_id=tenant_id,
            group_id=group_id,
            name=name,
            site_id=site_id,
            head_count=head_count,
            total_cost_basis=total_cost_basis,
            created_by=created_by,
        )
        self._session.add(group)
        self._session.flush()
        logger.info(
            "animal_group_created",
            extra={"tenant_id": tenant_id, "group_id": group_id},
        )
        return group

    def get_animal_group(
        self, tenant_id: str, group_id: str, for_update: bool = False
    ) -> AnimalGroup | None:
        stmt = select(AnimalGroup).where(
            AnimalGroup.tenant_id == tenant_id,
            AnimalGroup.group_id == group_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def adjust_cost_basis(
        self,
        tenant_id: str,
        group_id: str,
        cost_delta: Decimal,
        reason: str,
        idempotency_key: str,
        event_id: UUID | None = None,
        created_by: str = "system",
    ) -> tuple[CostBasisAdjustment, bool]:
        """
        Add ``cost_delta`` to the group's cost basis, clamped at zero.

        Returns:
            ``(adjustment, created)`` with the same dedup semantics as
            apply_movement.

        Raises:
            AnimalGroupNotFoundError: the group does not exist for the tenant.
        """
        existing = self._find_adjustment_by_key(tenant_id, idempotency_key)
        if existing is not None:
            return existing, False

        try:
            with self._session.begin_nested():
                group = self.get_animal_group(tenant_id, group_id, for_update=True)
                if group is None:
                    raise AnimalGroupNotFoundError(group_id)

                previous = group.total_cost_basis
                new_cost = max(ZERO, previous + cost_delta)
                group.total_cost_basis = new_cost

                adjustment = CostBasisAdjustment(
                    tenant_id=tenant_id,
                    group_id=group_id,
                    cost_delta=cost_delta,
                    previous_cost=previous,
                    new_cost=new_cost,
                    reason=reason,
                    event_id=event_id,
                    idempotency_key=idempotency_key,
                    created_by=created_by,
                )
                self._session.add(adjustment)
        except IntegrityError:
            existing = self._find_adjustment_by_key(tenant_id, idempotency_key)
            if existing is None:
                raise
            return existing, False

        logger.info(
            "cost_basis_adjusted",
            extra={
                "group_id": group_id,
                "cost_delta": cost_delta,
                "previous_cost": previous,
                "new_cost": new_cost,
                "clamped": previous + cost_delta < ZERO,
            },
        )
        return adjustment, True

    def _find_adjustment_by_key(
        self, tenant_id: str, idempotency_key: str
    ) -> CostBasisAdjustment | None:
        return self._session.execute(
            select(CostBasisAdjustment).where(
                CostBasisAdjustment.tenant_id == tenant_id,
                CostBasisAdjustment.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
