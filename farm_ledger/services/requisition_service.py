"""Reorder checks and purchase requisition creation."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.domain.costing import ZERO
from farm_ledger.logging_config import get_logger
from farm_ledger.models.inventory import InventoryItem
from farm_ledger.models.requisition import (
    OPEN_REQUISITION_STATUSES,
    PurchaseRequisition,
    RequisitionStatus,
)
from farm_ledger.services.inventory_service import InventoryService

logger = get_logger("services.requisition")

AUTO_APPROVER = "AUTO"


@dataclass(frozen=True)
class ReorderCheck:
    """Answer of check_reorder_needed; ``suggested_qty`` is zero when not needed."""

    needs_reorder: bool
    current_qty: Decimal
    reorder_point: Decimal | None
    suggested_qty: Decimal
    item: InventoryItem | None


class RequisitionService:
    """
    Decides whether a (site, item) needs restocking and records requisitions.

    Rows written here are handed over to the purchase-to-pay workflow; this
    service never moves a requisition past its initial status.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._inventory = InventoryService(session, clock=self._clock)

    def check_reorder_needed(self, tenant_id: str, site_id: str, item_id: str) -> ReorderCheck:
        """
        Reorder is needed when on-hand quantity is at or below the item's
        reorder point and no open requisition exists for the same site and
        item.  Suggested quantity is the item's reorder quantity, or twice
        the reorder point when none is set.
        """
        item = self._inventory.get_item(tenant_id, item_id)
        current = self._inventory.get_site_inventory_balance(tenant_id, site_id, item_id).qty_on_hand

        if item is None or item.reorder_point is None:
            return ReorderCheck(False, current, None, ZERO, item)

        reorder_point = item.reorder_point
        if current > reorder_point:
            return ReorderCheck(False, current, reorder_point, ZERO, item)

        if self._has_open_requisition(tenant_id, site_id, item_id):
            logger.info(
                "reorder_skipped_open_requisition",
                extra={"site_id": site_id, "item_id": item_id},
            )
            return ReorderCheck(False, current, reorder_point, ZERO, item)

        suggested = item.reorder_qty if item.reorder_qty else reorder_point * 2
        return ReorderCheck(True, current, reorder_point, suggested, item)

    def create_purchase_requisition(
        self,
        tenant_id: str,
        *,
        site_id: str,
        item_id: str,
        qty: Decimal,
        reason: str,
        estimated_cost: Decimal = ZERO,
        vendor_id: str | None = None,
        auto_generated: bool = False,
        trigger_balance: Decimal | None = None,
        approval_required: bool = True,
        created_by: str = "system",
    ) -> PurchaseRequisition:
        approved_at: datetime | None = None
        approved_by: str | None = None
        if approval_required:
            status = RequisitionStatus.PENDING_APPROVAL
        else:
            status = RequisitionStatus.APPROVED
            approved_by = AUTO_APPROVER
            approved_at = self._clock.now()

        requisition = PurchaseRequisition(
            tenant_id=tenant_id,
            site_id=site_id,
            item_id=item_id,
            qty=qty,
            estimated_cost=estimated_cost,
            vendor_id=vendor_id,
            reason=reason,
            status=status,
            auto_generated=auto_generated,
            trigger_balance=trigger_balance,
            approved_by=approved_by,
            approved_at=approved_at,
            created_by=created_by,
        )
        self._session.add(requisition)
        self._session.flush()

        logger.info(
            "purchase_requisition_created",
            extra={
                "requisition_id": str(requisition.id),
                "site_id": site_id,
                "item_id": item_id,
                "qty": qty,
                "status": status,
                "auto_generated": auto_generated,
            },
        )
        return requisition

    def list_requisitions(
        self, tenant_id: str, site_id: str | None = None, item_id: str | None = None
    ) -> list[PurchaseRequisition]:
        stmt = select(PurchaseRequisition).where(PurchaseRequisition.tenant_id == tenant_id)
        if site_id is not None:
            stmt = stmt.where(PurchaseRequisition.site_id == site_id)
        if item_id is not None:
            stmt = stmt.where(PurchaseRequisition.item_id == item_id)
        return list(self._session.execute(stmt.order_by(PurchaseRequisition.created_at)).scalars())

    def _has_open_requisition(self, tenant_id: str, site_id: str, item_id: str) -> bool:
        return (
            self._session.execute(
                select(PurchaseRequisition.id)
                .where(
                    PurchaseRequisition.tenant_id == tenant_id,
                    PurchaseRequisition.site_id == site_id,
                    PurchaseRequisition.item_id == item_id,
                    PurchaseRequisition.status.in_(OPEN_REQUISITION_STATUSES),
                )
                .limit(1)
            ).first()
            is not None
        )
