"""
ReorderTrigger -- best-effort automatic purchase requisitions.

Responsibility:
    After a stock decrease, check the tenant's auto-reorder setting and the
    item's reorder point, and raise a purchase requisition when stock has
    fallen to or below it.

Architecture position:
    Services -- called by InventoryMovementEngine after each decrease it
    writes.

Invariants enforced:
    - check_and_trigger never raises.  Every failure becomes a FAILED
      outcome that is logged here; callers may ignore the outcome entirely.
    - All database work runs in a SAVEPOINT, so a failure rolls back only
      the reorder attempt and never the movement that triggered it.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.domain.costing import ZERO
from farm_ledger.logging_config import get_logger
from farm_ledger.services.requisition_service import RequisitionService
from farm_ledger.services.tenant_service import TenantService

logger = get_logger("services.reorder")


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


class ReorderStatus(str, Enum):
    DISABLED = "DISABLED"
    NOT_NEEDED = "NOT_NEEDED"
    REQUISITION_CREATED = "REQUISITION_CREATED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ReorderOutcome:
    """Result of one reorder check; ``error`` is set only for FAILED."""

    status: ReorderStatus
    site_id: str
    item_id: str
    requisition_id: UUID | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == ReorderStatus.FAILED


class ReorderTrigger:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        requisitions: RequisitionService | None = None,
        tenants: TenantService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._requisitions = requisitions or RequisitionService(session, clock=self._clock)
        self._tenants = tenants or TenantService(session)

    def check_and_trigger(
        self,
        tenant_id: str,
        site_id: str,
        item_id: str,
        created_by: str = "system",
    ) -> ReorderOutcome:
        """Check one (site, item) and create a requisition when needed."""
        try:
            with self._session.begin_nested():
                return self._check(tenant_id, site_id, item_id, created_by)
        except Exception as exc:
            logger.warning(
                "reorder_check_failed",
                extra={
                    "site_id": site_id,
                    "item_id": item_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return ReorderOutcome(
                ReorderStatus.FAILED, site_id, item_id, error=f"{type(exc).__name__}: {exc}"
            )

    def _check(
        self, tenant_id: str, site_id: str, item_id: str, created_by: str
    ) -> ReorderOutcome:
        settings = self._tenants.get_settings(tenant_id)
        if not settings.auto_reorder_enabled:
            return ReorderOutcome(ReorderStatus.DISABLED, site_id, item_id)

        check = self._requisitions.check_reorder_needed(tenant_id, site_id, item_id)
        if not check.needs_reorder:
            return ReorderOutcome(ReorderStatus.NOT_NEEDED, site_id, item_id)

        item = check.item
        unit_cost: Decimal = item.default_unit_cost or ZERO
        requisition = self._requisitions.create_purchase_requisition(
            tenant_id,
            site_id=site_id,
            item_id=item_id,
            qty=check.suggested_qty,
            estimated_cost=check.suggested_qty * unit_cost,
            vendor_id=item.preferred_vendor_id,
            reason=(
                f"Auto-reorder: balance ({_plain(check.current_qty)}) below "
                f"reorder point ({_plain(check.reorder_point)})"
            ),
            auto_generated=True,
            trigger_balance=check.current_qty,
            approval_required=settings.auto_reorder_approval_required,
            created_by=created_by,
        )

        logger.info(
            "reorder_triggered",
            extra={
                "site_id": site_id,
                "item_id": item_id,
                "current_qty": check.current_qty,
                "reorder_point": check.reorder_point,
                "suggested_qty": check.suggested_qty,
                "requisition_id": str(requisition.id),
            },
        )
        return ReorderOutcome(
            ReorderStatus.REQUISITION_CREATED,
            site_id,
            item_id,
            requisition_id=requisition.id,
        )
