"""
Inventory side-effect planning -- what an event does to stock and herds.

Responsibility:
    Given a typed payload, the event's site and the tenant settings, list the
    balance changes and cost-basis changes posting must apply, in order.
    The position of a step in the plan is part of its idempotency key, so
    the plan for a given event must be deterministic.

Architecture position:
    Domain -- pure, no I/O.  services.inventory_movement_engine executes the
    plan.

Per event kind:
    INVENTORY_ADJUSTMENT   adjustment_in / adjustment_out at the event site;
                           reorder check on decreases
    FEED_LIVESTOCK         consumption at the event site, reorder check;
                           plus herd cost basis += feed cost in CAPITALIZE mode
    RECEIVE_PURCHASE_ORDER receipt per item at destinationSiteId or the
                           event site (items without an id are skipped)
    INVENTORY_TRANSFER     transfer_out at source (reorder check), then
                           transfer_in at destination
    SELL_LIVESTOCK         herd cost basis -= |costAmount|
    PURCHASE_LIVESTOCK     herd cost basis += |totalCost|
    SALE                   nothing
"""

from dataclasses import dataclass
from decimal import Decimal

from farm_ledger.domain.events import (
    ZERO,
    EventPayload,
    FeedLivestock,
    InventoryAdjustment,
    InventoryTransfer,
    PurchaseLivestock,
    ReceivePurchaseOrder,
    Sale,
    SellLivestock,
)
from farm_ledger.domain.settings import TenantSettings
from farm_ledger.exceptions import UnknownEventTypeError
from farm_ledger.models.inventory import MovementType


@dataclass(frozen=True, slots=True)
class StockStep:
    """Change one site balance and record the movement."""

    site_id: str
    item_id: str
    movement_type: MovementType
    qty_delta: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    notes: str | None = None
    related_site_id: str | None = None
    check_reorder: bool = False


@dataclass(frozen=True, slots=True)
class CostBasisStep:
    """Change a livestock group's cost basis."""

    group_id: str
    cost_delta: Decimal
    reason: str


SideEffectStep = StockStep | CostBasisStep


def plan_side_effects(
    payload: EventPayload,
    event_site_id: str,
    settings: TenantSettings,
) -> list[SideEffectStep]:
    """Ordered side-effect steps for one event; empty when there are none."""
    match payload:
        case InventoryAdjustment():
            if not payload.item_id or payload.qty_delta == ZERO:
                return []
            increase = payload.qty_delta > ZERO
            return [
                StockStep(
                    site_id=event_site_id,
                    item_id=payload.item_id,
                    movement_type=(
                        MovementType.ADJUSTMENT_IN if increase else MovementType.ADJUSTMENT_OUT
                    ),
                    qty_delta=payload.qty_delta,
                    unit_cost=payload.cost_per_unit,
                    total_cost=payload.effective_total_cost,
                    notes=payload.reason or "Inventory adjustment",
                    check_reorder=not increase,
                )
            ]

        case FeedLivestock():
            if not payload.feed_item_id:
                return []
            group = payload.livestock_group_id
            cost = payload.effective_total_cost
            steps: list[SideEffectStep] = [
                StockStep(
                    site_id=event_site_id,
                    item_id=payload.feed_item_id,
                    movement_type=MovementType.CONSUMPTION,
                    qty_delta=-abs(payload.qty),
                    unit_cost=payload.cost_per_unit,
                    total_cost=cost,
                    notes=f"Fed to livestock group {group or 'unknown'}",
                    check_reorder=True,
                )
            ]
            if settings.capitalizes_feed and group:
                steps.append(CostBasisStep(group, cost, "Feed capitalized"))
            return steps

        case ReceivePurchaseOrder():
            site = payload.destination_site_id or event_site_id
            notes = f"PO {payload.po_number}" if payload.po_number else "Purchase receipt"
            return [
                StockStep(
                    site_id=site,
                    item_id=line.item_id,
                    movement_type=MovementType.RECEIPT,
                    qty_delta=abs(line.qty),
                    unit_cost=line.cost_per_unit,
                    total_cost=abs(line.qty * line.cost_per_unit),
                    notes=notes,
                )
                for line in payload.items
                if line.item_id
            ]

        case InventoryTransfer():
            if not (payload.item_id and payload.from_site_id and payload.to_site_id):
                return []
            qty = abs(payload.qty)
            cost = payload.effective_total_cost
            return [
                StockStep(
                    site_id=payload.from_site_id,
                    item_id=payload.item_id,
                    movement_type=MovementType.TRANSFER_OUT,
                    qty_delta=-qty,
                    unit_cost=payload.cost_per_unit,
                    total_cost=cost,
                    notes="Transfer to site",
                    related_site_id=payload.to_site_id,
                    check_reorder=True,
                ),
                StockStep(
                    site_id=payload.to_site_id,
                    item_id=payload.item_id,
                    movement_type=MovementType.TRANSFER_IN,
                    qty_delta=qty,
                    unit_cost=payload.cost_per_unit,
                    total_cost=cost,
                    notes="Transfer from site",
                    related_site_id=payload.from_site_id,
                ),
            ]

        case SellLivestock():
            if not payload.livestock_group_id or payload.cost_amount == ZERO:
                return []
            return [
                CostBasisStep(
                    payload.livestock_group_id,
                    -abs(payload.cost_amount),
                    "Livestock sold",
                )
            ]

        case PurchaseLivestock():
            if not payload.livestock_group_id or payload.total_cost == ZERO:
                return []
            return [
                CostBasisStep(
                    payload.livestock_group_id,
                    abs(payload.total_cost),
                    "Livestock purchased",
                )
            ]

        case Sale():
            return []

        case _:
            raise UnknownEventTypeError(type(payload).__name__)
