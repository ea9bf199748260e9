"""
InventoryMovementEngine -- executes an event's inventory side-effect plan.

Responsibility:
    Runs the steps produced by domain.side_effects.plan_side_effects against
    the InventoryService: stock steps update a site balance and append a
    movement; cost basis steps adjust a livestock group.  After each newly
    written decrease marked for it, the reorder trigger runs.

Architecture position:
    Services -- invoked by PostingEngine after the ledger transaction is
    committed.

Invariants enforced:
    - Step ``n`` of event ``E`` is written under idempotency key ``"E:n"``.
      Re-running the plan after a partial failure fills in only the missing
      steps and returns the ids of every movement, old and new.
    - Reorder outcomes never change the result or raise.

Failure modes:
    - AnimalGroupNotFoundError for a cost basis step on an unknown group.
    - Database errors propagate; steps already written stay in the
      session for the caller to commit or roll back.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from farm_ledger.domain.events import EventPayload
from farm_ledger.domain.settings import TenantSettings
from farm_ledger.domain.side_effects import CostBasisStep, StockStep, plan_side_effects
from farm_ledger.logging_config import get_logger
from farm_ledger.models.event import Event
from farm_ledger.services.inventory_service import InventoryService
from farm_ledger.services.reorder_trigger import ReorderOutcome, ReorderTrigger
from farm_ledger.utils.idempotency import side_effect_key

logger = get_logger("services.inventory_movement_engine")


@dataclass(frozen=True)
class SideEffectResult:
    movement_ids: list[str] = field(default_factory=list)
    cost_basis_adjustment_ids: list[str] = field(default_factory=list)
    reorder_outcomes: list[ReorderOutcome] = field(default_factory=list)


class InventoryMovementEngine:
    def __init__(
        self,
        session: Session,
        inventory: InventoryService,
        reorder_trigger: ReorderTrigger,
    ):
        self._session = session
        self._inventory = inventory
        self._reorder = reorder_trigger

    def apply(
        self,
        tenant_id: str,
        event: Event,
        payload: EventPayload,
        settings: TenantSettings,
        transaction_id: UUID | None,
        created_by: str = "system",
    ) -> SideEffectResult:
        """Apply every step of the event's plan in order."""
        steps = plan_side_effects(payload, event.site_id, settings)
        result = SideEffectResult()

        for n, step in enumerate(steps):
            key = side_effect_key(event.id, n)
            match step:
                case StockStep():
                    movement, created = self._inventory.apply_movement(
                        tenant_id,
                        site_id=step.site_id,
                        item_id=step.item_id,
                        movement_type=step.movement_type,
                        qty_delta=step.qty_delta,
                        unit_cost=step.unit_cost,
                        total_cost=step.total_cost,
                        idempotency_key=key,
                        event_id=event.id,
                        transaction_id=transaction_id,
                        related_site_id=step.related_site_id,
                        notes=step.notes,
                        created_by=created_by,
                    )
                    result.movement_ids.append(str(movement.id))
                    if created and step.check_reorder:
                        result.reorder_outcomes.append(
                            self._reorder.check_and_trigger(
                                tenant_id, step.site_id, step.item_id, created_by
                            )
                        )
                case CostBasisStep():
                    adjustment, _ = self._inventory.adjust_cost_basis(
                        tenant_id,
                        step.group_id,
                        step.cost_delta,
                        step.reason,
                        idempotency_key=key,
                        event_id=event.id,
                        created_by=created_by,
                    )
                    result.cost_basis_adjustment_ids.append(str(adjustment.id))

        if steps:
            logger.info(
                "side_effects_applied",
                extra={
                    "step_count": len(steps),
                    "movement_count": len(result.movement_ids),
                    "cost_basis_adjustment_count": len(result.cost_basis_adjustment_ids),
                    "reorder_failures": sum(1 for o in result.reorder_outcomes if o.failed),
                },
            )
        return result
