"""
Imperative shell: session-backed stores and the engines built on them.

Services take a SQLAlchemy ``Session`` in their constructor and only flush;
the posting engine (and callers using ``db.engine.session_scope``) own the
commit boundary.
"""

from farm_ledger.services.account_service import AccountService
from farm_ledger.services.event_store import EventStore
from farm_ledger.services.inventory_movement_engine import (
    InventoryMovementEngine,
    SideEffectResult,
)
from farm_ledger.services.inventory_service import InventoryService
from farm_ledger.services.ledger_service import EntrySpec, LedgerService
from farm_ledger.services.posting_engine import (
    BatchPostingSummary,
    PostingEngine,
    PostingResult,
)
from farm_ledger.services.reorder_trigger import ReorderOutcome, ReorderStatus, ReorderTrigger
from farm_ledger.services.requisition_service import ReorderCheck, RequisitionService
from farm_ledger.services.reversal_service import ReversalResult, ReversalService
from farm_ledger.services.tenant_service import TenantService

__all__ = [
    "AccountService",
    "BatchPostingSummary",
    "EntrySpec",
    "EventStore",
    "InventoryMovementEngine",
    "InventoryService",
    "LedgerService",
    "PostingEngine",
    "PostingResult",
    "ReorderCheck",
    "ReorderOutcome",
    "ReorderStatus",
    "ReorderTrigger",
    "RequisitionService",
    "ReversalResult",
    "ReversalService",
    "SideEffectResult",
    "TenantService",
]
