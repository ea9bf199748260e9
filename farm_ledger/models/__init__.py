"""ORM models.  Importing this package registers every table on Base.metadata."""

from farm_ledger.models.account import Account, AccountType, NormalBalance
from farm_ledger.models.event import Event, EventStatus
from farm_ledger.models.inventory import (
    InventoryItem,
    InventoryMovement,
    MovementType,
    SiteInventoryBalance,
)
from farm_ledger.models.ledger import LedgerEntry, LedgerTransaction, TransactionStatus
from farm_ledger.models.livestock import AnimalGroup, CostBasisAdjustment
from farm_ledger.models.requisition import (
    OPEN_REQUISITION_STATUSES,
    PurchaseRequisition,
    RequisitionStatus,
)
from farm_ledger.models.tenant import Tenant

__all__ = [
    "Account",
    "AccountType",
    "AnimalGroup",
    "CostBasisAdjustment",
    "Event",
    "EventStatus",
    "InventoryItem",
    "InventoryMovement",
    "LedgerEntry",
    "LedgerTransaction",
    "MovementType",
    "NormalBalance",
    "OPEN_REQUISITION_STATUSES",
    "PurchaseRequisition",
    "RequisitionStatus",
    "SiteInventoryBalance",
    "Tenant",
]
