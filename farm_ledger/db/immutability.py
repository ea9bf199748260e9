"""
ORM-level immutability enforcement for ledger and audit rows.

SQLAlchemy fires mapper events before an UPDATE or DELETE reaches the
database.  The listeners below raise ImmutabilityViolationError for any
change the ledger's rules forbid, so the flush aborts and nothing is written.

Entity               | Rule
---------------------|--------------------------------------------------------
LedgerEntry          | Never updated, never deleted
LedgerTransaction    | Only status POSTED -> REVERSED and
                     | reversed_by_transaction_id may change; never deleted
InventoryMovement    | Never updated, never deleted
CostBasisAdjustment  | Never updated, never deleted
Account              | Never deleted (deactivate instead)
Event                | Never deleted

Bulk ``session.execute(update(...))`` statements do not fire mapper events.
The only bulk update in the package is EventStore's conditional lock and
finalize UPDATEs on ``events``, which is a mutable table.

Usage (done by db.engine.init_engine_from_url):

    register_immutability_listeners()

Tests that need to provoke a forbidden write may call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect

from farm_ledger.exceptions import ImmutabilityViolationError
from farm_ledger.logging_config import get_logger

logger = get_logger("db.immutability")

_TRANSACTION_MUTABLE_FIELDS = frozenset({"status", "reversed_by_transaction_id"})


def _blocked(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_columns(target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]


def _append_only_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        name = type(target).__name__
        _blocked(name, target, "UPDATE", f"{name} rows are append-only", changed[0])


def _never_delete(mapper, connection, target):
    name = type(target).__name__
    _blocked(name, target, "DELETE", f"{name} rows cannot be deleted")


def _check_transaction_update(mapper, connection, target):
    from farm_ledger.models.ledger import TransactionStatus

    changed = _changed_columns(target)
    for key in changed:
        if key not in _TRANSACTION_MUTABLE_FIELDS:
            _blocked(
                "LedgerTransaction",
                target,
                "UPDATE",
                f"Cannot modify field '{key}' on a posted transaction",
                key,
            )

    if "status" in changed:
        history = inspect(target).attrs.status.history
        old = history.deleted[0] if history.deleted else None
        if old != TransactionStatus.POSTED or target.status != TransactionStatus.REVERSED:
            _blocked(
                "LedgerTransaction",
                target,
                "UPDATE",
                f"Illegal status transition {getattr(old, 'value', old)} -> "
                f"{getattr(target.status, 'value', target.status)}",
                "status",
            )


def _listeners():
    from farm_ledger.models.account import Account
    from farm_ledger.models.event import Event
    from farm_ledger.models.inventory import InventoryMovement
    from farm_ledger.models.ledger import LedgerEntry, LedgerTransaction
    from farm_ledger.models.livestock import CostBasisAdjustment

    return [
        (LedgerEntry, "before_update", _append_only_update),
        (LedgerEntry, "before_delete", _never_delete),
        (LedgerTransaction, "before_update", _check_transaction_update),
        (LedgerTransaction, "before_delete", _never_delete),
        (InventoryMovement, "before_update", _append_only_update),
        (InventoryMovement, "before_delete", _never_delete),
        (CostBasisAdjustment, "before_update", _append_only_update),
        (CostBasisAdjustment, "before_delete", _never_delete),
        (Account, "before_delete", _never_delete),
        (Event, "before_delete", _never_delete),
    ]


def register_immutability_listeners() -> None:
    """Register all listeners.  Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove all listeners.  FOR TESTING ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
