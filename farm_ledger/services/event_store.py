"""
EventStore -- event persistence and the posting lock.

Responsibility:
    Creates PENDING events for the API layer and implements the lock /
    finalize protocol the posting engine drives:

        acquire_lock:  PENDING|FAILED --(conditional UPDATE)--> PROCESSING
        mark_posted:   PROCESSING (held by locker) --> POSTED
        mark_failed:   PROCESSING (held by locker) --> FAILED
        release_lock:  PROCESSING --> PENDING   (operator recovery)

Architecture position:
    Services -- imperative shell.  Flush-only; PostingEngine commits right
    after acquiring a lock so other posters observe it.

Invariants enforced:
    - At most one concurrent poster per event.  acquire_lock is a single
      ``UPDATE ... WHERE status IN (...)``; the database serializes racing
      updates on the row and exactly one sees rowcount == 1.
    - Only the current locker can finalize an event.

Failure modes:
    - EventNotFoundError from acquire_lock when the id is unknown.
    - EventLockLostError from mark_posted when the caller's lock is gone
      (released by an operator, or taken over after a release).

Audit relevance:
    ``attempts`` counts lock acquisitions; ``error_message`` keeps the last
    failure until the event posts.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.exceptions import EventLockLostError, EventNotFoundError
from farm_ledger.logging_config import get_logger
from farm_ledger.models.event import Event, EventStatus

logger = get_logger("services.event_store")

_MAX_ERROR_LENGTH = 2000


class EventStore:
    """
    Session-backed event store.

    Args:
        session: SQLAlchemy session.
        clock: Time source for lock and posting timestamps.
        retry_failed_events: Whether FAILED events can be locked again.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        retry_failed_events: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._lockable = (
            (EventStatus.PENDING, EventStatus.FAILED)
            if retry_failed_events
            else (EventStatus.PENDING,)
        )

    def create_event(
        self,
        tenant_id: str,
        site_id: str,
        event_type: str,
        payload: dict[str, Any],
        occurred_at: datetime | None = None,
        created_by: str = "system",
        source_type: str = "API",
        source_id: str | None = None,
    ) -> Event:
        """Record a new PENDING event."""
        event = Event(
            tenant_id=tenant_id,
            site_id=site_id,
            event_type=event_type.value if isinstance(event_type, Enum) else event_type,
            payload=payload,
            occurred_at=occurred_at or self._clock.now(),
            status=EventStatus.PENDING,
            attempts=0,
            inventory_movement_ids=[],
            source_type=source_type,
            source_id=source_id,
            created_by=created_by,
        )
        self._session.add(event)
        self._session.flush()
        logger.info(
            "event_created",
            extra={
                "tenant_id": tenant_id,
                "event_id": str(event.id),
                "event_type": event.event_type,
                "site_id": site_id,
            },
        )
        return event

    def get_event(self, tenant_id: str, event_id: UUID | str) -> Event | None:
        """Fresh read of an event (bypasses the identity map's cached state)."""
        return self._session.execute(
            select(Event)
            .where(Event.id == event_id, Event.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def acquire_lock(
        self, tenant_id: str, event_id: UUID | str, locker_id: str
    ) -> Event | None:
        """
        Atomically move a lockable event to PROCESSING for ``locker_id``.

        Returns:
            The locked event, or None when it is not in a lockable status.

        Raises:
            EventNotFoundError: no such event for the tenant.
        """
        now = self._clock.now()
        result = self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.tenant_id == tenant_id,
                Event.status.in_(self._lockable),
            )
            .values(
                status=EventStatus.PROCESSING,
                locked_by=locker_id,
                locked_at=now,
                attempts=Event.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )

        event = self.get_event(tenant_id, event_id)
        if event is None:
            raise EventNotFoundError(tenant_id, str(event_id))

        if result.rowcount != 1:
            logger.info(
                "event_lock_not_acquired",
                extra={"status": event.status, "locked_by": event.locked_by},
            )
            return None

        logger.info("event_lock_acquired", extra={"attempts": event.attempts})
        return event

    def mark_posted(
        self,
        tenant_id: str,
        event_id: UUID | str,
        locker_id: str,
        ledger_transaction_id: UUID,
        inventory_movement_ids: list[str],
        idempotency_key: str | None = None,
    ) -> Event:
        """
        Finalize a locked event as POSTED.

        Raises:
            EventLockLostError: ``locker_id`` does not hold the lock.
        """
        values: dict[str, Any] = {
            "status": EventStatus.POSTED,
            "ledger_transaction_id": ledger_transaction_id,
            "inventory_movement_ids": list(inventory_movement_ids),
            "posted_at": self._clock.now(),
            "locked_by": None,
            "locked_at": None,
            "error_message": None,
        }
        if idempotency_key is not None:
            values["idempotency_key"] = idempotency_key

        if not self._finalize(tenant_id, event_id, locker_id, values):
            raise EventLockLostError(str(event_id), locker_id)

        logger.info(
            "event_marked_posted",
            extra={
                "ledger_transaction_id": str(ledger_transaction_id),
                "movement_count": len(inventory_movement_ids),
            },
        )
        return self.get_event(tenant_id, event_id)

    def mark_failed(
        self,
        tenant_id: str,
        event_id: UUID | str,
        locker_id: str,
        error_message: str,
    ) -> bool:
        """
        Finalize a locked event as FAILED with the error recorded.

        Returns:
            False when ``locker_id`` no longer holds the lock (nothing written).
        """
        updated = self._finalize(
            tenant_id,
            event_id,
            locker_id,
            {
                "status": EventStatus.FAILED,
                "error_message": error_message[:_MAX_ERROR_LENGTH],
                "locked_by": None,
                "locked_at": None,
            },
        )
        if updated:
            logger.info("event_marked_failed", extra={"error_message": error_message})
        else:
            logger.warning("event_mark_failed_lock_lost")
        return updated

    def release_lock(self, tenant_id: str, event_id: UUID | str) -> bool:
        """
        Return a PROCESSING event to PENDING, whoever holds it.

        For operators recovering events whose poster crashed; see
        list_stuck_events.
        """
        result = self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.tenant_id == tenant_id,
                Event.status == EventStatus.PROCESSING,
            )
            .values(status=EventStatus.PENDING, locked_by=None, locked_at=None)
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount == 1
        logger.info(
            "event_lock_released" if released else "event_lock_release_noop",
            extra={"tenant_id": tenant_id, "event_id": str(event_id)},
        )
        return released

    def list_stuck_events(self, tenant_id: str, locked_before: datetime) -> list[Event]:
        """PROCESSING events locked before ``locked_before`` (the caller picks the cutoff)."""
        return list(
            self._session.execute(
                select(Event)
                .where(
                    Event.tenant_id == tenant_id,
                    Event.status == EventStatus.PROCESSING,
                    Event.locked_at < locked_before,
                )
                .order_by(Event.locked_at)
            ).scalars()
        )

    def list_pending_events(self, tenant_id: str, limit: int = 100) -> list[Event]:
        """PENDING events in occurrence order."""
        return list(
            self._session.execute(
                select(Event)
                .where(Event.tenant_id == tenant_id, Event.status == EventStatus.PENDING)
                .order_by(Event.occurred_at, Event.created_at)
                .limit(limit)
            ).scalars()
        )

    def _finalize(
        self,
        tenant_id: str,
        event_id: UUID | str,
        locker_id: str,
        values: dict[str, Any],
    ) -> bool:
        result = self._session.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.tenant_id == tenant_id,
                Event.status == EventStatus.PROCESSING,
                Event.locked_by == locker_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
