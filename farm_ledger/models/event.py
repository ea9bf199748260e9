"""
Module: farm_ledger.models.event
Responsibility: Business events awaiting or having completed posting.
Architecture position: Models.  Imports db.base only.

Invariants enforced:
    - Status moves PENDING -> PROCESSING -> POSTED | FAILED, and FAILED ->
      PROCESSING on retry.  Every transition into PROCESSING is a single
      conditional UPDATE issued by EventStore.acquire_lock.
    - Events are never deleted (db.immutability).

Failure modes:
    - ImmutabilityViolationError on DELETE.

Audit relevance:
    ``attempts``, ``error_message`` and ``ledger_transaction_id`` record what
    happened to each event across retries.  ``event_type`` is a plain string so
    events of types the engine does not know can still be stored; they fail at
    posting time.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import TrackedBase, UUIDString


class EventStatus(str, Enum):
    """Posting lifecycle of an event."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    POSTED = "POSTED"
    FAILED = "FAILED"


class Event(TrackedBase):
    """
    Tenant- and site-scoped business fact.

    Contract:
        Created PENDING by the API layer (EventStore.create_event).  Only the
        posting engine, through EventStore, changes status, lock fields and
        the posting outcome.

    Non-goals:
        - Payload validation; payloads are interpreted at posting time.
    """

    __tablename__ = "events"

    __table_args__ = (
        Index("idx_event_tenant_status", "tenant_id", "status"),
        Index("idx_event_tenant_occurred", "tenant_id", "occurred_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    site_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # e.g. "FEED_LIVESTOCK"; see domain.events.EventType
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # camelCase JSON as produced by the HTTP layer
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[EventStatus] = mapped_column(
        String(20),
        nullable=False,
        default=EventStatus.PENDING,
    )

    # Set once computed by the posting engine
    idempotency_key: Mapped[str | None] = mapped_column(String(64), nullable=True)

    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Number of times a poster acquired the lock
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    ledger_transaction_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    inventory_movement_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Where the event came from: API, IMPORT, SCHEDULE, ...
    source_type: Mapped[str] = mapped_column(String(30), nullable=False, default="API")

    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Event {self.event_type}:{self.id} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == EventStatus.POSTED
