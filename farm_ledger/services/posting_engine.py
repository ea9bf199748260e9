"""
PostingEngine -- turns business events into balanced ledger transactions.

Responsibility:
    Orchestrates one posting end to end:

        1. acquire the event lock (conditional UPDATE, committed at once)
        2. parse the payload and derive the idempotency key
        3. read tenant settings (fresh, every call)
        4. short-circuit if a transaction with that key already exists
        5. compute GL lines, resolve account codes, validate balance
        6. write the transaction and all entries atomically, commit
        7. apply inventory and cost basis side effects
        8. mark the event POSTED, commit

    Any failure after step 1 rolls back the open work, marks the event
    FAILED with the error message, commits that, and re-raises.

Architecture position:
    Services -- the only service that owns commit boundaries.  Pure rules
    come from farm_ledger.domain; stores are the other services.

Invariants enforced:
    - At most one in-flight posting per event: the lock transition is the
      single serialization point.  A caller that loses the race returns the
      already-posted result when the winner has finished.
    - One LedgerTransaction per (tenant, idempotency key).  A retry after a
      partial failure finds the committed transaction at step 4 and only
      re-runs side effects, which are deduplicated per step.
    - Every transaction written balances within 0.001.
    - Accounts and settings are never cached between calls.

Failure modes:
    - EventNotFoundError: unknown event id (nothing is recorded).
    - InvalidEventStateError: the event is locked by another poster, or
      FAILED while retries are disabled.
    - UnknownEventTypeError, InvalidPayloadError, NoGLLinesComputedError,
      RequiredAccountsNotFoundError, UnbalancedTransactionError,
      AnimalGroupNotFoundError, database errors: event marked FAILED,
      exception re-raised.  All are retryable after the cause is fixed.

Audit relevance:
    The event row keeps attempts, the last error, the transaction id and the
    movement ids; every step logs a structured line bound to tenant, event
    and locker.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from farm_ledger.config import PostingConfig
from farm_ledger.domain.clock import Clock, SystemClock
from farm_ledger.domain.events import EventPayload, parse_payload
from farm_ledger.domain.gl_rules import compute_gl_lines, required_account_codes, validate_balance
from farm_ledger.domain.settings import TenantSettings
from farm_ledger.exceptions import (
    EventNotFoundError,
    InvalidEventStateError,
    NoGLLinesComputedError,
)
from farm_ledger.logging_config import LogContext, get_logger
from farm_ledger.models.event import Event, EventStatus
from farm_ledger.models.ledger import LedgerTransaction
from farm_ledger.services.account_service import AccountService
from farm_ledger.services.event_store import EventStore
from farm_ledger.services.inventory_movement_engine import InventoryMovementEngine
from farm_ledger.services.inventory_service import InventoryService
from farm_ledger.services.ledger_service import EntrySpec, LedgerService
from farm_ledger.services.reorder_trigger import ReorderTrigger
from farm_ledger.services.reversal_service import ReversalResult, ReversalService
from farm_ledger.services.tenant_service import TenantService
from farm_ledger.utils.idempotency import generate_idempotency_key

logger = get_logger("services.posting_engine")


@dataclass(frozen=True)
class PostingResult:
    """Outcome of process_event."""

    success: bool
    event_id: UUID
    transaction_id: UUID | None
    already_posted: bool
    entries_count: int
    inventory_movement_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class BatchPostingSummary:
    """Outcome of process_pending; ``failures`` holds (event_id, error) pairs."""

    processed: int = 0
    posted: int = 0
    already_posted: int = 0
    failed: int = 0
    failures: tuple[tuple[str, str], ...] = field(default_factory=tuple)


class PostingEngine:
    """
    Event-to-ledger posting over one SQLAlchemy session.

    Args:
        session: Session the engine commits and rolls back.
        config: Posting settings (profile version, locker id, retries).
        clock: Time source for every timestamp written.
    """

    def __init__(
        self,
        session: Session,
        config: PostingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or PostingConfig()
        self._clock = clock or SystemClock()

        self._events = EventStore(
            session, self._clock, retry_failed_events=self._config.retry_failed_events
        )
        self._tenants = TenantService(session)
        self._accounts = AccountService(session)
        self._ledger = LedgerService(session, self._clock)
        self._inventory = InventoryService(
            session, self._clock, avg_cost_places=self._config.avg_cost_places
        )
        self._side_effects = InventoryMovementEngine(
            session,
            self._inventory,
            ReorderTrigger(session, self._clock, tenants=self._tenants),
        )
        self._reversals = ReversalService(session, self._clock, ledger=self._ledger)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def process_event(
        self,
        tenant_id: str,
        event_id: UUID | str,
        locker_id: str | None = None,
        created_by: str = "system",
    ) -> PostingResult:
        """
        Post one event.

        Returns:
            PostingResult; ``already_posted`` is True when the event had been
            posted before this call (by an earlier call or a racing poster).

        Raises:
            EventNotFoundError, InvalidEventStateError, or the error that made
            the posting fail (after the event is marked FAILED).
        """
        event_id = UUID(str(event_id))
        locker_id = locker_id or self._config.default_locker_id

        with LogContext.bind(tenant_id=tenant_id, event_id=str(event_id), locker_id=locker_id):
            try:
                event = self._events.acquire_lock(tenant_id, event_id, locker_id)
            except EventNotFoundError:
                self._session.rollback()
                logger.warning("event_not_found")
                raise
            self._session.commit()

            if event is None:
                return self._lock_not_acquired(tenant_id, event_id)

            try:
                return self._post_locked(tenant_id, event, locker_id, created_by)
            except Exception as exc:
                self._record_failure(tenant_id, event_id, locker_id, exc)
                raise

    def process_pending(
        self,
        tenant_id: str,
        locker_id: str | None = None,
        limit: int | None = None,
    ) -> BatchPostingSummary:
        """
        Post PENDING events in occurrence order.

        A failing event is counted and logged and the batch moves on; the
        failure is also recorded on the event itself.
        """
        event_ids = [
            event.id
            for event in self._events.list_pending_events(
                tenant_id, limit or self._config.batch_size
            )
        ]
        self._session.commit()

        posted = already_posted = 0
        failures: list[tuple[str, str]] = []

        for event_id in event_ids:
            try:
                result = self.process_event(tenant_id, event_id, locker_id)
            except Exception as exc:
                failures.append((str(event_id), f"{type(exc).__name__}: {exc}"))
                logger.warning(
                    "batch_event_failed",
                    extra={
                        "tenant_id": tenant_id,
                        "failed_event_id": str(event_id),
                        "error_type": type(exc).__name__,
                    },
                )
                continue
            if result.already_posted:
                already_posted += 1
            else:
                posted += 1

        summary = BatchPostingSummary(
            processed=len(event_ids),
            posted=posted,
            already_posted=already_posted,
            failed=len(failures),
            failures=tuple(failures),
        )
        logger.info(
            "batch_posting_completed",
            extra={
                "tenant_id": tenant_id,
                "processed": summary.processed,
                "posted": summary.posted,
                "already_posted_count": summary.already_posted,
                "failed": summary.failed,
            },
        )
        return summary

    def reverse_transaction(
        self,
        tenant_id: str,
        transaction_id: UUID | str,
        reason: str,
        actor: str = "system",
    ) -> ReversalResult:
        """Reverse a posted transaction and commit; rolls back on any error."""
        try:
            result = self._reversals.reverse_transaction(tenant_id, transaction_id, reason, actor)
        except Exception:
            self._session.rollback()
            raise
        self._session.commit()
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _post_locked(
        self, tenant_id: str, event: Event, locker_id: str, created_by: str
    ) -> PostingResult:
        event_id = event.id
        event_type = event.event_type
        raw_payload = event.payload

        payload = parse_payload(event_type, raw_payload)
        key = generate_idempotency_key(
            tenant_id, event_id, raw_payload, self._config.posting_profile_version
        )
        settings = self._tenants.get_settings(tenant_id)

        existing = self._ledger.find_by_idempotency_key(tenant_id, key)
        if existing is not None:
            return self._complete_existing(
                tenant_id, event, payload, settings, existing, key, locker_id, created_by
            )

        lines = compute_gl_lines(payload, settings)
        if not lines:
            raise NoGLLinesComputedError(event_type)
        accounts = self._accounts.resolve_codes(
            tenant_id, required_account_codes(lines), event_type
        )
        check = validate_balance(lines)
        logger.info(
            "gl_lines_computed",
            extra={
                "event_type": event_type,
                "line_count": len(lines),
                "total_debits": check.total_debits,
                "total_credits": check.total_credits,
            },
        )

        try:
            transaction = self._ledger.create_transaction_with_entries(
                tenant_id=tenant_id,
                site_id=event.site_id,
                event_id=event_id,
                occurred_at=event.occurred_at,
                idempotency_key=key,
                memo=f"{event_type} event {event_id}",
                created_by=created_by,
                entries=[
                    EntrySpec(
                        account_id=accounts[line.account_code].id,
                        debit=line.debit,
                        credit=line.credit,
                        entity_type=line.entity_type,
                        entity_id=line.entity_id,
                        memo=line.memo,
                    )
                    for line in lines
                ],
            )
            transaction_id = transaction.id
            self._session.commit()
        except IntegrityError:
            self._session.rollback()
            existing = self._ledger.find_by_idempotency_key(tenant_id, key)
            if existing is None:
                raise
            logger.info("ledger_write_lost_race", extra={"idempotency_key": key})
            return self._complete_existing(
                tenant_id, event, payload, settings, existing, key, locker_id, created_by
            )

        with LogContext.bind(transaction_id=str(transaction_id)):
            side_effects = self._side_effects.apply(
                tenant_id, event, payload, settings, transaction_id, created_by
            )
            self._events.mark_posted(
                tenant_id,
                event_id,
                locker_id,
                ledger_transaction_id=transaction_id,
                inventory_movement_ids=side_effects.movement_ids,
                idempotency_key=key,
            )
            self._session.commit()

            logger.info(
                "event_posted",
                extra={
                    "event_type": event_type,
                    "entry_count": len(lines),
                    "movement_count": len(side_effects.movement_ids),
                },
            )

        return PostingResult(
            success=True,
            event_id=event_id,
            transaction_id=transaction_id,
            already_posted=False,
            entries_count=len(lines),
            inventory_movement_ids=tuple(side_effects.movement_ids),
        )

    def _complete_existing(
        self,
        tenant_id: str,
        event: Event,
        payload: EventPayload,
        settings: TenantSettings,
        transaction: LedgerTransaction,
        key: str,
        locker_id: str,
        created_by: str,
    ) -> PostingResult:
        """
        Finish an event whose ledger transaction was committed by an earlier
        attempt: fill in any side-effect steps that are missing and mark it
        POSTED.
        """
        event_id = event.id
        transaction_id = transaction.id
        entries_count = len(transaction.entries)

        with LogContext.bind(transaction_id=str(transaction_id)):
            logger.info("idempotency_key_hit", extra={"idempotency_key": key})
            side_effects = self._side_effects.apply(
                tenant_id, event, payload, settings, transaction_id, created_by
            )
            self._events.mark_posted(
                tenant_id,
                event_id,
                locker_id,
                ledger_transaction_id=transaction_id,
                inventory_movement_ids=side_effects.movement_ids,
                idempotency_key=key,
            )
            self._session.commit()

        return PostingResult(
            success=True,
            event_id=event_id,
            transaction_id=transaction_id,
            already_posted=True,
            entries_count=entries_count,
            inventory_movement_ids=tuple(side_effects.movement_ids),
        )

    def _lock_not_acquired(self, tenant_id: str, event_id: UUID) -> PostingResult:
        current = self._events.get_event(tenant_id, event_id)
        status = current.status if current is not None else None

        if status == EventStatus.POSTED:
            transaction_id = current.ledger_transaction_id
            transaction = (
                self._ledger.get_transaction(tenant_id, transaction_id)
                if transaction_id is not None
                else None
            )
            result = PostingResult(
                success=True,
                event_id=event_id,
                transaction_id=transaction_id,
                already_posted=True,
                entries_count=len(transaction.entries) if transaction is not None else 0,
                inventory_movement_ids=tuple(current.inventory_movement_ids or ()),
            )
            self._session.commit()
            logger.info("event_already_posted")
            return result

        self._session.commit()
        logger.warning("event_in_invalid_state", extra={"status": status})
        raise InvalidEventStateError(str(event_id), status)

    def _record_failure(
        self, tenant_id: str, event_id: UUID, locker_id: str, exc: Exception
    ) -> None:
        self._session.rollback()
        logger.error(
            "event_posting_failed",
            extra={"error_type": type(exc).__name__},
            exc_info=exc,
        )
        try:
            self._events.mark_failed(tenant_id, event_id, locker_id, str(exc) or type(exc).__name__)
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception("event_mark_failed_error")
