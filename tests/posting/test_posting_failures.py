"""
Posting failures and event state handling.

Verifies:
- Every failure after the lock marks the event FAILED with the error and re-raises
- FAILED events are retried (or refused when retries are disabled)
- Events locked by another poster are refused
- Unknown events are reported without writing anything
- Batch posting counts failures and moves on
- Structured log lines carry tenant and event context
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from farm_ledger.config import PostingConfig
from farm_ledger.exceptions import (
    EventNotFoundError,
    InvalidEventStateError,
    InvalidPayloadError,
    RequiredAccountsNotFoundError,
    UnknownEventTypeError,
)
from farm_ledger.models.event import EventStatus
from farm_ledger.models.ledger import LedgerTransaction
from farm_ledger.services.posting_engine import PostingEngine


def _transaction_count(session) -> int:
    return session.execute(select(func.count()).select_from(LedgerTransaction)).scalar_one()


class TestFailedPostingIsRecorded:
    def test_missing_accounts_then_seed_and_retry(
        self, session, tenant_service, account_service, posting_engine, make_event, event_store, tenant_id
    ):
        tenant_service.create_tenant(tenant_id, name="Unseeded Farm")
        session.commit()
        event = make_event("SALE", {"saleAmount": 100})

        with pytest.raises(RequiredAccountsNotFoundError) as exc_info:
            posting_engine.process_event(tenant_id, event.id)
        assert exc_info.value.missing_codes == ["1100", "4000"]

        failed = event_store.get_event(tenant_id, event.id)
        assert failed.status == EventStatus.FAILED
        assert failed.attempts == 1
        assert "1100, 4000" in failed.error_message
        assert failed.locked_by is None
        assert _transaction_count(session) == 0

        account_service.seed_chart_of_accounts(tenant_id)
        session.commit()
        result = posting_engine.process_event(tenant_id, event.id)

        assert result.success
        assert result.already_posted is False
        posted = event_store.get_event(tenant_id, event.id)
        assert posted.status == EventStatus.POSTED
        assert posted.attempts == 2
        assert posted.error_message is None

    def test_unknown_event_type(self, session, seeded_tenant, posting_engine, make_event, event_store):
        event = make_event("HARVEST_CROP", {"bushels": 40})

        with pytest.raises(UnknownEventTypeError):
            posting_engine.process_event(seeded_tenant, event.id)

        stored = event_store.get_event(seeded_tenant, event.id)
        assert stored.status == EventStatus.FAILED
        assert "HARVEST_CROP" in stored.error_message
        assert _transaction_count(session) == 0

    def test_invalid_payload(self, seeded_tenant, posting_engine, make_event, event_store):
        event = make_event("SALE", {"saleAmount": "a lot"})

        with pytest.raises(InvalidPayloadError) as exc_info:
            posting_engine.process_event(seeded_tenant, event.id)

        assert exc_info.value.field == "saleAmount"
        assert event_store.get_event(seeded_tenant, event.id).status == EventStatus.FAILED

    def test_retries_disabled(
        self, session, tenant_service, make_event, event_store, deterministic_clock, tenant_id
    ):
        tenant_service.create_tenant(tenant_id)
        session.commit()
        engine = PostingEngine(
            session,
            config=PostingConfig(default_locker_id="strict", retry_failed_events=False),
            clock=deterministic_clock,
        )
        event = make_event("SALE", {"saleAmount": 100})

        with pytest.raises(RequiredAccountsNotFoundError):
            engine.process_event(tenant_id, event.id)
        with pytest.raises(InvalidEventStateError) as exc_info:
            engine.process_event(tenant_id, event.id)

        assert exc_info.value.status == EventStatus.FAILED
        assert event_store.get_event(tenant_id, event.id).attempts == 1


class TestEventState:
    def test_locked_by_another_poster(self, session, seeded_tenant, posting_engine, make_event, event_store):
        event = make_event("SALE", {"saleAmount": 100})
        assert event_store.acquire_lock(seeded_tenant, event.id, "other-worker") is not None
        session.commit()

        with pytest.raises(InvalidEventStateError) as exc_info:
            posting_engine.process_event(seeded_tenant, event.id)

        assert exc_info.value.status == EventStatus.PROCESSING
        stored = event_store.get_event(seeded_tenant, event.id)
        assert stored.status == EventStatus.PROCESSING
        assert stored.locked_by == "other-worker"
        assert stored.error_message is None

    def test_unknown_event_id(self, seeded_tenant, posting_engine):
        with pytest.raises(EventNotFoundError):
            posting_engine.process_event(seeded_tenant, uuid4())

    def test_event_of_another_tenant_is_not_found(
        self, seeded_tenant, posting_engine, make_event, event_store
    ):
        event = make_event("SALE", {"saleAmount": 100})

        with pytest.raises(EventNotFoundError):
            posting_engine.process_event("tenant-other", event.id)

        assert event_store.get_event(seeded_tenant, event.id).status == EventStatus.PENDING

    def test_accepts_string_event_id(self, seeded_tenant, posting_engine, make_event):
        event = make_event("SALE", {"saleAmount": 100})
        result = posting_engine.process_event(seeded_tenant, str(event.id))
        assert result.event_id == event.id


class TestProcessPending:
    def test_batch_counts(self, session, seeded_tenant, posting_engine, make_event, event_store):
        make_event("SALE", {"saleAmount": 100})
        make_event("HARVEST_CROP", {})
        make_event("PURCHASE_LIVESTOCK", {"totalCost": 300})

        summary = posting_engine.process_pending(seeded_tenant)

        assert summary.processed == 3
        assert summary.posted == 2
        assert summary.already_posted == 0
        assert summary.failed == 1
        (failed_id, error), = summary.failures
        assert error.startswith("UnknownEventTypeError")
        assert event_store.get_event(seeded_tenant, failed_id).status == EventStatus.FAILED
        assert _transaction_count(session) == 2

    def test_failed_events_are_not_pending(self, seeded_tenant, posting_engine, make_event):
        make_event("HARVEST_CROP", {})
        posting_engine.process_pending(seeded_tenant)

        assert posting_engine.process_pending(seeded_tenant).processed == 0

    def test_limit(self, seeded_tenant, posting_engine, make_event):
        for amount in (1, 2, 3):
            make_event("SALE", {"saleAmount": amount})

        assert posting_engine.process_pending(seeded_tenant, limit=2).processed == 2
        assert posting_engine.process_pending(seeded_tenant).processed == 1


class TestPostingLogs:
    def test_success_lines_carry_context(self, seeded_tenant, post_event, captured_logs):
        event, result = post_event("SALE", {"saleAmount": 100})
        records = captured_logs()

        posted = next(r for r in records if r["message"] == "event_posted")
        assert posted["tenant_id"] == seeded_tenant
        assert posted["event_id"] == str(event.id)
        assert posted["locker_id"] == "test-poster"
        assert posted["transaction_id"] == str(result.transaction_id)
        assert posted["event_type"] == "SALE"

        computed = next(r for r in records if r["message"] == "gl_lines_computed")
        assert computed["total_debits"] == computed["total_credits"]

    def test_failure_logged_with_error_details(self, tenant_service, session, make_event, posting_engine, captured_logs, tenant_id):
        tenant_service.create_tenant(tenant_id)
        session.commit()
        event = make_event("SALE", {"saleAmount": 100})

        with pytest.raises(RequiredAccountsNotFoundError):
            posting_engine.process_event(tenant_id, event.id)

        failure = next(r for r in captured_logs() if r["message"] == "event_posting_failed")
        assert failure["level"] == "ERROR"
        assert failure["event_id"] == str(event.id)
        assert failure["exc_code"] == "REQUIRED_ACCOUNTS_NOT_FOUND"
        assert failure["exc_missing_codes"] == ["1100", "4000"]
