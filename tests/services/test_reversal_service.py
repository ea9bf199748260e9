"""
Tests for transaction reversal.

Verifies:
- The reversal swaps every debit and credit of the original
- The original is marked REVERSED and points at its reversal
- A transaction can be reversed only once
- Reversal is tenant-scoped
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from farm_ledger.exceptions import AlreadyReversedError, TransactionNotFoundError
from farm_ledger.models.ledger import LedgerTransaction, TransactionStatus
from farm_ledger.services.ledger_service import LedgerService


@pytest.fixture
def posted_sale(seeded_tenant, post_event):
    event, result = post_event("SALE", {"saleAmount": 1000, "costAmount": 600, "paymentMethod": "CASH"})
    return event, result.transaction_id


class TestReverseTransaction:
    def test_reversal_swaps_entries(self, session, seeded_tenant, posting_engine, posted_sale):
        event, transaction_id = posted_sale

        result = posting_engine.reverse_transaction(
            seeded_tenant, transaction_id, reason="Entered twice", actor="clerk-7"
        )

        assert result.original_transaction_id == transaction_id
        assert result.entries_count == 4
        assert result.total_debits == Decimal("1600")
        assert result.total_credits == Decimal("1600")

        original = session.get(LedgerTransaction, transaction_id)
        reversal = session.get(LedgerTransaction, result.reversal_transaction_id)
        for before, after in zip(original.entries, reversal.entries):
            assert after.account_id == before.account_id
            assert after.debit == before.credit
            assert after.credit == before.debit
            assert after.entity_id == before.entity_id

        assert reversal.memo == "Reversal: Entered twice"
        assert reversal.created_by == "clerk-7"
        assert reversal.event_id == event.id
        assert reversal.reverses_transaction_id == transaction_id
        assert reversal.status == TransactionStatus.POSTED

    def test_original_marked_reversed(self, session, seeded_tenant, posting_engine, posted_sale):
        _, transaction_id = posted_sale
        result = posting_engine.reverse_transaction(seeded_tenant, transaction_id, reason="void")

        original = LedgerService(session).get_transaction(seeded_tenant, transaction_id, for_update=True)
        assert original.status == TransactionStatus.REVERSED
        assert original.is_reversed
        assert original.reversed_by_transaction_id == result.reversal_transaction_id

    def test_both_transactions_belong_to_the_event(self, session, seeded_tenant, posting_engine, posted_sale):
        event, transaction_id = posted_sale
        posting_engine.reverse_transaction(seeded_tenant, transaction_id, reason="void")

        transactions = LedgerService(session).get_transactions_for_event(seeded_tenant, event.id)
        assert len(transactions) == 2
        net = sum((t.total_debits - t.total_credits for t in transactions), Decimal("0"))
        assert net == Decimal("0")

    def test_cannot_reverse_twice(self, seeded_tenant, posting_engine, posted_sale):
        _, transaction_id = posted_sale
        first = posting_engine.reverse_transaction(seeded_tenant, transaction_id, reason="void")

        with pytest.raises(AlreadyReversedError) as exc_info:
            posting_engine.reverse_transaction(seeded_tenant, transaction_id, reason="again")

        assert exc_info.value.reversed_by_transaction_id == str(first.reversal_transaction_id)

    def test_unknown_transaction(self, seeded_tenant, posting_engine):
        with pytest.raises(TransactionNotFoundError):
            posting_engine.reverse_transaction(seeded_tenant, uuid4(), reason="void")

    def test_other_tenant_cannot_reverse(self, session, seeded_tenant, posting_engine, posted_sale):
        _, transaction_id = posted_sale

        with pytest.raises(TransactionNotFoundError):
            posting_engine.reverse_transaction("tenant-other", transaction_id, reason="void")

        original = LedgerService(session).get_transaction(seeded_tenant, transaction_id, for_update=True)
        assert original.status == TransactionStatus.POSTED

    def test_reversal_is_logged(self, seeded_tenant, posting_engine, posted_sale, captured_logs):
        _, transaction_id = posted_sale
        result = posting_engine.reverse_transaction(seeded_tenant, transaction_id, reason="void", actor="clerk-7")

        line = next(r for r in captured_logs() if r["message"] == "transaction_reversed")
        assert line["transaction_id"] == str(transaction_id)
        assert line["reversal_transaction_id"] == str(result.reversal_transaction_id)
        assert line["actor"] == "clerk-7"
