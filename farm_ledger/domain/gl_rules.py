"""
GL-line computation -- one pure rule per event kind.

Responsibility:
    Given a typed event payload and the tenant's settings, produce the
    ordered debit/credit lines of the ledger transaction, expressed in
    account codes.

Architecture position:
    Domain -- pure, no I/O.  The posting engine resolves codes to account
    rows and validates balance before writing.

Invariants enforced:
    - Every rule returns at least one balanced pair of lines.
    - Transfers debit and credit the same inventory account (zero GL impact).
    - validate_balance: |sum(debits) - sum(credits)| <= BALANCE_TOLERANCE.
      An unbalanced set is rejected, never adjusted.

Failure modes:
    - UnknownEventTypeError for a payload type with no rule.
    - UnbalancedTransactionError from validate_balance.

Account selection:
    Event                  | Debit                          | Credit
    -----------------------|--------------------------------|----------------------
    INVENTORY_ADJUSTMENT   | inventory if qty up, else 6200 | the other one
    FEED_LIVESTOCK         | 1400 if CAPITALIZE, else 6000  | 1200
    RECEIVE_PURCHASE_ORDER | inventory                      | 1000 cash / 2000 AP
    SALE, SELL_LIVESTOCK   | 1000 cash / 1100 AR            | 4000
                           | + 5000 when costAmount != 0    | + 1400
    PURCHASE_LIVESTOCK     | 1400                           | 1000 cash / 2000 AP
    INVENTORY_TRANSFER     | inventory ("Transfer out")     | inventory ("Transfer in")

    "inventory" is 1200 for FEED items and 1300 for everything else.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from farm_ledger.domain import chart_of_accounts as coa
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
    is_cash,
)
from farm_ledger.domain.settings import TenantSettings
from farm_ledger.exceptions import UnbalancedTransactionError, UnknownEventTypeError

BALANCE_TOLERANCE = Decimal("0.001")

ANIMAL_GROUP = "ANIMAL_GROUP"
INVENTORY_ITEM = "INVENTORY_ITEM"


class Amounts(Protocol):
    """Anything carrying a debit and a credit: GL lines or resolved entries."""

    debit: Decimal
    credit: Decimal


@dataclass(frozen=True, slots=True)
class GLLine:
    """One candidate ledger entry, before account resolution."""

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    entity_type: str | None = None
    entity_id: str | None = None
    memo: str | None = None


@dataclass(frozen=True, slots=True)
class BalanceCheck:
    total_debits: Decimal
    total_credits: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits


def _inventory_code(is_feed: bool) -> str:
    return coa.FEED_INVENTORY if is_feed else coa.SUPPLY_INVENTORY


def _settlement_credit_code(payment_method: str | None) -> str:
    return coa.CASH if is_cash(payment_method) else coa.ACCOUNTS_PAYABLE


def _settlement_debit_code(payment_method: str | None) -> str:
    return coa.CASH if is_cash(payment_method) else coa.ACCOUNTS_RECEIVABLE


def _pair(
    debit_code: str,
    credit_code: str,
    amount: Decimal,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> list[GLLine]:
    if entity_id is None:
        entity_type = None
    return [
        GLLine(debit_code, debit=amount, entity_type=entity_type, entity_id=entity_id),
        GLLine(credit_code, credit=amount, entity_type=entity_type, entity_id=entity_id),
    ]


def _sale_lines(
    sale_amount: Decimal,
    cost_amount: Decimal,
    payment_method: str | None,
    group_id: str | None = None,
) -> list[GLLine]:
    lines = _pair(
        _settlement_debit_code(payment_method),
        coa.SALES_REVENUE,
        abs(sale_amount),
        ANIMAL_GROUP,
        group_id,
    )
    if cost_amount != ZERO:
        lines += _pair(
            coa.COST_OF_GOODS_SOLD,
            coa.LIVESTOCK,
            abs(cost_amount),
            ANIMAL_GROUP,
            group_id,
        )
    return lines


def compute_gl_lines(payload: EventPayload, settings: TenantSettings) -> list[GLLine]:
    """
    Compute the ledger lines for one event.

    Args:
        payload: Typed payload from domain.events.parse_payload.
        settings: The tenant's settings, read fresh for this posting.

    Returns:
        Ordered lines in account codes; debits and credits balance.
    """
    match payload:
        case InventoryAdjustment():
            inventory = _inventory_code(payload.is_feed)
            cost = payload.effective_total_cost
            if payload.qty_delta > ZERO:
                return _pair(inventory, coa.INVENTORY_ADJUSTMENT, cost)
            return _pair(coa.INVENTORY_ADJUSTMENT, inventory, cost)

        case FeedLivestock():
            debit_code = coa.LIVESTOCK if settings.capitalizes_feed else coa.FEED_EXPENSE
            cost = payload.effective_total_cost
            group = payload.livestock_group_id
            item = payload.feed_item_id
            return [
                GLLine(
                    debit_code,
                    debit=cost,
                    entity_type=ANIMAL_GROUP if group else None,
                    entity_id=group,
                ),
                GLLine(
                    coa.FEED_INVENTORY,
                    credit=cost,
                    entity_type=INVENTORY_ITEM if item else None,
                    entity_id=item,
                ),
            ]

        case ReceivePurchaseOrder():
            return _pair(
                _inventory_code(payload.is_feed),
                _settlement_credit_code(payload.payment_method),
                payload.effective_total_cost,
            )

        case Sale():
            return _sale_lines(
                payload.sale_amount, payload.cost_amount, payload.payment_method
            )

        case SellLivestock():
            return _sale_lines(
                payload.sale_amount,
                payload.cost_amount,
                payload.payment_method,
                payload.livestock_group_id,
            )

        case PurchaseLivestock():
            return _pair(
                coa.LIVESTOCK,
                _settlement_credit_code(payload.payment_method),
                abs(payload.total_cost),
                ANIMAL_GROUP,
                payload.livestock_group_id,
            )

        case InventoryTransfer():
            inventory = _inventory_code(payload.is_feed)
            cost = payload.effective_total_cost
            return [
                GLLine(inventory, debit=cost, memo="Transfer out"),
                GLLine(inventory, credit=cost, memo="Transfer in"),
            ]

        case _:
            raise UnknownEventTypeError(type(payload).__name__)


def required_account_codes(lines: list[GLLine]) -> list[str]:
    """Distinct account codes in first-use order."""
    return list(dict.fromkeys(line.account_code for line in lines))


def validate_balance(lines: Sequence[Amounts]) -> BalanceCheck:
    """
    Check that debits equal credits within BALANCE_TOLERANCE.

    Raises:
        UnbalancedTransactionError: the difference exceeds the tolerance.
    """
    check = BalanceCheck(
        total_debits=sum((line.debit for line in lines), ZERO),
        total_credits=sum((line.credit for line in lines), ZERO),
    )
    if abs(check.difference) > BALANCE_TOLERANCE:
        raise UnbalancedTransactionError(
            debits=str(check.total_debits), credits=str(check.total_credits)
        )
    return check
