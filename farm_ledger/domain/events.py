"""
Event payloads -- one frozen type per postable event kind.

Responsibility:
    Turns the camelCase JSON payload stored on an Event into a typed value.
    Every consumer (GL rules, the inventory side-effect planner) matches on
    the ``EventPayload`` union, so a new event kind is added by adding a
    class here and a ``case`` in each consumer.

Architecture position:
    Domain -- pure, no I/O.

Invariants enforced:
    - Numeric fields are Decimal, never float.  Missing numbers are zero.
    - ``total_cost`` of None means "not supplied"; ``effective_total_cost``
      then derives it from quantity and unit cost so the GL amount and the
      inventory movement cost agree.

Failure modes:
    - UnknownEventTypeError for a type with no payload class.
    - InvalidPayloadError for a non-numeric value in a numeric field, or a
      malformed ``items`` list.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from farm_ledger.exceptions import InvalidPayloadError, UnknownEventTypeError

ZERO = Decimal("0")


class EventType(str, Enum):
    """Operational event kinds the posting engine knows how to post."""

    INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
    FEED_LIVESTOCK = "FEED_LIVESTOCK"
    RECEIVE_PURCHASE_ORDER = "RECEIVE_PURCHASE_ORDER"
    SALE = "SALE"
    SELL_LIVESTOCK = "SELL_LIVESTOCK"
    PURCHASE_LIVESTOCK = "PURCHASE_LIVESTOCK"
    INVENTORY_TRANSFER = "INVENTORY_TRANSFER"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"


FEED_ITEM_TYPE = "FEED"


def _cost_or_derived(total_cost: Decimal | None, qty: Decimal, unit_cost: Decimal) -> Decimal:
    if total_cost is not None:
        return abs(total_cost)
    return abs(qty * unit_cost)


@dataclass(frozen=True, slots=True)
class InventoryAdjustment:
    item_id: str | None
    item_type: str | None
    qty_delta: Decimal
    cost_per_unit: Decimal
    total_cost: Decimal | None
    reason: str | None

    @property
    def is_feed(self) -> bool:
        return self.item_type == FEED_ITEM_TYPE

    @property
    def effective_total_cost(self) -> Decimal:
        return _cost_or_derived(self.total_cost, self.qty_delta, self.cost_per_unit)


@dataclass(frozen=True, slots=True)
class FeedLivestock:
    feed_item_id: str | None
    qty: Decimal
    cost_per_unit: Decimal
    total_cost: Decimal | None
    livestock_group_id: str | None

    @property
    def effective_total_cost(self) -> Decimal:
        return _cost_or_derived(self.total_cost, self.qty, self.cost_per_unit)


@dataclass(frozen=True, slots=True)
class ReceiptLine:
    """One received item on a purchase order."""

    item_id: str | None
    qty: Decimal
    cost_per_unit: Decimal


@dataclass(frozen=True, slots=True)
class ReceivePurchaseOrder:
    item_type: str | None
    total_cost: Decimal | None
    payment_method: str | None
    items: tuple[ReceiptLine, ...]
    destination_site_id: str | None
    po_number: str | None

    @property
    def is_feed(self) -> bool:
        return self.item_type == FEED_ITEM_TYPE

    @property
    def effective_total_cost(self) -> Decimal:
        if self.total_cost is not None:
            return abs(self.total_cost)
        return sum((abs(i.qty * i.cost_per_unit) for i in self.items), ZERO)


@dataclass(frozen=True, slots=True)
class Sale:
    sale_amount: Decimal
    cost_amount: Decimal
    payment_method: str | None


@dataclass(frozen=True, slots=True)
class SellLivestock:
    sale_amount: Decimal
    cost_amount: Decimal
    payment_method: str | None
    livestock_group_id: str | None


@dataclass(frozen=True, slots=True)
class PurchaseLivestock:
    total_cost: Decimal
    payment_method: str | None
    livestock_group_id: str | None


@dataclass(frozen=True, slots=True)
class InventoryTransfer:
    item_id: str | None
    item_type: str | None
    qty: Decimal
    cost_per_unit: Decimal
    total_cost: Decimal | None
    from_site_id: str | None
    to_site_id: str | None

    @property
    def is_feed(self) -> bool:
        return self.item_type == FEED_ITEM_TYPE

    @property
    def effective_total_cost(self) -> Decimal:
        return _cost_or_derived(self.total_cost, self.qty, self.cost_per_unit)


EventPayload = (
    InventoryAdjustment
    | FeedLivestock
    | ReceivePurchaseOrder
    | Sale
    | SellLivestock
    | PurchaseLivestock
    | InventoryTransfer
)


def is_cash(payment_method: str | None) -> bool:
    return payment_method == PaymentMethod.CASH


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class _Reader:
    """Typed accessors over one raw payload dict."""

    def __init__(self, event_type: str, raw: dict[str, Any]):
        self._event_type = event_type
        self._raw = raw

    def decimal(self, key: str) -> Decimal:
        value = self.optional_decimal(key)
        return ZERO if value is None else value

    def optional_decimal(self, key: str) -> Decimal | None:
        return _to_decimal(self._event_type, key, self._raw.get(key))

    def string(self, key: str) -> str | None:
        value = self._raw.get(key)
        if value is None or value == "":
            return None
        return str(value)

    def items(self, key: str) -> tuple[ReceiptLine, ...]:
        raw_items = self._raw.get(key) or []
        if not isinstance(raw_items, list):
            raise InvalidPayloadError(self._event_type, key, raw_items)
        lines = []
        for index, item in enumerate(raw_items):
            if not isinstance(item, dict):
                raise InvalidPayloadError(self._event_type, f"{key}[{index}]", item)
            reader = _Reader(self._event_type, item)
            lines.append(
                ReceiptLine(
                    item_id=reader.string("itemId"),
                    qty=reader.decimal("qty"),
                    cost_per_unit=reader.decimal("costPerUnit"),
                )
            )
        return tuple(lines)


def _to_decimal(event_type: str, key: str, value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidPayloadError(event_type, key, value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise InvalidPayloadError(event_type, key, value) from None
    else:
        raise InvalidPayloadError(event_type, key, value)
    if not result.is_finite():
        raise InvalidPayloadError(event_type, key, value)
    return result


def parse_payload(event_type: str, payload: dict[str, Any] | None) -> EventPayload:
    """
    Build the typed payload for ``event_type`` from its camelCase JSON.

    Raises:
        UnknownEventTypeError: ``event_type`` is not an EventType value.
        InvalidPayloadError: a field has the wrong shape.
    """
    try:
        kind = EventType(event_type)
    except ValueError:
        raise UnknownEventTypeError(str(event_type)) from None

    r = _Reader(kind.value, payload or {})

    match kind:
        case EventType.INVENTORY_ADJUSTMENT:
            return InventoryAdjustment(
                item_id=r.string("itemId"),
                item_type=r.string("itemType"),
                qty_delta=r.decimal("qtyDelta"),
                cost_per_unit=r.decimal("costPerUnit"),
                total_cost=r.optional_decimal("totalCost"),
                reason=r.string("reason"),
            )
        case EventType.FEED_LIVESTOCK:
            return FeedLivestock(
                feed_item_id=r.string("feedItemId"),
                qty=r.decimal("qty"),
                cost_per_unit=r.decimal("costPerUnit"),
                total_cost=r.optional_decimal("totalCost"),
                livestock_group_id=r.string("livestockGroupId"),
            )
        case EventType.RECEIVE_PURCHASE_ORDER:
            return ReceivePurchaseOrder(
                item_type=r.string("itemType"),
                total_cost=r.optional_decimal("totalCost"),
                payment_method=r.string("paymentMethod"),
                items=r.items("items"),
                destination_site_id=r.string("destinationSiteId"),
                po_number=r.string("poNumber"),
            )
        case EventType.SALE:
            return Sale(
                sale_amount=r.decimal("saleAmount"),
                cost_amount=r.decimal("costAmount"),
                payment_method=r.string("paymentMethod"),
            )
        case EventType.SELL_LIVESTOCK:
            return SellLivestock(
                sale_amount=r.decimal("saleAmount"),
                cost_amount=r.decimal("costAmount"),
                payment_method=r.string("paymentMethod"),
                livestock_group_id=r.string("livestockGroupId"),
            )
        case EventType.PURCHASE_LIVESTOCK:
            return PurchaseLivestock(
                total_cost=r.decimal("totalCost"),
                payment_method=r.string("paymentMethod"),
                livestock_group_id=r.string("livestockGroupId"),
            )
        case EventType.INVENTORY_TRANSFER:
            return InventoryTransfer(
                item_id=r.string("itemId"),
                item_type=r.string("itemType"),
                qty=r.decimal("qty"),
                cost_per_unit=r.decimal("costPerUnit"),
                total_cost=r.optional_decimal("totalCost"),
                from_site_id=r.string("fromSiteId"),
                to_site_id=r.string("toSiteId"),
            )
        case _:
            raise UnknownEventTypeError(kind.value)
