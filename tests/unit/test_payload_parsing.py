"""Parsing camelCase event payloads into the typed EventPayload union."""

from decimal import Decimal

import pytest

from farm_ledger.domain.events import (
    EventType,
    FeedLivestock,
    InventoryAdjustment,
    InventoryTransfer,
    PurchaseLivestock,
    ReceiptLine,
    ReceivePurchaseOrder,
    Sale,
    SellLivestock,
    is_cash,
    parse_payload,
)
from farm_ledger.exceptions import InvalidPayloadError, UnknownEventTypeError


class TestParsePayload:
    def test_inventory_adjustment(self):
        payload = parse_payload(
            "INVENTORY_ADJUSTMENT",
            {"itemId": "I1", "itemType": "FEED", "qtyDelta": -4, "costPerUnit": "2.5", "reason": "spoiled"},
        )
        assert payload == InventoryAdjustment(
            item_id="I1",
            item_type="FEED",
            qty_delta=Decimal("-4"),
            cost_per_unit=Decimal("2.5"),
            total_cost=None,
            reason="spoiled",
        )
        assert payload.is_feed
        assert payload.effective_total_cost == Decimal("10.0")

    def test_feed_livestock(self):
        payload = parse_payload(
            "FEED_LIVESTOCK",
            {"feedItemId": "F1", "qty": 40, "totalCost": 120, "livestockGroupId": "G1"},
        )
        assert isinstance(payload, FeedLivestock)
        assert payload.feed_item_id == "F1"
        assert payload.livestock_group_id == "G1"
        assert payload.effective_total_cost == Decimal("120")

    def test_receive_purchase_order_items(self):
        payload = parse_payload(
            "RECEIVE_PURCHASE_ORDER",
            {
                "itemType": "SUPPLY",
                "paymentMethod": "CASH",
                "poNumber": "PO-7",
                "items": [
                    {"itemId": "A", "qty": 2, "costPerUnit": 5},
                    {"itemId": "B", "qty": 1, "costPerUnit": "7.25"},
                ],
            },
        )
        assert isinstance(payload, ReceivePurchaseOrder)
        assert payload.items == (
            ReceiptLine("A", Decimal("2"), Decimal("5")),
            ReceiptLine("B", Decimal("1"), Decimal("7.25")),
        )
        assert payload.effective_total_cost == Decimal("17.25")
        assert payload.po_number == "PO-7"

    def test_explicit_total_cost_wins_over_items(self):
        payload = parse_payload(
            "RECEIVE_PURCHASE_ORDER",
            {"totalCost": -50, "items": [{"itemId": "A", "qty": 2, "costPerUnit": 5}]},
        )
        assert payload.effective_total_cost == Decimal("50")

    def test_sale_defaults_missing_numbers_to_zero(self):
        assert parse_payload("SALE", {"saleAmount": 1000}) == Sale(
            sale_amount=Decimal("1000"), cost_amount=Decimal("0"), payment_method=None
        )

    def test_sell_and_purchase_livestock(self):
        sell = parse_payload(
            "SELL_LIVESTOCK",
            {"saleAmount": 900, "costAmount": 500, "paymentMethod": "CREDIT", "livestockGroupId": "G1"},
        )
        buy = parse_payload("PURCHASE_LIVESTOCK", {"totalCost": 2000, "livestockGroupId": "G2"})
        assert isinstance(sell, SellLivestock)
        assert sell.livestock_group_id == "G1"
        assert isinstance(buy, PurchaseLivestock)
        assert buy.total_cost == Decimal("2000")

    def test_inventory_transfer(self):
        payload = parse_payload(
            "INVENTORY_TRANSFER",
            {"itemId": "I1", "qty": 10, "costPerUnit": 3, "fromSiteId": "S1", "toSiteId": "S2"},
        )
        assert isinstance(payload, InventoryTransfer)
        assert (payload.from_site_id, payload.to_site_id) == ("S1", "S2")
        assert payload.effective_total_cost == Decimal("30")
        assert not payload.is_feed

    def test_empty_strings_read_as_missing(self):
        payload = parse_payload("INVENTORY_ADJUSTMENT", {"itemId": "", "qtyDelta": ""})
        assert payload.item_id is None
        assert payload.qty_delta == Decimal("0")

    def test_none_payload_is_empty(self):
        assert parse_payload("SALE", None) == Sale(Decimal("0"), Decimal("0"), None)

    def test_float_converted_through_str(self):
        payload = parse_payload("SALE", {"saleAmount": 0.1})
        assert payload.sale_amount == Decimal("0.1")

    def test_every_event_type_has_a_parser(self):
        for kind in EventType:
            parse_payload(kind.value, {})


class TestParseErrors:
    def test_unknown_event_type(self):
        with pytest.raises(UnknownEventTypeError) as exc_info:
            parse_payload("HARVEST_CROP", {})
        assert exc_info.value.event_type == "HARVEST_CROP"
        assert exc_info.value.code == "UNKNOWN_EVENT_TYPE"

    @pytest.mark.parametrize("bad", ["abc", True, [1], {"v": 1}, "NaN", "Infinity"])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_payload("SALE", {"saleAmount": bad})
        assert exc_info.value.field == "saleAmount"

    def test_items_must_be_list(self):
        with pytest.raises(InvalidPayloadError):
            parse_payload("RECEIVE_PURCHASE_ORDER", {"items": "A"})

    def test_item_entries_must_be_objects(self):
        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_payload("RECEIVE_PURCHASE_ORDER", {"items": [{"itemId": "A"}, 5]})
        assert exc_info.value.field == "items[1]"


def test_is_cash():
    assert is_cash("CASH")
    assert not is_cash("CREDIT")
    assert not is_cash(None)
    assert not is_cash("cash")
