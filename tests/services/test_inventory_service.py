"""
Tests for the inventory store.

Verifies:
- Missing balances read as zero
- Weighted-average costing on receipts, unchanged average on decreases
- apply_movement writes balance and movement together, once per key
- Cost basis adjustments clamp at zero and are deduplicated
"""

from decimal import Decimal

import pytest

from farm_ledger.exceptions import AnimalGroupNotFoundError, InventoryItemNotFoundError
from farm_ledger.models.inventory import MovementType
from farm_ledger.services.inventory_service import InventoryService


def _apply(inventory_service, tenant_id, site_id, key, qty, cost, movement_type=MovementType.RECEIPT):
    return inventory_service.apply_movement(
        tenant_id,
        site_id=site_id,
        item_id="ITEM-1",
        movement_type=movement_type,
        qty_delta=Decimal(qty),
        unit_cost=Decimal(cost),
        total_cost=Decimal(qty) * Decimal(cost),
        idempotency_key=key,
    )


class TestItems:
    def test_create_and_get(self, inventory_service, tenant_id):
        inventory_service.create_item(
            tenant_id, "FEED-1", "Layer Pellets", item_type="FEED", unit="BAG", sku="LP-50"
        )
        item = inventory_service.get_item(tenant_id, "FEED-1")
        assert item.name == "Layer Pellets"
        assert item.item_type == "FEED"
        assert item.reorder_point is None
        assert inventory_service.get_item("tenant-other", "FEED-1") is None

    def test_set_reorder_policy(self, inventory_service, make_item, tenant_id):
        make_item("FEED-1")
        item = inventory_service.set_reorder_policy(tenant_id, "FEED-1", Decimal("20"), Decimal("80"))
        assert item.reorder_point == Decimal("20")
        assert item.reorder_qty == Decimal("80")

        cleared = inventory_service.set_reorder_policy(tenant_id, "FEED-1", None)
        assert cleared.reorder_point is None

    def test_set_reorder_policy_unknown_item(self, inventory_service, tenant_id):
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.set_reorder_policy(tenant_id, "NOPE", Decimal("1"))


class TestBalances:
    def test_missing_balance_reads_as_zero(self, inventory_service, tenant_id, site_id):
        balance = inventory_service.get_site_inventory_balance(tenant_id, site_id, "ITEM-1")
        assert balance.qty_on_hand == 0
        assert balance.avg_cost_per_unit == 0
        assert balance.total_value == 0
        assert balance.last_movement_at is None

    def test_weighted_average_across_receipts(self, session, inventory_service, tenant_id, site_id):
        inventory_service.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("100"), Decimal("2.00"), MovementType.RECEIPT
        )
        inventory_service.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("50"), Decimal("3.00"), MovementType.RECEIPT
        )
        session.commit()

        balance = inventory_service.get_site_inventory_balance(tenant_id, site_id, "ITEM-1")
        assert balance.qty_on_hand == Decimal("150")
        assert balance.avg_cost_per_unit == Decimal("2.33")
        assert balance.last_movement_at is not None

    def test_decrease_keeps_average_and_may_go_negative(self, inventory_service, tenant_id, site_id):
        inventory_service.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("10"), Decimal("4"), MovementType.RECEIPT
        )
        inventory_service.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("-25"), Decimal("0"), MovementType.CONSUMPTION
        )
        balance = inventory_service.get_site_inventory_balance(tenant_id, site_id, "ITEM-1")
        assert balance.qty_on_hand == Decimal("-15")
        assert balance.avg_cost_per_unit == Decimal("4")

    def test_balances_are_per_site(self, inventory_service, tenant_id, site_id, other_site_id):
        inventory_service.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("10"), Decimal("1"), MovementType.RECEIPT
        )
        other = inventory_service.get_site_inventory_balance(tenant_id, other_site_id, "ITEM-1")
        assert other.qty_on_hand == 0

    def test_avg_cost_places(self, session, tenant_id, site_id, deterministic_clock):
        precise = InventoryService(session, deterministic_clock, avg_cost_places=4)
        precise.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("100"), Decimal("2"), MovementType.RECEIPT
        )
        precise.update_site_inventory_balance(
            tenant_id, site_id, "ITEM-1", Decimal("50"), Decimal("3"), MovementType.RECEIPT
        )
        balance = precise.get_site_inventory_balance(tenant_id, site_id, "ITEM-1")
        assert balance.avg_cost_per_unit == Decimal("2.3333")


class TestApplyMovement:
    def test_writes_balance_and_movement(self, session, inventory_service, tenant_id, site_id):
        movement, created = _apply(inventory_service, tenant_id, site_id, "evt:0", "100", "2.50")
        session.commit()

        assert created
        assert movement.qty == Decimal("100")
        assert movement.total_cost == Decimal("250")
        assert movement.balance_after == Decimal("100")
        assert inventory_service.get_site_inventory_balance(
            tenant_id, site_id, "ITEM-1"
        ).qty_on_hand == Decimal("100")

    def test_total_cost_stored_positive(self, inventory_service, tenant_id, site_id):
        movement, _ = _apply(
            inventory_service, tenant_id, site_id, "evt:0", "-4", "3", MovementType.CONSUMPTION
        )
        assert movement.qty == Decimal("-4")
        assert movement.total_cost == Decimal("12")

    def test_same_key_applies_once(self, session, inventory_service, tenant_id, site_id):
        first, created = _apply(inventory_service, tenant_id, site_id, "evt:0", "10", "1")
        session.commit()
        again, created_again = _apply(inventory_service, tenant_id, site_id, "evt:0", "10", "1")

        assert created and not created_again
        assert again.id == first.id
        assert len(inventory_service.list_movements(tenant_id)) == 1
        assert inventory_service.get_site_inventory_balance(
            tenant_id, site_id, "ITEM-1"
        ).qty_on_hand == Decimal("10")

    def test_list_movements_filters(self, inventory_service, tenant_id, site_id, other_site_id):
        _apply(inventory_service, tenant_id, site_id, "a:0", "1", "1")
        _apply(inventory_service, tenant_id, other_site_id, "b:0", "2", "1")

        assert [m.qty for m in inventory_service.list_movements(tenant_id, site_id=other_site_id)] == [
            Decimal("2")
        ]
        assert inventory_service.list_movements(tenant_id, item_id="OTHER") == []


class TestCostBasis:
    def test_adjust_records_audit_row(self, inventory_service, make_group, tenant_id):
        make_group("G1", total_cost_basis=Decimal("500"))

        adjustment, created = inventory_service.adjust_cost_basis(
            tenant_id, "G1", Decimal("120"), "Feed capitalized", idempotency_key="evt:1"
        )

        assert created
        assert adjustment.previous_cost == Decimal("500")
        assert adjustment.new_cost == Decimal("620")
        assert adjustment.cost_delta == Decimal("120")
        assert inventory_service.get_animal_group(tenant_id, "G1").total_cost_basis == Decimal("620")

    def test_clamps_at_zero(self, inventory_service, make_group, tenant_id):
        make_group("G1", total_cost_basis=Decimal("100"))

        adjustment, _ = inventory_service.adjust_cost_basis(
            tenant_id, "G1", Decimal("-400"), "Livestock sold", idempotency_key="evt:0"
        )

        assert adjustment.new_cost == Decimal("0")
        assert adjustment.cost_delta == Decimal("-400")
        assert inventory_service.get_animal_group(tenant_id, "G1").total_cost_basis == Decimal("0")

    def test_same_key_applies_once(self, session, inventory_service, make_group, tenant_id):
        make_group("G1", total_cost_basis=Decimal("100"))
        first, _ = inventory_service.adjust_cost_basis(
            tenant_id, "G1", Decimal("50"), "Livestock purchased", idempotency_key="evt:0"
        )
        session.commit()
        again, created = inventory_service.adjust_cost_basis(
            tenant_id, "G1", Decimal("50"), "Livestock purchased", idempotency_key="evt:0"
        )

        assert not created
        assert again.id == first.id
        assert inventory_service.get_animal_group(
            tenant_id, "G1", for_update=True
        ).total_cost_basis == Decimal("150")

    def test_unknown_group(self, inventory_service, tenant_id):
        with pytest.raises(AnimalGroupNotFoundError) as exc_info:
            inventory_service.adjust_cost_basis(
                tenant_id, "GHOST", Decimal("1"), "Livestock purchased", idempotency_key="evt:0"
            )
        assert exc_info.value.group_id == "GHOST"
