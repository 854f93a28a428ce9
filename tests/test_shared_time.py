import pytest

from techplan.core.models import OrderItem
from techplan.core.shared_time import (
    compute_effective_hours,
    expand_shared_units,
    total_order_hours,
)


def test_individual_items_sum_without_discount():
    items = [
        OrderItem(id="a", estimated_hours=2.5),
        OrderItem(id="b", estimated_hours=4.0, service_type_id="S1"),
        OrderItem(id="c", estimated_hours=1.5, service_type_id="S1", quantity=3),
    ]
    assert compute_effective_hours(items) == pytest.approx(8.0)


def test_shared_item_expanded_by_quantity():
    # 30h over 3 units -> [10, 10, 10] weighted [1.0, 0.2, 0.2]
    items = [OrderItem(id="a", estimated_hours=30, quantity=3, shared_time=True, service_type_id="S1")]
    assert compute_effective_hours(items) == pytest.approx(14.0)


def test_shared_cycle_repeats_every_three_units():
    items = [OrderItem(id="a", estimated_hours=6, quantity=6, shared_time=True, service_type_id="S1")]
    # weights 1, .2, .2, 1, .2, .2 on 1h units
    assert compute_effective_hours(items) == pytest.approx(2.8)


def test_units_of_same_type_discount_across_items_in_order():
    items = [
        OrderItem(id="a", estimated_hours=4, shared_time=True, service_type_id="S1"),
        OrderItem(id="b", estimated_hours=10, shared_time=True, service_type_id="S1"),
        OrderItem(id="c", estimated_hours=10, shared_time=True, service_type_id="S2"),
    ]
    assert expand_shared_units(items) == {"S1": [4.0, 10.0], "S2": [10.0]}
    # S1: 4*1.0 + 10*0.2 ; S2: 10*1.0
    assert compute_effective_hours(items) == pytest.approx(16.0)


def test_missing_service_type_groups_under_unknown():
    items = [
        OrderItem(id="a", estimated_hours=5, shared_time=True),
        OrderItem(id="b", estimated_hours=5, shared_time=True, service_type_id=None),
    ]
    assert list(expand_shared_units(items)) == ["unknown"]
    assert compute_effective_hours(items) == pytest.approx(6.0)


def test_zero_quantity_treated_as_one():
    items = [OrderItem(id="a", estimated_hours=3, quantity=0, shared_time=True, service_type_id="S1")]
    assert expand_shared_units(items) == {"S1": [3.0]}
    assert compute_effective_hours(items) == pytest.approx(3.0)


def test_zero_hour_items_contribute_nothing():
    items = [
        OrderItem(id="a", estimated_hours=0, shared_time=True, service_type_id="S1"),
        OrderItem(id="b", estimated_hours=5, shared_time=True, service_type_id="S1"),
    ]
    # b lands on position 2 of the cycle
    assert compute_effective_hours(items) == pytest.approx(1.0)


def test_empty_list_is_zero():
    assert compute_effective_hours([]) == 0


def test_repeated_calls_give_same_result():
    items = [
        OrderItem(id="a", estimated_hours=7, quantity=2, shared_time=True, service_type_id="S1"),
        OrderItem(id="b", estimated_hours=3),
    ]
    first = compute_effective_hours(items)
    assert compute_effective_hours(items) == first
    assert items[0].quantity == 2


def test_accepts_generators():
    items = (OrderItem(id=str(i), estimated_hours=1) for i in range(3))
    assert compute_effective_hours(items) == pytest.approx(3.0)


def test_home_service_adds_travel_hour():
    items = [OrderItem(id="a", estimated_hours=2)]
    assert total_order_hours(items) == pytest.approx(2.0)
    assert total_order_hours(items, home_service=True) == pytest.approx(3.0)


def test_from_row_applies_defaults():
    item = OrderItem.from_row({"id": "x", "estimated_hours": None, "quantity": 0, "shared_time": 1})
    assert item.estimated_hours == 0.0
    assert item.quantity == 1
    assert item.shared_time is True
    assert item.service_type_id is None
