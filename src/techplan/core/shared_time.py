from __future__ import annotations

from typing import Iterable

from techplan.core.models import OrderItem

UNKNOWN_SERVICE_TYPE = "unknown"

# Every block of three units of the same service type: first at full time,
# the next two share its setup and cost 20%.
SHARED_TIME_CYCLE = 3
SHARED_TIME_WEIGHTS = (1.0, 0.2, 0.2)

HOME_SERVICE_TRAVEL_HOURS = 1.0


def expand_shared_units(items: Iterable[OrderItem]) -> dict[str, list[float]]:
    """Group shared-time items by service type and expand them into unit times.

    Keys keep first-seen order and units of one item stay contiguous, so the
    position of each unit inside its group is deterministic.
    """
    groups: dict[str, list[float]] = {}
    for item in items:
        if not item.shared_time:
            continue
        key = item.service_type_id or UNKNOWN_SERVICE_TYPE
        quantity = item.quantity or 1
        base_time = (item.estimated_hours or 0.0) / quantity
        groups.setdefault(key, []).extend([base_time] * quantity)
    return groups


def weighted_group_hours(unit_times: list[float]) -> float:
    total = 0.0
    for index, base_time in enumerate(unit_times):
        total += base_time * SHARED_TIME_WEIGHTS[index % SHARED_TIME_CYCLE]
    return total


def compute_effective_hours(items: Iterable[OrderItem]) -> float:
    """Total technician hours for ``items`` after the shared-time discount.

    Items without ``shared_time`` count in full. Shared items are discounted
    per service type, see :func:`expand_shared_units`.
    """
    items = list(items)
    individual = sum((item.estimated_hours or 0.0) for item in items if not item.shared_time)
    shared = sum(weighted_group_hours(units) for units in expand_shared_units(items).values())
    return individual + shared


def total_order_hours(items: Iterable[OrderItem], *, home_service: bool = False) -> float:
    """Effective hours plus travel time for home-service visits."""
    hours = compute_effective_hours(items)
    return hours + HOME_SERVICE_TRAVEL_HOURS if home_service else hours
