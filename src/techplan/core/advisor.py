from __future__ import annotations

from typing import Any, Iterable, Mapping, Union

from techplan.core.models import FINISHED_ORDER_STATUS, SupportSuggestion, Technician, TechnicianWorkload

MIN_HOURS_FOR_SUPPORT = 8.0
ALWAYS_SUPPORT_ABOVE_HOURS = 16.0
PRIMARY_OVERLOAD_HOURS = 20.0
SUPPORT_MAX_LOAD_HOURS = 15.0

WorkloadMap = Mapping[str, Union[TechnicianWorkload, float, int]]


def _load_of(workloads: WorkloadMap, technician_id: str) -> float:
    entry = workloads.get(technician_id)
    if entry is None:
        return 0.0
    if isinstance(entry, TechnicianWorkload):
        return float(entry.total_hours or 0.0)
    return float(entry or 0.0)


def _least_loaded(
    candidates: list[Technician],
    workloads: WorkloadMap,
    *,
    below: float | None = None,
) -> Technician | None:
    pool = candidates
    if below is not None:
        pool = [c for c in pool if _load_of(workloads, c.technician_id) < below]
    if not pool:
        return None
    # min() keeps the first of equal keys, so ties fall back to input order.
    return min(pool, key=lambda c: _load_of(workloads, c.technician_id))


def suggest_support(
    primary_technician_id: str,
    total_hours: float,
    candidates: Iterable[Technician],
    workloads: WorkloadMap,
) -> SupportSuggestion:
    """Decide whether a second technician should join the order.

    Rules, first match wins:
      * under 8h: never.
      * over 16h: the least loaded other technician, if there is one.
      * primary already above 20h queued: the least loaded other
        technician among those under 15h.
      * otherwise: no support.
    """
    if total_hours < MIN_HOURS_FOR_SUPPORT:
        return SupportSuggestion(
            suggested=False,
            reason="Work requires under 8 hours; no support needed",
        )

    others = [c for c in candidates if c.technician_id != primary_technician_id]

    if total_hours > ALWAYS_SUPPORT_ABOVE_HOURS:
        chosen = _least_loaded(others, workloads)
        if chosen is not None:
            return SupportSuggestion(
                suggested=True,
                technician=chosen,
                reason=f"Work requires {total_hours:g} hours; support recommended to shorten delivery",
            )

    primary_load = _load_of(workloads, primary_technician_id)
    if total_hours <= ALWAYS_SUPPORT_ABOVE_HOURS and primary_load > PRIMARY_OVERLOAD_HOURS:
        chosen = _least_loaded(others, workloads, below=SUPPORT_MAX_LOAD_HOURS)
        if chosen is not None:
            return SupportSuggestion(
                suggested=True,
                technician=chosen,
                reason=f"Primary technician has a high workload ({primary_load:g}h); support recommended",
            )

    return SupportSuggestion(suggested=False, reason="Support not required for this work")


def summarize_technician_workloads(orders: Iterable[Mapping[str, Any]]) -> dict[str, TechnicianWorkload]:
    """Reduce open order rows to per-technician order counts and hours.

    Rows need ``assigned_technician``, ``average_service_time`` and
    ``status``; unassigned and completed orders are skipped.
    """
    counts: dict[str, int] = {}
    hours: dict[str, float] = {}
    for order in orders:
        technician_id = order.get("assigned_technician")
        if not technician_id or order.get("status") == FINISHED_ORDER_STATUS:
            continue
        counts[technician_id] = counts.get(technician_id, 0) + 1
        hours[technician_id] = hours.get(technician_id, 0.0) + float(order.get("average_service_time") or 0.0)

    return {
        technician_id: TechnicianWorkload(
            technician_id=technician_id,
            current_orders=counts[technician_id],
            total_hours=hours[technician_id],
        )
        for technician_id in counts
    }
