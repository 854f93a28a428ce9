from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from techplan.core.advisor import suggest_support
from techplan.core.models import SupportSuggestion, Technician, WorkloadResult
from techplan.core.scheduler import project_delivery
from techplan.core.shared_time import total_order_hours
from techplan.data.repository import Repository
from techplan.workload import WorkloadLookup

logger = logging.getLogger(__name__)


class DeliveryPlanner:
    """Computes and stores the delivery estimate of a service order.

    Gathers the order's items, the assigned technician's schedule and queued
    workload, optionally picks a support technician, and projects delivery.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        lookup: WorkloadLookup | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.repo = repo
        self.lookup = lookup or WorkloadLookup(repo, timeout_seconds=repo.get_workload_timeout_seconds())
        self.clock = clock

    async def plan_order(
        self,
        order_id: str,
        *,
        support_technician_id: str | None = None,
        auto_support: bool = True,
        persist: bool = True,
    ) -> dict:
        """Project the delivery of ``order_id``.

        Returns:
            dict with keys: status ("success"|"error"), message, and on
            success the projection fields plus the support decision.
        """
        order = self.repo.get_order(order_id)
        if order is None:
            return {"status": "error", "message": f"Order not found: {order_id}", "order_id": order_id}

        technician_id = order.technician_id
        primary_schedule = self.repo.get_work_schedule_or_default(technician_id)
        total_hours = total_order_hours(order.items, home_service=order.is_home_service)

        if technician_id:
            workload = await self.lookup.lookup(technician_id, exclude_order_id=order.order_id)
        else:
            # Unassigned orders are estimated on the default calendar with nothing queued.
            workload = WorkloadResult.ok(0.0)

        suggestion = await self._choose_support(
            technician_id=technician_id,
            total_hours=total_hours,
            primary_workload=workload,
            support_technician_id=support_technician_id,
            auto_support=auto_support,
        )
        support_id = suggestion.technician.technician_id if suggestion.suggested and suggestion.technician else None
        support_schedule = self.repo.get_work_schedule_or_default(support_id) if support_id else None

        # The home-service travel hour is not an item, so the projection
        # is fed the order's items only; total_hours drives the advisor.
        projection = project_delivery(
            order.items,
            primary_schedule,
            support_schedule,
            creation_date=order.created_at or self.clock(),
            current_workload=workload.hours,
        )

        if persist:
            self.repo.save_delivery_projection(
                order_id=order.order_id,
                projection=projection,
                support_technician_id=support_id,
            )
            self.repo.log_audit(
                "delivery",
                f"Delivery projected for order {order.order_id}",
                f"date={projection.delivery_date.date().isoformat()} time={projection.delivery_time} "
                f"hours={projection.effective_hours:g} workload={workload.hours:g} support={support_id or '-'}",
            )

        logger.info(
            "Order %s: %.2fh effective, %.2fh queued, delivery %s %s",
            order.order_id,
            projection.effective_hours,
            workload.hours,
            projection.delivery_date.date().isoformat(),
            projection.delivery_time,
        )

        return {
            "status": "success",
            "message": "Delivery projected",
            "order_id": order.order_id,
            "technician_id": technician_id,
            "delivery_date": projection.delivery_date.date().isoformat(),
            "delivery_time": projection.delivery_time,
            "effective_hours": projection.effective_hours,
            "total_hours": total_hours,
            "workload_hours": workload.hours,
            "workload_degraded": workload.degraded,
            "workload_cause": workload.cause,
            "support": suggestion.to_dict(),
        }

    async def _choose_support(
        self,
        *,
        technician_id: str | None,
        total_hours: float,
        primary_workload: WorkloadResult,
        support_technician_id: str | None,
        auto_support: bool,
    ) -> SupportSuggestion:
        if support_technician_id:
            return SupportSuggestion(
                suggested=True,
                technician=Technician(technician_id=support_technician_id),
                reason="Support technician chosen by the caller",
            )
        if not technician_id or not auto_support:
            return SupportSuggestion(suggested=False, reason="Support not requested")

        candidates = self.repo.list_technicians(active_only=True)
        workloads: dict[str, float] = {technician_id: primary_workload.hours}
        others = await self.lookup.get_workloads(
            c.technician_id for c in candidates if c.technician_id != technician_id
        )
        workloads.update({tid: w.total_hours for tid, w in others.items()})
        return suggest_support(technician_id, total_hours, candidates, workloads)
