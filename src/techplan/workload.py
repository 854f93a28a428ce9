"""Current workload of a technician, read from the store.

The lookup is fail-open: a store error or a timeout is logged and reported
as zero hours so that order creation never waits on a degraded store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable

from techplan.core.models import ACTIVE_ORDER_STATUSES, OrderItem, TechnicianWorkload, WorkloadResult
from techplan.core.shared_time import compute_effective_hours
from techplan.data.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


def sum_order_hours(orders: dict[str, list[OrderItem]]) -> float:
    """Shared-time discount applies within each order, never across orders."""
    return sum(compute_effective_hours(items) for items in orders.values())


class WorkloadLookup:
    def __init__(self, repo: Repository, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.repo = repo
        self.timeout_seconds = timeout_seconds

    def _load_sync(self, technician_id: str, exclude_order_id: str | None, deadline: float) -> WorkloadResult:
        orders = self.repo.get_active_order_items(
            technician_id,
            statuses=ACTIVE_ORDER_STATUSES,
            exclude_order_id=exclude_order_id,
            deadline=deadline,
        )
        return WorkloadResult.ok(sum_order_hours(orders), current_orders=len(orders))

    async def lookup(self, technician_id: str, *, exclude_order_id: str | None = None) -> WorkloadResult:
        # SQLite blocks; run it in a worker thread so the event loop stays
        # responsive. The store aborts its own query at the deadline so the
        # worker thread ends with the wait; no retries.
        deadline = time.monotonic() + self.timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._load_sync, technician_id, exclude_order_id, deadline),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, TimeoutError):
            cause = f"timed out after {self.timeout_seconds:g}s"
        except Exception as exc:
            cause = f"{type(exc).__name__}: {exc}"

        logger.warning("Workload lookup for technician %s degraded to 0h (%s)", technician_id, cause)
        return WorkloadResult.failed(cause)

    async def get_current_workload(self, technician_id: str) -> float:
        result = await self.lookup(technician_id)
        return result.hours

    async def get_workload(self, technician_id: str) -> TechnicianWorkload:
        result = await self.lookup(technician_id)
        return TechnicianWorkload(
            technician_id=technician_id,
            current_orders=result.current_orders,
            total_hours=result.hours,
        )

    async def get_workloads(self, technician_ids: Iterable[str]) -> dict[str, TechnicianWorkload]:
        ids = list(dict.fromkeys(technician_ids))
        results = await asyncio.gather(*(self.get_workload(tid) for tid in ids))
        return {w.technician_id: w for w in results}


async def get_current_workload(
    repo: Repository,
    technician_id: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> float:
    """Hours queued for ``technician_id`` across active orders; 0 if the store fails."""
    return await WorkloadLookup(repo, timeout_seconds=timeout_seconds).get_current_workload(technician_id)
