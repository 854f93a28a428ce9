from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping


ACTIVE_ORDER_STATUSES: tuple[str, ...] = ("pending", "in_progress", "en_route")
FINISHED_ORDER_STATUS = "completed"


@dataclass(frozen=True)
class OrderItem:
    id: str
    estimated_hours: float = 0.0
    shared_time: bool = False
    service_type_id: str | None = None
    quantity: int = 1
    # Carried for callers; the hour math ignores it.
    status: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> OrderItem:
        """Build an item from a store row or form dict, applying the defaults."""
        hours = row.get("estimated_hours")
        return cls(
            id=str(row.get("id") or row.get("item_id") or ""),
            estimated_hours=float(hours) if hours is not None else 0.0,
            shared_time=bool(row.get("shared_time") or False),
            service_type_id=row.get("service_type_id") or None,
            quantity=int(row.get("quantity") or 1),
            status=row.get("status"),
        )


@dataclass(frozen=True)
class WorkSchedule:
    work_days: frozenset[int]  # 0=Sunday .. 6=Saturday
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    break_duration_minutes: int = 0

    @classmethod
    def default(cls) -> WorkSchedule:
        """Schedule assumed for technicians without one on file (Mon-Fri 08:00-17:00)."""
        return cls(
            work_days=frozenset({1, 2, 3, 4, 5}),
            start_time="08:00",
            end_time="17:00",
            break_duration_minutes=60,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> WorkSchedule:
        raw_days = row.get("work_days")
        if raw_days is None:
            raw_days = row.get("work_days_json")
        if isinstance(raw_days, str):
            raw_days = json.loads(raw_days) if raw_days.strip() else []
        return cls(
            work_days=frozenset(int(d) for d in (raw_days or [])),
            start_time=str(row["start_time"]),
            end_time=str(row["end_time"]),
            break_duration_minutes=int(row.get("break_duration_minutes") or 0),
        )

    def works_on(self, day: datetime) -> bool:
        # datetime.weekday() is Monday=0; schedules use Sunday=0.
        return (day.weekday() + 1) % 7 in self.work_days


@dataclass(frozen=True)
class Technician:
    technician_id: str
    full_name: str = ""


@dataclass(frozen=True)
class TechnicianWorkload:
    technician_id: str
    current_orders: int = 0
    total_hours: float = 0.0


@dataclass(frozen=True)
class DeliveryProjection:
    delivery_date: datetime
    delivery_time: str
    effective_hours: float
    breakdown: str = ""

    # Diagnostics only
    working_days: int = 0
    dead_days: int = 0


@dataclass(frozen=True)
class SupportSuggestion:
    suggested: bool
    reason: str
    technician: Technician | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggested": self.suggested,
            "reason": self.reason,
            "technician_id": self.technician.technician_id if self.technician else None,
            "technician_name": self.technician.full_name if self.technician else None,
        }


@dataclass(frozen=True)
class WorkloadResult:
    """Outcome of a workload query.

    A degraded result always reports 0 hours; ``cause`` keeps the reason
    around for logs and callers that want to surface it.
    """

    hours: float
    degraded: bool = False
    cause: str | None = None
    current_orders: int = 0

    @classmethod
    def ok(cls, hours: float, *, current_orders: int = 0) -> WorkloadResult:
        return cls(hours=hours, current_orders=current_orders)

    @classmethod
    def failed(cls, cause: str) -> WorkloadResult:
        return cls(hours=0.0, degraded=True, cause=cause)


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None


@dataclass(frozen=True)
class ServiceOrder:
    order_id: str
    technician_id: str | None
    status: str
    is_home_service: bool = False
    created_at: datetime | None = None
    items: list[OrderItem] = field(default_factory=list)
