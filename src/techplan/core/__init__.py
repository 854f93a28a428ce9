"""Core package.

Pure delivery-date and workload calculations plus the small domain models
they operate on. Nothing in here touches the store.
"""

from techplan.core.advisor import suggest_support, summarize_technician_workloads
from techplan.core.models import (
    ACTIVE_ORDER_STATUSES,
    DeliveryProjection,
    OrderItem,
    SupportSuggestion,
    Technician,
    TechnicianWorkload,
    WorkloadResult,
    WorkSchedule,
)
from techplan.core.scheduler import project_delivery, project_delivery_legacy
from techplan.core.shared_time import compute_effective_hours, total_order_hours

__all__ = [
    "ACTIVE_ORDER_STATUSES",
    "DeliveryProjection",
    "OrderItem",
    "SupportSuggestion",
    "Technician",
    "TechnicianWorkload",
    "WorkloadResult",
    "WorkSchedule",
    "compute_effective_hours",
    "project_delivery",
    "project_delivery_legacy",
    "suggest_support",
    "summarize_technician_workloads",
    "total_order_hours",
]
