from __future__ import annotations

from techplan.planning.orchestrator import DeliveryPlanner

__all__ = [
	"DeliveryPlanner",
]
