from plan_controller.schemas.health import DatabaseHealth, HealthResponse, SchedulerHealth, SystemLoad
from plan_controller.schemas.plan_state import BillingDateUpdateRequest, PlanStateResponse, PlanStateUpsertRequest

__all__ = [
    "BillingDateUpdateRequest",
    "DatabaseHealth",
    "HealthResponse",
    "PlanStateResponse",
    "PlanStateUpsertRequest",
    "SchedulerHealth",
    "SystemLoad",
]
