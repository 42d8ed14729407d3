from plan_controller.api.routes.health import router as health_router
from plan_controller.api.routes.plan_states import router as plan_states_router

__all__ = ["health_router", "plan_states_router"]
