from plan_controller.models.plan_state import BILLING_FLAGS, NOTIFICATION_FLAGS, TRIAL_FLAGS, PlanState

__all__ = [
    "BILLING_FLAGS",
    "NOTIFICATION_FLAGS",
    "PlanState",
    "TRIAL_FLAGS",
]
