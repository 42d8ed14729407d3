from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from plan_controller.db.base import Base

TRIAL_FLAGS = (
    "trial_notified_5d",
    "trial_notified_3d",
    "trial_notified_1d",
    "trial_ended_action_taken",
)
BILLING_FLAGS = (
    "billing_notified_5d",
    "billing_notified_3d",
    "billing_notified_1d",
)
NOTIFICATION_FLAGS = TRIAL_FLAGS + BILLING_FLAGS


def _flag_column() -> Mapped[bool]:
    return mapped_column(Boolean, default=False, server_default=false(), nullable=False)


class PlanState(Base):
    __tablename__ = "plan_states"

    website_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    plan_id: Mapped[str] = mapped_column(String(255), nullable=False)
    free_trial_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_billing_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    last_scheduler_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    trial_notified_5d: Mapped[bool] = _flag_column()
    trial_notified_3d: Mapped[bool] = _flag_column()
    trial_notified_1d: Mapped[bool] = _flag_column()
    trial_ended_action_taken: Mapped[bool] = _flag_column()
    billing_notified_5d: Mapped[bool] = _flag_column()
    billing_notified_3d: Mapped[bool] = _flag_column()
    billing_notified_1d: Mapped[bool] = _flag_column()

    def __repr__(self) -> str:
        return f"<PlanState {self.website_id} plan={self.plan_id}>"
