from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PlanStateUpsertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    website_id: str = Field(..., min_length=1, max_length=255, alias="websiteId")
    plan_id: str = Field(..., min_length=1, max_length=255, alias="planId")
    free_trial_start_date: Any = Field(default=None, alias="freeTrialStartDate")
    next_billing_date: Any = Field(default=None, alias="nextBillingDate")


class BillingDateUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    next_billing_date: Any = Field(default=None, alias="nextBillingDate")


class PlanStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    website_id: str = Field(alias="websiteId")
    plan_id: str = Field(alias="planId")
    free_trial_start_date: datetime | None = Field(alias="freeTrialStartDate")
    next_billing_date: datetime | None = Field(alias="nextBillingDate")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    last_scheduler_run: datetime | None = Field(default=None, alias="lastSchedulerRun")
    trial_notified_5d: bool = Field(alias="trialNotified5d")
    trial_notified_3d: bool = Field(alias="trialNotified3d")
    trial_notified_1d: bool = Field(alias="trialNotified1d")
    trial_ended_action_taken: bool = Field(alias="trialEndedActionTaken")
    billing_notified_5d: bool = Field(alias="billingNotified5d")
    billing_notified_3d: bool = Field(alias="billingNotified3d")
    billing_notified_1d: bool = Field(alias="billingNotified1d")
