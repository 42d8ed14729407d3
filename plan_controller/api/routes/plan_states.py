import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from plan_controller.api.deps import get_db, require_api_key
from plan_controller.models import PlanState
from plan_controller.schemas import BillingDateUpdateRequest, PlanStateResponse, PlanStateUpsertRequest
from plan_controller.services import plan_state as store
from plan_controller.services.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plan-states", tags=["plan-states"], dependencies=[Depends(require_api_key)])


def serialize_plan_state(plan_state: PlanState) -> PlanStateResponse:
    return PlanStateResponse.model_validate(plan_state)


def storage_failure(exc: StorageError) -> HTTPException:
    logger.error("Storage failure: %s", exc)
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("", response_model=PlanStateResponse)
def upsert_plan_state(payload: PlanStateUpsertRequest, db: Session = Depends(get_db)) -> PlanStateResponse:
    try:
        plan_state = store.upsert_plan_state(
            db,
            payload.website_id,
            payload.plan_id,
            payload.free_trial_start_date,
            payload.next_billing_date,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise storage_failure(exc) from exc
    return serialize_plan_state(plan_state)


@router.get("/{website_id}", response_model=PlanStateResponse)
def show_plan_state(website_id: str, db: Session = Depends(get_db)) -> PlanStateResponse:
    try:
        plan_state = store.get_plan_state(db, website_id)
    except StorageError as exc:
        raise storage_failure(exc) from exc
    if plan_state is None:
        raise HTTPException(status_code=404, detail="Website plan state not found")
    return serialize_plan_state(plan_state)


@router.put("/{website_id}/update-billing-date", response_model=PlanStateResponse)
def update_billing_date(
    website_id: str, payload: BillingDateUpdateRequest, db: Session = Depends(get_db)
) -> PlanStateResponse:
    try:
        plan_state = store.update_billing_date(db, website_id, payload.next_billing_date)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StorageError as exc:
        raise storage_failure(exc) from exc
    return serialize_plan_state(plan_state)
