"""Persistence for per-website plan state and its notification flags.

Every function takes an open session and commits its own change. Database
failures are rolled back and re-raised as ``StorageError``.
"""
import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from plan_controller.config import get_settings
from plan_controller.models import BILLING_FLAGS, NOTIFICATION_FLAGS, TRIAL_FLAGS, PlanState
from plan_controller.services.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)


def parse_plan_date(value: Any, field_name: str, tz: ZoneInfo | None = None) -> datetime:
    """Parse an API date into an aware UTC timestamp.

    Date-only values are calendar days and are anchored at midnight in the
    scheduler timezone. Naive datetimes are read as UTC.
    """
    tz = tz or ZoneInfo(get_settings().scheduler_timezone)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min, tzinfo=tz)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            if "T" not in text and " " not in text:
                parsed = datetime.combine(date.fromisoformat(text), time.min, tzinfo=tz)
            else:
                parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid {field_name} format") from exc
    else:
        raise ValidationError(f"Invalid {field_name} format")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _reset_flags(plan_state: PlanState, flags: Iterable[str]) -> None:
    for flag in flags:
        setattr(plan_state, flag, False)


def _commit(db: Session, action: str, website_id: str | None) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to %s for website %s: %s", action, website_id, exc)
        raise StorageError(f"Failed to {action}") from exc


def get_plan_state(db: Session, website_id: str) -> PlanState | None:
    try:
        return db.get(PlanState, website_id, populate_existing=True)
    except SQLAlchemyError as exc:
        logger.error("Failed to load plan state for website %s: %s", website_id, exc)
        raise StorageError("Failed to retrieve plan state") from exc


def get_all_plan_states(db: Session) -> list[PlanState]:
    try:
        return db.query(PlanState).all()
    except SQLAlchemyError as exc:
        logger.error("Failed to load plan states: %s", exc)
        raise StorageError("Failed to retrieve plan states") from exc


def _apply_plan_fields(
    plan_state: PlanState, plan_id: str, trial_start: datetime | None, billing_date: datetime
) -> None:
    plan_state.plan_id = plan_id
    plan_state.free_trial_start_date = trial_start
    plan_state.next_billing_date = billing_date
    plan_state.last_scheduler_run = None
    _reset_flags(plan_state, NOTIFICATION_FLAGS)


def upsert_plan_state(
    db: Session,
    website_id: str,
    plan_id: str,
    free_trial_start_date: Any,
    next_billing_date: Any,
    tz: ZoneInfo | None = None,
) -> PlanState:
    """Create or replace the tracked dates of a website and restart its notification cycle."""
    if not website_id or not plan_id:
        raise ValidationError("Missing required fields: websiteId, planId, nextBillingDate")
    if next_billing_date is None or next_billing_date == "":
        raise ValidationError("Missing required fields: websiteId, planId, nextBillingDate")

    billing_date = parse_plan_date(next_billing_date, "nextBillingDate", tz)
    trial_start = None
    if free_trial_start_date is not None and free_trial_start_date != "":
        trial_start = parse_plan_date(free_trial_start_date, "freeTrialStartDate", tz)

    plan_state = get_plan_state(db, website_id)
    created = plan_state is None
    if created:
        plan_state = PlanState(website_id=website_id)
        db.add(plan_state)
    _apply_plan_fields(plan_state, plan_id, trial_start, billing_date)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not created:
            logger.error("Failed to upsert plan state for website %s: %s", website_id, exc)
            raise StorageError("Failed to upsert plan state") from exc
        # Another writer inserted the row first; apply this upsert as an update.
        logger.info("Plan state for website %s was created concurrently; updating it", website_id)
        plan_state = get_plan_state(db, website_id)
        if plan_state is None:
            raise StorageError("Failed to upsert plan state") from exc
        _apply_plan_fields(plan_state, plan_id, trial_start, billing_date)
        _commit(db, "upsert plan state", website_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to upsert plan state for website %s: %s", website_id, exc)
        raise StorageError("Failed to upsert plan state") from exc

    db.refresh(plan_state)
    logger.info("Upserted plan state for website %s; notification flags reset", website_id)
    return plan_state


def update_billing_date(
    db: Session, website_id: str, next_billing_date: Any, tz: ZoneInfo | None = None
) -> PlanState:
    if next_billing_date is None or next_billing_date == "":
        raise ValidationError("Missing required field: nextBillingDate")
    billing_date = parse_plan_date(next_billing_date, "nextBillingDate", tz)

    plan_state = get_plan_state(db, website_id)
    if plan_state is None:
        raise NotFoundError("Website plan state not found")

    plan_state.next_billing_date = billing_date
    _reset_flags(plan_state, BILLING_FLAGS)

    _commit(db, "update next billing date", website_id)
    db.refresh(plan_state)
    logger.info("Updated next billing date for website %s; billing flags reset", website_id)
    return plan_state


def update_flags(db: Session, website_id: str, flags: Iterable[str]) -> None:
    """Set the named notification flags to true. Flags are never cleared here."""
    flag_names = sorted(set(flags))
    unknown = [flag for flag in flag_names if flag not in NOTIFICATION_FLAGS]
    if unknown:
        raise ValueError(f"Unknown notification flags: {', '.join(unknown)}")
    if not flag_names:
        return

    values: dict[Any, Any] = {getattr(PlanState, flag): True for flag in flag_names}
    values[PlanState.updated_at] = func.now()
    try:
        updated = (
            db.query(PlanState)
            .filter(PlanState.website_id == website_id)
            .update(values, synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to update notification flags for website %s: %s", website_id, exc)
        raise StorageError("Failed to update notification flags") from exc

    if not updated:
        db.rollback()
        raise NotFoundError("Website plan state not found")

    _commit(db, "update notification flags", website_id)
    logger.info("Updated notification flags for website %s: %s", website_id, ", ".join(flag_names))


def clear_trial(db: Session, website_id: str) -> bool:
    values: dict[Any, Any] = {getattr(PlanState, flag): False for flag in TRIAL_FLAGS}
    values[PlanState.free_trial_start_date] = None
    values[PlanState.updated_at] = func.now()
    try:
        updated = (
            db.query(PlanState)
            .filter(PlanState.website_id == website_id)
            .update(values, synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to clear free trial for website %s: %s", website_id, exc)
        raise StorageError("Failed to clear free trial") from exc

    _commit(db, "clear free trial", website_id)
    if updated:
        logger.info("Cleared free trial and reset trial flags for website %s", website_id)
    return bool(updated)
