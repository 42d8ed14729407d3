"""Periodic pass over all plan states.

A pass loads every plan, evaluates thresholds, dispatches the resulting
events and writes back the flags of dispatched events. Plans are processed
independently; one failing plan is logged and the pass moves on.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from plan_controller.config import Settings, get_settings
from plan_controller.models import PlanState
from plan_controller.services import plan_state as store
from plan_controller.services.errors import PlanControllerError
from plan_controller.services.notifier import DispatchOutcome, Notifier
from plan_controller.services.shared_config import ConfigSnapshot, SharedConfigProvider
from plan_controller.services.thresholds import EventKind, evaluate_plan
from plan_controller.utils.time import utcnow

logger = logging.getLogger(__name__)

JOB_ID = "plan_state_check"


@dataclass
class PassSummary:
    plans_seen: int = 0
    events_dispatched: int = 0
    flags_written: int = 0
    failed_plans: list[str] = field(default_factory=list)


def _should_flag(outcome: DispatchOutcome, flag_on_attempt: bool) -> bool:
    if outcome == DispatchOutcome.delivered:
        return True
    return outcome == DispatchOutcome.failed and flag_on_attempt


def process_plan(
    plan: PlanState,
    session_factory: Callable[[], Session],
    config: ConfigSnapshot,
    notifier: Notifier,
    now: date | datetime,
    settings: Settings,
) -> tuple[int, int]:
    """Evaluate and dispatch one plan. Returns (events dispatched, flags written)."""
    tz = ZoneInfo(settings.scheduler_timezone)
    events = evaluate_plan(plan, now, config.trial_duration_days, tz)
    logger.debug("Website %s: %d event(s) due", plan.website_id, len(events))
    if not events:
        return 0, 0

    flags: list[str] = []
    downgrade_delivered = False
    for event in events:
        outcome = notifier.dispatch(config, event)
        if _should_flag(outcome, settings.flag_on_attempt):
            flags.append(event.flag)
        if event.kind == EventKind.trial_ended and outcome == DispatchOutcome.delivered:
            downgrade_delivered = True

    if flags:
        db = session_factory()
        try:
            store.update_flags(db, plan.website_id, flags)
        finally:
            db.close()

    if downgrade_delivered and settings.clear_trial_after_downgrade:
        db = session_factory()
        try:
            store.clear_trial(db, plan.website_id)
        except PlanControllerError as exc:
            logger.warning("Could not clear free trial for website %s: %s", plan.website_id, exc)
        finally:
            db.close()

    return len(events), len(flags)


def run_scheduler_pass(
    session_factory: Callable[[], Session],
    config_provider: SharedConfigProvider,
    notifier: Notifier,
    now: date | datetime | None = None,
    settings: Settings | None = None,
) -> PassSummary:
    settings = settings or get_settings()
    now = now or utcnow()
    config = config_provider.refresh_trial_duration()
    logger.info(
        "Running plan state check at %s (trial duration %s days, main backend %s)",
        now.isoformat(),
        config.trial_duration_days,
        config.main_backend_url,
    )

    db = session_factory()
    try:
        plans = store.get_all_plan_states(db)
        db.expunge_all()
    finally:
        db.close()

    summary = PassSummary(plans_seen=len(plans))
    for plan in plans:
        try:
            dispatched, written = process_plan(plan, session_factory, config, notifier, now, settings)
        except Exception:
            logger.exception("Failed to process plan state for website %s", plan.website_id)
            summary.failed_plans.append(plan.website_id)
            continue
        summary.events_dispatched += dispatched
        summary.flags_written += written

    logger.info(
        "Plan state check finished: %d plan(s), %d event(s), %d flag(s), %d failure(s)",
        summary.plans_seen,
        summary.events_dispatched,
        summary.flags_written,
        len(summary.failed_plans),
    )
    return summary


def scheduled_plan_check(
    session_factory: Callable[[], Session],
    config_provider: SharedConfigProvider,
    notifier: Notifier,
    settings: Settings,
) -> None:
    try:
        run_scheduler_pass(session_factory, config_provider, notifier, settings=settings)
    except Exception:
        logger.exception("Plan state check failed")


def start_scheduler(
    session_factory: Callable[[], Session],
    config_provider: SharedConfigProvider,
    notifier: Notifier,
    settings: Settings | None = None,
) -> BackgroundScheduler | None:
    """Start the interval job; the first pass runs immediately."""
    settings = settings or get_settings()
    interval = settings.scheduler_interval_minutes
    if interval <= 0:
        logger.error("Invalid SCHEDULER_INTERVAL_MINUTES=%s. Scheduler will not start.", interval)
        return None

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)
    scheduler.add_job(
        scheduled_plan_check,
        trigger=IntervalTrigger(minutes=interval),
        args=(session_factory, config_provider, notifier, settings),
        id=JOB_ID,
        name="Plan state notification check",
        replace_existing=True,
        max_instances=settings.scheduler_max_instances,
        next_run_time=utcnow(),
    )
    scheduler.start()
    logger.info("Scheduler started; plan state check runs every %d minute(s)", interval)
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler | None) -> None:
    if scheduler is None or not scheduler.running:
        return
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
