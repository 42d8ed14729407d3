"""Day-offset threshold evaluation for trial and billing notifications.

Pure functions only: callers pass "now", the configured trial duration and a
plan record, and receive the events whose thresholds were crossed and whose
flags are still unset.

Warnings fire on exact day equality, so a polling interval longer than a day
can step over a warning day and that warning is never sent. The trial-ended
action uses ``<= 0`` and therefore survives missed runs.
"""
import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

DEFAULT_TRIAL_DURATION_DAYS = 14
WARNING_THRESHOLDS = (5, 3, 1)

_SECONDS_PER_DAY = 24 * 60 * 60


class EventKind(str, enum.Enum):
    trial = "free_trial_end"
    billing = "billing"
    trial_ended = "free_trial_ended"


@dataclass(frozen=True)
class WarningEvent:
    kind: EventKind
    website_id: str
    days_until_event: int
    reference_date: date | None
    flag: str


@dataclass(frozen=True)
class TrialEndedEvent:
    website_id: str
    days_remaining: int
    kind: EventKind = EventKind.trial_ended
    flag: str = "trial_ended_action_taken"


PlanEvent = WarningEvent | TrialEndedEvent


class PlanRecord(Protocol):
    website_id: str
    free_trial_start_date: datetime | None
    next_billing_date: datetime | None
    trial_notified_5d: bool
    trial_notified_3d: bool
    trial_notified_1d: bool
    trial_ended_action_taken: bool
    billing_notified_5d: bool
    billing_notified_3d: bool
    billing_notified_1d: bool


def truncate_to_day(value: date | datetime, tz: ZoneInfo | timezone = timezone.utc) -> datetime:
    """Midnight of the calendar day ``value`` falls on in ``tz``.

    Naive datetimes are read as UTC. Plain dates are taken as-is.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        day = value.astimezone(tz).date()
    else:
        day = value
    return datetime.combine(day, time.min, tzinfo=tz)


def days_between(a: date | datetime, b: date | datetime, tz: ZoneInfo | timezone = timezone.utc) -> int:
    """Whole days from ``a`` to ``b``, positive when ``b`` is later.

    Rounded rather than floored so a 23 or 25 hour day across a DST change
    still counts as one.
    """
    delta = truncate_to_day(b, tz) - truncate_to_day(a, tz)
    return round(delta.total_seconds() / _SECONDS_PER_DAY)


def trial_end_date(
    free_trial_start_date: date | datetime,
    trial_duration_days: int,
    tz: ZoneInfo | timezone = timezone.utc,
) -> datetime:
    """Last inclusive day of a trial."""
    if trial_duration_days < 1:
        raise ValueError("trial_duration_days must be positive")
    return truncate_to_day(free_trial_start_date, tz) + timedelta(days=trial_duration_days - 1)


def evaluate_trial(
    plan: PlanRecord,
    now: date | datetime,
    trial_duration_days: int,
    tz: ZoneInfo | timezone = timezone.utc,
) -> list[PlanEvent]:
    if plan.free_trial_start_date is None:
        return []

    end_date = trial_end_date(plan.free_trial_start_date, trial_duration_days, tz)
    days_remaining = days_between(now, end_date, tz)

    events: list[PlanEvent] = []
    for threshold in WARNING_THRESHOLDS:
        flag = f"trial_notified_{threshold}d"
        if days_remaining == threshold and not getattr(plan, flag):
            events.append(
                WarningEvent(
                    kind=EventKind.trial,
                    website_id=plan.website_id,
                    days_until_event=threshold,
                    reference_date=end_date.date(),
                    flag=flag,
                )
            )

    if days_remaining <= 0 and not plan.trial_ended_action_taken:
        events.append(TrialEndedEvent(website_id=plan.website_id, days_remaining=days_remaining))
    return events


def evaluate_billing(
    plan: PlanRecord,
    now: date | datetime,
    tz: ZoneInfo | timezone = timezone.utc,
) -> list[PlanEvent]:
    if plan.next_billing_date is None:
        return []

    billing_day = truncate_to_day(plan.next_billing_date, tz)
    days_until_billing = days_between(now, billing_day, tz)

    events: list[PlanEvent] = []
    for threshold in WARNING_THRESHOLDS:
        flag = f"billing_notified_{threshold}d"
        if days_until_billing == threshold and not getattr(plan, flag):
            events.append(
                WarningEvent(
                    kind=EventKind.billing,
                    website_id=plan.website_id,
                    days_until_event=threshold,
                    reference_date=billing_day.date(),
                    flag=flag,
                )
            )
    return events


def evaluate_plan(
    plan: PlanRecord,
    now: date | datetime,
    trial_duration_days: int = DEFAULT_TRIAL_DURATION_DAYS,
    tz: ZoneInfo | timezone = timezone.utc,
) -> list[PlanEvent]:
    return evaluate_trial(plan, now, trial_duration_days, tz) + evaluate_billing(plan, now, tz)
