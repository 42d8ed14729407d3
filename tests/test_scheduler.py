from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from conftest import utc
from plan_controller.config import Settings
from plan_controller.models import PlanState
from plan_controller.services import plan_state as store
from plan_controller.services.notifier import DispatchOutcome, Notifier
from plan_controller.services.scheduler import run_scheduler_pass, shutdown_scheduler, start_scheduler
from plan_controller.services.shared_config import SharedConfigProvider
from plan_controller.services.thresholds import EventKind


class FakeNotifier:
    def __init__(self, outcome: DispatchOutcome = DispatchOutcome.delivered, failing_sites=()):
        self.outcome = outcome
        self.failing_sites = set(failing_sites)
        self.events = []

    def dispatch(self, config, event):
        if event.website_id in self.failing_sites:
            raise RuntimeError("boom")
        self.events.append(event)
        return self.outcome


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
        "MAIN_BACKEND_URL": "http://main.test",
        "SCHEDULER_ENABLED": False,
    }
    values.update(overrides)
    return Settings(**values)


def reload(session_factory, website_id: str) -> PlanState | None:
    db = session_factory()
    try:
        return store.get_plan_state(db, website_id)
    finally:
        db.close()


def seed(session_factory, website_id: str, trial_start, billing_date, tz=None) -> None:
    db = session_factory()
    try:
        store.upsert_plan_state(db, website_id, "pro", trial_start, billing_date, tz=tz)
    finally:
        db.close()


def run(session_factory, notifier, now, settings=None):
    settings = settings or make_settings()
    return run_scheduler_pass(
        session_factory,
        SharedConfigProvider(settings),
        notifier,
        now=now,
        settings=settings,
    )


def test_warning_dispatched_once_across_passes(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    notifier = FakeNotifier()

    first = run(session_factory, notifier, utc(2024, 1, 9, 6))
    second = run(session_factory, notifier, utc(2024, 1, 9, 18))

    assert [(event.kind, event.days_until_event) for event in notifier.events] == [(EventKind.trial, 5)]
    assert first.events_dispatched == 1
    assert first.flags_written == 1
    assert second.events_dispatched == 0
    assert reload(session_factory, "site-1").trial_notified_5d is True


def test_billing_warning_sets_billing_flag(session_factory):
    seed(session_factory, "site-1", None, "2024-03-10")
    notifier = FakeNotifier()

    run(session_factory, notifier, utc(2024, 3, 7))
    run(session_factory, notifier, utc(2024, 3, 7))

    assert len(notifier.events) == 1
    assert reload(session_factory, "site-1").billing_notified_3d is True


def test_delivered_downgrade_clears_trial(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    notifier = FakeNotifier()

    run(session_factory, notifier, utc(2024, 1, 25))
    run(session_factory, notifier, utc(2024, 1, 26))

    assert [event.kind for event in notifier.events] == [EventKind.trial_ended]
    plan_state = reload(session_factory, "site-1")
    assert plan_state.free_trial_start_date is None
    assert plan_state.trial_ended_action_taken is False


def test_downgrade_flag_kept_when_trial_not_cleared(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    settings = make_settings(CLEAR_TRIAL_AFTER_DOWNGRADE=False)
    notifier = FakeNotifier()

    run(session_factory, notifier, utc(2024, 1, 14), settings)
    run(session_factory, notifier, utc(2024, 1, 15), settings)

    assert len(notifier.events) == 1
    plan_state = reload(session_factory, "site-1")
    assert plan_state.trial_ended_action_taken is True
    assert plan_state.free_trial_start_date is not None


@pytest.mark.parametrize("flag_on_attempt,expected", [(True, True), (False, False)])
def test_failed_dispatch_flag_policy(session_factory, flag_on_attempt, expected):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    settings = make_settings(FLAG_ON_ATTEMPT=flag_on_attempt)

    run(session_factory, FakeNotifier(DispatchOutcome.failed), utc(2024, 1, 11), settings)

    assert reload(session_factory, "site-1").trial_notified_3d is expected


def test_skipped_dispatch_never_sets_flag(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")

    summary = run(session_factory, FakeNotifier(DispatchOutcome.skipped), utc(2024, 1, 13))

    assert summary.events_dispatched == 1
    assert summary.flags_written == 0
    assert reload(session_factory, "site-1").trial_notified_1d is False


def test_failing_plan_does_not_abort_pass(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    seed(session_factory, "site-2", "2024-01-01", "2024-06-01")
    notifier = FakeNotifier(failing_sites={"site-1"})

    summary = run(session_factory, notifier, utc(2024, 1, 9))

    assert summary.plans_seen == 2
    assert summary.failed_plans == ["site-1"]
    assert [event.website_id for event in notifier.events] == ["site-2"]
    assert reload(session_factory, "site-2").trial_notified_5d is True
    assert reload(session_factory, "site-1").trial_notified_5d is False


def test_skipped_thresholds_all_fire_in_one_pass(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-01-10")
    notifier = FakeNotifier()

    run(session_factory, notifier, utc(2024, 1, 9))

    plan_state = reload(session_factory, "site-1")
    assert plan_state.trial_notified_5d is True
    assert plan_state.billing_notified_1d is True


def test_trial_duration_from_config_snapshot(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    notifier = FakeNotifier()

    run(session_factory, notifier, utc(2024, 1, 2), make_settings(FREE_TRIAL_DURATION_DAYS=7))

    assert [event.days_until_event for event in notifier.events] == [5]


def test_start_scheduler_rejects_invalid_interval(session_factory):
    settings = make_settings(SCHEDULER_INTERVAL_MINUTES=0)

    scheduler = start_scheduler(session_factory, SharedConfigProvider(settings), FakeNotifier(), settings)

    assert scheduler is None
    shutdown_scheduler(scheduler)


def test_redirected_downgrade_keeps_trial(session_factory):
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01")
    settings = make_settings(FLAG_ON_ATTEMPT=False)
    transport = httpx.MockTransport(lambda request: httpx.Response(302, headers={"Location": "http://login.test/"}))

    run(session_factory, Notifier(settings, transport=transport), utc(2024, 1, 20), settings)

    plan_state = reload(session_factory, "site-1")
    assert plan_state.free_trial_start_date is not None
    assert plan_state.trial_ended_action_taken is False


def test_trial_warning_uses_scheduler_timezone(session_factory):
    new_york = ZoneInfo("America/New_York")
    settings = make_settings(SCHEDULER_TIMEZONE="America/New_York")
    seed(session_factory, "site-1", "2024-01-01", "2024-06-01", tz=new_york)
    notifier = FakeNotifier()

    run(session_factory, notifier, datetime(2024, 1, 9, 22, tzinfo=new_york), settings)

    assert [(event.kind, event.days_until_event) for event in notifier.events] == [(EventKind.trial, 5)]


def test_billing_warning_uses_scheduler_timezone(session_factory):
    new_york = ZoneInfo("America/New_York")
    settings = make_settings(SCHEDULER_TIMEZONE="America/New_York")
    seed(session_factory, "site-1", None, "2024-03-10", tz=new_york)
    notifier = FakeNotifier()

    run(session_factory, notifier, datetime(2024, 3, 7, 12, tzinfo=new_york), settings)
    run(session_factory, notifier, datetime(2024, 3, 7, 23, tzinfo=new_york), settings)

    assert [(event.kind, event.days_until_event) for event in notifier.events] == [(EventKind.billing, 3)]
    assert reload(session_factory, "site-1").billing_notified_3d is True
