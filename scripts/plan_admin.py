import argparse
import logging
from datetime import date

from plan_controller.config import get_settings
from plan_controller.db import SessionLocal
from plan_controller.models import NOTIFICATION_FLAGS, PlanState
from plan_controller.services import plan_state as store
from plan_controller.services.notifier import Notifier
from plan_controller.services.scheduler import run_scheduler_pass
from plan_controller.services.shared_config import SharedConfigProvider


def format_date(value) -> str:
    return value.isoformat() if value else "-"


def print_plan_state(plan_state: PlanState) -> None:
    print(f"website_id: {plan_state.website_id}")
    print(f"plan_id: {plan_state.plan_id}")
    print(f"free_trial_start_date: {format_date(plan_state.free_trial_start_date)}")
    print(f"next_billing_date: {format_date(plan_state.next_billing_date)}")
    print(f"updated_at: {format_date(plan_state.updated_at)}")
    for flag in NOTIFICATION_FLAGS:
        print(f"{flag}: {getattr(plan_state, flag)}")


def list_plan_states(db) -> int:
    plan_states = db.query(PlanState).order_by(PlanState.website_id.asc()).all()
    if not plan_states:
        print("No plan states found")
        return 0
    for plan_state in plan_states:
        print(
            f"{plan_state.website_id}\t{plan_state.plan_id}\t"
            f"{format_date(plan_state.free_trial_start_date)}\t{format_date(plan_state.next_billing_date)}"
        )
    return 0


def show_plan_state(db, website_id: str) -> int:
    plan_state = store.get_plan_state(db, website_id)
    if not plan_state:
        print("Plan state not found")
        return 1
    print_plan_state(plan_state)
    return 0


def clear_trial(db, website_id: str) -> int:
    if not store.clear_trial(db, website_id):
        print("Plan state not found")
        return 1
    print("Free trial cleared")
    return 0


def run_pass(today: date | None) -> int:
    settings = get_settings()
    config_provider = SharedConfigProvider(settings)
    config_provider.refresh()
    summary = run_scheduler_pass(SessionLocal, config_provider, Notifier(settings), now=today, settings=settings)
    print(
        f"plans: {summary.plans_seen}\tevents: {summary.events_dispatched}\t"
        f"flags: {summary.flags_written}\tfailures: {len(summary.failed_plans)}"
    )
    for website_id in summary.failed_plans:
        print(f"failed: {website_id}")
    return 1 if summary.failed_plans else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plan state administration")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list")

    show_parser = subparsers.add_parser("show")
    show_parser.add_argument("--website-id", required=True)

    clear_parser = subparsers.add_parser("clear-trial")
    clear_parser.add_argument("--website-id", required=True)

    run_parser = subparsers.add_parser("run-pass")
    run_parser.add_argument("--today", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=get_settings().log_level)

    if args.command == "run-pass":
        return run_pass(args.today)

    db = SessionLocal()
    try:
        if args.command == "list":
            return list_plan_states(db)
        if args.command == "show":
            return show_plan_state(db, args.website_id)
        if args.command == "clear-trial":
            return clear_trial(db, args.website_id)
        print("Unknown command")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
