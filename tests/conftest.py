import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PLAN_CONTROLLER_API_KEY", "test-api-key")
os.environ.setdefault("MAIN_SERVICE_API_KEY", "test-main-service-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from plan_controller.config import Settings
from plan_controller.db.base import Base
from plan_controller.models import PlanState


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+pysqlite:///:memory:",
        MAIN_SERVICE_API_KEY="test-main-service-key",
        MAIN_BACKEND_URL="http://main.test/api",
        SCHEDULER_ENABLED=False,
    )


def make_plan(website_id: str = "site-1", **overrides) -> PlanState:
    values = {
        "website_id": website_id,
        "plan_id": "pro",
        "free_trial_start_date": None,
        "next_billing_date": None,
        "trial_notified_5d": False,
        "trial_notified_3d": False,
        "trial_notified_1d": False,
        "trial_ended_action_taken": False,
        "billing_notified_5d": False,
        "billing_notified_3d": False,
        "billing_notified_1d": False,
    }
    values.update(overrides)
    return PlanState(**values)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)
