import logging
import os

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from plan_controller.api.deps import get_db
from plan_controller.config import get_settings
from plan_controller.schemas import DatabaseHealth, HealthResponse, SchedulerHealth, SystemLoad
from plan_controller.utils.time import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def system_load() -> SystemLoad:
    try:
        load_1m, load_5m, load_15m = os.getloadavg()
    except OSError:
        return SystemLoad(cpu_count=os.cpu_count())
    return SystemLoad(
        load_average_1m=load_1m,
        load_average_5m=load_5m,
        load_average_15m=load_15m,
        cpu_count=os.cpu_count(),
    )


@router.get("/health", response_model=HealthResponse)
def health(request: Request, db: Session = Depends(get_db)) -> HealthResponse:
    settings = get_settings()
    database = DatabaseHealth(status="connected")
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Health check database query failed: %s", exc)
        database = DatabaseHealth(status="error", error=str(exc))

    scheduler = getattr(request.app.state, "scheduler", None)
    return HealthResponse(
        service=settings.app_name,
        status="healthy" if database.status == "connected" else "degraded",
        database=database,
        scheduler=SchedulerHealth(
            running=bool(scheduler and scheduler.running),
            interval_minutes=settings.scheduler_interval_minutes,
        ),
        system_load=system_load(),
        timestamp=utcnow(),
    )
