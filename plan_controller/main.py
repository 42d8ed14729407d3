import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from plan_controller.api.routes import health_router, plan_states_router
from plan_controller.config import get_settings
from plan_controller.db import Base, SessionLocal, engine
from plan_controller.services.notifier import Notifier
from plan_controller.services.scheduler import shutdown_scheduler, start_scheduler
from plan_controller.services.shared_config import SharedConfigProvider

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    logger.info("Database connected")
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)

    config_provider = SharedConfigProvider(settings)
    config_provider.refresh()
    app.state.config_provider = config_provider
    app.state.scheduler = None
    if settings.scheduler_enabled:
        app.state.scheduler = start_scheduler(SessionLocal, config_provider, Notifier(settings), settings)
    try:
        yield
    finally:
        shutdown_scheduler(app.state.scheduler)


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())},
    )


app.include_router(plan_states_router)
app.include_router(health_router)
