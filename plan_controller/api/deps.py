import hmac
from collections.abc import Iterator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from plan_controller.config import get_settings
from plan_controller.db import SessionLocal

settings = get_settings()


def get_db() -> Iterator[Session]:
    with SessionLocal() as db:
        yield db


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    if not settings.api_key:
        raise HTTPException(status_code=503, detail="API key not configured")
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid or missing API key")
