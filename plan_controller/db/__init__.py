from plan_controller.db.base import Base
from plan_controller.db.session import SessionLocal, build_engine, engine

__all__ = ["Base", "SessionLocal", "build_engine", "engine"]
