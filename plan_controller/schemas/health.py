from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DatabaseHealth(BaseModel):
    status: str
    error: str | None = None


class SchedulerHealth(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    running: bool
    interval_minutes: int = Field(alias="intervalMinutes")


class SystemLoad(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    load_average_1m: float | None = Field(default=None, alias="loadAverage1m")
    load_average_5m: float | None = Field(default=None, alias="loadAverage5m")
    load_average_15m: float | None = Field(default=None, alias="loadAverage15m")
    cpu_count: int | None = Field(default=None, alias="cpuCount")


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: str
    status: str
    database: DatabaseHealth
    scheduler: SchedulerHealth
    system_load: SystemLoad = Field(alias="systemLoad")
    timestamp: datetime
