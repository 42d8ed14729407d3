from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Plan Controller Service", alias="APP_NAME")
    database_url: str = Field(alias="DATABASE_URL")
    auto_create_tables: bool = Field(default=False, alias="AUTO_CREATE_TABLES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    api_key: str | None = Field(default=None, alias="PLAN_CONTROLLER_API_KEY")

    main_service_api_key: str | None = Field(default=None, alias="MAIN_SERVICE_API_KEY")
    main_service_auth_header: str = Field(default="x-main-service-api-key", alias="MAIN_SERVICE_AUTH_HEADER")
    default_main_backend_url: str = Field(default="http://localhost:3000", alias="MAIN_BACKEND_URL")
    notify_timeout_seconds: float = Field(default=10, alias="NOTIFY_TIMEOUT_SECONDS")

    default_trial_duration_days: int = Field(default=14, ge=1, alias="FREE_TRIAL_DURATION_DAYS")
    shared_variables_url: str | None = Field(default=None, alias="SHARED_VARIABLES_SERVICE_URL")
    shared_variables_api_key: str | None = Field(default=None, alias="SHARED_VARIABLES_SERVICE_API_KEY")
    shared_variables_timeout_seconds: float = Field(default=5, alias="SHARED_VARIABLES_TIMEOUT_SECONDS")

    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_interval_minutes: int = Field(default=60, alias="SCHEDULER_INTERVAL_MINUTES")
    scheduler_max_instances: int = Field(default=3, ge=1, alias="SCHEDULER_MAX_INSTANCES")
    scheduler_timezone: str = Field(default="UTC", alias="SCHEDULER_TIMEZONE")
    flag_on_attempt: bool = Field(default=True, alias="FLAG_ON_ATTEMPT")
    clear_trial_after_downgrade: bool = Field(default=True, alias="CLEAR_TRIAL_AFTER_DOWNGRADE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
