import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

import httpx

from plan_controller.config import Settings, get_settings
from plan_controller.services.errors import ConfigUnavailableError
from plan_controller.utils.time import utcnow

logger = logging.getLogger(__name__)

TRIAL_DURATION_VARIABLE = "FREE_TRIAL_DURATION_DAYS"
MAIN_BACKEND_URL_VARIABLE = "MAIN_BACKEND_URL"


@dataclass(frozen=True)
class ConfigSnapshot:
    trial_duration_days: int
    main_backend_url: str | None
    fetched_at: datetime | None = None


def fetch_shared_variable(
    name: str,
    base_url: str | None,
    api_key: str | None,
    timeout_seconds: float,
    transport: httpx.BaseTransport | None = None,
) -> Any:
    if not base_url or not api_key:
        raise ConfigUnavailableError("Shared variables service URL or API key not configured")

    url = f"{base_url.rstrip('/')}/variables/{name}"
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_seconds), transport=transport) as client:
            response = client.get(url, headers={"x-api-key": api_key})
    except httpx.RequestError as exc:
        raise ConfigUnavailableError(f"Shared variable {name} request failed: {exc}") from exc

    if response.status_code >= 400:
        raise ConfigUnavailableError(f"Shared variable {name} returned {response.status_code}")
    try:
        payload = response.json()
    except ValueError as exc:
        raise ConfigUnavailableError(f"Shared variable {name} returned invalid JSON") from exc

    if not isinstance(payload, dict) or payload.get("status") != "success" or payload.get("value") is None:
        raise ConfigUnavailableError(f"Shared variable {name} not found or invalid response")
    return payload["value"]


def parse_trial_duration(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigUnavailableError(f"Invalid trial duration: {value!r}")
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigUnavailableError(f"Invalid trial duration: {value!r}") from exc
    if days < 1 or (isinstance(value, float) and not value.is_integer()):
        raise ConfigUnavailableError(f"Invalid trial duration: {value!r}")
    return days


class SharedConfigProvider:
    """Holds the last-known configuration snapshot and refreshes it on demand.

    Failed fetches keep the previous value, which starts out as the settings
    defaults.
    """

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._lock = threading.Lock()
        self._snapshot = ConfigSnapshot(
            trial_duration_days=self.settings.default_trial_duration_days,
            main_backend_url=self.settings.default_main_backend_url or None,
        )

    @property
    def snapshot(self) -> ConfigSnapshot:
        return self._snapshot

    def _fetch(self, name: str) -> Any:
        return fetch_shared_variable(
            name,
            self.settings.shared_variables_url,
            self.settings.shared_variables_api_key,
            self.settings.shared_variables_timeout_seconds,
            transport=self._transport,
        )

    def _fetch_trial_duration(self) -> int | None:
        try:
            return parse_trial_duration(self._fetch(TRIAL_DURATION_VARIABLE))
        except ConfigUnavailableError as exc:
            logger.warning(
                "Using last known %s=%s: %s",
                TRIAL_DURATION_VARIABLE,
                self._snapshot.trial_duration_days,
                exc,
            )
            return None

    def _fetch_main_backend_url(self) -> str | None:
        try:
            value = self._fetch(MAIN_BACKEND_URL_VARIABLE)
        except ConfigUnavailableError as exc:
            logger.warning(
                "Using last known %s=%s: %s",
                MAIN_BACKEND_URL_VARIABLE,
                self._snapshot.main_backend_url,
                exc,
            )
            return None
        if not isinstance(value, str) or not value.strip():
            logger.warning("Ignoring invalid %s value %r", MAIN_BACKEND_URL_VARIABLE, value)
            return None
        return value.strip().rstrip("/")

    def refresh(self) -> ConfigSnapshot:
        trial_duration_days = self._fetch_trial_duration()
        main_backend_url = self._fetch_main_backend_url()
        with self._lock:
            current = self._snapshot
            self._snapshot = ConfigSnapshot(
                trial_duration_days=trial_duration_days or current.trial_duration_days,
                main_backend_url=main_backend_url or current.main_backend_url,
                fetched_at=utcnow(),
            )
            snapshot = self._snapshot
        logger.info(
            "Shared configuration loaded: trial_duration_days=%s main_backend_url=%s",
            snapshot.trial_duration_days,
            snapshot.main_backend_url,
        )
        return snapshot

    def refresh_trial_duration(self) -> ConfigSnapshot:
        trial_duration_days = self._fetch_trial_duration()
        with self._lock:
            current = self._snapshot
            self._snapshot = replace(
                current,
                trial_duration_days=trial_duration_days or current.trial_duration_days,
                fetched_at=utcnow(),
            )
            return self._snapshot
