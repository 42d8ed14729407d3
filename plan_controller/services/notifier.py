import enum
import logging
from datetime import date
from typing import Any

import httpx

from plan_controller.config import Settings, get_settings
from plan_controller.services.errors import NotificationDispatchError
from plan_controller.services.shared_config import ConfigSnapshot
from plan_controller.services.thresholds import EventKind, PlanEvent, TrialEndedEvent, WarningEvent

logger = logging.getLogger(__name__)


class DispatchOutcome(str, enum.Enum):
    delivered = "delivered"
    failed = "failed"
    skipped = "skipped"


class Notifier:
    """Best-effort calls to the main backend. Never raises to the caller."""

    def __init__(self, settings: Settings | None = None, transport: httpx.BaseTransport | None = None) -> None:
        settings = settings or get_settings()
        self.api_key = settings.main_service_api_key
        self.auth_header = settings.main_service_auth_header
        self.timeout = httpx.Timeout(settings.notify_timeout_seconds)
        self._transport = transport

    def _request(self, method: str, url: str, json_body: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json", self.auth_header: self.api_key or ""}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, url, json=json_body, headers=headers)
        except httpx.RequestError as exc:
            raise NotificationDispatchError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise NotificationDispatchError(
                f"Main backend returned {response.status_code} for {url}: {response.text[:200]}"
            )
        return response

    def _missing_config(self, config: ConfigSnapshot, description: str) -> bool:
        if not config.main_backend_url:
            logger.error("Cannot send %s: main backend URL not configured", description)
            return True
        if not self.api_key:
            logger.error("Cannot send %s: MAIN_SERVICE_API_KEY not configured", description)
            return True
        return False

    def send_warning(
        self,
        config: ConfigSnapshot,
        website_id: str,
        kind: EventKind,
        days_until_event: int,
        reference_date: date | None = None,
    ) -> DispatchOutcome:
        description = f"{kind.value} warning for website {website_id}"
        if self._missing_config(config, description):
            return DispatchOutcome.skipped

        url = f"{config.main_backend_url.rstrip('/')}/websites/{website_id}/payment-warning"
        body = {
            "type": kind.value,
            "daysUntilEvent": days_until_event,
            "nextBillingDate": reference_date.isoformat()
            if kind == EventKind.billing and reference_date is not None
            else None,
        }
        try:
            self._request("POST", url, body)
        except NotificationDispatchError as exc:
            logger.error("Failed to send %s: %s", description, exc)
            return DispatchOutcome.failed

        logger.info("Sent %s (%s days)", description, days_until_event)
        return DispatchOutcome.delivered

    def send_trial_ended_action(self, config: ConfigSnapshot, website_id: str) -> DispatchOutcome:
        description = f"free trial ended action for website {website_id}"
        if self._missing_config(config, description):
            return DispatchOutcome.skipped

        url = f"{config.main_backend_url.rstrip('/')}/websites/{website_id}/free-trial-ended"
        try:
            self._request("PUT", url, {})
        except NotificationDispatchError as exc:
            logger.error("Failed to send %s: %s", description, exc)
            return DispatchOutcome.failed

        logger.info("Sent %s", description)
        return DispatchOutcome.delivered

    def dispatch(self, config: ConfigSnapshot, event: PlanEvent) -> DispatchOutcome:
        if isinstance(event, TrialEndedEvent):
            return self.send_trial_ended_action(config, event.website_id)
        if isinstance(event, WarningEvent):
            return self.send_warning(
                config, event.website_id, event.kind, event.days_until_event, event.reference_date
            )
        raise TypeError(f"Unsupported event {event!r}")
