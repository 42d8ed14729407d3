import httpx
import pytest

from plan_controller.config import Settings
from plan_controller.services.errors import ConfigUnavailableError
from plan_controller.services.shared_config import SharedConfigProvider, parse_trial_duration


def shared_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
        "SHARED_VARIABLES_SERVICE_URL": "http://shared.test",
        "SHARED_VARIABLES_SERVICE_API_KEY": "shared-key",
        "MAIN_BACKEND_URL": "http://localhost:3000",
    }
    values.update(overrides)
    return Settings(**values)


def variables_transport(values: dict, calls: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        assert request.headers["x-api-key"] == "shared-key"
        name = request.url.path.rsplit("/", 1)[-1]
        if name not in values:
            return httpx.Response(404, json={"status": "error"})
        return httpx.Response(200, json={"status": "success", "value": values[name]})

    return httpx.MockTransport(handler)


def test_refresh_loads_both_values():
    transport = variables_transport({"FREE_TRIAL_DURATION_DAYS": "21", "MAIN_BACKEND_URL": "http://main.test/api/"})
    provider = SharedConfigProvider(shared_settings(), transport=transport)

    snapshot = provider.refresh()

    assert snapshot.trial_duration_days == 21
    assert snapshot.main_backend_url == "http://main.test/api"
    assert snapshot.fetched_at is not None
    assert provider.snapshot == snapshot


def test_refresh_falls_back_to_defaults():
    provider = SharedConfigProvider(shared_settings(), transport=variables_transport({}))

    snapshot = provider.refresh()

    assert snapshot.trial_duration_days == 14
    assert snapshot.main_backend_url == "http://localhost:3000"


def test_trial_duration_keeps_last_known_value_on_failure():
    values = {"FREE_TRIAL_DURATION_DAYS": 10, "MAIN_BACKEND_URL": "http://main.test"}
    provider = SharedConfigProvider(shared_settings(), transport=variables_transport(values))
    provider.refresh()

    values["FREE_TRIAL_DURATION_DAYS"] = "abc"
    assert provider.refresh_trial_duration().trial_duration_days == 10

    del values["FREE_TRIAL_DURATION_DAYS"]
    snapshot = provider.refresh_trial_duration()
    assert snapshot.trial_duration_days == 10
    assert snapshot.main_backend_url == "http://main.test"


def test_refresh_trial_duration_does_not_fetch_backend_url():
    calls: list[httpx.Request] = []
    transport = variables_transport({"FREE_TRIAL_DURATION_DAYS": 7}, calls)
    provider = SharedConfigProvider(shared_settings(), transport=transport)

    provider.refresh_trial_duration()

    assert [request.url.path for request in calls] == ["/variables/FREE_TRIAL_DURATION_DAYS"]


def test_unconfigured_service_uses_defaults_without_requests():
    calls: list[httpx.Request] = []
    settings = shared_settings(SHARED_VARIABLES_SERVICE_URL="", FREE_TRIAL_DURATION_DAYS=30)
    provider = SharedConfigProvider(settings, transport=variables_transport({}, calls))

    assert provider.refresh().trial_duration_days == 30
    assert calls == []


def test_network_failure_falls_back():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    provider = SharedConfigProvider(shared_settings(), transport=httpx.MockTransport(handler))

    assert provider.refresh().trial_duration_days == 14


@pytest.mark.parametrize("value", [0, -3, "x", None, True, 2.5])
def test_parse_trial_duration_rejects_invalid(value):
    with pytest.raises(ConfigUnavailableError):
        parse_trial_duration(value)


@pytest.mark.parametrize("value,expected", [(14, 14), ("30", 30), (7.0, 7)])
def test_parse_trial_duration_accepts_integers(value, expected):
    assert parse_trial_duration(value) == expected


def test_fetch_runs_outside_snapshot_lock():
    lock_states: list[bool] = []
    provider: SharedConfigProvider | None = None

    def handler(request: httpx.Request) -> httpx.Response:
        lock_states.append(provider._lock.locked())
        return httpx.Response(200, json={"status": "success", "value": 9})

    provider = SharedConfigProvider(shared_settings(), transport=httpx.MockTransport(handler))

    assert provider.refresh_trial_duration().trial_duration_days == 9
    assert lock_states == [False]
