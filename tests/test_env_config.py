from alertcore.config.env import AlertcoreEnv
from alertcore.gateway.memory import MemoryNotificationGateway
from alertcore.gateway.pushover import PushoverNotificationGateway
from alertcore.main import _build_gateway


def test_defaults(monkeypatch):
    for name in (
        "ALERTCORE_PLATFORM",
        "ALERTCORE_GATEWAY",
        "ALERTCORE_QUEUE_INTERVAL",
        "ALERTCORE_HISTORY_LIMIT",
        "DATABASE_URL",
        "SETTINGS_ENC_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    env = AlertcoreEnv.from_env()
    assert env.platform == "ios"
    assert env.gateway == "memory"
    assert env.queue_interval == 0.1
    assert env.history_limit == 100
    assert env.database_url is None


def test_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("ALERTCORE_PLATFORM", " Android ")
    monkeypatch.setenv("ALERTCORE_QUEUE_INTERVAL", "-2")
    monkeypatch.setenv("ALERTCORE_HISTORY_LIMIT", "lots")
    monkeypatch.setenv("DB_INIT", "no")
    env = AlertcoreEnv.from_env()
    assert env.platform == "android"
    assert env.queue_interval == 0.0
    assert env.history_limit == 100
    assert env.db_init is False


def test_gateway_selection():
    assert isinstance(_build_gateway(AlertcoreEnv()), MemoryNotificationGateway)
    # missing credentials fall back to dry-run delivery
    assert isinstance(_build_gateway(AlertcoreEnv(gateway="pushover")), MemoryNotificationGateway)
    gw = _build_gateway(
        AlertcoreEnv(gateway="pushover", pushover_api_token="t", pushover_user_key="u")
    )
    assert isinstance(gw, PushoverNotificationGateway)
