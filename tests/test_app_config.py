"""
test_app_config.py — Environment-driven configuration defaults
"""

import importlib

import pytest

import config.app_config as app_config_module
from config.app_config import _env_flag

CONFIG_KEYS = [
    "ASTERISK_PORT", "AMI_AUTO_CONNECT", "AMI_ACTION_TIMEOUT_S", "AMI_LIST_QUERY_TIMEOUT_S",
    "DEFAULT_ORIGINATE_CONTEXT", "DEFAULT_CALLER_ID_NAME", "ORIGINATE_RING_TIMEOUT_MS",
    "REDIS_PASSWORD", "AMI_EVENTS_REDIS_ENABLED", "AMI_EVENTS_REDIS_CHANNEL", "WEB_SERVER_PORT",
]


@pytest.fixture
def reload_config(monkeypatch):
    def reload(**env):
        for key in CONFIG_KEYS:
            monkeypatch.delenv(key, raising=False)
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return importlib.reload(app_config_module).AppConfig
    yield reload
    monkeypatch.undo()
    importlib.reload(app_config_module)


class TestEnvFlag:

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", " on "])
    def test_truthy(self, monkeypatch, value):
        monkeypatch.setenv("SOME_FLAG", value)
        assert _env_flag("SOME_FLAG") is True

    @pytest.mark.parametrize("value", ["0", "false", "no", ""])
    def test_falsy(self, monkeypatch, value):
        monkeypatch.setenv("SOME_FLAG", value)
        assert _env_flag("SOME_FLAG") is False

    def test_default(self, monkeypatch):
        monkeypatch.delenv("SOME_FLAG", raising=False)
        assert _env_flag("SOME_FLAG", "true") is True


class TestAppConfig:

    def test_defaults(self, reload_config):
        config = reload_config()
        assert config.ASTERISK_PORT == 5038
        assert config.AMI_AUTO_CONNECT is False
        assert config.AMI_ACTION_TIMEOUT_S == 10
        assert config.AMI_LIST_QUERY_TIMEOUT_S == 10
        assert config.DEFAULT_ORIGINATE_CONTEXT == "from-internal"
        assert config.DEFAULT_CALLER_ID_NAME == "CRM Call"
        assert config.ORIGINATE_RING_TIMEOUT_MS == 30000
        assert config.AMI_EVENTS_REDIS_ENABLED is False
        assert config.AMI_EVENTS_REDIS_CHANNEL == "ami_bridge:events"
        assert config.WEB_SERVER_PORT == 3001

    def test_environment_overrides(self, reload_config):
        config = reload_config(AMI_ACTION_TIMEOUT_S="2.5", ASTERISK_PORT="15038",
                               AMI_EVENTS_REDIS_ENABLED="yes", REDIS_PASSWORD="")
        assert config.AMI_ACTION_TIMEOUT_S == 2.5
        assert config.ASTERISK_PORT == 15038
        assert config.AMI_EVENTS_REDIS_ENABLED is True
        assert config.REDIS_PASSWORD is None
