"""
Pytest configuration and shared fixtures
"""
import os
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from device_message_bus.config import BusConfig  # noqa: E402

# Stand-in for paho's ReasonCode; providers only read is_failure.
SUCCESS = SimpleNamespace(is_failure=False, value=0)


@pytest.fixture
def mock_env(monkeypatch):
    """Set up mock environment variables"""
    env_vars = {
        'MQTT_HOST': 'test.mqtt.local',
        'MQTT_PORT': '8883',
        'MQTT_TOPIC': 'devices/+/telemetry',
        'MQTT_USERNAME': 'test-user',
        'MQTT_PASSWORD': 'test-password',
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


@pytest.fixture
def bus_config():
    """Provider config with a fixed client id and a short CONNACK wait"""
    return BusConfig(
        mqtt_host="broker.local",
        mqtt_port=8883,
        mqtt_topic="devices/telemetry",
        mqtt_username="user",
        mqtt_password="pw",
        mqtt_client_id="test-client",
        connect_timeout_s=1,
        queue_size=10,
    )


@pytest.fixture
def fake_paho_client(monkeypatch):
    """
    Patch paho.mqtt.client.Client to return a controllable fake.
    connect() acknowledges immediately through the registered on_connect.
    """
    fake = MagicMock()
    fake.is_connected.return_value = True
    fake.subscribe.return_value = (0, 1)  # (rc, mid)
    fake.ctor_kwargs = None

    def _connect(*args, **kwargs):
        fake.on_connect(fake, None, {}, SUCCESS, None)
        return 0

    fake.connect.side_effect = _connect

    def _ctor(*args, **kwargs):
        fake.ctor_kwargs = kwargs
        return fake

    monkeypatch.setattr("paho.mqtt.client.Client", _ctor)
    return fake
