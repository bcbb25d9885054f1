from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

import device_message_bus.main as m
from device_message_bus.config import BusConfig, ConfigError
from device_message_bus.providers.mqtt import MqttMessageProvider
from device_message_bus.providers.simulated import SimulatedMessageProvider


def _cfg(provider: str = "mqtt") -> BusConfig:
    return BusConfig(
        mqtt_host="localhost",
        mqtt_port=8883,
        mqtt_topic="devices/telemetry",
        provider=provider,
    )


def _fake_provider(connected: bool) -> MagicMock:
    fake = MagicMock(spec=MqttMessageProvider)
    fake.is_initialized = False
    fake.is_connected = connected
    fake.initialize = AsyncMock()
    return fake


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    # keep pytest's own SIGINT handling intact
    monkeypatch.setattr(m.signal, "signal", lambda *a, **k: None)


@pytest.fixture
def immediate_shutdown(monkeypatch):
    # Request shutdown as soon as the runtime exists.
    monkeypatch.setattr(m, "_install_signal_handlers", lambda rt: rt.shutdown.set())


def test_parser_requires_subcommand():
    p = m.build_parser()
    with pytest.raises(SystemExit):
        p.parse_args([])


def test_version_flag_exits():
    with pytest.raises(SystemExit) as exc:
        m.main(["--version"])
    assert exc.value.code == 0


def test_run_exits_with_run_bus_code(monkeypatch):
    monkeypatch.setattr(m, "run_bus", lambda: 7)
    monkeypatch.setattr("device_message_bus.core.log_config.configure_logging", lambda: None)
    with pytest.raises(SystemExit) as exc:
        m.main(["run"])
    assert exc.value.code == 7


def test_run_bus_returns_1_on_config_error(monkeypatch):
    def _bad_config():
        raise ConfigError("Missing required environment variable: MQTT_HOST")

    monkeypatch.setattr("device_message_bus.config.load_config", _bad_config)

    assert m.run_bus() == 1


def test_run_bus_returns_1_on_mqtt_connect_failure(monkeypatch):
    monkeypatch.setattr("device_message_bus.config.load_config", lambda: _cfg())
    fake = _fake_provider(connected=False)
    monkeypatch.setattr(m, "build_provider", lambda cfg: fake)

    assert m.run_bus() == 1
    fake.initialize.assert_awaited_once()
    fake.dispose.assert_called_once()


def test_run_bus_clean_shutdown_disposes_provider(monkeypatch, immediate_shutdown):
    monkeypatch.setattr("device_message_bus.config.load_config", lambda: _cfg())
    fake = _fake_provider(connected=True)
    monkeypatch.setattr(m, "build_provider", lambda cfg: fake)

    assert m.run_bus() == 0
    fake.subscribe.assert_called_once()
    fake.unsubscribe.assert_called_once()
    fake.dispose.assert_called_once()


def test_run_bus_with_simulated_provider(monkeypatch, immediate_shutdown):
    # simulated mode runs without broker settings and has no connection to check
    cfg = BusConfig(mqtt_host="", mqtt_port=8883, mqtt_topic="", provider="simulated")
    monkeypatch.setattr("device_message_bus.config.load_config", lambda: cfg)
    built = []
    real_build = m.build_provider

    def _build(c):
        built.append(real_build(c))
        return built[-1]

    monkeypatch.setattr(m, "build_provider", _build)

    assert m.run_bus() == 0
    assert isinstance(built[0], SimulatedMessageProvider)
    assert built[0].is_initialized is True
    assert built[0].is_disposed is True


def test_build_provider_selects_implementation():
    assert isinstance(m.build_provider(_cfg()), MqttMessageProvider)
    assert isinstance(m.build_provider(_cfg("simulated")), SimulatedMessageProvider)
