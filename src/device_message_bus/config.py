"""
Device Message Bus configuration.

Single source for runtime configuration. Values come from environment variables,
optionally loaded from standard env files.

Priority (lowest -> highest):
1) /etc/device-message-bus/bus.env (system install)
2) ~/.config/device-message-bus/.env (user install)
3) ./.env (project override)
4) process environment variables (always win)

Config is read once before the provider is initialized and never reloaded.
"""

from __future__ import annotations

import os
import sys
import uuid
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

DEFAULT_TLS_PORT = 8883
PROVIDERS = ("mqtt", "simulated")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


def package_version() -> str:
    try:
        return _pkg_version("device-message-bus")
    except PackageNotFoundError:
        return "0.0.0+dev"


def _env_paths() -> Iterable[Path]:
    # 1) system install
    yield Path("/etc/device-message-bus/bus.env")

    # 2) user config dir
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", str(Path.home())))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
    yield base / "device-message-bus" / ".env"

    # 3) project override
    yield Path(".env")


def _broker_env(key: str, provider: str) -> str:
    """Broker settings are mandatory for the mqtt provider only."""
    v = os.getenv(key, "")
    if provider == "mqtt" and v == "":
        raise ConfigError(f"Missing required environment variable: {key} (BUS_PROVIDER=mqtt)")
    return v


def _env_int(key: str, default: int, *, minimum: int = 1, maximum: Optional[int] = None) -> int:
    raw = os.getenv(key) or str(default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}") from exc
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
        raise ConfigError(f"{key} out of range ({bounds}): {value}")
    return value


def _parse_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"Invalid boolean for {key}: {raw!r}")


@dataclass(frozen=True, slots=True)
class BusConfig:
    mqtt_host: str
    mqtt_port: int
    mqtt_topic: str
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_tls: bool = True
    mqtt_ca_certs: Optional[str] = None
    mqtt_client_id: str = ""  # empty -> random per connection
    mqtt_keepalive_s: int = 60
    connect_timeout_s: int = 10
    queue_size: int = 1000
    provider: str = "mqtt"
    version: str = "0.0.0+dev"

    def client_id(self) -> str:
        return self.mqtt_client_id or str(uuid.uuid4())


def load_config(*, dotenv_enabled: bool = True) -> BusConfig:
    """
    Load config by reading env files and then validating environment variables.

    Returns an immutable BusConfig. Raises ConfigError on failure.
    """
    if dotenv_enabled:
        for p in _env_paths():
            if p.is_file():
                # do not override existing env vars; later files can fill missing
                load_dotenv(p, override=False)

    provider = (os.getenv("BUS_PROVIDER") or "mqtt").strip().lower()
    if provider not in PROVIDERS:
        raise ConfigError(f"BUS_PROVIDER must be one of {', '.join(PROVIDERS)}: {provider!r}")

    mqtt_host = _broker_env("MQTT_HOST", provider)
    mqtt_topic = _broker_env("MQTT_TOPIC", provider)
    mqtt_port = _env_int("MQTT_PORT", DEFAULT_TLS_PORT, maximum=65535)

    return BusConfig(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        mqtt_topic=mqtt_topic,
        mqtt_username=os.getenv("MQTT_USERNAME", ""),
        mqtt_password=os.getenv("MQTT_PASSWORD", ""),
        mqtt_tls=_parse_bool("MQTT_TLS", True),
        mqtt_ca_certs=os.getenv("MQTT_CA_CERTS") or None,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", ""),
        mqtt_keepalive_s=_env_int("MQTT_KEEPALIVE", 60),
        connect_timeout_s=_env_int("MQTT_CONNECT_TIMEOUT", 10),
        queue_size=_env_int("BUS_QUEUE_SIZE", 1000),
        provider=provider,
        version=package_version(),
    )
