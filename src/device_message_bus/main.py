"""
Device Message Bus entrypoint.

CLI:
  device-message-bus run        -> connect, log every device message until SIGINT/SIGTERM
  device-message-bus --version  -> print installed version
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from device_message_bus.config import BusConfig, package_version
from device_message_bus.providers.base import MessageProvider
from device_message_bus.subscriber import DeviceMessageSubscriber

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    shutdown: threading.Event
    provider: Optional[MessageProvider] = None
    subscriber: Optional[DeviceMessageSubscriber] = None


def _install_signal_handlers(rt: Runtime) -> None:
    def _handler(signum: int, frame) -> None:  # frame is unused, keep signature
        logger.info("Received signal %s; requesting shutdown", signum)
        rt.shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def build_provider(cfg: BusConfig) -> MessageProvider:
    if cfg.provider == "simulated":
        from device_message_bus.providers.simulated import SimulatedMessageProvider

        return SimulatedMessageProvider()

    from device_message_bus.providers.mqtt import MqttMessageProvider

    return MqttMessageProvider(cfg)


def run_bus() -> int:
    """
    Runtime mode: load config, initialize the provider, log messages until shutdown.
    Returns process exit code.
    """
    from device_message_bus.config import ConfigError, load_config

    try:
        cfg = load_config()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    rt = Runtime(shutdown=threading.Event())
    _install_signal_handlers(rt)

    logger.info("============================================================")
    logger.info("Device Message Bus")
    logger.info("Version: %s", cfg.version)
    logger.info("Provider: %s", cfg.provider)
    logger.info("Broker: %s:%s topic=%s", cfg.mqtt_host, cfg.mqtt_port, cfg.mqtt_topic)
    logger.info("============================================================")

    provider = build_provider(cfg)
    rt.provider = provider
    rt.subscriber = DeviceMessageSubscriber(provider)

    from device_message_bus.providers.mqtt import MqttMessageProvider

    try:
        asyncio.run(rt.subscriber.start())

        if isinstance(provider, MqttMessageProvider) and not provider.is_connected:
            logger.error("MQTT connection failed")
            return 1

        logger.info("Bus running (shutdown via SIGINT/SIGTERM)")
        while not rt.shutdown.wait(timeout=0.5):
            pass
    finally:
        _shutdown(rt)

    return 0


def _shutdown(rt: Runtime) -> None:
    logger.info("Shutting down...")

    if rt.subscriber:
        rt.subscriber.stop()

    if rt.provider:
        try:
            rt.provider.dispose()
        except Exception:
            logger.exception("Error disposing provider")
        logger.info("Provider disposed")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="device-message-bus")
    p.add_argument("--version", action="version", version=package_version())

    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("run", help="Connect to the broker and log device messages")

    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    from device_message_bus.core.log_config import configure_logging

    configure_logging()

    if args.cmd == "run":
        raise SystemExit(run_bus())

    raise SystemExit(2)


if __name__ == "__main__":
    main()
