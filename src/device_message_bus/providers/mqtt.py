"""
MQTT message provider.

Connects to the configured broker over TLS, subscribes to one topic at QoS 2,
and forwards every inbound payload to the provider's subscribers as a
DeviceMessage.

paho delivers messages on its own network thread. on_message only decodes and
enqueues; a single dispatch worker owned by the provider drains the queue, so
subscriber callbacks never run inside paho code and broker order is kept.

Nothing here raises to the caller: connect, subscribe, receive and disconnect
failures are logged and swallowed. There is no retry and no reconnect.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import ssl
import threading
from typing import Any, Optional

import paho.mqtt.client as mqtt

from device_message_bus.config import BusConfig
from device_message_bus.message import UNSET_DEVICE_ID, DeviceMessage
from device_message_bus.providers.base import MessageProvider

logger = logging.getLogger(__name__)

QOS_EXACTLY_ONCE = 2

_STOP = None  # worker shutdown marker; payloads are always str


class MqttMessageProvider(MessageProvider):
    """
    Bridges one MQTT broker session to the MessageProvider callbacks.
    Config is fixed at construction; the client handle exists only between
    initialize() and disconnect()/dispose().
    """

    def __init__(self, config: BusConfig) -> None:
        super().__init__()
        self._config = config

        self._client: Optional[mqtt.Client] = None
        self._connected = threading.Event()
        self._connack = threading.Event()
        self._connack_ok = False

        self._inbox: queue.Queue[Optional[str]] = queue.Queue(maxsize=config.queue_size)
        self._worker: Optional[threading.Thread] = None
        self._worker_stop = threading.Event()

    @property
    def config(self) -> BusConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def initialize(self) -> None:
        """
        Connect and subscribe. The blocking connect runs in a worker thread and
        is awaited. The provider is marked initialized whatever the outcome;
        check is_connected to tell a live session from a failed one.
        """
        logger.info("Initializing in MQTT mode...")
        try:
            await self._initialize_client()
        finally:
            self._mark_initialized()

    async def _initialize_client(self) -> None:
        if self._client is not None:
            logger.warning("MQTT client already initialized; ignoring initialize()")
            return

        self._start_worker()
        cfg = self._config
        try:
            client = self._build_client()
            self._client = client

            logger.info("Connecting to MQTT broker %s:%s...", cfg.mqtt_host, cfg.mqtt_port)
            connected = await asyncio.to_thread(self._connect_blocking, client)
        except OSError as exc:
            logger.error(
                "[SocketError] Failed to connect to MQTT broker %s:%s: %s",
                cfg.mqtt_host, cfg.mqtt_port, exc,
            )
            connected = False
        except Exception as exc:
            logger.exception("Failed to initialize MQTT client: %s", exc)
            connected = False

        if not connected:
            logger.error("Failed to connect to the MQTT broker.")
            self.disconnect()
            return

        self._connected.set()
        self.subscribe_to_topic(cfg.mqtt_topic)
        logger.info("MQTT client connected")

    def _build_client(self) -> mqtt.Client:
        cfg = self._config
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=cfg.client_id(),
            protocol=mqtt.MQTTv311,
        )
        if cfg.mqtt_username:
            client.username_pw_set(cfg.mqtt_username, cfg.mqtt_password)
        if cfg.mqtt_tls:
            client.tls_set(ca_certs=cfg.mqtt_ca_certs, tls_version=ssl.PROTOCOL_TLS_CLIENT)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        return client

    def _connect_blocking(self, client: mqtt.Client) -> bool:
        """Open the socket, start the network loop and wait for CONNACK."""
        cfg = self._config
        self._connack.clear()
        self._connack_ok = False

        client.connect(cfg.mqtt_host, cfg.mqtt_port, keepalive=cfg.mqtt_keepalive_s)
        client.loop_start()

        if not self._connack.wait(timeout=cfg.connect_timeout_s):
            logger.error("No CONNACK from %s:%s within %ss", cfg.mqtt_host, cfg.mqtt_port, cfg.connect_timeout_s)
            return False
        return self._connack_ok

    def subscribe_to_topic(self, topic: str) -> bool:
        """
        Request a QoS 2 subscription. No-op returning False until connected.
        Failures are logged, never raised.
        """
        client = self._client
        if not self._connected.is_set() or client is None:
            return False

        try:
            rc, _mid = client.subscribe(topic, qos=QOS_EXACTLY_ONCE)
        except Exception as exc:
            logger.error("Failed to subscribe to MQTT topic '%s': %s", topic, exc)
            return False

        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to subscribe to MQTT topic '%s': %s", topic, mqtt.error_string(rc))
            return False

        logger.info("Subscribed to MQTT topic: %s", topic)
        return True

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connect rejected: %s", reason_code)
        else:
            self._connack_ok = True
            logger.info("Connected to MQTT broker %s:%s", self._config.mqtt_host, self._config.mqtt_port)
        self._connack.set()

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning("Unexpected disconnect rc=%s; not reconnecting", reason_code)
            # paho would otherwise reconnect from its loop thread
            client.loop_stop()

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, reason_codes: Any, properties: Any) -> None:
        for rc in reason_codes:
            if rc.is_failure:
                logger.error("Broker rejected subscription mid=%s: %s", mid, rc)

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        if self.is_paused:
            return
        try:
            payload = msg.payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.error("Payload decode failed topic=%s err=%s raw=%r", msg.topic, exc, msg.payload)
            return
        try:
            self._inbox.put_nowait(payload)
        except queue.Full:
            logger.warning("Inbound queue full (%d); dropping message on %s", self._inbox.maxsize, msg.topic)

    def _create_device_message(self, payload: str) -> Optional[DeviceMessage]:
        try:
            return DeviceMessage(payload, device_id=UNSET_DEVICE_ID)
        except Exception as exc:
            logger.error("Failed to create DeviceMessage: %s", exc)
            logger.error("Raw message: %r", payload)
            return None

    def _start_worker(self) -> None:
        if self._worker:
            return
        self._worker_stop = threading.Event()
        self._worker = threading.Thread(
            target=self._dispatch_loop,
            args=(self._worker_stop,),
            daemon=True,
            name="mqtt-dispatch",
        )
        self._worker.start()

    def _stop_worker(self) -> None:
        worker = self._worker
        if not worker:
            return
        self._worker = None

        if worker is threading.current_thread():
            # dispose() called from a subscriber callback: the loop exits after
            # the message it is handling; joining ourselves is impossible
            self._worker_stop.set()
            return

        try:
            # the marker must land behind whatever is still queued
            self._inbox.put(_STOP, timeout=2.0)
        except queue.Full:
            logger.warning("Inbound queue full; stopping dispatch worker after its current message")
            self._worker_stop.set()
        worker.join(timeout=2.0)
        if worker.is_alive():
            logger.warning("Dispatch worker did not stop within timeout")

    def _dispatch_loop(self, stop: threading.Event) -> None:
        while not stop.is_set():
            payload = self._inbox.get()
            try:
                if payload is _STOP:
                    return
                message = self._create_device_message(payload)
                if message is not None:
                    self._dispatch(message)
            except Exception as exc:
                logger.exception("Error processing MQTT message: %s", exc)
            finally:
                self._inbox.task_done()

    def flush(self) -> None:
        """Block until every queued message has been dispatched."""
        if not self._worker:
            return
        self._inbox.join()

    def disconnect(self) -> None:
        """Disconnect if connected and always drop the client handle."""
        client = self._client
        if client is None:
            return
        try:
            if client.is_connected():
                client.disconnect()
                logger.info("MQTT client disconnected.")
        except Exception as exc:
            logger.error("Error disconnecting MQTT client: %s", exc)
        finally:
            self._client = None
            self._connected.clear()
            try:
                client.loop_stop()
            except Exception as exc:
                logger.warning("Failed to stop MQTT network loop: %s", exc)

    def dispose(self) -> None:
        self.disconnect()
        self._stop_worker()
        super().dispose()
