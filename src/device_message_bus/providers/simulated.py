"""
Simulated message provider; emits canned payloads without a broker.

Useful for running subscribers on a machine with no MQTT access.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
from typing import Iterable, Optional

from device_message_bus.message import UNSET_DEVICE_ID, DeviceMessage
from device_message_bus.providers.base import MessageProvider

logger = logging.getLogger(__name__)

DEFAULT_PAYLOADS = (
    json.dumps({"temp": 21}),
    json.dumps({"temp": 22}),
    json.dumps({"humidity": 40}),
)


class SimulatedMessageProvider(MessageProvider):
    """Cycles through payloads, dispatching one every interval_s seconds."""

    def __init__(self, payloads: Optional[Iterable[str]] = None, *, interval_s: float = 1.0) -> None:
        super().__init__()
        self._payloads = tuple(payloads) if payloads is not None else DEFAULT_PAYLOADS
        if not self._payloads:
            raise ValueError("payloads must not be empty")
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._interval_s = interval_s

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    async def initialize(self) -> None:
        logger.info("Initializing in simulated mode (%d payloads, every %.1fs)", len(self._payloads), self._interval_s)
        self._start()
        self._mark_initialized()

    def emit(self, payload: str) -> int:
        """Dispatch one payload now. Returns the number of callbacks invoked."""
        return self._dispatch(DeviceMessage(payload, device_id=UNSET_DEVICE_ID))

    def _start(self) -> None:
        if self._thread:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._emit_loop,
            daemon=True,
            name="simulated-provider",
        )
        self._thread.start()

    def _emit_loop(self) -> None:
        for payload in itertools.cycle(self._payloads):
            if self._stop_event.wait(timeout=self._interval_s):
                break
            try:
                self.emit(payload)
            except Exception as exc:
                logger.exception("Simulated emit failed: %s", exc)

    def dispose(self) -> None:
        thread = self._thread
        if thread:
            self._thread = None
            self._stop_event.set()
            # a subscriber may dispose from inside emit, on this very thread
            if thread is not threading.current_thread():
                thread.join(timeout=2.0)
        super().dispose()
