"""
Demo consumer: logs every message a provider forwards.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from device_message_bus.message import BaseMessage
from device_message_bus.providers.base import MessageProvider, SubscriptionHandle

logger = logging.getLogger(__name__)


class DeviceMessageSubscriber:
    def __init__(self, provider: MessageProvider) -> None:
        self.provider = provider
        self._handle: Optional[SubscriptionHandle] = None
        self._lock = threading.Lock()
        self._received = 0

    @property
    def received(self) -> int:
        with self._lock:
            return self._received

    async def start(self) -> bool:
        """
        Register and initialize the provider, unless it is already initialized.
        Returns True if this call initialized it.
        """
        if self.provider.is_initialized:
            logger.info("Provider already initialized; not subscribing")
            return False
        self._handle = self.provider.subscribe(self.handle_message)
        await self.provider.initialize()
        return True

    def handle_message(self, provider: MessageProvider, message: BaseMessage) -> None:
        with self._lock:
            self._received += 1
        logger.info("New device message")
        logger.info("Message: %s", message.value_as_string())

    def stop(self) -> None:
        if self._handle is not None:
            self.provider.unsubscribe(self._handle)
            self._handle = None
