# device_message_bus/providers/base.py

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Union

from device_message_bus.message import BaseMessage

logger = logging.getLogger(__name__)

MessageCallback = Callable[["MessageProvider", BaseMessage], None]
SubscriptionHandle = int


class MessageProvider:
    """
    Base class for all message providers.

    Tracks initialization and pause state and owns the subscriber registry.
    Concrete providers call _dispatch() for every inbound message; they must
    not invoke subscriber callbacks themselves.

    Lifecycle is driven explicitly by the owner:
    initialize() -> pause()/resume() any number of times -> dispose().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[SubscriptionHandle, MessageCallback] = {}
        self._handles = itertools.count(1)
        self._initialized = False
        self._paused = False
        self._disposed = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    async def initialize(self) -> None:
        """No-op for the base provider; marks the provider initialized."""
        self._mark_initialized()

    def _mark_initialized(self) -> None:
        # Never reverts: there is no re-initialization path.
        self._initialized = True

    def pause(self) -> None:
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False

    def subscribe(self, callback: MessageCallback) -> SubscriptionHandle:
        """Register callback(provider, message). Returns a handle for unsubscribe()."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            handle = next(self._handles)
            self._callbacks[handle] = callback
        logger.debug("Registered subscriber %s: %r", handle, callback)
        return handle

    def unsubscribe(self, callback_or_handle: Union[MessageCallback, SubscriptionHandle]) -> bool:
        """
        Remove a subscriber by handle, or by callable (first registration of it).
        Returns False if nothing matched.
        """
        with self._lock:
            if isinstance(callback_or_handle, int):
                return self._callbacks.pop(callback_or_handle, None) is not None
            for handle, cb in self._callbacks.items():
                if cb == callback_or_handle:
                    del self._callbacks[handle]
                    return True
        return False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def _dispatch(self, message: BaseMessage) -> int:
        """
        Fan message out to every current subscriber. Dropped while paused.
        Returns the number of callbacks invoked.
        """
        with self._lock:
            if self._paused:
                return 0
            callbacks = list(self._callbacks.values())

        for cb in callbacks:
            try:
                cb(self, message)
            except Exception:
                logger.exception("Subscriber %r failed handling message", cb)
        return len(callbacks)

    def dispose(self) -> None:
        """Release resources. Safe to call more than once."""
        self._disposed = True

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> "MessageProvider":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()
