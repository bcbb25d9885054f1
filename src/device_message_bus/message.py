"""
Message value objects handed to provider subscribers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

# Device id extraction from payloads is not wired in yet; every message carries this.
UNSET_DEVICE_ID = "not implemented"


class BaseMessage(ABC):
    """Anything a provider can dispatch."""

    @abstractmethod
    def value_as_string(self) -> str:
        raise NotImplementedError


class DeviceMessage(BaseMessage):
    """
    Raw payload text from a device plus the id of the device that sent it.

    raw_value is fixed at construction. None is stored as an empty string;
    anything that is not a str raises TypeError.
    """

    __slots__ = ("_raw_value", "device_id")

    def __init__(self, raw_value: Optional[str], device_id: str = UNSET_DEVICE_ID) -> None:
        if raw_value is None:
            raw_value = ""
        if not isinstance(raw_value, str):
            raise TypeError(f"raw_value must be str, got {type(raw_value).__name__}")
        self._raw_value = raw_value
        self.device_id = device_id

    @property
    def raw_value(self) -> str:
        return self._raw_value

    @property
    def has_device_id(self) -> bool:
        return self.device_id != UNSET_DEVICE_ID

    def value_as_string(self) -> str:
        return self._raw_value

    def __repr__(self) -> str:
        return f"DeviceMessage(raw_value={self._raw_value!r}, device_id={self.device_id!r})"
