from __future__ import annotations

import asyncio

from device_message_bus.message import DeviceMessage
from device_message_bus.providers.base import MessageProvider
from device_message_bus.subscriber import DeviceMessageSubscriber


def test_start_registers_and_initializes():
    p = MessageProvider()
    s = DeviceMessageSubscriber(p)

    assert asyncio.run(s.start()) is True
    assert p.is_initialized is True
    assert p.subscriber_count == 1

    p._dispatch(DeviceMessage('{"temp":21}'))
    assert s.received == 1


def test_start_skips_initialized_provider():
    p = MessageProvider()
    asyncio.run(p.initialize())
    s = DeviceMessageSubscriber(p)

    assert asyncio.run(s.start()) is False
    assert p.subscriber_count == 0


def test_handle_message_logs_payload(caplog):
    caplog.set_level("INFO")
    p = MessageProvider()
    s = DeviceMessageSubscriber(p)

    s.handle_message(p, DeviceMessage("payload-text"))

    assert "New device message" in caplog.text
    assert "Message: payload-text" in caplog.text


def test_stop_unregisters():
    p = MessageProvider()
    s = DeviceMessageSubscriber(p)
    asyncio.run(s.start())

    s.stop()
    s.stop()

    assert p.subscriber_count == 0
    p._dispatch(DeviceMessage("late"))
    assert s.received == 0
