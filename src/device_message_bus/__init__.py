"""
Device Message Bus: forwards MQTT device payloads to in-process subscribers.

Connects to a broker, subscribes to one topic, wraps each inbound payload in a
DeviceMessage and fans it out to registered callbacks.
"""
