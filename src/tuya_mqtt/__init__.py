"""Bridge Tuya local-protocol devices to MQTT with Home Assistant discovery."""

__version__ = "3.1.0"
