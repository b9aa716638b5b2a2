"""MQTT transport for tuya-mqtt.

- client.py: broker connection, birth/will and subscriptions
- command_routing.py: inbound message routing and hub restart recovery
- discovery.py: Home Assistant discovery payloads
"""

from .client import MQTTClient
from .command_routing import CommandKind, CommandRouter, classify_topic, is_command_topic
from .discovery import DiscoveryHelper, DiscoverySpec, slugify

__all__ = [
    "CommandKind",
    "CommandRouter",
    "DiscoveryHelper",
    "DiscoverySpec",
    "MQTTClient",
    "classify_topic",
    "is_command_topic",
    "slugify",
]
