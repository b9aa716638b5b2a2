"""Core data structures and typing protocols for tuya-mqtt."""

from __future__ import annotations

import asyncio
import os
import re
from argparse import Namespace
from typing import TYPE_CHECKING, Any, Protocol

import uvloop
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from tuya_mqtt.const import YES_ANSWER

if TYPE_CHECKING:
    from tuya_mqtt.events import DeviceEvent, DpsValue
    from tuya_mqtt.registry import DeviceRegistry

__all__ = [
    "DeviceClientProtocol",
    "DeviceConfig",
    "GlobalObjEnv",
    "GlobalObject",
    "MQTTClientProtocol",
    "TuyaMqttBridgeProtocol",
    "normalize_name",
]

_NAME_UNSAFE = re.compile(r"[\s+#/]")


def normalize_name(name: str) -> str:
    """Topic-safe friendly name: lower case, whitespace and MQTT wildcards become ``_``."""
    return _NAME_UNSAFE.sub("_", name.lower())


class DeviceConfig(BaseModel):
    """One entry of the devices file.

    Keys are accepted in camelCase (``dpsPower``) or snake_case (``dps_power``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    id: str
    key: str
    name: str | None = None
    ip: str | None = None
    version: str | None = None
    type: str | None = None

    dps_power: int | None = None
    dps_mode: int | None = None
    dps_brightness: int | None = None
    brightness_scale: int | None = None
    dps_white_value: int | None = None
    white_value_scale: int | None = None
    dps_color_temp: int | None = None
    min_color_temp: int | None = None
    max_color_temp: int | None = None
    color_temp_scale: int | None = None
    dps_color: int | None = None
    color_type: str | None = None

    template: dict[str, dict[str, Any]] | None = None

    @model_validator(mode="after")
    def _default_protocol_version(self) -> DeviceConfig:
        if self.ip and not self.version:
            self.version = "3.1"
        return self

    @property
    def friendly_name(self) -> str | None:
        return normalize_name(self.name) if self.name else None

    @property
    def topic_name(self) -> str:
        """Topic segment identifying this device: friendly name, else protocol id."""
        return self.friendly_name or self.id

    @property
    def display_name(self) -> str:
        return self.name or self.id


class DeviceClientProtocol(Protocol):
    """Protocol-client collaborator, one per device."""

    device_id: str
    events: asyncio.Queue[DeviceEvent]

    async def find(self) -> None:
        """Locate the device on the network."""
        ...

    async def connect(self) -> None:
        """Open the device connection; success is announced with a ConnectedEvent."""
        ...

    async def disconnect(self) -> None:
        """Close the device connection."""
        ...

    def is_connected(self) -> bool:
        """Return True while the device socket is usable."""
        ...

    async def get(self, dps: int) -> DpsValue | None:
        """Query one DPS value."""
        ...

    async def set(self, dps: int, value: DpsValue) -> None:
        """Write one DPS value."""
        ...

    async def set_many(self, values: dict[int, DpsValue]) -> None:
        """Write several DPS values at once."""
        ...


class MQTTClientProtocol(Protocol):
    """Transport collaborator used by devices and the router."""

    lp: str
    topic: str
    discovery_topic: str

    @property
    def is_connected(self) -> bool:
        """Return True while connected to the broker."""
        ...

    async def publish(self, topic: str, payload: bytes | str, qos: int = 1, retain: bool = False) -> bool:
        """Publish a message; returns False when it could not be sent."""
        ...

    async def publish_json_msg(self, topic: str, msg_data: dict[str, object], qos: int = 1, retain: bool = False) -> bool:
        """Publish a JSON document."""
        ...


class TuyaMqttBridgeProtocol(Protocol):
    """Protocol for the bridge composition root."""

    async def start(self) -> None:
        """Start the bridge."""
        ...

    async def stop(self) -> None:
        """Stop the bridge."""
        ...


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).casefold() in YES_ANSWER


class GlobalObjEnv(BaseModel):
    """Environment-derived settings, re-read by :meth:`GlobalObject.reload_env`."""

    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_user: str | None = None
    mqtt_pass: str | None = None
    mqtt_topic: str = "tuya"
    discovery_topic: str = "homeassistant"
    status_topic: str = "homeassistant/status"
    devices_file: str = "./devices.json"
    debug: bool = False


class GlobalObject:
    """Singleton container for cross-module state and services."""

    bridge: TuyaMqttBridgeProtocol | None = None
    mqtt_client: MQTTClientProtocol | None = None
    registry: DeviceRegistry | None = None
    loop: uvloop.Loop | asyncio.AbstractEventLoop | None = None
    env: GlobalObjEnv = GlobalObjEnv()
    cli_args: Namespace | None = None

    _instance: GlobalObject | None = None

    def __new__(cls, *_args: Any, **_kwargs: Any) -> GlobalObject:
        """Ensure only one GlobalObject instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.reload_env()
        return cls._instance

    def reload_env(self) -> None:
        """Re-evaluate environment variables, e.g. after a dotenv file was loaded."""
        try:
            port = int(os.environ.get("TUYA_MQTT_PORT", "1883"))
        except ValueError:
            port = 1883
        self.env = GlobalObjEnv(
            mqtt_host=os.environ.get("TUYA_MQTT_HOST", "localhost"),
            mqtt_port=port,
            mqtt_user=os.environ.get("TUYA_MQTT_USER"),
            mqtt_pass=os.environ.get("TUYA_MQTT_PASS"),
            mqtt_topic=os.environ.get("TUYA_MQTT_TOPIC", "tuya"),
            discovery_topic=os.environ.get("TUYA_MQTT_DISCOVERY_TOPIC", "homeassistant"),
            status_topic=os.environ.get("TUYA_MQTT_STATUS_TOPIC", "homeassistant/status"),
            devices_file=os.environ.get("TUYA_MQTT_DEVICES_FILE", "./devices.json"),
            debug=_env_flag("TUYA_MQTT_DEBUG"),
        )
