"""Per-device composition root: schema, state cache, transforms and supervision."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from tuya_mqtt.const import INIT_SETTLE_DELAY, TUYA_MANUFACTURER
from tuya_mqtt.devices.supervisor import ConnectionState, ConnectionSupervisor
from tuya_mqtt.devices.variant import DeviceKind, create_variant
from tuya_mqtt.events import DpsValue, normalize_dps
from tuya_mqtt.exceptions import ConfigurationError, DeviceClientError, InvalidCommandError
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.mqtt.discovery import DiscoveryHelper
from tuya_mqtt.schema import TopicDescriptor, TopicSchema, ValueKind
from tuya_mqtt.state_cache import StateCache
from tuya_mqtt.transforms.color import ColorState, apply_color_command, encode_color
from tuya_mqtt.transforms.numeric import parse_number_command, parse_number_state, to_number
from tuya_mqtt.utils import parse_json_object, spawn

if TYPE_CHECKING:
    from tuya_mqtt.structs import DeviceClientProtocol, DeviceConfig, MQTTClientProtocol

__all__ = ["TuyaDevice", "parse_bool_command", "parse_dps_message"]

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_BOOL_COMMANDS = {
    "on": True,
    "1": True,
    "true": True,
    "off": False,
    "0": False,
    "false": False,
}


def parse_bool_command(command: object, current: DpsValue | None) -> bool:
    """``on/off/0/1/true/false/toggle`` to a wire boolean.

    ``toggle`` negates ``current``; an unknown current value toggles from off.

    Raises:
        InvalidCommandError: any other input.

    """
    if isinstance(command, bool):
        return command
    text = str(command).strip().lower()
    if text == "toggle":
        return not bool(current)
    if text in _BOOL_COMMANDS:
        return _BOOL_COMMANDS[text]
    raise InvalidCommandError("expected on/off/0/1/true/false/toggle", command)


def parse_dps_message(message: str) -> DpsValue:
    """Raw single-key payload: boolean, then number, then the string as is."""
    if message in ("true", "false"):
        return message == "true"
    number = to_number(message)
    if number is None:
        return message
    return int(number) if number.is_integer() and "." not in message and "e" not in message.lower() else number


def dps_payload_text(value: DpsValue | None) -> str:
    """Per-key DPS topic payload; empty values publish as ``None``."""
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    return text or "None"


class TuyaDevice:
    """One Tuya device bridged to MQTT.

    Owns the device's :class:`TopicSchema`, :class:`StateCache`, color state
    and :class:`ConnectionSupervisor`; type specific behaviour lives in the
    variant chosen from the configured device type.
    """

    def __init__(
        self,
        config: DeviceConfig,
        client: DeviceClientProtocol,
        mqtt_client: MQTTClientProtocol,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config: DeviceConfig = config
        self.client: DeviceClientProtocol = client
        self.mqtt: MQTTClientProtocol = mqtt_client
        self._sleep: Sleep = sleep

        self.name: str = config.topic_name
        self.base_topic: str = f"{mqtt_client.topic}/{self.name}"
        self.lp: str = f"TuyaDevice:{self.name}:"

        self.kind: DeviceKind = DeviceKind.from_type(config.type)
        self.variant = create_variant(self.kind, self)
        self.device_data: dict[str, Any] = {
            "ids": [config.id],
            "name": config.display_name,
            "mf": TUYA_MANUFACTURER,
            "mdl": self.variant.model,
        }

        self.schema: TopicSchema | None = None
        self.cache: StateCache = StateCache()
        self.color: ColorState = ColorState()
        self.cmd_color: ColorState | None = None
        self.discovery: DiscoveryHelper = DiscoveryHelper(mqtt_client)
        self.supervisor: ConnectionSupervisor = ConnectionSupervisor(self, client, sleep=sleep)

        self._suppress_publish: bool = False
        self._resync_lock: asyncio.Lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()

    def __str__(self) -> str:
        where = f"{self.config.ip}, " if self.config.ip else ""
        return f"[{self.variant.model}] {self.config.display_name} ({where}{self.config.id})"

    @property
    def connected(self) -> bool:
        return self.supervisor.state is ConnectionState.CONNECTED

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        logger.info("%s starting %s", self.lp, self, extra={"kind": self.kind.value})
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()
        for task in list(self._tasks):
            _ = task.cancel()

    async def initialize(self) -> bool:
        """Type specific init, then discovery, then a full resync.

        Runs once per connection episode. Returns False when the device could
        not be initialized; the reason has been logged.
        """
        lp = f"{self.lp}initialize:"
        if not await self.variant.initialize():
            return False
        try:
            self.schema = self.variant.build_topic_schema()
        except ConfigurationError as e:
            await self.log_error(f"device configuration invalid: {e}")
            return False
        logger.debug("%s topics: %s", lp, list(self.schema))
        _ = await self.discovery.publish_device(self)
        await self._sleep(INIT_SETTLE_DELAY)
        await self.get_states()
        return True

    async def republish(self) -> None:
        """Re-announce availability, discovery and state, e.g. after a hub restart."""
        status = "online" if self.client.is_connected() else "offline"
        _ = await self.publish_mqtt("status", status)
        _ = await self.publish_mqtt("reason", f"device isConnected={status}")
        await self._sleep(INIT_SETTLE_DELAY)
        if self.schema is not None:
            _ = await self.discovery.publish_device(self)
        if self.connected:
            await self.get_states()

    # -- publishing --------------------------------------------------------

    async def publish_mqtt(self, topic: str, payload: str | bytes, retain: bool = False) -> bool:
        return await self.mqtt.publish(f"{self.base_topic}/{topic}", payload, qos=1, retain=retain)

    async def publish_status(self, status: str, reason: str) -> None:
        _ = await self.publish_mqtt("status", status)
        _ = await self.publish_mqtt("reason", reason)

    async def log_error(self, message: object) -> None:
        """Log an error and mirror it to the device's ``log`` topic."""
        logger.error("%s %s", self.lp, message)
        _ = await self.publish_mqtt("log", str(message))

    def _report(self, message: str) -> None:
        spawn(self.publish_mqtt("log", message), self._tasks, f"{self.name}:log", self.lp)

    # -- state synchronization ----------------------------------------------

    async def get_states(self) -> None:
        """Full resync of every DPS key the schema references, then one publish pass.

        Overlapping resyncs (a get-states command during a republish) run one
        after the other; publishing stays suppressed while any of them reads.
        """
        if self.schema is None:
            return
        lp = f"{self.lp}get_states:"
        async with self._resync_lock:
            self._suppress_publish = True
            try:
                for dps_key in self.schema.dps_keys():
                    try:
                        value = await self.client.get(dps_key)
                    except DeviceClientError as e:
                        await self.log_error(f"Could not get value for device DPS key {dps_key}: {e.reason}")
                        continue
                    if value is None:
                        logger.debug("%s device returned no value for DPS %s", lp, dps_key)
                        continue
                    self.cache.store(dps_key, value)
                    self.variant.on_state_update(dps_key, value)
            finally:
                self._suppress_publish = False
            await self.publish_topics()

    def update_state(self, dps: Mapping[int, DpsValue]) -> list[int]:
        """Merge pushed DPS values into the cache; returns the keys that changed."""
        changed = self.cache.update(dps)
        for dps_key in changed:
            value = self.cache.get(dps_key)
            if value is not None:
                self.variant.on_state_update(dps_key, value)
        return changed

    async def publish_topics(self) -> None:
        if not self.connected or self._suppress_publish:
            return
        if self.schema is not None:
            for name, descriptor in self.schema.items():
                if self.cache.is_dirty(descriptor.dps_key):
                    state = self.get_friendly_state(descriptor, self.cache.get(descriptor.dps_key))
                    _ = await self.publish_mqtt(name, state)
            for topic, payload in self.variant.derive_publish_overrides().items():
                _ = await self.publish_mqtt(topic, payload)
        await self.publish_dps_topics()

    async def publish_dps_topics(self) -> None:
        """Aggregate ``dps/state`` plus ``dps/<key>/state`` for each dirty key."""
        if not len(self.cache):
            return
        lp = f"{self.lp}publish_dps_topics:"
        message = json.dumps(self.cache.snapshot())
        logger.debug("%s MQTT DPS JSON: %s", lp, message)
        _ = await self.publish_mqtt("dps/state", message)
        for dps_key in self.cache.dirty_keys():
            _ = await self.publish_mqtt(f"dps/{dps_key}/state", dps_payload_text(self.cache.get(dps_key)))
            self.cache.clear_dirty(dps_key)

    def get_friendly_state(self, descriptor: TopicDescriptor, value: DpsValue | None) -> str:
        match descriptor.kind:
            case ValueKind.BOOL:
                return "ON" if value else "OFF"
            case ValueKind.INT | ValueKind.FLOAT:
                return parse_number_state(value, descriptor)
            case ValueKind.HSB | ValueKind.HSBHEX:
                white = self._in_white_mode()
                return ",".join(
                    "0" if component == "s" and white else str(self.color.component(component))
                    for component in descriptor.components
                )
            case _:
                return self.variant.format_string_state(value)

    def _in_white_mode(self) -> bool:
        mode_dps = self.variant.mode_dps
        return mode_dps is not None and self.cache.get(mode_dps) == "white"

    # -- commands ----------------------------------------------------------

    async def process_command(self, payload: str | bytes, command_topic: str) -> None:
        """Entry point for ``<base>/<device>/<command-topic>`` messages."""
        text = payload.decode(errors="replace") if isinstance(payload, bytes) else payload
        data = parse_json_object(text)
        command: object = data if data is not None else text.lower()
        if command_topic == "command" and command == "get-states":
            logger.debug("%s Received command: get-states", self.lp)
            await self.get_states()
        else:
            await self.process_device_command(command, command_topic)

    async def process_device_command(self, command: object, command_topic: str) -> None:
        lp = f"{self.lp}process_device_command:"
        descriptor = self.schema.for_command_topic(command_topic) if self.schema else None
        if descriptor is not None:
            logger.debug("%s received command topic: %s, message: %r", lp, command_topic, command)
            if not self.send_tuya_command(command, descriptor):
                logger.warning(
                    "%s Command topic %s/%s received invalid value: %r",
                    lp,
                    self.base_topic,
                    command_topic,
                    command,
                )
        elif not await self.variant.on_command(command_topic, command):
            logger.warning("%s Invalid command topic %s/%s", lp, self.base_topic, command_topic)

    def send_tuya_command(self, command: object, descriptor: TopicDescriptor) -> bool:
        """Translate a topic command and issue the resulting writes; False when invalid."""
        try:
            value = self.command_to_wire(command, descriptor)
        except InvalidCommandError as e:
            logger.debug("%s %s", self.lp, e)
            return False
        self.set(*self.variant.write(descriptor, value))
        return True

    def command_to_wire(self, command: object, descriptor: TopicDescriptor) -> DpsValue:
        match descriptor.kind:
            case ValueKind.BOOL:
                return parse_bool_command(command, self.cache.get(descriptor.dps_key))
            case ValueKind.INT | ValueKind.FLOAT:
                return parse_number_command(command, descriptor, report=self._report)
            case ValueKind.HSB | ValueKind.HSBHEX:
                if self.cmd_color is None:
                    self.cmd_color = self.color.copy()
                _ = apply_color_command(self.cmd_color, command, descriptor.components)
                color_type = descriptor.color_type
                assert color_type is not None
                return encode_color(self.cmd_color, color_type)
            case _:
                if isinstance(command, bool | int | float | str):
                    return command
                raise InvalidCommandError("string topics take plain text", command)

    async def process_dps_command(self, payload: str | bytes) -> None:
        """Raw Tuya JSON written straight to the device, bypassing the schema.

        Accepted shapes: ``{"dps": 1, "set": true}``,
        ``{"multiple": true, "data": {"1": true}}`` and ``{"1": true, "2": 50}``.
        """
        lp = f"{self.lp}process_dps_command:"
        data = parse_json_object(payload)
        if not isinstance(data, dict):
            logger.warning("%s DPS command topic requires Tuya style JSON value", lp)
            return
        if "dps" in data and "set" in data:
            raw: dict[Any, Any] = {data["dps"]: data["set"]}
        elif data.get("multiple") and isinstance(data.get("data"), dict):
            raw = data["data"]
        else:
            raw = data
        values = normalize_dps(raw)
        if not values or len(values) != len(raw):
            logger.warning("%s unusable Tuya JSON command: %s", lp, data)
            return
        logger.debug("%s Parsed Tuya JSON command: %s", lp, values)
        self.set(values)

    async def process_dps_key_command(self, payload: str | bytes, dps_key: str) -> None:
        lp = f"{self.lp}process_dps_key_command:"
        text = payload.decode(errors="replace") if isinstance(payload, bytes) else payload
        if parse_json_object(text) is not None:
            logger.warning("%s Individual DPS command topics do not accept JSON values", lp)
            return
        try:
            key = int(dps_key)
        except ValueError:
            logger.warning("%s DPS key %r is not a number", lp, dps_key)
            return
        value = parse_dps_message(text)
        logger.debug("%s Received command for DPS%s: %r", lp, key, value)
        self.set({key: value})

    def set(self, *writes: Mapping[int, DpsValue]) -> asyncio.Task[None] | None:
        """Issue writes in order without waiting for them; failures are logged."""
        if not writes:
            return None
        return spawn(self._write(list(writes)), self._tasks, f"{self.name}:set", self.lp)

    async def _write(self, writes: list[Mapping[int, DpsValue]]) -> None:
        for values in writes:
            logger.debug("%s Set device %s -> %s", self.lp, self.config.id, dict(values))
            try:
                if len(values) == 1:
                    ((dps_key, value),) = values.items()
                    await self.client.set(dps_key, value)
                else:
                    await self.client.set_many(dict(values))
            except DeviceClientError as e:
                await self.log_error(f"write to DPS {list(values)} failed: {e.reason}")
                return
