"""MQTT command routing for message handling.

Commands are routed by topic depth:

- ``<base>/<device>/<command-topic>``: device command
- ``<base>/<device>/dps/command``: raw Tuya JSON write
- ``<base>/<device>/dps/<key>/command``: single DPS write
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING, Any, cast

from tuya_mqtt.const import REPUBLISH_DELAY, REPUBLISH_PASSES, REPUBLISH_SETTLE_DELAY
from tuya_mqtt.logging_abstraction import correlation_context, get_logger
from tuya_mqtt.structs import GlobalObject
from tuya_mqtt.utils import spawn

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tuya_mqtt.mqtt.client import MQTTClient
    from tuya_mqtt.registry import DeviceRegistry

__all__ = ["CommandKind", "CommandRouter", "classify_topic", "is_command_topic"]

logger = get_logger(__name__)

g = GlobalObject()


class CommandKind(StrEnum):
    DEVICE = "device"
    DPS_JSON = "dps_json"
    DPS_KEY = "dps_key"


_DEPTHS: dict[int, CommandKind] = {
    3: CommandKind.DEVICE,
    4: CommandKind.DPS_JSON,
    5: CommandKind.DPS_KEY,
}


def classify_topic(parts: list[str]) -> CommandKind | None:
    """Command kind for a split topic, None for an unsupported depth."""
    return _DEPTHS.get(len(parts))


def is_command_topic(parts: list[str]) -> bool:
    """True for topics the bridge should act on; the bridge also sees its own state topics."""
    last = parts[-1]
    return "command" in last or last.startswith("set")


class CommandRouter:
    """Routes inbound MQTT messages to devices and handles hub status messages."""

    def __init__(
        self,
        mqtt_client: MQTTClient,
        registry: DeviceRegistry | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = mqtt_client
        self._registry = registry
        self._sleep = sleep
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def lp(self) -> str:
        return f"{self.client.lp}router:"

    @property
    def registry(self) -> DeviceRegistry | None:
        return self._registry if self._registry is not None else g.registry

    async def handle_message(self, topic: str, payload: bytes | bytearray | str) -> None:
        lp = f"{self.lp}handle_message:"
        text = payload.decode(errors="replace") if isinstance(payload, bytes | bytearray) else str(payload)

        if topic in self.client.status_topics:
            if text == "online":
                logger.info("%s hub came online, republishing all devices", lp)
                _ = spawn(self.republish_devices(), self._tasks, "republish", lp)
            return

        parts = topic.split("/")
        if parts[0] != self.client.topic or len(parts) < 3 or not is_command_topic(parts):
            return

        kind = classify_topic(parts)
        if kind is None:
            logger.warning("%s unsupported topic depth: %s", lp, topic)
            return

        registry = self.registry
        device = registry.get(parts[1]) if registry is not None else None
        if device is None:
            logger.warning("%s Device not found for topic %s, dropping message", lp, topic, extra={"topic": topic})
            return

        logger.debug("%s %s command for %s: %s", lp, kind, device.name, text)
        match kind:
            case CommandKind.DEVICE:
                await device.process_command(text, parts[2])
            case CommandKind.DPS_JSON:
                await device.process_dps_command(text)
            case CommandKind.DPS_KEY:
                await device.process_dps_key_command(text, parts[3])

    async def republish_devices(self) -> None:
        """Re-announce every device, twice, after the hub restarted."""
        lp = f"{self.lp}republish_devices:"
        for i in range(REPUBLISH_PASSES):
            await self._sleep(REPUBLISH_DELAY)
            registry = self.registry
            if registry is None:
                return
            logger.debug("%s republish pass %s/%s", lp, i + 1, REPUBLISH_PASSES)
            for device in registry:
                _ = spawn(device.republish(), self._tasks, f"{device.name}:republish", lp)
            await self._sleep(REPUBLISH_SETTLE_DELAY)

    async def start_receiver_task(self) -> None:
        """Start listening for MQTT messages on subscribed topics"""
        lp = f"{self.client.lp}rcv:"
        assert self.client.client is not None, "client must be initialized"
        async for message in self.client.client.messages:
            msg: Any = cast("Any", message)
            topic = msg.topic
            payload = msg.payload
            if not payload:
                logger.debug(
                    "%s Received empty/None payload (%s) for topic: %s , skipping...",
                    lp,
                    payload,
                    topic,
                )
                continue
            with correlation_context():
                try:
                    await self.handle_message(topic.value, payload)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("%s error handling message on %s", lp, topic.value)
