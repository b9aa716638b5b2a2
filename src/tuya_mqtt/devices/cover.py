from __future__ import annotations

from typing_extensions import override

from tuya_mqtt.devices.variant import DeviceKind, DeviceVariant, register_variant
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.mqtt.discovery import DiscoverySpec
from tuya_mqtt.schema import TopicDescriptor, TopicSchema, ValueKind

logger = get_logger(__name__)

# device string -> Home Assistant cover state
COVER_STATES = {
    "open": "opening",
    "close": "closing",
    "stop": "stopped",
}
# synthetic set_position payload -> state command
POSITION_COMMANDS = {
    "100": "close",
    "0": "open",
}


@register_variant
class CoverVariant(DeviceVariant):
    """Open/close/stop cover driven through one string DPS.

    The device reports motion, not position, so ``position`` is derived:
    0 while opening, 100 while closing, 50 otherwise.
    """

    kind = DeviceKind.COVER
    model = "Cover"

    @property
    def dps_power(self) -> int:
        return self.config.dps_power or 1

    @override
    def build_topic_schema(self) -> TopicSchema:
        return TopicSchema([TopicDescriptor.build("state", self.dps_power, ValueKind.STR)])

    @override
    def format_string_state(self, value: object) -> str:
        text = super().format_string_state(value)
        return COVER_STATES.get(text, text)

    @override
    async def on_command(self, command_topic: str, command: object) -> bool:
        if command_topic != "set_position":
            return False
        lp = f"{self.device.lp}set_position:"
        state_command = POSITION_COMMANDS.get(str(command))
        if state_command is None:
            logger.warning("%s only 0 (open) and 100 (close) are supported, ignoring %r", lp, command)
            return True
        await self.device.process_device_command(state_command, "command")
        return True

    @override
    def derive_publish_overrides(self) -> dict[str, str]:
        if self.dps_power not in self.device.cache:
            return {}
        state = self.format_string_state(self.device.cache.get(self.dps_power))
        position = 0 if state == "opening" else 100 if state == "closing" else 50
        return {"position": str(position)}

    @override
    def discovery_config(self) -> DiscoverySpec:
        return DiscoverySpec(
            component="cover",
            fields={
                "position_topic": "position",
                "set_position_topic": "set_position",
                "optimistic": True,
            },
            retain=True,
        )
