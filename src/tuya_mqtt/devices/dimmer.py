from __future__ import annotations

from typing_extensions import override

from tuya_mqtt.devices.variant import DeviceKind, DeviceVariant, register_variant, scale_formulas
from tuya_mqtt.mqtt.discovery import DiscoverySpec
from tuya_mqtt.schema import TopicDescriptor, TopicSchema, ValueKind


@register_variant
class DimmerVariant(DeviceVariant):
    """Dimmer switch: power plus a 0-100 brightness topic."""

    kind = DeviceKind.GENERIC_DIMMER
    model = "Dimmer Switch"

    @override
    def build_topic_schema(self) -> TopicSchema:
        state_math, command_math = scale_formulas(self.config.brightness_scale or 255)
        return TopicSchema(
            [
                TopicDescriptor.build("state", self.config.dps_power or 1, ValueKind.BOOL),
                TopicDescriptor.build(
                    "brightness_state",
                    self.config.dps_brightness or 2,
                    ValueKind.INT,
                    topic_max=100,
                    state_math=state_math,
                    command_math=command_math,
                ),
            ],
        )

    @override
    def discovery_config(self) -> DiscoverySpec:
        return DiscoverySpec(
            component="light",
            fields={
                "brightness_state_topic": "brightness_state",
                "brightness_command_topic": "brightness_command",
                "brightness_scale": 100,
            },
        )
