from __future__ import annotations

from typing_extensions import override

from tuya_mqtt.devices.variant import DeviceKind, DeviceVariant, register_variant
from tuya_mqtt.mqtt.discovery import DiscoverySpec
from tuya_mqtt.schema import TopicDescriptor, TopicSchema, ValueKind


@register_variant
class SwitchVariant(DeviceVariant):
    """On/off switch or socket on a single boolean DPS."""

    kind = DeviceKind.SWITCH
    model = "Switch/Socket"

    @property
    def dps_power(self) -> int:
        return self.config.dps_power or 1

    @override
    def build_topic_schema(self) -> TopicSchema:
        return TopicSchema([TopicDescriptor.build("state", self.dps_power, ValueKind.BOOL)])

    @override
    def discovery_config(self) -> DiscoverySpec:
        return DiscoverySpec(component="switch")
