from __future__ import annotations

from typing_extensions import override

from tuya_mqtt.devices.variant import DeviceKind, DeviceVariant, register_variant
from tuya_mqtt.schema import TopicSchema


@register_variant
class GenericVariant(DeviceVariant):
    """Any other device: topics come from the configured template, if any.

    Without a template only the raw ``dps/...`` topics are available.
    """

    kind = DeviceKind.GENERIC
    model = "Generic Device"

    @override
    def build_topic_schema(self) -> TopicSchema:
        if not self.config.template:
            return TopicSchema()
        return TopicSchema.from_template(self.config.template)
