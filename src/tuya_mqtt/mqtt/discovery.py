"""Home Assistant MQTT discovery payloads for Tuya devices."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tuya_mqtt.const import ORIGIN_STRUCT
from tuya_mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from tuya_mqtt.devices.base_device import TuyaDevice
    from tuya_mqtt.structs import MQTTClientProtocol

__all__ = ["DiscoveryHelper", "DiscoverySpec", "slugify"]

logger = get_logger(__name__)


def slugify(text: str) -> str:
    """
    Convert text to a slug suitable for entity IDs.
    E.g., 'Hallway Lights' -> 'hallway_lights'
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "_", text)
    return text.strip("_")


@dataclass(slots=True)
class DiscoverySpec:
    """What a device kind contributes to its discovery document."""

    component: str
    fields: dict[str, Any] = field(default_factory=dict)
    retain: bool = False


class DiscoveryHelper:
    """Builds and publishes one discovery document per device."""

    def __init__(self, mqtt_client: MQTTClientProtocol) -> None:
        self.client = mqtt_client

    def config_topic(self, device: TuyaDevice, spec: DiscoverySpec) -> str:
        return f"{self.client.discovery_topic}/{spec.component}/{device.config.id}/config"

    def build_payload(self, device: TuyaDevice, spec: DiscoverySpec) -> dict[str, Any]:
        base = device.base_topic
        payload: dict[str, Any] = {
            "name": device.config.display_name,
            "object_id": slugify(device.config.display_name) or device.config.id,
            "state_topic": f"{base}/state",
            "command_topic": f"{base}/command",
            "availability_topic": f"{base}/status",
            "payload_available": "online",
            "payload_not_available": "offline",
            "unique_id": device.config.id,
            "device": device.device_data,
            "origin": ORIGIN_STRUCT,
        }
        payload.update({key: f"{base}/{value}" if key.endswith("_topic") else value for key, value in spec.fields.items()})
        return payload

    async def publish_device(self, device: TuyaDevice) -> bool:
        """Publish the device's discovery document; False when the kind has none."""
        lp = f"{self.client.lp}hass:{device.name}:"
        spec = device.variant.discovery_config()
        if spec is None:
            logger.debug("%s no discovery document for kind %s", lp, device.kind)
            return False
        topic = self.config_topic(device, spec)
        payload = self.build_payload(device, spec)
        logger.debug("%s Home Assistant config topic: %s", lp, topic, extra={"component": spec.component})
        return await self.client.publish_json_msg(topic, payload, qos=1, retain=spec.retain)
