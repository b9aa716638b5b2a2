"""Device kinds and the capability interface each kind implements.

A :class:`~tuya_mqtt.devices.base_device.TuyaDevice` owns exactly one
variant, chosen by :class:`DeviceKind` from the configured device type.
The device calls the variant's hooks; variants never subclass the device.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from tuya_mqtt.schema import TopicSchema

if TYPE_CHECKING:
    from tuya_mqtt.devices.base_device import TuyaDevice
    from tuya_mqtt.events import DpsValue
    from tuya_mqtt.mqtt.discovery import DiscoverySpec
    from tuya_mqtt.schema import TopicDescriptor

__all__ = ["DeviceKind", "DeviceVariant", "create_variant", "register_variant", "scale_formulas"]


class DeviceKind(StrEnum):
    SWITCH = "switch"
    COVER = "cover"
    GENERIC_DIMMER = "generic_dimmer"
    COLOR_LIGHT = "color_light"
    GENERIC = "generic"

    @classmethod
    def from_type(cls, type_name: str | None) -> DeviceKind:
        """Map a configured ``type`` (``SimpleSwitch``, ``switch``, ...) to a kind."""
        if not type_name:
            return cls.GENERIC
        normalized = type_name.strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            return _TYPE_ALIASES.get(normalized, cls.GENERIC)


_TYPE_ALIASES: dict[str, DeviceKind] = {
    "simpleswitch": DeviceKind.SWITCH,
    "simplecover": DeviceKind.COVER,
    "simpledimmer": DeviceKind.GENERIC_DIMMER,
    "rgbtwlight": DeviceKind.COLOR_LIGHT,
    "genericdevice": DeviceKind.GENERIC,
}


def scale_formulas(scale: int) -> tuple[str, str]:
    """(state, command) formulas mapping a device brightness scale to 0-100.

    Devices with a 255 scale time out on writes below ~10%, so their
    command formula starts at 25.
    """
    if scale == 255:
        return "/2.3-10.86", "*2.3+25"
    return f"/({scale}/100)", f"*({scale}/100)"


class DeviceVariant:
    """Default hooks; every kind overrides the ones it needs."""

    kind: ClassVar[DeviceKind] = DeviceKind.GENERIC
    model: ClassVar[str] = "Generic Device"

    def __init__(self, device: TuyaDevice) -> None:
        self.device: TuyaDevice = device
        self.config = device.config

    @property
    def mode_dps(self) -> int | None:
        """DPS holding the white/colour mode, for kinds that have one."""
        return None

    async def initialize(self) -> bool:
        """Prepare the variant after a connection; False aborts device initialization."""
        return True

    def build_topic_schema(self) -> TopicSchema:
        return TopicSchema()

    async def on_command(self, command_topic: str, command: object) -> bool:
        """Handle a command topic the schema does not know; True when consumed."""
        return False

    def write(self, descriptor: TopicDescriptor, value: DpsValue) -> list[dict[int, DpsValue]]:
        """Ordered DPS writes for one schema command."""
        return [{descriptor.dps_key: value}]

    def on_state_update(self, dps_key: int, value: DpsValue) -> None:
        return None

    def format_string_state(self, value: object) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    def derive_publish_overrides(self) -> dict[str, str]:
        """Extra ``topic -> payload`` pairs published after each publish pass."""
        return {}

    def discovery_config(self) -> DiscoverySpec | None:
        return None


_VARIANTS: dict[DeviceKind, type[DeviceVariant]] = {}


def register_variant(cls: type[DeviceVariant]) -> type[DeviceVariant]:
    _VARIANTS[cls.kind] = cls
    return cls


def create_variant(kind: DeviceKind, device: TuyaDevice) -> DeviceVariant:
    factory: Callable[[TuyaDevice], DeviceVariant] = _VARIANTS.get(kind, DeviceVariant)
    return factory(device)
