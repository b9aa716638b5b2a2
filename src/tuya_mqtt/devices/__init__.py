"""Tuya device model.

Importing this package registers every built-in variant with
:func:`~tuya_mqtt.devices.variant.create_variant`.
"""

from . import cover, dimmer, generic, rgbtw_light, switch
from .base_device import TuyaDevice
from .cover import CoverVariant
from .dimmer import DimmerVariant
from .generic import GenericVariant
from .rgbtw_light import RGBTWLightVariant
from .supervisor import ConnectionState, ConnectionSupervisor
from .switch import SwitchVariant
from .variant import DeviceKind, DeviceVariant, create_variant

__all__ = [
    "ConnectionState",
    "ConnectionSupervisor",
    "CoverVariant",
    "DeviceKind",
    "DeviceVariant",
    "DimmerVariant",
    "GenericVariant",
    "RGBTWLightVariant",
    "SwitchVariant",
    "TuyaDevice",
    "cover",
    "create_variant",
    "dimmer",
    "generic",
    "rgbtw_light",
    "switch",
]
