"""Lookup of bridged devices by topic name or Tuya id."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from tuya_mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from tuya_mqtt.devices.base_device import TuyaDevice

__all__ = ["DeviceRegistry"]

logger = get_logger(__name__)


class DeviceRegistry:
    lp: str = "registry:"

    def __init__(self) -> None:
        self._by_id: dict[str, TuyaDevice] = {}
        self._by_name: dict[str, TuyaDevice] = {}

    def add(self, device: TuyaDevice) -> bool:
        """Register ``device``; a repeated id or topic name is logged and skipped."""
        lp = f"{self.lp}add:"
        dev_id = device.config.id
        if dev_id in self._by_id or device.name in self._by_name:
            logger.warning(
                "%s duplicate device %s (topic name %r), skipping",
                lp,
                dev_id,
                device.name,
                extra={"device_id": dev_id},
            )
            return False
        self._by_id[dev_id] = device
        self._by_name[device.name] = device
        return True

    def get(self, segment: str) -> TuyaDevice | None:
        """Resolve a topic segment: friendly name first, then protocol id."""
        return self._by_name.get(segment.lower()) or self._by_id.get(segment)

    def __iter__(self) -> Iterator[TuyaDevice]:
        return iter(list(self._by_id.values()))

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, segment: object) -> bool:
        return isinstance(segment, str) and self.get(segment) is not None
