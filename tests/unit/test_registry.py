"""Unit tests for the device registry."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tuya_mqtt.registry import DeviceRegistry


def _device(dev_id: str, name: str) -> MagicMock:
    device = MagicMock()
    device.config.id = dev_id
    device.name = name
    return device


class TestDeviceRegistry:
    def test_lookup_by_name_then_id(self):
        registry = DeviceRegistry()
        lamp = _device("bf01", "lamp")
        assert registry.add(lamp)

        assert registry.get("lamp") is lamp
        assert registry.get("LAMP") is lamp
        assert registry.get("bf01") is lamp
        assert registry.get("kitchen") is None
        assert "lamp" in registry
        assert 42 not in registry

    def test_name_shadows_another_device_id(self):
        registry = DeviceRegistry()
        first = _device("bf01", "lamp")
        second = _device("lamp", "desk")
        assert registry.add(first)
        assert registry.add(second)

        assert registry.get("lamp") is first

    @pytest.mark.parametrize(("dev_id", "name"), [("bf01", "other"), ("bf02", "lamp")])
    def test_duplicates_are_rejected(self, dev_id, name):
        registry = DeviceRegistry()
        _ = registry.add(_device("bf01", "lamp"))

        assert registry.add(_device(dev_id, name)) is False
        assert len(registry) == 1

    def test_iteration_order(self):
        registry = DeviceRegistry()
        devices = [_device(f"bf0{i}", f"d{i}") for i in range(3)]
        for device in devices:
            _ = registry.add(device)

        assert list(registry) == devices
