"""Shared fixtures for unit tests.

This module provides reusable fixtures for testing tuya-mqtt components:
a mocked MQTT transport, a scripted protocol client and device factories.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from tuya_mqtt.devices import TuyaDevice
from tuya_mqtt.devices.supervisor import ConnectionState
from tuya_mqtt.events import DeviceEvent, DpsValue
from tuya_mqtt.structs import DeviceConfig


class FakeDeviceClient:
    """Protocol client double with a real event queue and mocked I/O."""

    def __init__(self, device_id: str = "dev1", values: dict[int, DpsValue] | None = None) -> None:
        self.device_id = device_id
        self.values: dict[int, DpsValue] = dict(values or {})
        self.events: asyncio.Queue[DeviceEvent] = asyncio.Queue()
        self.find = AsyncMock()
        self.connect = AsyncMock()
        self.disconnect = AsyncMock()
        self.is_connected = MagicMock(return_value=True)
        self.get = AsyncMock(side_effect=self._get)
        self.set = AsyncMock()
        self.set_many = AsyncMock()

    async def _get(self, dps: int) -> DpsValue | None:
        return self.values.get(dps)


@pytest.fixture
def mock_mqtt_client() -> MagicMock:
    """Mock MQTT transport.

    ``publish`` and ``publish_json_msg`` are AsyncMocks that report success.
    """
    client = MagicMock()
    client.lp = "mqtt:"
    client.topic = "tuya"
    client.discovery_topic = "homeassistant"
    client.status_topics = ("homeassistant/status", "hass/status")
    client.is_connected = True
    client.publish = AsyncMock(return_value=True)
    client.publish_json_msg = AsyncMock(return_value=True)
    return client


@pytest.fixture
def fake_client() -> FakeDeviceClient:
    return FakeDeviceClient()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Stand-in for ``asyncio.sleep`` that returns immediately."""
    return AsyncMock()


@pytest.fixture
def make_config() -> Callable[..., DeviceConfig]:
    """Build a DeviceConfig; keyword arguments use the devices-file (camelCase) names."""

    def _make(**overrides: Any) -> DeviceConfig:
        data: dict[str, Any] = {"id": "dev1", "key": "localkey", "name": "Living Room", "type": "SimpleSwitch"}
        data.update(overrides)
        return DeviceConfig.model_validate(data)

    return _make


@pytest.fixture
def make_device(
    make_config: Callable[..., DeviceConfig],
    fake_client: FakeDeviceClient,
    mock_mqtt_client: MagicMock,
    fake_sleep: AsyncMock,
) -> Callable[..., TuyaDevice]:
    """Build a TuyaDevice wired to the fake client and mock transport.

    ``connected=True`` puts the supervisor in the connected state and
    ``schema=True`` builds the variant's topic schema up front.
    """

    def _make(*, connected: bool = True, schema: bool = True, **overrides: Any) -> TuyaDevice:
        device = TuyaDevice(make_config(**overrides), fake_client, mock_mqtt_client, sleep=fake_sleep)
        if schema:
            device.schema = device.variant.build_topic_schema()
        if connected:
            device.supervisor.state = ConnectionState.CONNECTED
        return device

    return _make


@pytest.fixture
def published(mock_mqtt_client: MagicMock) -> Callable[[], list[tuple[str, Any]]]:
    """(topic, payload) pairs published so far, in order."""

    def _published() -> list[tuple[str, Any]]:
        return [(c.args[0], c.args[1]) for c in mock_mqtt_client.publish.await_args_list]

    return _published


async def drain(tasks: set[asyncio.Task[Any]]) -> None:
    """Wait for background tasks, including any they spawn."""
    for _ in range(20):
        pending = [t for t in tasks if not t.done()]
        if not pending:
            await asyncio.sleep(0)
            return
        _ = await asyncio.gather(*pending, return_exceptions=True)


@pytest.fixture
def drain_tasks() -> Callable[[set[asyncio.Task[Any]]], Coroutine[Any, Any, None]]:
    return drain
