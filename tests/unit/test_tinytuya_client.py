"""Unit tests for the tinytuya-backed protocol client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tuya_mqtt.events import ConnectedEvent, DataEvent, DisconnectedEvent, ErrorEvent
from tuya_mqtt.exceptions import DeviceConnectionError, DeviceNotFoundError
from tuya_mqtt.protocol.tinytuya_client import TinyTuyaClient
from tuya_mqtt.structs import DeviceConfig


@pytest.fixture
def mock_tinytuya():
    with patch("tuya_mqtt.protocol.tinytuya_client.tinytuya") as mock_tt:
        mock_tt.ERR_TIMEOUT = "902"
        device = mock_tt.Device.return_value
        device.status.return_value = {"dps": {"1": True, "2": 50}}
        device.receive.return_value = None
        yield mock_tt


def _client(**overrides) -> TinyTuyaClient:
    data = {"id": "bf01", "key": "localkey", "ip": "10.0.0.5", **overrides}
    return TinyTuyaClient(DeviceConfig.model_validate(data))


def _drain_events(client: TinyTuyaClient) -> list:
    events = []
    while not client.events.empty():
        events.append(client.events.get_nowait())
    return events


def _attach(client: TinyTuyaClient, device: MagicMock) -> None:
    client._device = device
    client._connected = True


class TestFind:
    @pytest.mark.asyncio
    async def test_configured_ip_skips_scan(self, mock_tinytuya):
        client = _client()

        await client.find()

        assert client.address == "10.0.0.5"
        assert client.version == 3.1
        mock_tinytuya.find_device.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_sets_address_and_version(self, mock_tinytuya):
        mock_tinytuya.find_device.return_value = {"ip": "10.0.0.9", "version": "3.3"}
        client = _client(ip=None)

        await client.find()

        mock_tinytuya.find_device.assert_called_once_with("bf01")
        assert client.address == "10.0.0.9"
        assert client.version == 3.3

    @pytest.mark.asyncio
    async def test_scan_finds_nothing(self, mock_tinytuya):
        mock_tinytuya.find_device.return_value = {"ip": None, "version": None}
        client = _client(ip=None)

        with pytest.raises(DeviceNotFoundError):
            await client.find()


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_emits_connected_then_data(self, mock_tinytuya):
        client = _client(version="3.3")

        await client.connect()

        mock_tinytuya.Device.assert_called_once_with("bf01", "10.0.0.5", "localkey", version=3.3)
        device = mock_tinytuya.Device.return_value
        device.set_socketPersistent.assert_called_once_with(True)
        assert client.is_connected()
        assert _drain_events(client) == [ConnectedEvent(), DataEvent({1: True, 2: 50})]

        await client.disconnect()

        device.close.assert_called()
        assert not client.is_connected()
        assert _drain_events(client) == [DisconnectedEvent()]

    @pytest.mark.asyncio
    async def test_error_status_fails_connect(self, mock_tinytuya):
        device = mock_tinytuya.Device.return_value
        device.status.return_value = {"Error": "Network Error: Unable to Connect", "Err": "901"}
        client = _client()

        with pytest.raises(DeviceConnectionError) as exc_info:
            await client.connect()

        assert "Unable to Connect" in exc_info.value.reason
        device.close.assert_called_once()
        assert not client.is_connected()
        assert client.events.empty()

    @pytest.mark.asyncio
    async def test_socket_error_fails_connect(self, mock_tinytuya):
        mock_tinytuya.Device.return_value.status.side_effect = ConnectionRefusedError("refused")
        client = _client()

        with pytest.raises(DeviceConnectionError):
            await client.connect()
        assert not client.is_connected()

    @pytest.mark.asyncio
    async def test_connect_needs_address(self, mock_tinytuya):
        client = _client(ip=None)

        with pytest.raises(DeviceConnectionError):
            await client.connect()
        mock_tinytuya.Device.assert_not_called()

    @pytest.mark.asyncio
    async def test_disconnect_when_idle_is_silent(self, mock_tinytuya):
        client = _client()

        await client.disconnect()

        assert client.events.empty()


class TestListener:
    @pytest.mark.asyncio
    async def test_forwards_data_and_stops_on_error(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.receive.side_effect = [
            {"dps": {"1": False}},
            None,
            {"Error": "Timeout Waiting for Device", "Err": "902"},
            {"Error": "Unexpected Payload from Device", "Err": "904"},
        ]
        _attach(client, device)

        await client._listen()

        events = _drain_events(client)
        assert events[0] == DataEvent({1: False})
        assert isinstance(events[1], ErrorEvent)
        assert isinstance(events[1].error, DeviceConnectionError)
        assert events[2] == DisconnectedEvent()
        assert len(events) == 3
        assert device.receive.call_count == 4
        assert not client.is_connected()


class TestDataPoints:
    @pytest.mark.asyncio
    async def test_get(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.status.return_value = {"dps": {"1": True, "24": "000003e803e8", "99": [1, 2]}}
        _attach(client, device)

        assert await client.get(24) == "000003e803e8"
        assert await client.get(3) is None
        assert await client.get(99) is None

    @pytest.mark.asyncio
    async def test_get_error(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.status.return_value = {"Error": "Timeout Waiting for Device", "Err": "902"}
        _attach(client, device)

        with pytest.raises(DeviceConnectionError):
            _ = await client.get(1)

    @pytest.mark.asyncio
    async def test_requires_connection(self, mock_tinytuya):
        client = _client()

        with pytest.raises(DeviceConnectionError):
            _ = await client.get(1)
        with pytest.raises(DeviceConnectionError):
            await client.set(1, True)

    @pytest.mark.asyncio
    async def test_set_echoes_data(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.set_value.return_value = {"dps": {"1": True}}
        _attach(client, device)

        await client.set(1, True)

        device.set_value.assert_called_once_with(1, True)
        assert _drain_events(client) == [DataEvent({1: True})]

    @pytest.mark.asyncio
    async def test_set_error(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.set_value.return_value = {"Error": "Network Error", "Err": "905"}
        _attach(client, device)

        with pytest.raises(DeviceConnectionError) as exc_info:
            await client.set(2, 50)
        assert "set DPS 2 failed" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_set_many_uses_text_keys(self, mock_tinytuya):
        client = _client()
        device = MagicMock()
        device.set_multiple_values.return_value = None
        _attach(client, device)

        await client.set_many({1: True, 2: 50})

        device.set_multiple_values.assert_called_once_with({"1": True, "2": 50})
        assert client.events.empty()
