"""Unit tests for the per-device connection supervisor."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from tuya_mqtt.devices.supervisor import ConnectionState
from tuya_mqtt.events import ConnectedEvent, DataEvent, DisconnectedEvent, ErrorEvent, HeartbeatEvent
from tuya_mqtt.exceptions import DeviceConnectionError, DeviceNotFoundError


async def _yield(_delay: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def device(make_device):
    return make_device(connected=False)


@pytest.fixture
def supervisor(device):
    return device.supervisor


def _logs(published) -> list[str]:
    return [payload for topic, payload in published() if topic == "tuya/living_room/log"]


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_once(self, supervisor, fake_client):
        assert await supervisor.connect_once() is True

        fake_client.find.assert_awaited_once()
        fake_client.connect.assert_awaited_once()
        assert supervisor.state is ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_discovery_retries_after_60_seconds(self, supervisor, fake_client, fake_sleep, published):
        fake_client.find.side_effect = [DeviceNotFoundError("dev1", "device not found on the local network"), None]

        assert await supervisor.connect_once() is True

        assert fake_client.find.await_count == 2
        fake_sleep.assert_awaited_once_with(60)
        assert _logs(published) == [
            "device not found on the local network",
            "Will attempt to find device again in 60 seconds",
        ]

    @pytest.mark.asyncio
    async def test_connect_failure(self, supervisor, fake_client, published):
        fake_client.connect.side_effect = DeviceConnectionError("dev1", "connect failed: refused")

        assert await supervisor.connect_once() is False

        assert supervisor.state is ConnectionState.DISCONNECTED
        assert supervisor.connect_failures == 1
        assert _logs(published) == ["connect failed: refused"]

    @pytest.mark.asyncio
    async def test_reconnect_backs_off(self, supervisor, fake_client, fake_sleep, published):
        err = DeviceConnectionError("dev1", "refused")
        fake_client.connect.side_effect = [err, err, None]

        await supervisor.reconnect(0)

        assert fake_client.connect.await_count == 3
        assert fake_sleep.await_args_list == [call(1), call(10)]
        assert supervisor.reconnecting is False
        retries = [m for m in _logs(published) if m.startswith("Error connecting to device")]
        assert len(retries) == 2
        assert retries[0].endswith("...retry in 1 seconds.")

    @pytest.mark.asyncio
    async def test_reconnect_waits_initial_delay(self, supervisor, fake_sleep):
        await supervisor.reconnect(5)
        fake_sleep.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_overlapping_reconnects_collapse(self, supervisor, fake_client, fake_sleep):
        fake_sleep.side_effect = _yield

        _ = await asyncio.gather(supervisor.reconnect(5), supervisor.reconnect(1))

        fake_client.connect.assert_awaited_once()
        fake_sleep.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_no_reconnect_after_stop(self, supervisor, fake_client):
        await supervisor.stop()
        await supervisor.reconnect(0)
        fake_client.connect.assert_not_awaited()


class TestConfirmConnection:
    @pytest.mark.asyncio
    async def test_confirmed_connection_initializes_once(self, device, supervisor, published):
        device.initialize = AsyncMock(return_value=True)
        supervisor.connect_failures = 2

        await supervisor.confirm_connection()
        await supervisor.confirm_connection()

        assert supervisor.state is ConnectionState.CONNECTED
        assert supervisor.connect_failures == 0
        device.initialize.assert_awaited_once()
        assert published()[:2] == [
            ("tuya/living_room/status", "online"),
            ("tuya/living_room/reason", "device connected"),
        ]

    @pytest.mark.asyncio
    async def test_reinitializes_after_disconnect(self, device, supervisor, fake_client):
        device.initialize = AsyncMock(return_value=True)
        await supervisor.confirm_connection()

        await supervisor.on_disconnected()
        await supervisor.confirm_connection()

        assert device.initialize.await_count == 2

    @pytest.mark.asyncio
    async def test_false_positive_triggers_reconnect(self, device, supervisor, fake_client, fake_sleep, drain_tasks):
        device.initialize = AsyncMock()
        fake_client.is_connected.return_value = False

        await supervisor.confirm_connection()

        assert supervisor.state is ConnectionState.DISCONNECTED
        device.initialize.assert_not_awaited()
        await drain_tasks(supervisor._tasks)
        fake_client.connect.assert_awaited_once()
        assert fake_sleep.await_args_list == [call(1), call(1)]

    @pytest.mark.asyncio
    async def test_init_failure_is_reported(self, device, supervisor, published):
        device.initialize = AsyncMock(side_effect=RuntimeError("boom"))

        await supervisor.confirm_connection()

        assert supervisor.state is ConnectionState.CONNECTED
        (message,) = _logs(published)
        assert message.startswith("device init failed:")
        assert message.endswith(": boom")


class TestEvents:
    @pytest.mark.asyncio
    async def test_data_event_updates_and_publishes(self, device, supervisor, published):
        supervisor.state = ConnectionState.CONNECTED

        await supervisor.handle_event(DataEvent({1: True}))

        assert device.cache.get(1) is True
        assert ("tuya/living_room/state", "ON") in published()

    @pytest.mark.asyncio
    async def test_connected_event_schedules_confirmation(self, device, supervisor, drain_tasks):
        device.initialize = AsyncMock(return_value=True)

        await supervisor.handle_event(ConnectedEvent())
        await drain_tasks(supervisor._tasks)

        assert supervisor.state is ConnectionState.CONNECTED
        device.initialize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnected_event(self, supervisor, fake_sleep, published, drain_tasks):
        supervisor.state = ConnectionState.CONNECTED
        supervisor.initialized = True

        await supervisor.handle_event(DisconnectedEvent())

        assert supervisor.state is ConnectionState.DISCONNECTED
        assert supervisor.initialized is False
        assert published() == [
            ("tuya/living_room/status", "offline"),
            ("tuya/living_room/reason", "device disconnected"),
        ]
        await drain_tasks(supervisor._tasks)
        assert fake_sleep.await_args_list[0] == call(5)

    @pytest.mark.asyncio
    async def test_error_while_connected(self, supervisor, fake_sleep, published, drain_tasks):
        supervisor.state = ConnectionState.CONNECTED
        error = DeviceConnectionError("dev1", "socket reset")

        await supervisor.handle_event(ErrorEvent(error))

        assert supervisor.state is ConnectionState.DISCONNECTED
        assert published() == [
            ("tuya/living_room/log", str(error)),
            ("tuya/living_room/status", "offline"),
            ("tuya/living_room/reason", f"device error: {error}"),
        ]
        await drain_tasks(supervisor._tasks)
        assert fake_sleep.await_args_list[0] == call(5)

    @pytest.mark.asyncio
    async def test_error_while_connecting(self, supervisor, fake_sleep, published, drain_tasks):
        supervisor.state = ConnectionState.CONNECTING

        await supervisor.handle_event(ErrorEvent(DeviceConnectionError("dev1", "refused")))

        assert [t for t, _ in published()] == ["tuya/living_room/log"]
        await drain_tasks(supervisor._tasks)
        assert fake_sleep.await_args_list[0] == call(1)

    @pytest.mark.asyncio
    async def test_heartbeat_event_resets_counter(self, supervisor):
        supervisor.heartbeats_missed = 3
        await supervisor.handle_event(HeartbeatEvent())
        assert supervisor.heartbeats_missed == 0

    @pytest.mark.asyncio
    async def test_consumer_survives_handler_errors(self, supervisor, fake_client):
        supervisor.handle_event = AsyncMock(side_effect=[RuntimeError("boom"), None])
        fake_client.events.put_nowait(HeartbeatEvent())
        fake_client.events.put_nowait(HeartbeatEvent())

        task = asyncio.create_task(supervisor.consume_events())
        for _ in range(5):
            await asyncio.sleep(0)
        _ = task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert supervisor.handle_event.await_count == 2


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_ignored_unless_connected(self, supervisor):
        await supervisor.heartbeat_tick()
        assert supervisor.heartbeats_missed == 0

    @pytest.mark.asyncio
    async def test_missed_heartbeats_escalate(self, supervisor, fake_client, published, drain_tasks):
        supervisor.state = ConnectionState.CONNECTED

        await supervisor.heartbeat_tick()
        assert _logs(published) == []

        await supervisor.heartbeat_tick()
        await supervisor.heartbeat_tick()
        logs = _logs(published)
        assert logs[0].endswith("has missed 1 heartbeat")
        assert logs[1].endswith("has missed 2 heartbeats")
        fake_client.disconnect.assert_not_awaited()

        await supervisor.heartbeat_tick()
        assert _logs(published)[-1].endswith("not responding to heartbeats...disconnecting")
        assert supervisor.state is ConnectionState.DISCONNECTED
        assert supervisor.heartbeats_missed == 0
        fake_client.disconnect.assert_awaited_once()
        await drain_tasks(supervisor._tasks)
        fake_client.connect.assert_awaited_once()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_connects_and_stop_goes_offline(self, supervisor, fake_client, fake_sleep, published):
        fake_sleep.side_effect = _yield

        await supervisor.start()
        for _ in range(5):
            await asyncio.sleep(0)
        fake_client.connect.assert_awaited_once()

        await supervisor.stop()

        fake_client.disconnect.assert_awaited_once()
        assert supervisor.state is ConnectionState.DISCONNECTED
        assert published()[-2:] == [
            ("tuya/living_room/status", "offline"),
            ("tuya/living_room/reason", "bridge stopped"),
        ]

    @pytest.mark.asyncio
    async def test_stop_tolerates_disconnect_errors(self, supervisor, fake_client):
        fake_client.disconnect.side_effect = DeviceConnectionError("dev1", "already closed")

        await supervisor.stop()

        assert supervisor.state is ConnectionState.DISCONNECTED
