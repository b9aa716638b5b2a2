"""Per-device connection state machine.

Disconnected -> Discovering -> Connecting -> Connected, with heartbeat
monitoring while connected and guarded, backed-off reconnection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tuya_mqtt.const import (
    CONNECT_CONFIRM_DELAY,
    DISCONNECT_RECONNECT_DELAY,
    DISCOVERY_RETRY_DELAY,
    ERROR_RECONNECT_DELAY,
    HEARTBEAT_DISCONNECT_DELAY,
    HEARTBEAT_INTERVAL,
    MAX_HEARTBEAT_MISSED,
    RECONNECT_DELAY,
)
from tuya_mqtt.events import ConnectedEvent, DataEvent, DeviceEvent, DisconnectedEvent, ErrorEvent, HeartbeatEvent
from tuya_mqtt.exceptions import DeviceClientError
from tuya_mqtt.logging_abstraction import correlation_context, get_logger
from tuya_mqtt.utils import spawn

if TYPE_CHECKING:
    from tuya_mqtt.devices.base_device import TuyaDevice
    from tuya_mqtt.structs import DeviceClientProtocol

__all__ = ["ConnectionState", "ConnectionSupervisor"]

logger = get_logger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionSupervisor:
    """Drives one device's protocol client and reacts to its events.

    Only this class changes :attr:`state`. Every reconnect path goes through
    :meth:`reconnect`, which is guarded by a single in-flight flag so
    overlapping triggers (an error followed by a disconnect) collapse into
    one attempt.
    """

    def __init__(
        self,
        device: TuyaDevice,
        client: DeviceClientProtocol,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.device = device
        self.client = client
        self._sleep = sleep
        self.lp: str = f"{device.lp}supervisor:"

        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self.heartbeats_missed: int = 0
        self.reconnecting: bool = False
        self.initialized: bool = False
        self.connect_failures: int = 0

        self._stopped: bool = False
        self._consumer: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[Any]:
        return spawn(coro, self._tasks, f"{self.device.name}:{name}", self.lp)

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Begin consuming client events, monitoring heartbeats and connecting."""
        self._stopped = False
        self._consumer = asyncio.create_task(self.consume_events(), name=f"{self.device.name}:events")
        self._heartbeat = asyncio.create_task(self.monitor_heartbeat(), name=f"{self.device.name}:heartbeat")
        _ = self._spawn(self.reconnect(0), "connect")

    async def stop(self) -> None:
        """Best-effort disconnect and offline status; never raises for I/O errors."""
        lp = f"{self.lp}stop:"
        self._stopped = True
        for task in (self._consumer, self._heartbeat, *self._tasks):
            if task is not None and not task.done():
                _ = task.cancel()
        try:
            await self.client.disconnect()
        except DeviceClientError as e:
            logger.warning("%s disconnect failed: %s", lp, e)
        self.state = ConnectionState.DISCONNECTED
        await self.device.publish_status("offline", "bridge stopped")

    # -- connection --------------------------------------------------------

    async def discover(self) -> None:
        """Find the device, retrying forever with a fixed delay."""
        while not self._stopped:
            self.state = ConnectionState.DISCOVERING
            logger.debug("%s Search for device %s", self.lp, self.device)
            try:
                await self.client.find()
            except DeviceClientError as e:
                await self.device.log_error(e.reason)
                await self.device.log_error(f"Will attempt to find device again in {DISCOVERY_RETRY_DELAY} seconds")
                await self._sleep(DISCOVERY_RETRY_DELAY)
            else:
                logger.debug("%s Found device %s", self.lp, self.device)
                return

    async def connect_once(self) -> bool:
        """One discovery + connect attempt; True when the client accepted the connection."""
        await self.discover()
        if self._stopped:
            return False
        self.state = ConnectionState.CONNECTING
        try:
            await self.client.connect()
        except DeviceClientError as e:
            self.state = ConnectionState.DISCONNECTED
            self.connect_failures += 1
            await self.device.log_error(e.reason)
            return False
        return True

    def _retry_delay(self) -> float:
        return ERROR_RECONNECT_DELAY if self.connect_failures <= 1 else RECONNECT_DELAY

    async def reconnect(self, delay: float) -> None:
        """Wait ``delay`` then connect, retrying until a connection attempt sticks."""
        if self.reconnecting or self._stopped:
            logger.debug("%s reconnect already in progress, skipping", self.lp)
            return
        self.reconnecting = True
        try:
            if delay:
                await self._sleep(delay)
            while not self._stopped and not await self.connect_once():
                retry_in = self._retry_delay()
                await self.device.log_error(f"Error connecting to device {self.device}...retry in {retry_in} seconds.")
                await self._sleep(retry_in)
        finally:
            self.reconnecting = False

    def _mark_disconnected(self) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.initialized = False
        self.heartbeats_missed = 0

    # -- events ------------------------------------------------------------

    async def consume_events(self) -> None:
        while True:
            event = await self.client.events.get()
            with correlation_context():
                try:
                    await self.handle_event(event)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("%s unhandled error processing %s", self.lp, type(event).__name__)

    async def handle_event(self, event: DeviceEvent) -> None:
        match event:
            case DataEvent(dps=dps):
                logger.debug("%s Received JSON data from device -> %s", self.lp, dps)
                _ = self.device.update_state(dps)
                await self.device.publish_topics()
            case ConnectedEvent():
                _ = self._spawn(self.confirm_connection(), "confirm")
            case DisconnectedEvent():
                await self.on_disconnected()
            case ErrorEvent(error=error):
                await self.on_error(error)
            case HeartbeatEvent():
                self.heartbeats_missed = 0

    async def confirm_connection(self) -> None:
        """Trust a reported connection only if it is still alive a moment later."""
        await self._sleep(CONNECT_CONFIRM_DELAY)
        if not self.client.is_connected():
            logger.debug("%s connection reported but socket is not alive", self.lp)
            self._mark_disconnected()
            _ = self._spawn(self.reconnect(ERROR_RECONNECT_DELAY), "reconnect")
            return
        logger.info("%s Connected to device %s", self.lp, self.device)
        self.state = ConnectionState.CONNECTED
        self.heartbeats_missed = 0
        self.connect_failures = 0
        await self.device.publish_status("online", "device connected")
        if self.initialized:
            return
        self.initialized = True
        try:
            ok = await self.device.initialize()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("%s device init failed", self.lp)
            await self.device.log_error(f"device init failed: {self.device}: {e}")
        else:
            logger.debug("%s Initiated device %s (ok=%s)", self.lp, self.device, ok)

    async def on_disconnected(self) -> None:
        logger.info("%s Disconnected from device %s", self.lp, self.device)
        self._mark_disconnected()
        await self.device.publish_status("offline", "device disconnected")
        _ = self._spawn(self.reconnect(DISCONNECT_RECONNECT_DELAY), "reconnect")

    async def on_error(self, error: BaseException) -> None:
        await self.device.log_error(error)
        if self.state is ConnectionState.CONNECTED:
            self._mark_disconnected()
            await self.device.publish_status("offline", f"device error: {error}")
            _ = self._spawn(self.reconnect(DISCONNECT_RECONNECT_DELAY), "reconnect")
        else:
            _ = self._spawn(self.reconnect(ERROR_RECONNECT_DELAY), "reconnect")

    # -- heartbeat ---------------------------------------------------------

    async def monitor_heartbeat(self) -> None:
        while True:
            await self._sleep(HEARTBEAT_INTERVAL)
            await self.heartbeat_tick()

    async def heartbeat_tick(self) -> None:
        """Count one silent interval; too many in a row force a reconnect."""
        if self.state is not ConnectionState.CONNECTED:
            return
        self.heartbeats_missed += 1
        if self.heartbeats_missed > MAX_HEARTBEAT_MISSED:
            await self.device.log_error(f"Device {self.device} not responding to heartbeats...disconnecting")
            self._mark_disconnected()
            try:
                await self.client.disconnect()
            except DeviceClientError as e:
                logger.warning("%s disconnect after missed heartbeats failed: %s", self.lp, e)
            _ = self._spawn(self.reconnect(HEARTBEAT_DISCONNECT_DELAY), "reconnect")
        elif self.heartbeats_missed > 1:
            missed = self.heartbeats_missed - 1
            await self.device.log_error(
                f"Device {self.device} has missed {missed} heartbeat{'s' if missed > 1 else ''}",
            )
