"""Tuya local protocol client built on ``tinytuya``.

``tinytuya`` is blocking, so every call runs in a worker thread. One
:class:`asyncio.Lock` serialises socket use per device; the listener takes
it for one short receive at a time so reads and writes interleave with it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import tinytuya

from tuya_mqtt.events import (
    ConnectedEvent,
    DataEvent,
    DeviceEvent,
    DisconnectedEvent,
    DpsValue,
    ErrorEvent,
    HeartbeatEvent,
    normalize_dps,
)
from tuya_mqtt.exceptions import DeviceConnectionError, DeviceNotFoundError
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.structs import DeviceConfig

__all__ = ["TinyTuyaClient"]

logger = get_logger(__name__)
logging.getLogger("tinytuya").setLevel(logging.WARNING)

# seconds between protocol heartbeats; below the supervisor's check interval
HEARTBEAT_SEND_INTERVAL: float = 7
# receive() blocks at most this long while holding the socket lock
RECEIVE_TIMEOUT: float = 1
DEFAULT_VERSION: float = 3.1


def _is_error(result: object) -> bool:
    return isinstance(result, dict) and "Error" in result


def _is_timeout(result: dict[str, Any]) -> bool:
    return str(result.get("Err")) == str(tinytuya.ERR_TIMEOUT)


def _error_text(result: dict[str, Any]) -> str:
    return f"{result.get('Error')} (Err {result.get('Err')})"


class TinyTuyaClient:
    """Protocol client for one device; events are delivered on :attr:`events`."""

    def __init__(self, config: DeviceConfig) -> None:
        self.config = config
        self.device_id: str = config.id
        self.address: str | None = config.ip
        self.version: float = self._parse_version(config.version)
        self.events: asyncio.Queue[DeviceEvent] = asyncio.Queue()
        self.lp: str = f"TinyTuyaClient:{config.topic_name}:"

        self._device: tinytuya.Device | None = None
        self._lock = asyncio.Lock()
        self._connected: bool = False
        self._listener: asyncio.Task[None] | None = None

    @staticmethod
    def _parse_version(version: object) -> float:
        try:
            return float(str(version))
        except (TypeError, ValueError):
            return DEFAULT_VERSION

    def _emit(self, event: DeviceEvent) -> None:
        self.events.put_nowait(event)

    async def _call(self, fn: Any, *args: Any) -> Any:
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    # -- connection --------------------------------------------------------

    async def find(self) -> None:
        """Resolve the device address by UDP broadcast unless an IP is configured."""
        lp = f"{self.lp}find:"
        if self.config.ip:
            self.address = self.config.ip
            return
        logger.debug("%s scanning for %s", lp, self.device_id)
        result = await asyncio.to_thread(tinytuya.find_device, self.device_id)
        if not isinstance(result, dict) or not result.get("ip"):
            raise DeviceNotFoundError(self.device_id, "device not found on the local network")
        self.address = result["ip"]
        if result.get("version"):
            self.version = self._parse_version(result["version"])
        logger.debug("%s found %s at %s (v%s)", lp, self.device_id, self.address, self.version)

    async def connect(self) -> None:
        lp = f"{self.lp}connect:"
        if not self.address:
            raise DeviceConnectionError(self.device_id, "no address, run find() first")
        device = tinytuya.Device(self.device_id, self.address, self.config.key, version=self.version)
        device.set_socketPersistent(True)
        device.set_socketTimeout(RECEIVE_TIMEOUT)
        self._device = device
        try:
            status = await self._call(device.status)
        except OSError as e:
            self._device = None
            raise DeviceConnectionError(self.device_id, f"connect failed: {e}") from e
        if not isinstance(status, dict) or _is_error(status):
            self._device = None
            await asyncio.to_thread(device.close)
            reason = _error_text(status) if isinstance(status, dict) else "no response"
            raise DeviceConnectionError(self.device_id, f"connect failed: {reason}")

        self._connected = True
        logger.debug("%s connected to %s:%s", lp, self.address, self.version)
        self._emit(ConnectedEvent())
        dps = normalize_dps(status.get("dps") or {})
        if dps:
            self._emit(DataEvent(dps))
        self._listener = asyncio.create_task(self._listen(), name=f"{self.device_id}:listen")

    async def disconnect(self) -> None:
        was_connected = self._connected
        self._connected = False
        listener, self._listener = self._listener, None
        if listener is not None and listener is not asyncio.current_task() and not listener.done():
            _ = listener.cancel()
        device, self._device = self._device, None
        if device is not None:
            try:
                await asyncio.to_thread(device.close)
            except OSError as e:
                logger.debug("%s close failed: %s", self.lp, e)
        if was_connected:
            self._emit(DisconnectedEvent())

    def is_connected(self) -> bool:
        return self._connected and self._device is not None

    async def _listen(self) -> None:
        """Forward pushed updates and keep the session alive with heartbeats."""
        lp = f"{self.lp}listen:"
        loop = asyncio.get_running_loop()
        next_heartbeat = loop.time() + HEARTBEAT_SEND_INTERVAL
        while self._connected and self._device is not None:
            device = self._device
            try:
                result = await self._call(device.receive)
                if loop.time() >= next_heartbeat:
                    next_heartbeat = loop.time() + HEARTBEAT_SEND_INTERVAL
                    ack = await self._call(device.heartbeat)
                    if _is_error(ack):
                        result = ack
                    else:
                        self._emit(HeartbeatEvent())
            except OSError as e:
                result = {"Error": str(e), "Err": None}

            if result is None:
                continue
            if _is_error(result):
                if _is_timeout(result):
                    continue
                logger.debug("%s socket error: %s", lp, result)
                self._emit(ErrorEvent(DeviceConnectionError(self.device_id, _error_text(result))))
                await self.disconnect()
                return
            if isinstance(result, dict) and result.get("dps"):
                self._emit(DataEvent(normalize_dps(result["dps"])))

    # -- data points -------------------------------------------------------

    def _require_device(self) -> tinytuya.Device:
        if self._device is None or not self._connected:
            raise DeviceConnectionError(self.device_id, "not connected")
        return self._device

    async def get(self, dps: int) -> DpsValue | None:
        device = self._require_device()
        status = await self._call(device.status)
        if not isinstance(status, dict) or _is_error(status):
            reason = _error_text(status) if isinstance(status, dict) else "no response"
            raise DeviceConnectionError(self.device_id, f"get DPS {dps} failed: {reason}")
        value = (status.get("dps") or {}).get(str(dps))
        return value if isinstance(value, bool | int | float | str) else None

    async def set(self, dps: int, value: DpsValue) -> None:
        device = self._require_device()
        self._handle_write(await self._call(device.set_value, dps, value), f"set DPS {dps}")

    async def set_many(self, values: dict[int, DpsValue]) -> None:
        device = self._require_device()
        payload = {str(k): v for k, v in values.items()}
        self._handle_write(await self._call(device.set_multiple_values, payload), f"set DPS {list(values)}")

    def _handle_write(self, result: object, what: str) -> None:
        if isinstance(result, dict) and _is_error(result):
            raise DeviceConnectionError(self.device_id, f"{what} failed: {_error_text(result)}")
        if isinstance(result, dict) and result.get("dps"):
            self._emit(DataEvent(normalize_dps(result["dps"])))
