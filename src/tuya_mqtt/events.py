"""Inbound events emitted by a protocol client and consumed by its device."""

from __future__ import annotations

from dataclasses import dataclass, field

DpsValue = bool | int | float | str


@dataclass(slots=True, frozen=True)
class DataEvent:
    """Pushed or queried DPS values, keyed by DPS key."""

    dps: dict[int, DpsValue] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ConnectedEvent:
    pass


@dataclass(slots=True, frozen=True)
class DisconnectedEvent:
    pass


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    error: BaseException


@dataclass(slots=True, frozen=True)
class HeartbeatEvent:
    pass


DeviceEvent = DataEvent | ConnectedEvent | DisconnectedEvent | ErrorEvent | HeartbeatEvent


def normalize_dps(raw: object) -> dict[int, DpsValue]:
    """Coerce a protocol ``dps`` mapping to integer keys, dropping junk entries."""
    if not isinstance(raw, dict):
        return {}
    dps: dict[int, DpsValue] = {}
    for key, value in raw.items():
        try:
            dps_key = int(key)
        except (TypeError, ValueError):
            continue
        if isinstance(value, bool | int | float | str):
            dps[dps_key] = value
    return dps
