"""Per-device cache of last known DPS values with dirty tracking."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from tuya_mqtt.events import DpsValue

__all__ = ["DpsEntry", "StateCache"]


@dataclass(slots=True)
class DpsEntry:
    value: DpsValue
    dirty: bool = True


class StateCache:
    """Last known value of every observed DPS key.

    An entry is dirty from the moment its value changes (or a full resync
    stores it) until :meth:`clear_dirty` is called after it was published.
    """

    def __init__(self) -> None:
        self._entries: dict[int, DpsEntry] = {}

    def __contains__(self, dps_key: object) -> bool:
        return dps_key in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, dps_key: int, default: DpsValue | None = None) -> DpsValue | None:
        entry = self._entries.get(dps_key)
        return entry.value if entry is not None else default

    def store(self, dps_key: int, value: DpsValue) -> None:
        """Store a queried value and mark it dirty whether or not it changed."""
        self._entries[dps_key] = DpsEntry(value=value, dirty=True)

    def update(self, dps: Mapping[int, DpsValue]) -> list[int]:
        """Merge pushed values; return the keys that were new or changed."""
        changed: list[int] = []
        for dps_key, value in dps.items():
            entry = self._entries.get(dps_key)
            if entry is None:
                self._entries[dps_key] = DpsEntry(value=value, dirty=True)
            elif entry.value != value or type(entry.value) is not type(value):
                entry.value = value
                entry.dirty = True
            else:
                continue
            changed.append(dps_key)
        return changed

    def mark_dirty(self, dps_key: int) -> bool:
        entry = self._entries.get(dps_key)
        if entry is None:
            return False
        entry.dirty = True
        return True

    def is_dirty(self, dps_key: int) -> bool:
        entry = self._entries.get(dps_key)
        return entry is not None and entry.dirty

    def dirty_keys(self) -> list[int]:
        return [key for key, entry in self._entries.items() if entry.dirty]

    def clear_dirty(self, dps_key: int) -> None:
        entry = self._entries.get(dps_key)
        if entry is not None:
            entry.dirty = False

    def snapshot(self) -> dict[str, DpsValue]:
        """All cached values keyed by DPS key as text, for the aggregate topic."""
        return {str(key): entry.value for key, entry in self._entries.items()}
