"""Tuya color encodings.

Two packed string encodings are in use:

- ``hsb``: ``HHHHSSSSBBBB`` hex, hue 0-360, saturation and brightness x10.
- ``hsbhex``: ``RRGGBBHHHHSSBB`` hex, an RGB prefix followed by hue and
  saturation/brightness scaled to 0-255.

Both decode to a :class:`ColorState` with 0-100 saturation and brightness.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from tuya_mqtt.exceptions import InvalidCommandError
from tuya_mqtt.transforms.numeric import round_half_up, to_number

__all__ = [
    "COLOR_COMPONENTS",
    "ColorState",
    "ColorType",
    "apply_color_command",
    "decode_color",
    "detect_color_type",
    "encode_color",
    "hsv_to_rgb_hex",
]

COLOR_COMPONENTS = ("h", "s", "b")
_LIMITS = {"h": 359, "s": 100, "b": 100}

_HSB_RE = re.compile(r"^([0-9a-f]{4})([0-9a-f]{4})([0-9a-f]{4})$", re.IGNORECASE)
_HSBHEX_RE = re.compile(r"^.{6}([0-9a-f]{4})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


class ColorType(StrEnum):
    HSB = "hsb"
    HSBHEX = "hsbhex"


@dataclass(slots=True)
class ColorState:
    """Hue 0-359, saturation and brightness 0-100."""

    h: int = 0
    s: int = 0
    b: int = 100

    def component(self, name: str) -> int:
        return int(getattr(self, name))

    def copy(self) -> ColorState:
        return ColorState(self.h, self.s, self.b)


def decode_color(value: object, color_type: ColorType) -> ColorState:
    """Decode a wire color; malformed or missing values give full brightness white."""
    text = value if isinstance(value, str) else ""
    if color_type is ColorType.HSBHEX:
        match = _HSBHEX_RE.match(text)
        divisor = 2.55
    else:
        match = _HSB_RE.match(text)
        divisor = 10
    if match is None:
        return ColorState()
    h, s, b = (int(part, 16) for part in match.groups())
    return ColorState(h=h, s=round_half_up(s / divisor), b=round_half_up(b / divisor))


def hsv_to_rgb_hex(h: float, s: float, b: float) -> str:
    """RGB hex string for hue 0-360, saturation and brightness 0-100."""
    h /= 60
    s /= 100
    b *= 2.55
    i = math.floor(h)
    f = h - i
    p = b * (1 - s)
    q = b * (1 - s * f)
    t = b * (1 - s * (1 - f))
    match i % 6:
        case 0:
            rgb = (b, t, p)
        case 1:
            rgb = (q, b, p)
        case 2:
            rgb = (p, b, t)
        case 3:
            rgb = (p, q, b)
        case 4:
            rgb = (t, p, b)
        case _:
            rgb = (b, p, q)
    return "".join(f"{round_half_up(c):02x}" for c in rgb)


def encode_color(color: ColorState, color_type: ColorType) -> str:
    h, s, b = int(color.h), int(color.s), int(color.b)
    if color_type is ColorType.HSBHEX:
        hsb = f"{h:04x}{round_half_up(2.55 * s):02x}{round_half_up(2.55 * b):02x}"
        return hsv_to_rgb_hex(h, s, b) + hsb
    return f"{h:04x}{10 * s:04x}{10 * b:04x}"


def apply_color_command(target: ColorState, payload: object, components: Sequence[str]) -> ColorState:
    """Update ``target`` in place from a ``"h,s"`` style command payload.

    Raises:
        InvalidCommandError: the payload does not carry one number per
            component.

    """
    parts = str(payload).split(",") if not isinstance(payload, bool | int | float) else [str(payload)]
    if len(parts) != len(components):
        raise InvalidCommandError(f"expected {len(components)} values for {','.join(components)}", payload)
    values: list[int] = []
    for part in parts:
        number = to_number(part)
        if number is None:
            raise InvalidCommandError("color component is not a number", payload)
        values.append(round_half_up(number))
    for name, value in zip(components, values, strict=True):
        setattr(target, name, max(0, min(_LIMITS[name], value)))
    return target


def detect_color_type(sample: object, power_dps: int) -> ColorType:
    """Guess the encoding from a sample color value and the DPS layout in use."""
    length = len(sample) if isinstance(sample, str) else 0
    if power_dps == 1:
        return ColorType.HSB if length == 12 else ColorType.HSBHEX
    return ColorType.HSBHEX if length == 14 else ColorType.HSB
