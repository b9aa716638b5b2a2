"""Value transforms between Tuya wire values and MQTT topic values.

- formula.py: compiled single-variable scaling formulas
- numeric.py: numeric state/command parsing with range clamping
- color.py: HSB / HSBHEX color codecs
"""

from .color import ColorState, ColorType, apply_color_command, decode_color, detect_color_type, encode_color, hsv_to_rgb_hex
from .formula import Formula
from .numeric import format_number, parse_number_command, parse_number_state, round_half_up, to_number

__all__ = [
    "ColorState",
    "ColorType",
    "Formula",
    "apply_color_command",
    "decode_color",
    "detect_color_type",
    "encode_color",
    "format_number",
    "hsv_to_rgb_hex",
    "parse_number_command",
    "parse_number_state",
    "round_half_up",
    "to_number",
]
