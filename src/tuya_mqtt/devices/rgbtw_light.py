"""RGB + tunable white light.

Lights come in two DPS layouts: 1-5 with 0-255 scales, and 20-24 with
0-1000 scales. When ``dpsPower`` is not configured the layout, color
temperature support and color encoding are probed from the device.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from typing_extensions import override

from tuya_mqtt.devices.variant import DeviceKind, DeviceVariant, register_variant, scale_formulas
from tuya_mqtt.exceptions import DeviceClientError
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.mqtt.discovery import DiscoverySpec
from tuya_mqtt.schema import TopicDescriptor, TopicSchema, ValueKind
from tuya_mqtt.transforms.color import ColorType, decode_color, detect_color_type
from tuya_mqtt.transforms.numeric import format_number, to_number

if TYPE_CHECKING:
    from tuya_mqtt.events import DpsValue

logger = get_logger(__name__)

MIN_COLOR_TEMP = 154  # mireds, ~6500K
MAX_COLOR_TEMP = 400  # mireds, ~2500K
WHITE_SATURATION_THRESHOLD = 10
WHITE_MODE = "white"
COLOR_MODE = "colour"


@dataclass(slots=True)
class LightSettings:
    dps_power: int
    dps_mode: int | None = None
    dps_white_value: int | None = None
    white_value_scale: int = 255
    dps_color_temp: int | None = None
    color_temp_scale: int = 255
    min_color_temp: int = MIN_COLOR_TEMP
    max_color_temp: int = MAX_COLOR_TEMP
    dps_color: int | None = None
    color_type: ColorType = ColorType.HSB


_LAYOUT_1_5 = LightSettings(
    dps_power=1,
    dps_mode=2,
    dps_white_value=3,
    white_value_scale=255,
    dps_color_temp=4,
    color_temp_scale=255,
    dps_color=5,
)
_LAYOUT_20_24 = LightSettings(
    dps_power=20,
    dps_mode=21,
    dps_white_value=22,
    white_value_scale=1000,
    dps_color_temp=23,
    color_temp_scale=1000,
    dps_color=24,
)


def _looks_like_mode(value: object) -> bool:
    if not value:
        return False
    return value in (WHITE_MODE, COLOR_MODE) or "scene" in str(value)


def color_temp_formulas(min_mireds: int, max_mireds: int, scale: int) -> tuple[str, str]:
    """(state, command) formulas mapping a device color temperature scale to mireds."""
    range_factor = (max_mireds - min_mireds) / 100
    scale_factor = scale / 100
    tuya_max = (max_mireds / range_factor) * scale_factor
    state_math = f"/{format_number(scale_factor)}*-{format_number(range_factor)}+{max_mireds}"
    command_math = f"/{format_number(range_factor)}*-{format_number(scale_factor)}+{format_number(tuya_max)}"
    return state_math, command_math


@register_variant
class RGBTWLightVariant(DeviceVariant):
    kind = DeviceKind.COLOR_LIGHT
    model = "RGBTW Light"

    settings: LightSettings | None = None

    @property
    @override
    def mode_dps(self) -> int | None:
        return self.settings.dps_mode if self.settings else None

    @override
    async def initialize(self) -> bool:
        lp = f"{self.device.lp}initialize:"
        guess: LightSettings | None = None
        if not self.config.dps_power:
            guess = await self.guess_light_info()
            if guess is None:
                logger.warning(
                    "%s Automatic discovery of Tuya bulb settings failed and no manual configuration",
                    lp,
                )
                return False
        self.settings = self._merge(guess)
        logger.debug("%s light settings: %s", lp, self.settings)
        return True

    def _merge(self, guess: LightSettings | None) -> LightSettings:
        cfg = self.config
        base = guess or LightSettings(dps_power=cfg.dps_power or 1)
        color_type = base.color_type
        if cfg.color_type:
            try:
                color_type = ColorType(cfg.color_type.lower())
            except ValueError:
                logger.warning("%s unknown colorType %r, using %s", self.device.lp, cfg.color_type, color_type)
        return LightSettings(
            dps_power=cfg.dps_power or base.dps_power,
            dps_mode=cfg.dps_mode or base.dps_mode,
            dps_white_value=cfg.dps_white_value or base.dps_white_value,
            white_value_scale=cfg.white_value_scale or base.white_value_scale,
            dps_color_temp=cfg.dps_color_temp or base.dps_color_temp,
            color_temp_scale=cfg.color_temp_scale or base.color_temp_scale,
            min_color_temp=cfg.min_color_temp or MIN_COLOR_TEMP,
            max_color_temp=cfg.max_color_temp or MAX_COLOR_TEMP,
            dps_color=cfg.dps_color or base.dps_color,
            color_type=color_type,
        )

    async def _probe(self, dps: int) -> DpsValue | None:
        try:
            return await self.device.client.get(dps)
        except DeviceClientError as e:
            logger.debug("%s probing DPS %s failed: %s", self.device.lp, dps, e)
            return None

    async def guess_light_info(self) -> LightSettings | None:
        """Probe the device for its DPS layout; None when it does not look like a light."""
        lp = f"{self.device.lp}guess_light_info:"
        logger.debug("%s Attempting to detect light capabilities and DPS values...", lp)
        mode_2 = await self._probe(2)
        mode_21 = await self._probe(21)
        if _looks_like_mode(mode_2):
            logger.debug("%s Detected likely Tuya color bulb at DPS 1-5", lp)
            layout = _LAYOUT_1_5
        elif _looks_like_mode(mode_21):
            logger.debug("%s Detected likely Tuya color bulb at DPS 20-24", lp)
            layout = _LAYOUT_20_24
        else:
            return None
        guess = replace(layout)

        color_temp = to_number(await self._probe(guess.dps_color_temp)) if guess.dps_color_temp else None
        if color_temp is not None and 0 <= color_temp <= guess.color_temp_scale:
            logger.debug("%s Detected likely color temperature support", lp)
        else:
            logger.debug("%s No color temperature support detected", lp)
            guess.dps_color_temp = None

        sample = await self._probe(guess.dps_color) if guess.dps_color else None
        guess.color_type = detect_color_type(sample, guess.dps_power)
        logger.debug("%s Detected Tuya color format %s", lp, guess.color_type.upper())
        return guess

    @override
    def build_topic_schema(self) -> TopicSchema:
        s = self.settings or self._merge(None)
        self.settings = s
        color_kind = ValueKind(s.color_type.value)
        descriptors = [TopicDescriptor.build("state", s.dps_power, ValueKind.BOOL)]
        if s.dps_white_value:
            state_math, command_math = scale_formulas(s.white_value_scale)
            descriptors.append(
                TopicDescriptor.build(
                    "white_brightness_state",
                    s.dps_white_value,
                    ValueKind.INT,
                    topic_max=100,
                    state_math=state_math,
                    command_math=command_math,
                ),
            )
        if s.dps_color:
            descriptors += [
                TopicDescriptor.build("hs_state", s.dps_color, color_kind, components="h,s"),
                TopicDescriptor.build("color_brightness_state", s.dps_color, color_kind, components="b"),
                TopicDescriptor.build("hsb_state", s.dps_color, color_kind, components="h,s,b"),
            ]
        if s.dps_mode:
            descriptors.append(TopicDescriptor.build("mode_state", s.dps_mode, ValueKind.STR))
        if s.dps_color_temp:
            state_math, command_math = color_temp_formulas(s.min_color_temp, s.max_color_temp, s.color_temp_scale)
            descriptors.append(
                TopicDescriptor.build(
                    "color_temp_state",
                    s.dps_color_temp,
                    ValueKind.INT,
                    topic_min=s.min_color_temp,
                    topic_max=s.max_color_temp,
                    state_math=state_math,
                    command_math=command_math,
                ),
            )
        return TopicSchema(descriptors)

    @override
    def on_state_update(self, dps_key: int, value: DpsValue) -> None:
        s = self.settings
        if s is None:
            return
        if dps_key == s.dps_color:
            self.device.color = decode_color(value, s.color_type)
            if self.device.cmd_color is None:
                self.device.cmd_color = self.device.color.copy()
        elif dps_key == s.dps_mode and s.dps_color is not None:
            # saturation topics depend on the mode, republish them
            self.device.cache.mark_dirty(s.dps_color)

    @override
    def write(self, descriptor: TopicDescriptor, value: DpsValue) -> list[dict[int, DpsValue]]:
        writes: list[dict[int, DpsValue]] = [{descriptor.dps_key: value}]
        s = self.settings
        if s is None or s.dps_mode is None:
            return writes
        target_mode: DpsValue | None = None
        if descriptor.dps_key in (s.dps_white_value, s.dps_color_temp):
            target_mode = WHITE_MODE
        elif descriptor.dps_key == s.dps_color:
            if "s" in descriptor.components and self.device.cmd_color is not None:
                target_mode = WHITE_MODE if self.device.cmd_color.s < WHITE_SATURATION_THRESHOLD else COLOR_MODE
            else:
                target_mode = self.device.cache.get(s.dps_mode)
        if target_mode is not None:
            writes.append({s.dps_mode: target_mode})
        return writes

    @override
    def discovery_config(self) -> DiscoverySpec:
        fields: dict[str, object] = {
            "brightness_state_topic": "color_brightness_state",
            "brightness_command_topic": "color_brightness_command",
            "brightness_scale": 100,
            "hs_state_topic": "hs_state",
            "hs_command_topic": "hs_command",
            "white_value_state_topic": "white_brightness_state",
            "white_value_command_topic": "white_brightness_command",
            "white_value_scale": 100,
        }
        s = self.settings
        if s is not None and s.dps_color_temp:
            fields |= {
                "color_temp_state_topic": "color_temp_state",
                "color_temp_command_topic": "color_temp_command",
                "min_mireds": s.min_color_temp,
                "max_mireds": s.max_color_temp,
            }
        return DiscoverySpec(component="light", fields=fields)
