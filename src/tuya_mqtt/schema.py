"""Declarative mapping from semantic topic names to DPS keys."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing_extensions import override

from tuya_mqtt.exceptions import ConfigurationError
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.transforms.color import COLOR_COMPONENTS, ColorType
from tuya_mqtt.transforms.formula import Formula

__all__ = ["TopicDescriptor", "TopicSchema", "ValueKind"]

logger = get_logger(__name__)


class ValueKind(StrEnum):
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STR = "str"
    HSB = "hsb"
    HSBHEX = "hsbhex"

    @property
    def is_numeric(self) -> bool:
        return self in (ValueKind.INT, ValueKind.FLOAT)

    @property
    def is_color(self) -> bool:
        return self in (ValueKind.HSB, ValueKind.HSBHEX)


def _normalize_bound(name: str, which: str, value: float | None) -> float | None:
    if value is None:
        return None
    if value == 0:
        logger.warning(
            "Topic '%s' has %s=0, which means 'no bound'; leave it unset to silence this warning",
            name,
            which,
        )
        return None
    return float(value)


def _parse_components(name: str, components: str | Sequence[str] | None) -> tuple[str, ...]:
    if components is None:
        return COLOR_COMPONENTS
    parts = components.split(",") if isinstance(components, str) else list(components)
    parsed = tuple(part.strip().lower() for part in parts if part.strip())
    if not parsed or any(part not in COLOR_COMPONENTS for part in parsed):
        raise ConfigurationError(f"color components must be a subset of h,s,b, got {components!r}", name)
    if len(set(parsed)) != len(parsed):
        raise ConfigurationError(f"duplicate color components in {components!r}", name)
    return parsed


@dataclass(frozen=True, slots=True)
class TopicDescriptor:
    """Wiring of one named topic to one DPS key and its transform.

    Build instances with :meth:`build`, which validates the configuration
    and compiles the formulas.
    """

    name: str
    dps_key: int
    kind: ValueKind
    topic_min: float | None = None
    topic_max: float | None = None
    state_formula: Formula | None = None
    command_formula: Formula | None = None
    components: tuple[str, ...] = ()

    @property
    def is_integer(self) -> bool:
        return self.kind is ValueKind.INT

    @property
    def color_type(self) -> ColorType | None:
        if not self.kind.is_color:
            return None
        return ColorType(self.kind.value)

    @property
    def command_topic(self) -> str:
        return self.name.replace("state", "command")

    @classmethod
    def build(
        cls,
        name: str,
        dps_key: int | str | None,
        kind: ValueKind | str,
        *,
        topic_min: float | None = None,
        topic_max: float | None = None,
        state_math: str | None = None,
        command_math: str | None = None,
        components: str | Sequence[str] | None = None,
    ) -> TopicDescriptor:
        """Validate and build a descriptor.

        Raises:
            ConfigurationError: missing DPS key, unknown kind, or inverted range.
            FormulaError: a formula does not compile.

        """
        if dps_key is None or dps_key == "":
            raise ConfigurationError("no DPS key configured", name)
        try:
            key = int(dps_key)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"DPS key {dps_key!r} is not an integer", name) from exc
        try:
            value_kind = ValueKind(kind)
        except ValueError as exc:
            raise ConfigurationError(f"unknown value type {kind!r}", name) from exc

        low = _normalize_bound(name, "topic_min", topic_min)
        high = _normalize_bound(name, "topic_max", topic_max)
        if low is not None and high is not None and low > high:
            raise ConfigurationError(f"topic_min {low} is greater than topic_max {high}", name)

        return cls(
            name=name,
            dps_key=key,
            kind=value_kind,
            topic_min=low,
            topic_max=high,
            state_formula=Formula(state_math) if state_math else None,
            command_formula=Formula(command_math) if command_math else None,
            components=_parse_components(name, components) if value_kind.is_color else (),
        )


class TopicSchema(Mapping[str, TopicDescriptor]):
    """Read-only, ordered collection of a device's topic descriptors."""

    def __init__(self, descriptors: Iterable[TopicDescriptor] = ()) -> None:
        self._topics: dict[str, TopicDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._topics:
                raise ConfigurationError("topic defined twice", descriptor.name)
            self._topics[descriptor.name] = descriptor

    @override
    def __getitem__(self, name: str) -> TopicDescriptor:
        return self._topics[name]

    @override
    def __iter__(self) -> Iterator[str]:
        return iter(self._topics)

    @override
    def __len__(self) -> int:
        return len(self._topics)

    @override
    def __repr__(self) -> str:
        return f"TopicSchema({list(self._topics)})"

    def dps_keys(self) -> list[int]:
        """Every referenced DPS key, once, in topic order."""
        return list(dict.fromkeys(d.dps_key for d in self._topics.values()))

    def for_command_topic(self, command_topic: str) -> TopicDescriptor | None:
        """Descriptor whose state topic corresponds to ``command_topic``."""
        return self._topics.get(command_topic.replace("command", "state"))

    @classmethod
    def from_template(cls, template: Mapping[str, Mapping[str, object]]) -> TopicSchema:
        """Build a schema from a configured ``{topic: {key, type, ...}}`` template."""
        descriptors: list[TopicDescriptor] = []
        for name, spec in template.items():
            descriptors.append(
                TopicDescriptor.build(
                    name,
                    spec.get("key"),  # type: ignore[arg-type]
                    str(spec.get("type", ValueKind.STR)),
                    topic_min=_as_float(name, spec.get("topicMin", spec.get("topic_min"))),
                    topic_max=_as_float(name, spec.get("topicMax", spec.get("topic_max"))),
                    state_math=_as_str(spec.get("stateMath", spec.get("state_math"))),
                    command_math=_as_str(spec.get("commandMath", spec.get("command_math"))),
                    components=_as_str(spec.get("components")),
                ),
            )
        return cls(descriptors)


def _as_float(name: str, value: object) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        raise ConfigurationError(f"bound {value!r} is not a number", name)
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"bound {value!r} is not a number", name) from exc


def _as_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
