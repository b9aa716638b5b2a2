"""Numeric DPS transforms between wire values and topic values."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import TYPE_CHECKING

from tuya_mqtt.exceptions import InvalidCommandError
from tuya_mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from tuya_mqtt.schema import TopicDescriptor

__all__ = [
    "format_number",
    "parse_number_command",
    "parse_number_state",
    "round_half_up",
    "to_number",
]

logger = get_logger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return math.floor(value + 0.5)


def to_number(value: object) -> float | None:
    """Return ``value`` as a finite float, or None when it is not numeric."""
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def format_number(value: float) -> str:
    """Render a topic number: whole floats print without a fractional part."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_number_state(value: object, descriptor: TopicDescriptor) -> str:
    """Wire value to topic text; anything non-numeric yields an empty string."""
    number = to_number(value)
    if number is None:
        return ""
    formula = descriptor.state_formula
    try:
        if descriptor.is_integer:
            result: float = round_half_up(formula(number)) if formula else math.trunc(number)
        else:
            result = formula(number) if formula else number
    except ZeroDivisionError:
        logger.warning("State formula %r divided by zero for value %s", formula, value)
        return ""
    return format_number(result)


def parse_number_command(
    command: object,
    descriptor: TopicDescriptor,
    report: Callable[[str], None] | None = None,
) -> int | float:
    """Topic command to wire value.

    Out of range values are clamped to the descriptor bounds and reported
    through ``report`` (the device's log channel) as well as the logger.

    Raises:
        InvalidCommandError: ``command`` is not a finite number or the
            command formula cannot be evaluated.

    """
    number = to_number(command)
    if number is None:
        raise InvalidCommandError("not a number", command)

    bound: float | None = None
    what = ""
    if descriptor.topic_min is not None and number < descriptor.topic_min:
        bound = descriptor.topic_min
        what = "less than the configured minimum"
    elif descriptor.topic_max is not None and number > descriptor.topic_max:
        bound = descriptor.topic_max
        what = "greater than the configured maximum"
    if bound is not None:
        msg = f'Received command value "{format_number(number)}" that is {what}, overriding with {format_number(bound)}'
        logger.warning("%s", msg, extra={"topic": descriptor.name})
        if report is not None:
            report(msg)
        number = float(bound)

    formula = descriptor.command_formula
    try:
        if descriptor.is_integer:
            return round_half_up(formula(number)) if formula else math.trunc(number)
        return formula(number) if formula else number
    except ZeroDivisionError as exc:
        raise InvalidCommandError(f"command formula {formula!r} divided by zero", command) from exc
