"""Unit tests for numeric wire <-> topic transforms."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tuya_mqtt.devices.variant import scale_formulas
from tuya_mqtt.exceptions import InvalidCommandError
from tuya_mqtt.schema import TopicDescriptor, ValueKind
from tuya_mqtt.transforms.numeric import (
    format_number,
    parse_number_command,
    parse_number_state,
    round_half_up,
    to_number,
)


def _brightness(scale: int = 255) -> TopicDescriptor:
    state_math, command_math = scale_formulas(scale)
    return TopicDescriptor.build(
        "brightness_state",
        2,
        ValueKind.INT,
        topic_max=100,
        state_math=state_math,
        command_math=command_math,
    )


class TestHelpers:
    @pytest.mark.parametrize(("value", "expected"), [(2.5, 3), (2.4999, 2), (-2.5, -2), (0.5, 1), (7.0, 7)])
    def test_round_half_up(self, value: float, expected: int):
        assert round_half_up(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("12", 12.0), (" 3.5 ", 3.5), (7, 7.0), (1.25, 1.25), ("-4", -4.0)],
    )
    def test_to_number_accepts_numbers(self, value: object, expected: float):
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", [True, False, "", "   ", "abc", "nan", "inf", None, [1]])
    def test_to_number_rejects_everything_else(self, value: object):
        assert to_number(value) is None

    def test_format_number_drops_whole_fraction(self):
        assert format_number(12.0) == "12"
        assert format_number(12.5) == "12.5"
        assert format_number(3) == "3"


class TestParseNumberState:
    def test_scaled_brightness_full(self):
        assert parse_number_state(255, _brightness()) == "100"

    def test_scaled_brightness_accepts_numeric_string(self):
        assert parse_number_state("255", _brightness()) == "100"

    def test_non_numeric_value_is_empty(self):
        assert parse_number_state("abc", _brightness()) == ""
        assert parse_number_state(None, _brightness()) == ""

    def test_int_without_formula_truncates(self):
        descriptor = TopicDescriptor.build("level_state", 3, ValueKind.INT)
        assert parse_number_state(12.7, descriptor) == "12"

    def test_float_without_formula_is_kept(self):
        descriptor = TopicDescriptor.build("temp_state", 3, ValueKind.FLOAT)
        assert parse_number_state(12.5, descriptor) == "12.5"
        assert parse_number_state(12, descriptor) == "12"

    def test_float_with_formula(self):
        descriptor = TopicDescriptor.build("temp_state", 3, ValueKind.FLOAT, state_math="/10")
        assert parse_number_state(215, descriptor) == "21.5"

    def test_division_by_zero_is_empty(self):
        descriptor = TopicDescriptor.build("x_state", 3, ValueKind.FLOAT, state_math="/0")
        assert parse_number_state(5, descriptor) == ""


class TestParseNumberCommand:
    def test_scaled_brightness_half(self):
        assert parse_number_command("50", _brightness()) == 140

    def test_scaled_brightness_full(self):
        assert parse_number_command(100, _brightness()) == 255

    def test_above_max_is_clamped_and_reported(self):
        report = MagicMock()
        assert parse_number_command("150", _brightness(), report=report) == 255
        report.assert_called_once()
        assert "greater than the configured maximum" in report.call_args.args[0]
        assert "overriding with 100" in report.call_args.args[0]

    def test_below_min_is_clamped_and_reported(self):
        descriptor = TopicDescriptor.build("level_state", 3, ValueKind.INT, topic_min=10, topic_max=100)
        report = MagicMock()
        assert parse_number_command(5, descriptor, report=report) == 10
        assert "less than the configured minimum" in report.call_args.args[0]

    def test_in_range_is_not_reported(self):
        report = MagicMock()
        _ = parse_number_command(20, _brightness(), report=report)
        report.assert_not_called()

    @pytest.mark.parametrize("command", ["abc", "", True, None, "on"])
    def test_invalid_input_aborts(self, command: object):
        report = MagicMock()
        with pytest.raises(InvalidCommandError):
            _ = parse_number_command(command, _brightness(), report=report)
        report.assert_not_called()

    def test_int_without_formula_truncates(self):
        descriptor = TopicDescriptor.build("level_state", 3, ValueKind.INT)
        assert parse_number_command("7.9", descriptor) == 7

    def test_float_command(self):
        descriptor = TopicDescriptor.build("temp_state", 3, ValueKind.FLOAT, command_math="*10")
        assert parse_number_command("21.5", descriptor) == pytest.approx(215)

    def test_division_by_zero_is_invalid(self):
        descriptor = TopicDescriptor.build("x_state", 3, ValueKind.FLOAT, command_math="/0")
        with pytest.raises(InvalidCommandError):
            _ = parse_number_command(5, descriptor)

    @pytest.mark.parametrize("value", [0, 1, 37, 50, 99, 100])
    def test_proportional_scale_round_trip(self, value: int):
        descriptor = _brightness(1000)
        assert parse_number_state(parse_number_command(value, descriptor), descriptor) == str(value)
