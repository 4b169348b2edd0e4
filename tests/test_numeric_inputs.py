"""Tests for number coercion and stepper formatting."""

from __future__ import annotations

import math

import pytest

from targets.numeric import (
    adjust_input_by_step,
    adjust_number_input_by_step,
    count_decimals,
    format_with_decimals,
    format_with_digits,
    to_number_or_zero,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 0.0),
        ("", 0.0),
        ("   ", 0.0),
        ("abc", 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        ("1.25", 1.25),
        (" 0.5 ", 0.5),
        (3, 3.0),
        ([1], 0.0),
    ],
)
def test_to_number_or_zero(raw: object, expected: float) -> None:
    assert to_number_or_zero(raw) == expected


def test_count_decimals_from_step() -> None:
    assert count_decimals(0.01) == 2
    assert count_decimals(0.1) == 1
    assert count_decimals(1) == 0
    assert count_decimals(10) == 0
    assert count_decimals(1e-7) == 7
    assert count_decimals("0.001") == 3
    assert count_decimals(None) == 0


def test_format_with_decimals_clamps_and_rejects_non_finite() -> None:
    assert format_with_decimals(0.2, 2) == "0.20"
    assert format_with_decimals(1.23456, 3) == "1.235"
    assert format_with_decimals(1.5, -1) == "2"
    assert format_with_decimals(1.0, 25) == "1.0000000000"
    assert format_with_decimals(math.nan, 2) == ""
    assert format_with_decimals(None, 2) == ""


def test_format_with_digits() -> None:
    assert format_with_digits(1.2, 5) == "1.20000"
    assert format_with_digits("x", 2) == ""


def test_adjust_number_input_steps_up_and_down() -> None:
    assert adjust_number_input_by_step("0.10", 0.01, 1, 2) == "0.11"
    assert adjust_number_input_by_step("0.10", 0.01, -1, 2) == "0.09"


def test_adjust_number_input_clamps_to_min() -> None:
    assert adjust_number_input_by_step("0.01", 0.01, -1, 2, min_value=0.01) == "0.01"
    assert adjust_number_input_by_step("", 0.01, -1, 2) == "0.00"


def test_adjust_number_input_ignores_bad_step() -> None:
    assert adjust_number_input_by_step("0.5", "abc", 1, 1) == "0.5"


def test_adjust_input_by_step_renders_zero_bare() -> None:
    assert adjust_input_by_step("0.00001", 0.00001, -1, 5) == "0"
    assert adjust_input_by_step("1.20000", 0.00001, 1, 5) == "1.20001"
