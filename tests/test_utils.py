"""Tests for precision and math helpers."""

import pytest

from momentum_rebalancer.utils.math_helpers import trailing_mean
from momentum_rebalancer.utils.precision import floor_to_decimals, format_amount


def test_floor_to_decimals():
    assert floor_to_decimals(300.0) == 300.0
    assert floor_to_decimals(0.999) == 0.99
    assert floor_to_decimals(0.29) == 0.29
    assert floor_to_decimals(1.23456789, 4) == 1.2345


def test_floor_rejects_negative():
    with pytest.raises(ValueError):
        floor_to_decimals(-1.0)


def test_format_amount():
    assert format_amount(0.123456789) == "0.12345678"
    assert format_amount(2.5) == "2.5"
    assert format_amount(3.0) == "3"


def test_trailing_mean():
    assert trailing_mean([100, 102, 101, 99, 100, 101]) == 100.5


def test_trailing_mean_empty():
    with pytest.raises(ValueError):
        trailing_mean([])
