"""
Exact decimal arithmetic.

Verifies:
- Repeated add/sub/mul never drift from the exact decimal result
- Floats go through their shortest repr
- Division by zero yields 0
- Rounding is half-up to 2 places
"""

from decimal import Decimal

import pytest

from bodega import money


class TestExactness:
    def test_tenth_plus_fifth_is_exact(self):
        assert money.add(0.1, 0.2) == Decimal("0.3")

    def test_long_running_sum_does_not_drift(self):
        result = money.ZERO
        for _ in range(1000):
            result = money.add(result, "0.01")
        assert result == Decimal("10.00")

    def test_mixed_sequence_matches_exact_result(self):
        # 19.99 * 3 - 0.07 + 1.10 = 61.00
        value = money.mul("19.99", 3)
        value = money.sub(value, "0.07")
        value = money.add(value, 1.10)
        assert money.round_money(value) == Decimal("61.00")

    def test_credit_debt_scenario(self):
        assert money.add("10.00", "25.50") == Decimal("35.50")

    def test_total_of_iterable(self):
        assert money.total(["1.10", 2.20, Decimal("3.30")]) == Decimal("6.60")

    def test_precision_beyond_twenty_digits(self):
        big = "12345678901234567890.12"
        assert money.add(big, "0.01") == Decimal("12345678901234567890.13")


class TestHelpers:
    def test_div_by_zero_yields_zero(self):
        assert money.div(10, 0) == Decimal("0")
        assert money.div(10, "0.00") == Decimal("0")

    def test_div(self):
        assert money.div("7.50", 3) == Decimal("2.5")

    def test_percent(self):
        assert money.percent(100, 16) == Decimal("16")
        assert money.percent("12.50", "8") == Decimal("1.00")

    @pytest.mark.parametrize(
        "value,expected",
        [("1.005", "1.01"), ("1.004", "1.00"), ("-1.005", "-1.01"), (2, "2.00")],
    )
    def test_round_half_up(self, value, expected):
        assert money.round_money(value) == Decimal(expected)

    def test_to_decimal_blank_is_zero(self):
        assert money.to_decimal(None) == Decimal("0")
        assert money.to_decimal("  ") == Decimal("0")

    def test_to_decimal_rejects_garbage(self):
        with pytest.raises(ValueError):
            money.to_decimal("abc")
        with pytest.raises(ValueError):
            money.to_decimal("NaN")
        with pytest.raises(ValueError):
            money.to_decimal(True)

    def test_to_int_truncates(self):
        assert money.to_int("7.9") == 7
        assert money.to_int(-2) == -2
        assert money.to_int(None) == 0
