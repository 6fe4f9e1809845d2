from decimal import Decimal

import pytest

from yieldzap.core.utils.units import (
    format_token_amount,
    from_erc20_raw,
    to_erc20_raw,
    to_wei_eth,
)


class TestToErc20Raw:
    def test_usdc_amount(self):
        assert to_erc20_raw("25", 6) == 25_000_000

    def test_rounds_down_excess_precision(self):
        assert to_erc20_raw("1.2345678", 6) == 1_234_567

    def test_accepts_decimal_and_int(self):
        assert to_erc20_raw(Decimal("0.1"), 6) == 100_000
        assert to_erc20_raw(3, 18) == 3 * 10**18

    def test_rejects_negative(self):
        with pytest.raises(ValueError, match="non-negative"):
            to_erc20_raw("-1", 6)

    @pytest.mark.parametrize("value", ["abc", "nan", "inf"])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            to_erc20_raw(value, 6)

    def test_to_wei_eth(self):
        assert to_wei_eth("0.0001") == 10**14


class TestFormatting:
    def test_from_raw(self):
        assert from_erc20_raw(10_500_000, 6) == Decimal("10.5")

    def test_format_strips_trailing_zeros(self):
        assert format_token_amount(10_000_000, 6) == "10"
        assert format_token_amount(10_500_000, 6) == "10.5"

    def test_format_truncates_places(self):
        assert format_token_amount(123_456_789_000_000_000, 18, places=4) == "0.1234"

    def test_format_zero(self):
        assert format_token_amount(0, 6) == "0"
