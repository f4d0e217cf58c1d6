"""
Tests para el cálculo de impuestos con precio incluido

Cubren:
- Descomposición base/impuesto y su reconstrucción
- Redondeo comercial (ROUND_HALF_UP)
- Agrupación por tasa con descuento proporcional
"""

import pytest
from decimal import Decimal

from backoffice.modules.taxes.calculator import (
    calculate_tax, group_tax_breakdown, price_excluding_tax, round_money,
    tax_amount, to_decimal
)
from backoffice.modules.taxes.schemas import TaxLine


# ===== FIXTURES =====

@pytest.fixture
def mixed_rate_lines():
    """Líneas con tasas del 19%, 5% y exentas"""
    return [
        TaxLine(price_including_tax=Decimal("119"), tax_rate=Decimal("19"), quantity=2),
        TaxLine(price_including_tax=Decimal("105"), tax_rate=Decimal("5"), quantity=1),
        TaxLine(price_including_tax=Decimal("50"), tax_rate=Decimal("0"), quantity=3),
        TaxLine(price_including_tax=Decimal("238"), tax_rate=Decimal("19"), quantity=1),
    ]


# ===== TESTS DE CÁLCULO =====

class TestTaxCalculation:
    """Tests para la descomposición de precios con impuesto incluido"""

    @pytest.mark.parametrize("price,rate", [
        ("100", "19"), ("99.99", "19"), ("0.01", "19"), ("1234.56", "5"), ("50", "0"), ("10", "100"),
    ])
    def test_round_trip_reconstructs_price(self, price, rate):
        """La base por (1 + tasa) vuelve al precio original"""
        exclusive = price_excluding_tax(price, rate)
        rebuilt = exclusive * (1 + Decimal(rate) / 100)
        assert abs(rebuilt - Decimal(price)) < Decimal("0.000001")

    def test_price_excluding_tax_standard_rate(self):
        assert round_money(price_excluding_tax(Decimal("100"), Decimal("19"))) == Decimal("84.03")

    def test_zero_rate_keeps_price(self):
        assert price_excluding_tax(Decimal("50"), Decimal("0")) == Decimal("50")

    def test_tax_amount_is_difference(self):
        assert tax_amount(Decimal("119"), Decimal("100")) == Decimal("19")

    def test_calculate_tax_does_not_round(self):
        calc = calculate_tax(Decimal("100"), Decimal("19"))
        assert calc.base_amount + calc.tax_amount == Decimal("100")
        assert calc.base_amount != round_money(calc.base_amount)

    def test_to_decimal_from_float_uses_string_form(self):
        assert to_decimal(0.1) == Decimal("0.1")


class TestRounding:
    """Tests para redondeo comercial"""

    def test_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("2.344")) == Decimal("2.34")
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_custom_places(self):
        assert round_money(Decimal("0.18995"), Decimal("0.0001")) == Decimal("0.1900")

    def test_accepts_int_and_str(self):
        assert round_money(5) == Decimal("5.00")
        assert round_money("1.005") == Decimal("1.01")


# ===== TESTS DE AGRUPACIÓN =====

class TestTaxBreakdown:
    """Tests para impuestos agrupados por tasa"""

    def test_groups_by_rate_sorted(self, mixed_rate_lines):
        breakdown = group_tax_breakdown(mixed_rate_lines)

        assert [b.tax_rate for b in breakdown] == [Decimal("0"), Decimal("5"), Decimal("19")]

        exempt, reduced, standard = breakdown
        assert exempt.base_amount == Decimal("150.00")
        assert exempt.tax_amount == Decimal("0.00")
        assert reduced.base_amount == Decimal("100.00")
        assert reduced.tax_amount == Decimal("5.00")
        assert standard.base_amount == Decimal("400.00")
        assert standard.tax_amount == Decimal("76.00")

    def test_discount_ratio_scales_each_group(self, mixed_rate_lines):
        breakdown = group_tax_breakdown(mixed_rate_lines, Decimal("0.25"))
        standard = breakdown[-1]

        assert standard.base_amount == Decimal("300.00")
        assert standard.tax_amount == Decimal("57.00")

    def test_equal_rates_with_different_scale_share_group(self):
        lines = [
            TaxLine(price_including_tax=Decimal("119"), tax_rate=Decimal("19")),
            TaxLine(price_including_tax=Decimal("119"), tax_rate=Decimal("19.00")),
        ]
        breakdown = group_tax_breakdown(lines)

        assert len(breakdown) == 1
        assert breakdown[0].base_amount == Decimal("200.00")

    def test_empty_lines(self):
        assert group_tax_breakdown([]) == []

    def test_rate_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            TaxLine(price_including_tax=Decimal("10"), tax_rate=Decimal("150"))
