"""
Helper para cálculo de impuestos con precios de impuesto incluido.

Los precios del catálogo siempre incluyen el impuesto; la tasa viene en
porcentaje (19 para 19%). Los cálculos intermedios no se redondean: solo los
totales agregados pasan por round_money, para no acumular errores de redondeo.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Union

from backoffice.modules.taxes.schemas import TaxCalculation, TaxBreakdown, TaxLine


CENT = Decimal('0.01')
ONE_HUNDRED = Decimal('100')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convertir a Decimal pasando por str para no heredar el error binario de float"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number, places: Decimal = CENT) -> Decimal:
    """
    Redondear un monto usando ROUND_HALF_UP (redondeo comercial)

    Args:
        value: Monto a redondear
        places: Cuantización (por defecto 2 decimales)
    """
    return to_decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def price_excluding_tax(price_including_tax: Number, tax_rate: Number) -> Decimal:
    """
    Precio sin impuesto a partir del precio con impuesto incluido.

    price / (1 + rate/100). No se validan tasas negativas.
    """
    price = to_decimal(price_including_tax)
    rate = to_decimal(tax_rate)
    return price / (1 + rate / ONE_HUNDRED)


def tax_amount(price_including_tax: Number, exclusive_price: Number) -> Decimal:
    """Valor del impuesto contenido en el precio"""
    return to_decimal(price_including_tax) - to_decimal(exclusive_price)


def calculate_tax(price_including_tax: Number, tax_rate: Number) -> TaxCalculation:
    """Descomponer un precio con impuesto en base y valor del impuesto (sin redondear)"""
    price = to_decimal(price_including_tax)
    base = price_excluding_tax(price, tax_rate)
    return TaxCalculation(
        tax_rate=to_decimal(tax_rate),
        price_including_tax=price,
        base_amount=base,
        tax_amount=tax_amount(price, base),
    )


def group_tax_breakdown(
    lines: Iterable[TaxLine],
    discount_ratio: Number = 0
) -> List[TaxBreakdown]:
    """
    Agrupar base e impuesto por tasa.

    El descuento de la orden se reparte proporcionalmente: cada grupo se escala
    por (1 - discount_ratio), igual que los totales agregados del carrito.

    Args:
        lines: Líneas gravadas
        discount_ratio: Fracción del subtotal cubierta por descuentos (0-1)

    Returns:
        Lista de impuestos agrupados, ordenada por tasa
    """
    factor = 1 - to_decimal(discount_ratio)
    grouped: Dict[Decimal, Dict[str, Decimal]] = {}

    for line in lines:
        calc = calculate_tax(line.price_including_tax, line.tax_rate)
        key = calc.tax_rate
        if key not in grouped:
            grouped[key] = {
                "base_amount": Decimal('0'),
                "tax_amount": Decimal('0')
            }

        grouped[key]["base_amount"] += calc.base_amount * line.quantity
        grouped[key]["tax_amount"] += calc.tax_amount * line.quantity

    return [
        TaxBreakdown(
            tax_rate=rate,
            base_amount=round_money(values["base_amount"] * factor),
            tax_amount=round_money(values["tax_amount"] * factor),
        )
        for rate, values in sorted(grouped.items())
    ]
