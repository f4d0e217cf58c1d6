"""
Validación de códigos de descuento para el POS

Dos modos (settings.POS_DISCOUNT_CODE_MODE):
- remote: el servicio de órdenes valida el código (POST /discount-codes/validate)
- local: se consulta el código y se evalúan las reglas en el proceso

Reglas, en orden: existe y está activo, vigencia (inicio y fin), límite de uso,
canal de venta y segmentación (clientes, categoría, productos/variantes, todos).
El monto se calcula sobre el subtotal previo al descuento manual.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from backoffice.common.dates import ensure_utc, utc_now
from backoffice.common.exceptions import CatalogServiceError
from backoffice.core.config import settings
from backoffice.modules.discounts.schemas import (
    DiscountCode, DiscountCodeCartItem,
    DiscountCodeTarget, DiscountCodeValidation, OrderSource
)
from backoffice.modules.taxes.calculator import ONE_HUNDRED, round_money, to_decimal

logger = logging.getLogger(__name__)


INVALID_CODE = "Invalid discount code"


def _invalid(error: str) -> DiscountCodeValidation:
    return DiscountCodeValidation(valid=False, error=error)


def _targets_cart(discount_code: DiscountCode, cart_items: List[DiscountCodeCartItem]) -> bool:
    """Al menos un ítem del carrito está dentro del alcance del código"""
    target = discount_code.target_type

    if target == DiscountCodeTarget.CATEGORY:
        return any(discount_code.category_id in item.category_ids for item in cart_items)

    if target == DiscountCodeTarget.PRODUCTS:
        return any(
            item.product_id in discount_code.product_ids
            or item.variant_id in discount_code.variant_ids
            for item in cart_items
        )

    return True


def evaluate_discount_code(
    discount_code: DiscountCode,
    cart_items: List[DiscountCodeCartItem],
    customer_id: Optional[str],
    subtotal: Decimal,
    source: OrderSource = OrderSource.IN_STORE,
    now: Optional[datetime] = None
) -> DiscountCodeValidation:
    """
    Evaluar las reglas de un código contra el carrito actual

    Args:
        discount_code: Código tal como lo publica el catálogo
        cart_items: Ítems del carrito
        customer_id: Cliente seleccionado (opcional)
        subtotal: Subtotal con impuesto antes del descuento manual
        source: Canal de la orden
        now: Momento de evaluación

    Returns:
        DiscountCodeValidation con el monto absoluto o el motivo del rechazo
    """
    current = ensure_utc(now or utc_now())

    if not discount_code.is_active:
        return _invalid(INVALID_CODE)

    if current < ensure_utc(discount_code.start_date):
        return _invalid("This discount code is not yet active")

    if current > ensure_utc(discount_code.end_date):
        return _invalid("This discount code has expired")

    if discount_code.usage_exhausted:
        return _invalid("This discount code has reached its usage limit")

    if source == OrderSource.IN_STORE and not discount_code.available_in_store:
        return _invalid("This discount code is not available for in-store orders")

    if source == OrderSource.ONLINE and not discount_code.available_online:
        return _invalid("This discount code is not available for online orders")

    if discount_code.target_type == DiscountCodeTarget.CUSTOMERS:
        if not customer_id or customer_id not in discount_code.customer_ids:
            return _invalid("This discount code is not available for this customer")

    if not _targets_cart(discount_code, cart_items):
        if discount_code.target_type == DiscountCodeTarget.CATEGORY:
            category = discount_code.category_name or discount_code.category_id
            return _invalid(f'This discount code only applies to products in the "{category}" category')
        return _invalid("This discount code only applies to specific products not in your cart")

    discount_amount = round_money(to_decimal(subtotal) * discount_code.percentage / ONE_HUNDRED)

    return DiscountCodeValidation(
        valid=True,
        discount_code=discount_code.summary(),
        discount_amount=discount_amount,
    )


class DiscountCodeValidator:
    """Valida códigos de descuento para el carrito del POS"""

    def __init__(self, client, mode: Optional[str] = None,
                 source: Optional[OrderSource] = None):
        self.client = client
        self.mode = mode or settings.POS_DISCOUNT_CODE_MODE
        self.source = source or OrderSource(settings.ORDER_SOURCE)

    def validate(
        self,
        code: str,
        cart_items: List[DiscountCodeCartItem],
        customer_id: Optional[str],
        subtotal: Decimal,
        now: Optional[datetime] = None
    ) -> DiscountCodeValidation:
        """Validar un código; los errores del servicio se devuelven en `error`"""
        cleaned = (code or "").strip()
        if not cleaned:
            return _invalid("Please enter a discount code")

        if not cart_items:
            return _invalid("Add items to cart before applying discount")

        try:
            if self.mode == "local":
                result = self._validate_local(cleaned, cart_items, customer_id, subtotal, now)
            else:
                result = self._validate_remote(cleaned, cart_items, customer_id, subtotal)
        except CatalogServiceError as e:
            logger.warning(f"Discount code validation failed for {cleaned.upper()}: {e.message}")
            return _invalid(e.message)

        if result.valid and (result.discount_code is None or not result.discount_amount):
            return _invalid(result.error or INVALID_CODE)

        if not result.valid and not result.error:
            return _invalid(INVALID_CODE)

        return result

    def _validate_remote(self, code, cart_items, customer_id, subtotal) -> DiscountCodeValidation:
        request = {
            "code": code,
            "orderSource": self.source.value,
            "customerId": customer_id,
            "cartItems": [item.model_dump(by_alias=True) for item in cart_items],
            "subtotal": subtotal,
        }
        return self.client.validate_discount_code(request)

    def _validate_local(self, code, cart_items, customer_id, subtotal, now) -> DiscountCodeValidation:
        discount_code = self.client.get_discount_code(code)
        if discount_code is None:
            return _invalid(INVALID_CODE)
        return evaluate_discount_code(
            discount_code, cart_items, customer_id, subtotal, self.source, now
        )
