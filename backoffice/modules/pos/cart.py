"""
Carrito en memoria del POS y cálculo de totales

El carrito guarda líneas por producto+variante, un código de descuento opcional
y un descuento manual. compute_totals() es una función pura del estado: los
totales nunca se parchan de forma incremental.

Capas de descuento sobre el subtotal con impuesto:
1. Código de descuento (monto absoluto calculado al validarlo)
2. Descuento manual (porcentaje o fijo) sobre el subtotal restante

El descuento total se reparte proporcionalmente entre base e impuesto.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from backoffice.common.exceptions import (
    CartItemNotFoundError, CheckoutValidationError, InventoryError
)
from backoffice.modules.catalog.schemas import Product
from backoffice.modules.discounts.resolver import DiscountResolver
from backoffice.modules.discounts.schemas import AppliedDiscountCode, DiscountCodeCartItem
from backoffice.modules.pos.schemas import (
    CartItem, CartTotals, ManualDiscount, ManualDiscountType
)
from backoffice.modules.taxes.calculator import (
    ONE_HUNDRED, group_tax_breakdown, price_excluding_tax, round_money, to_decimal
)
from backoffice.modules.taxes.schemas import TaxLine

logger = logging.getLogger(__name__)

RATIO_PLACES = Decimal('0.0001')


def cart_item_id(product_id: str, variant_id: str) -> str:
    return f"{product_id}-{variant_id}"


class Cart:
    """Carrito de un terminal POS"""

    def __init__(self, resolver: Optional[DiscountResolver] = None):
        self.resolver = resolver or DiscountResolver()
        self.items: List[CartItem] = []
        self.applied_discount_code: Optional[AppliedDiscountCode] = None
        self.manual_discount = ManualDiscount()

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def get_item(self, item_id: str) -> CartItem:
        item = next((item for item in self.items if item.id == item_id), None)
        if item is None:
            raise CartItemNotFoundError(f"Cart item {item_id} not found")
        return item

    # ===== LÍNEAS =====

    def add_item(self, product: Product, variant_id: Optional[str] = None) -> CartItem:
        """
        Agregar una unidad de la variante al carrito.

        Raises:
            InventoryError si no hay stock o la nueva cantidad lo supera
        """
        pricing = self.resolver.resolve(product, variant_id)
        item_id = cart_item_id(product.id, pricing.variant_id)

        if pricing.inventory <= 0:
            raise InventoryError("This product is out of stock")

        existing = next((item for item in self.items if item.id == item_id), None)
        if existing is not None:
            # el stock del producto recibido reemplaza al guardado en la línea
            existing.inventory = pricing.inventory
            if existing.quantity + 1 > existing.inventory:
                raise InventoryError(f"Only {existing.inventory} items available")
            return self._set_quantity(existing, existing.quantity + 1)

        exclusive = price_excluding_tax(pricing.final_price, pricing.tax_rate)
        item = CartItem(
            id=item_id,
            product_id=product.id,
            variant_id=pricing.variant_id,
            name=pricing.name,
            sku=pricing.sku,
            price=pricing.price,
            final_price=pricing.final_price,
            discount_percentage=pricing.discount_percentage,
            quantity=1,
            total=pricing.final_price,
            price_excluding_tax=exclusive,
            tax_amount=pricing.final_price - exclusive,
            tax_rate=pricing.tax_rate,
            inventory=pricing.inventory,
            images=pricing.images,
            options=pricing.options,
            category_ids=pricing.category_ids,
        )
        self.items.append(item)
        logger.debug(f"Added {item.name} to cart")
        return item

    def update_quantity(self, item_id: str, quantity: int) -> Optional[CartItem]:
        """
        Cambiar la cantidad de una línea. Cantidades <= 0 eliminan la línea.

        Returns:
            La línea actualizada, o None si se eliminó
        """
        item = self.get_item(item_id)
        if quantity <= 0:
            self.remove_item(item_id)
            return None

        if quantity > item.inventory:
            raise InventoryError(f"Only {item.inventory} items available")

        return self._set_quantity(item, quantity)

    def _set_quantity(self, item: CartItem, quantity: int) -> CartItem:
        item.quantity = quantity
        item.total = item.final_price * quantity
        return item

    def remove_item(self, item_id: str) -> None:
        item = self.get_item(item_id)
        self.items.remove(item)

    def clear(self) -> None:
        self.items = []
        self.applied_discount_code = None
        self.manual_discount = ManualDiscount()

    # ===== DESCUENTOS DE ORDEN =====

    def apply_discount_code(self, applied: AppliedDiscountCode) -> None:
        """Un solo código por orden: el nuevo reemplaza al anterior"""
        if self.applied_discount_code and self.applied_discount_code.id != applied.id:
            logger.info(f"Replacing discount code {self.applied_discount_code.code} with {applied.code}")
        self.applied_discount_code = applied

    def remove_discount_code(self) -> None:
        self.applied_discount_code = None

    def set_manual_discount(self, amount, discount_type: ManualDiscountType) -> ManualDiscount:
        """
        Fijar el descuento manual acotándolo como el campo del terminal:
        porcentaje en [0, 100], monto fijo en [0, subtotal tras el código].
        """
        value = max(Decimal('0'), to_decimal(amount))
        if discount_type == ManualDiscountType.PERCENTAGE:
            value = min(value, ONE_HUNDRED)
        else:
            totals = self.compute_totals()
            value = min(value, max(Decimal('0'), totals.subtotal_after_code))

        self.manual_discount = ManualDiscount(amount=value, type=discount_type)
        return self.manual_discount

    def validate_manual_discount(self, subtotal_including_tax: Optional[Decimal] = None) -> None:
        """
        Raises:
            CheckoutValidationError si el descuento manual está fuera de rango
        """
        subtotal = (subtotal_including_tax if subtotal_including_tax is not None
                    else self.compute_totals().subtotal_including_tax)
        amount = self.manual_discount.amount

        if amount < 0:
            raise CheckoutValidationError("Discount cannot be negative")

        if self.manual_discount.type == ManualDiscountType.PERCENTAGE:
            if amount > ONE_HUNDRED:
                raise CheckoutValidationError("Percentage must be between 0 and 100")
        elif amount > subtotal:
            raise CheckoutValidationError(f"Amount must be between 0 and {subtotal}")

    def manual_discount_percentage_for_record(self, subtotal_including_tax: Decimal) -> Decimal:
        """Descuento manual expresado como porcentaje del subtotal (para el registro de la orden)"""
        amount = self.manual_discount.amount
        if self.manual_discount.type == ManualDiscountType.PERCENTAGE:
            return amount
        if subtotal_including_tax <= 0:
            return Decimal('0')
        return round_money(amount / subtotal_including_tax * ONE_HUNDRED)

    # ===== TOTALES =====

    def discount_code_items(self) -> List[DiscountCodeCartItem]:
        return [
            DiscountCodeCartItem(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                price=item.price,
                category_ids=item.category_ids,
            )
            for item in self.items
        ]

    def compute_totals(self) -> CartTotals:
        """Totales de la orden; redondeo solo en las salidas"""
        if not self.items:
            return CartTotals()

        subtotal_including_tax = sum((item.final_price * item.quantity for item in self.items), Decimal('0'))
        subtotal_excluding_tax = sum((item.price_excluding_tax * item.quantity for item in self.items), Decimal('0'))
        original_tax = sum((item.tax_amount * item.quantity for item in self.items), Decimal('0'))

        # un código calculado sobre un carrito más grande no supera el subtotal actual
        discount_code_amount = (min(self.applied_discount_code.discount_amount, subtotal_including_tax)
                                if self.applied_discount_code else Decimal('0'))
        subtotal_after_code = subtotal_including_tax - discount_code_amount

        manual_discount_amount = Decimal('0')
        manual = self.manual_discount
        if manual.amount > 0 and subtotal_after_code > 0:
            if manual.type == ManualDiscountType.PERCENTAGE:
                manual_discount_amount = subtotal_after_code * manual.amount / ONE_HUNDRED
            else:
                manual_discount_amount = min(manual.amount, subtotal_after_code)

        total_discount = discount_code_amount + manual_discount_amount
        discount_ratio = (total_discount / subtotal_including_tax
                          if subtotal_including_tax > 0 else Decimal('0'))

        breakdown = group_tax_breakdown(
            (TaxLine(price_including_tax=item.final_price, tax_rate=item.tax_rate, quantity=item.quantity)
             for item in self.items),
            discount_ratio
        )

        return CartTotals(
            subtotal_including_tax=round_money(subtotal_including_tax),
            subtotal_excluding_tax=round_money(subtotal_excluding_tax),
            original_tax=round_money(original_tax),
            discount_code_amount=round_money(discount_code_amount),
            subtotal_after_code=round_money(subtotal_after_code),
            manual_discount_amount=round_money(manual_discount_amount),
            total_discount=round_money(total_discount),
            discount_ratio=round_money(discount_ratio, RATIO_PLACES),
            discounted_subtotal_excluding_tax=round_money(subtotal_excluding_tax * (1 - discount_ratio)),
            tax=round_money(original_tax * (1 - discount_ratio)),
            total=round_money(subtotal_including_tax - total_discount),
            tax_breakdown=breakdown,
        )
