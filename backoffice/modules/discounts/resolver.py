"""
Resolución del precio efectivo de una variante en el POS.

Orden de precedencia:
1. Descuento precalculado de la variante (has_discount/final_price del catálogo)
2. Bandera de descuento a nivel producto (has_discount/discount_percentage)
3. Primer descuento antiguo del producto habilitado, vigente y disponible en tienda
4. Sin descuento

El catálogo puede enviar el descuento ya calculado o dejar que el POS lo evalúe;
quien llama no necesita saber cuál de los dos casos aplica.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from backoffice.common.exceptions import VariantNotFoundError
from backoffice.modules.catalog.schemas import Product, ProductVariant
from backoffice.modules.discounts.schemas import EffectivePricing, OrderSource
from backoffice.modules.taxes.calculator import ONE_HUNDRED

logger = logging.getLogger(__name__)


def apply_percentage(price: Decimal, percentage: Decimal) -> Decimal:
    """price - price * percentage / 100"""
    return price - (price * percentage) / ONE_HUNDRED


class DiscountResolver:
    """Calcula el precio efectivo por unidad de una variante"""

    def __init__(self, source: OrderSource = OrderSource.IN_STORE):
        self.source = source

    def resolve(self, product: Product, variant_id: Optional[str] = None,
                now: Optional[datetime] = None) -> EffectivePricing:
        """
        Resolver precio, descuento y datos de presentación de una variante

        Args:
            product: Producto con sus variantes
            variant_id: Variante elegida; si se omite se usa la primera
            now: Momento de evaluación de vigencias (por defecto ahora)

        Returns:
            EffectivePricing con precio original, precio final y origen del descuento
        """
        variant = product.get_variant(variant_id)
        if variant is None:
            raise VariantNotFoundError(
                f"Variant {variant_id} not found for product {product.name}"
            )

        final_price, percentage, source = self._final_price(product, variant, now)

        return EffectivePricing(
            product_id=product.id,
            variant_id=variant.id,
            name=f"{product.name} - {variant.name}",
            price=variant.price,
            final_price=final_price,
            has_discount=source != "none",
            discount_percentage=percentage,
            discount_amount=variant.price - final_price,
            tax_rate=variant.tax_rate,
            inventory=variant.inventory,
            sku=variant.sku or product.sku,
            barcode=variant.barcode or product.barcode,
            images=variant.images if variant.images else product.images,
            options=variant.options,
            category_ids=product.category_ids,
            source=source,
        )

    def _final_price(self, product: Product, variant: ProductVariant,
                     now: Optional[datetime]) -> Tuple[Decimal, Decimal, str]:
        price = variant.price

        if variant.has_discount:
            final_price = variant.final_price if variant.final_price is not None else price
            return final_price, variant.discount_percentage or Decimal('0'), "variant"

        if product.has_discount and product.discount_percentage:
            percentage = product.discount_percentage
            return apply_percentage(price, percentage), percentage, "product"

        # Primer descuento vigente en orden de lista, no el mayor
        legacy = next(
            (discount for discount in product.discounts if discount.is_active(self.source, now)),
            None
        )
        if legacy is not None:
            logger.debug(f"Legacy discount {legacy.id} applied to product {product.id}")
            return apply_percentage(price, legacy.percentage), legacy.percentage, "legacy"

        return price, Decimal('0'), "none"
