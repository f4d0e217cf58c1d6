"""
Sesión de checkout por terminal

Cada terminal tiene su propia sesión con carrito, pagos, cliente, notas y
resultados de búsqueda. Las respuestas asíncronas se aplican solo si la sesión
no cambió mientras se esperaban:
- generation: aumenta al limpiar el carrito (también tras una venta exitosa)
- revision: aumenta con cada cambio del carrito o del cliente
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from backoffice.core.config import settings
from backoffice.modules.catalog.schemas import Customer, Product
from backoffice.modules.discounts.resolver import DiscountResolver
from backoffice.modules.discounts.schemas import AppliedDiscountCode
from backoffice.modules.pos.cart import Cart
from backoffice.modules.pos.payments import PaymentReconciler
from backoffice.modules.pos.schemas import (
    CartItem, CheckoutSnapshot, ManualDiscountType, PaymentMethod,
    PaymentMethodEntry, PaymentMethodUpdate
)

logger = logging.getLogger(__name__)


def looks_like_barcode(query: Optional[str]) -> bool:
    """Lecturas de escáner: solo dígitos y al menos BARCODE_MIN_LENGTH"""
    if not query:
        return False
    return re.fullmatch(rf"\d{{{settings.BARCODE_MIN_LENGTH},}}", query.strip()) is not None


class CheckoutSession:
    """Estado de checkout de un terminal (un operador)"""

    def __init__(self, terminal_id: str, resolver: Optional[DiscountResolver] = None):
        self.terminal_id = terminal_id
        self.cart = Cart(resolver)
        self.payments = PaymentReconciler()
        self.customer: Optional[Customer] = None
        self.notes = ""
        self.search_query = ""
        self.search_results: List[Product] = []
        self.customer_results: List[Customer] = []
        self.is_processing = False
        self.generation = 0
        self.revision = 0

    def _cart_changed(self) -> None:
        self.revision += 1
        self._sync_payments()

    def _sync_payments(self) -> None:
        self.payments.set_order_total(self.cart.compute_totals().total)

    def is_current(self, generation: Optional[int] = None, revision: Optional[int] = None) -> bool:
        """La sesión sigue en el estado capturado al iniciar la petición"""
        if generation is not None and generation != self.generation:
            return False
        if revision is not None and revision != self.revision:
            return False
        return True

    # ===== CARRITO =====

    def add_item(self, product: Product, variant_id: Optional[str] = None) -> CartItem:
        item = self.cart.add_item(product, variant_id)
        self._cart_changed()
        return item

    def update_quantity(self, item_id: str, quantity: int) -> Optional[CartItem]:
        item = self.cart.update_quantity(item_id, quantity)
        self._cart_changed()
        return item

    def remove_item(self, item_id: str) -> None:
        self.cart.remove_item(item_id)
        self._cart_changed()

    def set_manual_discount(self, amount: Decimal, discount_type: ManualDiscountType) -> None:
        self.cart.set_manual_discount(amount, discount_type)
        self._cart_changed()

    def apply_discount_code(self, applied: AppliedDiscountCode, revision: Optional[int] = None) -> bool:
        """
        Aplicar un código validado.

        Returns:
            False si el carrito o el cliente cambiaron desde que se pidió la validación
        """
        if not self.is_current(revision=revision):
            logger.info(f"Discarding stale discount code {applied.code} for terminal {self.terminal_id}")
            return False
        self.cart.apply_discount_code(applied)
        self._cart_changed()
        return True

    def remove_discount_code(self) -> None:
        self.cart.remove_discount_code()
        self._cart_changed()

    def clear(self) -> None:
        """Descartar la venta en curso"""
        self.cart.clear()
        self.payments.reset()
        self.customer = None
        self.notes = ""
        self.clear_search()
        self.customer_results = []
        self.generation += 1
        self.revision += 1
        self._sync_payments()

    # ===== CLIENTE Y NOTAS =====

    def set_customer(self, customer: Optional[Customer]) -> None:
        previous_id = self.customer.id if self.customer else None
        self.customer = customer
        self.customer_results = []
        # los códigos se validan por cliente
        if (customer.id if customer else None) != previous_id:
            self.revision += 1

    def set_notes(self, notes: str) -> None:
        self.notes = notes or ""

    # ===== PAGOS =====

    def add_payment_method(self, method: PaymentMethod) -> PaymentMethodEntry:
        return self.payments.add_payment_method(method)

    def update_payment_method(self, payment_id: str, updates: PaymentMethodUpdate) -> PaymentMethodEntry:
        return self.payments.update_payment_method(payment_id, updates)

    def remove_payment_method(self, payment_id: str) -> None:
        self.payments.remove_payment_method(payment_id)

    # ===== BÚSQUEDAS =====

    def clear_search(self) -> None:
        self.search_query = ""
        self.search_results = []

    def apply_product_results(self, products: List[Product], generation: int,
                              query: str = "", barcode: bool = False) -> Optional[CartItem]:
        """
        Aplicar resultados de búsqueda de productos.

        Una lectura de código de barras con un único producto lo agrega al carrito
        y limpia la búsqueda.

        Returns:
            El ítem agregado por código de barras, si lo hubo
        """
        if not self.is_current(generation=generation):
            logger.info(f"Discarding stale product search for terminal {self.terminal_id}")
            return None

        if barcode and len(products) == 1:
            item = self.add_item(products[0])
            self.clear_search()
            return item

        self.search_query = query
        self.search_results = products
        return None

    def apply_customer_results(self, customers: List[Customer], generation: int) -> bool:
        if not self.is_current(generation=generation):
            logger.info(f"Discarding stale customer search for terminal {self.terminal_id}")
            return False
        self.customer_results = customers
        return True

    # ===== VISTA =====

    def snapshot(self) -> CheckoutSnapshot:
        totals = self.cart.compute_totals()
        self.payments.set_order_total(totals.total)

        return CheckoutSnapshot(
            terminal_id=self.terminal_id,
            items=[item.model_copy() for item in self.cart.items],
            totals=totals,
            applied_discount_code=self.cart.applied_discount_code,
            manual_discount=self.cart.manual_discount,
            customer=self.customer,
            notes=self.notes,
            payment_methods=[p.model_copy() for p in self.payments.payment_methods],
            total_paid=self.payments.total_paid,
            payment_validation=self.payments.validate(),
            payment_status=self.payments.payment_status(),
            is_processing=self.is_processing,
            generation=self.generation,
            revision=self.revision,
        )


class SessionRegistry:
    """Sesiones de checkout en memoria, una por terminal de cada tienda"""

    def __init__(self, resolver: Optional[DiscountResolver] = None):
        self.resolver = resolver
        self._sessions: Dict[Tuple[str, str], CheckoutSession] = {}

    def get(self, shop_id: str, terminal_id: str) -> CheckoutSession:
        key = (shop_id, terminal_id)
        session = self._sessions.get(key)
        if session is None:
            logger.info(f"Opening checkout session for terminal {terminal_id} of shop {shop_id}")
            session = CheckoutSession(terminal_id, self.resolver)
            self._sessions[key] = session
        return session
