"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa la lógica que requiere el servicio externo de catálogo/órdenes:
- POSTerminalService: búsquedas de productos y clientes, códigos de descuento
- OrderSubmissionService: validación final y envío de la orden

Las llamadas al servicio son bloqueantes y se ejecutan con run_in_threadpool.
Las respuestas solo se aplican si la sesión no cambió mientras se esperaban.
"""

import logging
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from backoffice.common.exceptions import (
    CheckoutValidationError, OrderInProgressError, OrderSubmissionError
)
from backoffice.core.config import settings
from backoffice.modules.catalog.client import CatalogClient
from backoffice.modules.discounts.codes import DiscountCodeValidator
from backoffice.modules.discounts.schemas import AppliedDiscountCode
from backoffice.modules.pos.schemas import (
    CartTotals, CustomerSearchResult, DiscountCodeResult, OrderItemPayload,
    OrderPaymentPayload, OrderRequest, OrderResult, PaymentMethod,
    PaymentMethodEntry, PaymentStatus, ProductSearchResult
)
from backoffice.modules.pos.session import CheckoutSession, looks_like_barcode

logger = logging.getLogger(__name__)


class POSTerminalService:
    """Operaciones del terminal que consultan el servicio de catálogo"""

    def __init__(self, session: CheckoutSession, client: CatalogClient,
                 validator: Optional[DiscountCodeValidator] = None):
        self.session = session
        self.client = client
        self.validator = validator or DiscountCodeValidator(client)

    async def search_products(self, query: Optional[str] = None,
                              barcode: Optional[str] = None) -> ProductSearchResult:
        """
        Buscar productos por texto o código de barras.

        Un texto con forma de código de barras se busca como tal; si devuelve un
        único producto se agrega directamente al carrito.
        """
        query = (query or "").strip()
        barcode = (barcode or "").strip() or None
        if barcode is None and looks_like_barcode(query):
            barcode = query

        generation = self.session.generation
        if barcode:
            products = await run_in_threadpool(self.client.search_products, None, barcode)
        else:
            products = await run_in_threadpool(self.client.search_products, query, None)

        if not self.session.is_current(generation=generation):
            logger.info(f"Product search for terminal {self.session.terminal_id} finished after cart was cleared")
            return ProductSearchResult(products=products, stale=True)

        added_item = self.session.apply_product_results(
            products, generation, query=query, barcode=barcode is not None
        )
        if added_item is not None:
            logger.info(f"Barcode {barcode} added {added_item.name} on terminal {self.session.terminal_id}")

        return ProductSearchResult(products=products, added_item=added_item)

    async def search_customers(self, query: str) -> CustomerSearchResult:
        query = (query or "").strip()
        if len(query) < settings.CUSTOMER_SEARCH_MIN_LENGTH:
            self.session.customer_results = []
            return CustomerSearchResult()

        generation = self.session.generation
        customers = await run_in_threadpool(self.client.search_customers, query)

        if not self.session.apply_customer_results(customers, generation):
            return CustomerSearchResult(customers=customers, stale=True)
        return CustomerSearchResult(customers=customers)

    async def apply_discount_code(self, code: str) -> DiscountCodeResult:
        """
        Validar y aplicar un código de descuento al carrito actual.

        El rechazo del código no es un error de la petición: se devuelve en `error`.
        """
        session = self.session
        revision = session.revision
        totals = session.cart.compute_totals()
        customer_id = session.customer.id if session.customer else None

        result = await run_in_threadpool(
            self.validator.validate,
            code,
            session.cart.discount_code_items(),
            customer_id,
            totals.subtotal_including_tax
        )

        if not session.is_current(revision=revision):
            logger.info(f"Discount code {code} validated after cart changed on terminal {session.terminal_id}")
            return DiscountCodeResult(stale=True)

        if not result.valid:
            logger.warning(f"Discount code {code} rejected: {result.error}")
            return DiscountCodeResult(error=result.error)

        applied = AppliedDiscountCode.from_validation(result)
        session.apply_discount_code(applied, revision)
        return DiscountCodeResult(applied=applied)


class OrderSubmissionService:
    """Envío de la orden POS al servicio de órdenes"""

    def __init__(self, client: CatalogClient):
        self.client = client

    @staticmethod
    def _payment_payload(payment: PaymentMethodEntry) -> OrderPaymentPayload:
        data = OrderPaymentPayload(method=payment.method, amount=payment.amount, notes=payment.notes)
        if payment.method == PaymentMethod.CASH:
            data.cash_given = payment.cash_given
            data.cash_change = payment.cash_change
        elif payment.method == PaymentMethod.CHECK:
            data.check_number = payment.check_number
            data.check_bank_name = payment.check_bank_name
            data.check_date = payment.check_date
        return data

    def build_order_request(self, session: CheckoutSession,
                            totals: Optional[CartTotals] = None) -> OrderRequest:
        """Armar el payload de la orden a partir del estado de la sesión"""
        cart = session.cart
        totals = totals or cart.compute_totals()
        applied = cart.applied_discount_code

        return OrderRequest(
            customer_id=session.customer.id if session.customer else None,
            items=[
                OrderItemPayload(product_id=item.product_id, variant_id=item.variant_id, quantity=item.quantity)
                for item in cart.items
            ],
            payment_methods=[self._payment_payload(p) for p in session.payments.payment_methods],
            discount_code_id=applied.id if applied else None,
            discount_code_value=applied.code if applied else None,
            order_discount=cart.manual_discount.amount,
            order_discount_type=cart.manual_discount.type,
            order_discount_percentage=cart.manual_discount_percentage_for_record(totals.subtotal_including_tax),
            expected_subtotal=totals.subtotal_including_tax,
            expected_discount_code_amount=totals.discount_code_amount,
            expected_manual_discount_amount=totals.manual_discount_amount,
            expected_total=totals.total,
            notes=session.notes.strip() or None,
            payment_status=session.payments.payment_status(),
        )

    def _validate(self, session: CheckoutSession) -> CartTotals:
        if session.is_processing:
            raise OrderInProgressError()

        if session.cart.is_empty:
            raise CheckoutValidationError("Please add items to the cart")

        totals = session.cart.compute_totals()
        session.cart.validate_manual_discount(totals.subtotal_including_tax)

        session.payments.set_order_total(totals.total)
        validation = session.payments.validate()
        if not validation.valid:
            raise CheckoutValidationError(validation.message)

        return totals

    async def submit(self, session: CheckoutSession) -> OrderResult:
        """
        Validar y crear la orden.

        Raises:
            OrderInProgressError si ya hay una orden en curso
            CheckoutValidationError si el carrito, el descuento o los pagos son inválidos
            OrderSubmissionError si el servicio rechaza la orden (el carrito se conserva)
        """
        try:
            totals = self._validate(session)
        except CheckoutValidationError as e:
            logger.warning(f"Checkout blocked on terminal {session.terminal_id}: {e.message}")
            raise

        order_request = self.build_order_request(session, totals)
        payload = order_request.model_dump(by_alias=True, exclude_none=True)
        generation = session.generation

        session.is_processing = True
        try:
            order = await run_in_threadpool(self.client.create_order, payload)
        except OrderSubmissionError as e:
            logger.error(f"Order creation failed on terminal {session.terminal_id}: {e.message}")
            raise
        finally:
            session.is_processing = False

        order_id = order.get("id")
        if not order_id:
            raise OrderSubmissionError("Order service response did not include an order id")

        order_number = order.get("orderNumber") or str(order_id)
        if order_request.payment_status == PaymentStatus.PENDING:
            message = f"Order {order_number} completed! Check payment(s) pending verification."
        else:
            message = f"Order {order_number} completed successfully!"

        logger.info(f"Order {order_number} created on terminal {session.terminal_id} for {totals.total}")

        if session.is_current(generation=generation):
            session.clear()

        return OrderResult(
            order_id=str(order_id),
            order_number=order.get("orderNumber"),
            payment_status=order_request.payment_status,
            message=message,
            order=order,
        )
