"""
Routers FastAPI para el módulo POS (Point of Sale)

Endpoints de la sesión de checkout de un terminal:
- Carrito: ítems, cantidades, limpiar
- Cliente y notas
- Descuentos: manual y código de descuento
- Pagos: efectivo, tarjeta y cheques
- Búsquedas de productos y clientes
- Checkout: envío de la orden

Todas las mutaciones devuelven la vista actualizada de la sesión.
"""

from fastapi import APIRouter, Path, Query, status
from typing import Any, Dict

from backoffice.dependencies.posDependencies import (
    CheckoutSessionDep, OrderServiceDep, TerminalServiceDep
)
from backoffice.modules.pos.schemas import (
    AddItemRequest, CheckoutSnapshot, CustomerSearchResult, CustomerSelect,
    DiscountCodeApply, DiscountCodeResult, ManualDiscountUpdate, NotesUpdate,
    OrderResult, PaymentMethodCreate, PaymentMethodUpdate, PaymentValidation,
    ProductSearchRequest, ProductSearchResult, QuantityUpdate
)


# ===== TERMINALS ROUTER =====

pos_terminals_router = APIRouter(prefix="/pos/terminals/{terminal_id}", tags=["POS"])


@pos_terminals_router.get("", response_model=CheckoutSnapshot)
async def get_checkout(session: CheckoutSessionDep):
    """
    Vista actual de la sesión del terminal.

    Los totales, la validación de pagos y el estado de pago se recalculan
    en cada consulta a partir del carrito.
    """
    return session.snapshot()


@pos_terminals_router.post("/clear", response_model=CheckoutSnapshot)
async def clear_checkout(session: CheckoutSessionDep):
    """Descartar la venta en curso (carrito, cliente, descuentos, notas y pagos)"""
    session.clear()
    return session.snapshot()


# ===== CART =====

@pos_terminals_router.post("/items", response_model=CheckoutSnapshot, status_code=status.HTTP_201_CREATED)
async def add_item(item_data: AddItemRequest, session: CheckoutSessionDep):
    """
    Agregar una unidad de una variante al carrito.

    - **product**: Producto tal como lo devolvió la búsqueda
    - **variant_id**: Variante elegida (por defecto la primera)

    Validaciones:
    - 409 si no hay inventario suficiente
    - 404 si la variante no existe
    """
    session.add_item(item_data.product, item_data.variant_id)
    return session.snapshot()


@pos_terminals_router.patch("/items/{item_id}", response_model=CheckoutSnapshot)
async def update_item_quantity(
    quantity_data: QuantityUpdate,
    session: CheckoutSessionDep,
    item_id: str = Path(..., description="ID producto-variante de la línea")
):
    """Cambiar la cantidad de una línea; 0 o menos la elimina"""
    session.update_quantity(item_id, quantity_data.quantity)
    return session.snapshot()


@pos_terminals_router.delete("/items/{item_id}", response_model=CheckoutSnapshot)
async def remove_item(
    session: CheckoutSessionDep,
    item_id: str = Path(..., description="ID producto-variante de la línea")
):
    session.remove_item(item_id)
    return session.snapshot()


# ===== CUSTOMER & NOTES =====

@pos_terminals_router.put("/customer", response_model=CheckoutSnapshot)
async def select_customer(customer_data: CustomerSelect, session: CheckoutSessionDep):
    """Seleccionar (o quitar con null) el cliente de la venta"""
    session.set_customer(customer_data.customer)
    return session.snapshot()


@pos_terminals_router.put("/notes", response_model=CheckoutSnapshot)
async def update_notes(notes_data: NotesUpdate, session: CheckoutSessionDep):
    session.set_notes(notes_data.notes)
    return session.snapshot()


# ===== DISCOUNTS =====

@pos_terminals_router.put("/manual-discount", response_model=CheckoutSnapshot)
async def set_manual_discount(discount_data: ManualDiscountUpdate, session: CheckoutSessionDep):
    """
    Fijar el descuento manual de la orden.

    - **PERCENTAGE**: se acota a 0-100
    - **FIXED**: se acota a 0 y el subtotal restante tras el código de descuento
    """
    session.set_manual_discount(discount_data.amount, discount_data.type)
    return session.snapshot()


@pos_terminals_router.post("/discount-code", response_model=DiscountCodeResult)
async def apply_discount_code(code_data: DiscountCodeApply, service: TerminalServiceDep):
    """
    Validar y aplicar un código de descuento.

    Un código rechazado no es un error HTTP: el motivo se devuelve en `error`.
    Si el carrito cambió durante la validación el resultado se marca `stale`
    y no se aplica.
    """
    return await service.apply_discount_code(code_data.code)


@pos_terminals_router.delete("/discount-code", response_model=CheckoutSnapshot)
async def remove_discount_code(session: CheckoutSessionDep):
    session.remove_discount_code()
    return session.snapshot()


# ===== PAYMENTS =====

@pos_terminals_router.post("/payments", response_model=CheckoutSnapshot, status_code=status.HTTP_201_CREATED)
async def add_payment_method(payment_data: PaymentMethodCreate, session: CheckoutSessionDep):
    """
    Agregar un método de pago.

    - CASH y CREDIT_CARD solo una vez
    - CHECK cuantas veces sea necesario (inicia en 0 con fecha de hoy)
    """
    session.add_payment_method(payment_data.method)
    return session.snapshot()


@pos_terminals_router.patch("/payments/{payment_id}", response_model=CheckoutSnapshot)
async def update_payment_method(
    payment_data: PaymentMethodUpdate,
    session: CheckoutSessionDep,
    payment_id: str = Path(..., description="ID local del pago")
):
    """Actualizar monto, efectivo recibido o datos del cheque"""
    session.update_payment_method(payment_id, payment_data)
    return session.snapshot()


@pos_terminals_router.delete("/payments/{payment_id}", response_model=CheckoutSnapshot)
async def remove_payment_method(
    session: CheckoutSessionDep,
    payment_id: str = Path(..., description="ID local del pago")
):
    session.remove_payment_method(payment_id)
    return session.snapshot()


@pos_terminals_router.get("/payments/validate", response_model=PaymentValidation)
async def validate_payments(session: CheckoutSessionDep):
    return session.snapshot().payment_validation


@pos_terminals_router.get("/payments/summary")
async def get_payment_summary(session: CheckoutSessionDep) -> Dict[str, Any]:
    """Resumen de pagos por método, con vuelto del efectivo"""
    session.snapshot()
    return session.payments.payment_summary()


# ===== SEARCH =====

@pos_terminals_router.post("/products/search", response_model=ProductSearchResult)
async def search_products(search_data: ProductSearchRequest, service: TerminalServiceDep):
    """
    Buscar productos por texto o código de barras.

    Un código de barras con un único resultado agrega el producto al carrito
    y lo devuelve en `added_item`.
    """
    return await service.search_products(query=search_data.query, barcode=search_data.barcode)


@pos_terminals_router.get("/customers/search", response_model=CustomerSearchResult)
async def search_customers(
    service: TerminalServiceDep,
    query: str = Query("", max_length=200, description="Nombre, email o teléfono")
):
    """Buscar clientes; consultas de menos de 3 caracteres no llegan al servicio"""
    return await service.search_customers(query)


# ===== CHECKOUT =====

@pos_terminals_router.post("/checkout", response_model=OrderResult, status_code=status.HTTP_201_CREATED)
async def checkout(session: CheckoutSessionDep, service: OrderServiceDep):
    """
    Crear la orden POS.

    Validaciones:
    - Carrito no vacío
    - Descuento manual dentro de rango
    - Pagos iguales al total y completos por método
    - 409 si ya hay una orden en curso

    Tras una orden exitosa la sesión queda limpia; si el servicio la rechaza
    el carrito se conserva para reintentar.
    """
    return await service.submit(session)
