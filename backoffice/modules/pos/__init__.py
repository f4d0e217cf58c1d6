"""
Módulo POS (Point of Sale) - Backoffice

Este módulo maneja el checkout de los terminales de tienda física:

ENTIDADES PRINCIPALES:
- CheckoutSession: Sesión de un terminal (carrito, cliente, notas, pagos)
- Cart: Líneas por variante, código de descuento y descuento manual
- PaymentReconciler: Pagos mixtos en efectivo, tarjeta y cheques

FUNCIONALIDADES:
- Precio efectivo por variante (descuento de variante, de producto o antiguo)
- Desglose de impuesto incluido en el precio, por tasa
- Código de descuento (uno por orden) y descuento manual porcentual o fijo
- Efectivo que se ajusta solo al saldo pendiente, con cálculo de vuelto
- Búsqueda por texto o código de barras con agregado automático
- Envío de la orden al servicio de órdenes

INTEGRACIÓN CON OTROS MÓDULOS:
- Catalog: Productos, clientes y creación de órdenes (servicio externo)
- Discounts: Resolución de precios y validación de códigos
- Taxes: Cálculo de impuestos y redondeo

REGLAS DE NEGOCIO:
- No se vende más del inventario disponible
- Los pagos deben sumar el total de la orden (tolerancia de un centavo)
- Cheques quedan con pago PENDING hasta su verificación
- Respuestas que llegan después de limpiar el carrito se descartan
"""

from .schemas import (
    # Cart schemas
    CartItem, CartTotals, ManualDiscount, ManualDiscountType,

    # Payment schemas
    PaymentMethod, PaymentMethodEntry, PaymentMethodUpdate, PaymentValidation,

    # Order schemas
    OrderRequest, OrderResult, OrderStatus, PaymentStatus,

    # Session view
    CheckoutSnapshot
)

from .cart import Cart
from .payments import PaymentReconciler
from .session import CheckoutSession, SessionRegistry

from .services import POSTerminalService, OrderSubmissionService

__all__ = [
    # Schemas
    "CartItem", "CartTotals", "ManualDiscount", "ManualDiscountType",
    "PaymentMethod", "PaymentMethodEntry", "PaymentMethodUpdate", "PaymentValidation",
    "OrderRequest", "OrderResult", "OrderStatus", "PaymentStatus",
    "CheckoutSnapshot",

    # State
    "Cart", "PaymentReconciler", "CheckoutSession", "SessionRegistry",

    # Services
    "POSTerminalService", "OrderSubmissionService"
]
