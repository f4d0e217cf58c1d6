"""
Esquemas Pydantic para el módulo POS (Point of Sale)

Define la validación de datos de entrada y salida para:
- CartItem / CartTotals: carrito en memoria y sus totales
- ManualDiscount: descuento manual de la orden
- PaymentMethodEntry: pagos ofrecidos (efectivo, tarjeta, cheques)
- OrderRequest: payload enviado al servicio de órdenes
- CheckoutSnapshot: vista de solo lectura de la sesión del terminal
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict, Any
from datetime import date
from enum import Enum

from backoffice.modules.catalog.schemas import Customer, Product
from backoffice.modules.discounts.schemas import AppliedDiscountCode, CatalogModel
from backoffice.modules.taxes.schemas import TaxBreakdown


# ===== ENUMS =====

class PaymentMethod(str, Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    CHECK = "CHECK"


class ManualDiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PaymentStatus(str, Enum):
    """Estado de pago de la orden; los cheques quedan pendientes de cobro"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class OrderStatus(str, Enum):
    DELIVERED = "DELIVERED"


# ===== CART SCHEMAS =====

class CartItem(BaseModel):
    """Línea del carrito; siempre referencia una variante"""
    id: str = Field(description="ID compuesto producto-variante")
    product_id: str
    variant_id: str
    name: str = Field(description="Nombre para mostrar")
    sku: Optional[str] = None
    price: Decimal = Field(description="Precio unitario original")
    final_price: Decimal = Field(description="Precio unitario tras descuento por ítem")
    discount_percentage: Decimal = Field(default=Decimal("0"))
    quantity: int = Field(..., ge=1, description="Cantidad")
    total: Decimal = Field(description="final_price * quantity")
    price_excluding_tax: Decimal = Field(description="Precio unitario sin impuesto")
    tax_amount: Decimal = Field(description="Impuesto unitario")
    tax_rate: Decimal = Field(description="Tasa en porcentaje")
    inventory: int = Field(description="Inventario disponible al agregar")
    images: List[str] = Field(default_factory=list)
    options: Dict[str, str] = Field(default_factory=dict)
    category_ids: List[str] = Field(default_factory=list)


class ManualDiscount(BaseModel):
    """Descuento manual de la orden, aplicado después del código"""
    amount: Decimal = Field(default=Decimal("0"), description="Porcentaje o monto fijo")
    type: ManualDiscountType = Field(default=ManualDiscountType.PERCENTAGE)


class CartTotals(BaseModel):
    """Totales del carrito, recalculados siempre desde el estado"""
    subtotal_including_tax: Decimal = Decimal("0.00")
    subtotal_excluding_tax: Decimal = Decimal("0.00")
    original_tax: Decimal = Decimal("0.00")
    discount_code_amount: Decimal = Decimal("0.00")
    subtotal_after_code: Decimal = Decimal("0.00")
    manual_discount_amount: Decimal = Decimal("0.00")
    total_discount: Decimal = Decimal("0.00")
    discount_ratio: Decimal = Decimal("0.0000")
    discounted_subtotal_excluding_tax: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    tax_breakdown: List[TaxBreakdown] = Field(default_factory=list)


# ===== PAYMENT SCHEMAS =====

class PaymentMethodEntry(BaseModel):
    """Pago ofrecido por el cliente"""
    id: str = Field(description="ID local del pago")
    method: PaymentMethod
    amount: Decimal = Field(default=Decimal("0"), description="Monto asignado a este método")
    cash_given: Optional[Decimal] = Field(None, description="Efectivo recibido")
    cash_change: Decimal = Field(default=Decimal("0"), description="Vuelto")
    check_number: Optional[str] = Field(None, max_length=100)
    check_bank_name: Optional[str] = Field(None, max_length=100)
    check_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)


class PaymentMethodCreate(BaseModel):
    method: PaymentMethod


class PaymentMethodUpdate(BaseModel):
    """Cambios parciales sobre un pago; solo se aplican los campos enviados"""
    amount: Optional[Decimal] = Field(None, ge=0, description="Monto del pago")
    cash_given: Optional[Decimal] = Field(None, ge=0)
    check_number: Optional[str] = Field(None, max_length=100)
    check_bank_name: Optional[str] = Field(None, max_length=100)
    check_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError('El monto no puede ser negativo')
        return v


class PaymentValidation(BaseModel):
    valid: bool
    message: Optional[str] = None


# ===== ORDER SCHEMAS =====

class OrderItemPayload(CatalogModel):
    """Solo identificadores y cantidad: el servidor recalcula precios"""
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)


class OrderPaymentPayload(CatalogModel):
    method: PaymentMethod
    amount: Decimal
    cash_given: Optional[Decimal] = None
    cash_change: Optional[Decimal] = None
    check_number: Optional[str] = None
    check_bank_name: Optional[str] = None
    check_date: Optional[date] = None
    notes: Optional[str] = None


class OrderRequest(CatalogModel):
    """Payload de creación de orden POS"""
    customer_id: Optional[str] = None
    items: List[OrderItemPayload] = Field(..., min_length=1)
    payment_methods: List[OrderPaymentPayload] = Field(..., min_length=1)
    discount_code_id: Optional[str] = None
    discount_code_value: Optional[str] = None
    order_discount: Decimal = Decimal("0")
    order_discount_type: ManualDiscountType = ManualDiscountType.PERCENTAGE
    order_discount_percentage: Decimal = Decimal("0")
    expected_subtotal: Decimal
    expected_discount_code_amount: Decimal = Decimal("0")
    expected_manual_discount_amount: Decimal = Decimal("0")
    expected_total: Decimal
    notes: Optional[str] = None
    order_status: OrderStatus = OrderStatus.DELIVERED
    payment_status: PaymentStatus

    @model_validator(mode='after')
    def validate_payment_status(self):
        has_check = any(p.method == PaymentMethod.CHECK for p in self.payment_methods)
        expected = PaymentStatus.PENDING if has_check else PaymentStatus.COMPLETED
        if self.payment_status != expected:
            raise ValueError('paymentStatus no corresponde a los métodos de pago')
        return self


class OrderResult(BaseModel):
    """Resultado de una orden creada"""
    order_id: str
    order_number: Optional[str] = None
    payment_status: PaymentStatus
    message: str
    order: Dict[str, Any] = Field(default_factory=dict, description="Respuesta del servicio")


# ===== TERMINAL REQUEST SCHEMAS =====

class AddItemRequest(BaseModel):
    product: Product
    variant_id: Optional[str] = None


class QuantityUpdate(BaseModel):
    quantity: int


class ManualDiscountUpdate(BaseModel):
    amount: Decimal = Field(..., description="Porcentaje (0-100) o monto fijo")
    type: ManualDiscountType = ManualDiscountType.PERCENTAGE


class DiscountCodeApply(BaseModel):
    code: str = Field(..., max_length=32)


class CustomerSelect(BaseModel):
    customer: Optional[Customer] = None


class NotesUpdate(BaseModel):
    notes: str = Field("", max_length=1000)


class ProductSearchRequest(BaseModel):
    query: Optional[str] = Field(None, max_length=200)
    barcode: Optional[str] = Field(None, max_length=64)

    @model_validator(mode='after')
    def validate_terms(self):
        if not (self.query and self.query.strip()) and not (self.barcode and self.barcode.strip()):
            raise ValueError('Debe indicar query o barcode')
        return self


class ProductSearchResult(BaseModel):
    products: List[Product] = Field(default_factory=list)
    added_item: Optional[CartItem] = Field(None, description="Ítem agregado por lectura de código de barras")
    stale: bool = Field(False, description="La respuesta llegó después de limpiar el carrito")


class CustomerSearchResult(BaseModel):
    customers: List[Customer] = Field(default_factory=list)
    stale: bool = False


class DiscountCodeResult(BaseModel):
    applied: Optional[AppliedDiscountCode] = None
    error: Optional[str] = None
    stale: bool = False


class CheckoutSnapshot(BaseModel):
    """Vista de solo lectura de la sesión de un terminal"""
    terminal_id: str
    items: List[CartItem]
    totals: CartTotals
    applied_discount_code: Optional[AppliedDiscountCode] = None
    manual_discount: ManualDiscount
    customer: Optional[Customer] = None
    notes: str = ""
    payment_methods: List[PaymentMethodEntry]
    total_paid: Decimal
    payment_validation: PaymentValidation
    payment_status: PaymentStatus
    is_processing: bool = False
    generation: int
    revision: int
