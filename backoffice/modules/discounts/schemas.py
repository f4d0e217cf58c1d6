"""
Esquemas Pydantic para descuentos y códigos de descuento

Define:
- Discount: descuento porcentual sobre un producto o una variante
- DiscountCode: código de descuento con ventana de fechas, límite de uso y segmentación
- EffectivePricing: precio efectivo de una variante tras aplicar descuentos
- DiscountCodeValidation / AppliedDiscountCode: resultado de validar un código

Los datos llegan del servicio de catálogo en camelCase; todos los modelos aceptan
también el nombre snake_case del campo.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from decimal import Decimal
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from backoffice.common.dates import within_window


# ===== ENUMS =====

class OrderSource(str, Enum):
    ONLINE = "ONLINE"
    IN_STORE = "IN_STORE"


class DiscountCodeTarget(str, Enum):
    """Alcance de un código de descuento"""
    ALL = "all"
    CATEGORY = "category"
    PRODUCTS = "products"
    CUSTOMERS = "customers"


class CatalogModel(BaseModel):
    """Base para registros del servicio de catálogo (camelCase en el wire)"""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


# ===== DISCOUNT =====

class Discount(CatalogModel):
    """Descuento porcentual sobre exactamente un producto o una variante"""
    id: str = Field(description="ID del descuento")
    title: Optional[str] = Field(None, max_length=64, description="Título")
    percentage: Decimal = Field(..., ge=1, le=100, description="Porcentaje de descuento (1-100)")
    start_date: datetime = Field(description="Inicio de vigencia")
    end_date: datetime = Field(description="Fin de vigencia")
    enabled: bool = Field(True, description="Habilitado")
    available_online: bool = Field(True, description="Disponible en tienda online")
    available_in_store: bool = Field(True, description="Disponible en tienda física")
    product_id: Optional[str] = Field(None, description="Producto objetivo")
    variant_id: Optional[str] = Field(None, description="Variante objetivo")

    @model_validator(mode='after')
    def validate_target(self):
        if bool(self.product_id) == bool(self.variant_id):
            raise ValueError('El descuento debe aplicar a un producto o a una variante, no a ambos')
        return self

    def is_active(self, source: OrderSource = OrderSource.IN_STORE,
                  now: Optional[datetime] = None) -> bool:
        """Activo si está habilitado, vigente y disponible en el canal"""
        if not self.enabled:
            return False
        if not within_window(self.start_date, self.end_date, now):
            return False
        if source == OrderSource.IN_STORE:
            return self.available_in_store
        return self.available_online


# ===== DISCOUNT CODE =====

class DiscountCode(CatalogModel):
    """Código de descuento tal como lo publica el servicio de catálogo"""
    id: str = Field(description="ID del código")
    code: str = Field(..., min_length=1, max_length=16, description="Código")
    title: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = Field(None, max_length=512)
    percentage: Decimal = Field(..., ge=1, le=100, description="Porcentaje de descuento (1-100)")
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    usage_limit: Optional[int] = Field(None, ge=1, le=100000, description="Límite de usos")
    used_count: int = Field(0, ge=0, description="Usos registrados")
    available_online: bool = True
    available_in_store: bool = True
    target_type: DiscountCodeTarget = DiscountCodeTarget.ALL
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    product_ids: List[str] = Field(default_factory=list)
    variant_ids: List[str] = Field(default_factory=list)
    customer_ids: List[str] = Field(default_factory=list)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        cleaned = v.strip().upper()
        if not cleaned:
            raise ValueError('El código no puede estar vacío')
        return cleaned

    @model_validator(mode='before')
    @classmethod
    def infer_target_type(cls, data: Any) -> Any:
        # Registros antiguos no traen targetType: se deduce de los campos presentes
        if not isinstance(data, dict):
            return data
        if data.get("targetType") or data.get("target_type"):
            return data
        inferred = DiscountCodeTarget.ALL
        if data.get("customerIds") or data.get("customer_ids"):
            inferred = DiscountCodeTarget.CUSTOMERS
        elif data.get("categoryId") or data.get("category_id"):
            inferred = DiscountCodeTarget.CATEGORY
        elif any(data.get(key) for key in ("productIds", "product_ids", "variantIds", "variant_ids")):
            inferred = DiscountCodeTarget.PRODUCTS
        return {**data, "target_type": inferred}

    @model_validator(mode='after')
    def validate_consistency(self):
        if self.end_date <= self.start_date:
            raise ValueError('La fecha de fin debe ser posterior a la de inicio')
        if self.usage_limit is not None and self.used_count > self.usage_limit:
            raise ValueError('Los usos registrados superan el límite de uso')
        if not (self.available_online or self.available_in_store):
            raise ValueError('El código debe estar disponible online o en tienda')
        if self.target_type == DiscountCodeTarget.CATEGORY and not self.category_id:
            raise ValueError('category_id es requerido cuando el alcance es una categoría')
        if self.target_type == DiscountCodeTarget.PRODUCTS and not (self.product_ids or self.variant_ids):
            raise ValueError('Debe indicar al menos un producto o variante')
        if self.target_type == DiscountCodeTarget.CUSTOMERS and not self.customer_ids:
            raise ValueError('Debe indicar al menos un cliente')
        return self

    @property
    def usage_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def summary(self) -> "DiscountCodeSummary":
        return DiscountCodeSummary(
            id=self.id,
            code=self.code,
            percentage=self.percentage,
            title=self.title,
            description=self.description,
        )


class DiscountCodeSummary(CatalogModel):
    """Datos del código devueltos al validar"""
    id: str
    code: str
    percentage: Decimal
    title: Optional[str] = None
    description: Optional[str] = None


class DiscountCodeCartItem(CatalogModel):
    """Ítem del carrito enviado para validar un código"""
    product_id: str
    variant_id: str
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0, description="Precio unitario original")
    category_ids: List[str] = Field(default_factory=list)


class DiscountCodeValidation(CatalogModel):
    """Resultado de validar un código de descuento"""
    valid: bool
    discount_code: Optional[DiscountCodeSummary] = None
    discount_amount: Optional[Decimal] = None
    error: Optional[str] = None


class AppliedDiscountCode(CatalogModel):
    """Código aplicado a la orden en curso con su monto absoluto"""
    id: str
    code: str
    percentage: Decimal
    title: Optional[str] = None
    description: Optional[str] = None
    discount_amount: Decimal = Field(..., ge=0, description="Monto descontado sobre el subtotal")

    @classmethod
    def from_validation(cls, result: DiscountCodeValidation) -> "AppliedDiscountCode":
        summary = result.discount_code
        return cls(
            id=summary.id,
            code=summary.code,
            percentage=summary.percentage,
            title=summary.title,
            description=summary.description,
            discount_amount=result.discount_amount,
        )


# ===== EFFECTIVE PRICING =====

class EffectivePricing(BaseModel):
    """Precio efectivo de una variante para el POS"""
    product_id: str
    variant_id: str
    name: str = Field(description="Nombre para mostrar: producto - variante")
    price: Decimal = Field(description="Precio original con impuesto")
    final_price: Decimal = Field(description="Precio tras descuento por ítem")
    has_discount: bool
    discount_percentage: Decimal
    discount_amount: Decimal = Field(description="Descuento unitario absoluto")
    tax_rate: Decimal
    inventory: int
    sku: Optional[str] = None
    barcode: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    options: Dict[str, str] = Field(default_factory=dict)
    category_ids: List[str] = Field(default_factory=list)
    source: str = Field(description="variant, product, legacy o none")
