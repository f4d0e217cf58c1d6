"""
Registros de solo lectura publicados por el servicio de catálogo

- ProductVariant: unidad vendible con precio (impuesto incluido), tasa e inventario
- Product: agrupa variantes; lleva categorías y descuentos a nivel producto
- Customer: cliente seleccionable en el POS

El POS nunca modifica estos registros.
"""

from pydantic import Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict

from backoffice.core.config import settings
from backoffice.modules.discounts.schemas import CatalogModel, Discount


class Category(CatalogModel):
    id: str
    name: Optional[str] = None


class ProductVariant(CatalogModel):
    """Variante de producto. El precio y la tasa siempre se definen aquí"""
    id: str = Field(description="ID de la variante")
    name: str = Field(description="Nombre de la variante")
    price: Decimal = Field(..., ge=0, description="Precio con impuesto incluido")
    cost: Optional[Decimal] = Field(None, ge=0, description="Costo")
    tax_rate: Decimal = Field(default_factory=lambda: settings.DEFAULT_TAX_RATE, ge=0, le=100,
                              alias="tva", description="Tasa de impuesto en porcentaje")
    inventory: int = Field(0, ge=0, description="Unidades disponibles")
    sku: Optional[str] = None
    barcode: Optional[str] = None
    options: Dict[str, str] = Field(default_factory=dict, description="Atributos, ej. {color: Black}")
    images: List[str] = Field(default_factory=list)

    # Descuento precalculado por el servicio de catálogo (opcional)
    has_discount: bool = False
    final_price: Optional[Decimal] = Field(None, ge=0)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)


class Product(CatalogModel):
    """Producto con al menos una variante"""
    id: str = Field(description="ID del producto")
    name: str = Field(description="Nombre del producto")
    slug: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    variants: List[ProductVariant] = Field(..., min_length=1, description="Variantes del producto")
    categories: List[Category] = Field(default_factory=list)

    # Descuento a nivel producto (bandera precalculada)
    has_discount: bool = False
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)

    # Descuentos en formato antiguo, evaluados en el POS
    discounts: List[Discount] = Field(default_factory=list)

    @field_validator('variants')
    @classmethod
    def validate_variants(cls, v: List[ProductVariant]) -> List[ProductVariant]:
        if not v:
            raise ValueError('El producto debe tener al menos una variante')
        return v

    @property
    def category_ids(self) -> List[str]:
        return [category.id for category in self.categories]

    def get_variant(self, variant_id: Optional[str] = None) -> Optional[ProductVariant]:
        """Variante solicitada, o la primera si no se indica ninguna"""
        if variant_id is None:
            return self.variants[0]
        return next((variant for variant in self.variants if variant.id == variant_id), None)


class Customer(CatalogModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
