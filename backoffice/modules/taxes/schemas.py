from pydantic import BaseModel, Field, field_validator
from decimal import Decimal


class TaxLine(BaseModel):
    """Línea gravada: precio unitario con impuesto, tasa y cantidad"""
    price_including_tax: Decimal = Field(..., ge=0, description="Precio unitario con impuesto incluido")
    tax_rate: Decimal = Field(..., ge=0, le=100, description="Tasa en porcentaje (ej. 19 para 19%)")
    quantity: int = Field(1, ge=1, description="Cantidad")

    @field_validator('tax_rate')
    @classmethod
    def validate_rate(cls, v):
        if v < 0 or v > 100:
            raise ValueError('La tasa debe estar entre 0 y 100')
        return v


class TaxCalculation(BaseModel):
    """Esquema para el cálculo de impuestos de un precio con impuesto incluido"""
    tax_rate: Decimal
    price_including_tax: Decimal
    base_amount: Decimal = Field(description="Precio sin impuesto")
    tax_amount: Decimal


class TaxBreakdown(BaseModel):
    """Impuestos agrupados por tasa"""
    tax_rate: Decimal = Field(description="Tasa en porcentaje")
    base_amount: Decimal = Field(description="Base gravable (sin impuesto)")
    tax_amount: Decimal = Field(description="Valor del impuesto")
