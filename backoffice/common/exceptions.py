"""
Errores del motor POS.

Todos heredan de HTTPException para que los servicios los lancen igual que el
resto de la API y FastAPI los renderice sin manejadores adicionales.
"""
from typing import Optional

from fastapi import HTTPException, status


class POSError(HTTPException):
    """Error base del motor POS"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "POS operation failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class InventoryError(POSError):
    """Stock insuficiente al agregar o modificar cantidades"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Insufficient inventory"


class CartItemNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Cart item not found"


class VariantNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Variant not found"


class PaymentMethodNotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Payment method not found"


class CheckoutValidationError(POSError):
    """Descuentos o pagos inválidos; bloquean el procesamiento de la orden"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid checkout data"


class OrderInProgressError(POSError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "An order is already being processed"


class CatalogServiceError(POSError):
    """Fallo de red o respuesta de error del servicio de catálogo/órdenes"""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Catalog service request failed"


class OrderSubmissionError(CatalogServiceError):
    default_detail = "Failed to create order"
