"""
Cliente HTTP del servicio de catálogo/órdenes

Operaciones consumidas por el POS:
- Búsqueda de productos por texto o código de barras
- Búsqueda de clientes
- Validación (y consulta) de códigos de descuento
- Creación de órdenes

Las llamadas son bloqueantes (requests); las rutas async las ejecutan con
run_in_threadpool para no bloquear el event loop.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from fastapi.encoders import jsonable_encoder
from requests.exceptions import HTTPError, JSONDecodeError, RequestException, Timeout

from backoffice.common.exceptions import CatalogServiceError, OrderSubmissionError
from backoffice.core.config import settings
from backoffice.modules.catalog.schemas import Customer, Product
from backoffice.modules.discounts.schemas import DiscountCode, DiscountCodeValidation

logger = logging.getLogger(__name__)


class CatalogClient:
    """Cliente reutilizable para el servicio de catálogo/órdenes de una tienda"""

    def __init__(self, shop_id: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[int] = None, session: Optional[requests.Session] = None):
        self.shop_id = shop_id
        self.base_url = (base_url or settings.CATALOG_API_URL).rstrip("/")
        self.timeout = timeout or settings.CATALOG_API_TIMEOUT
        self.http = session or requests.Session()

    def close(self) -> None:
        self.http.close()

    def _headers(self) -> Dict[str, str]:
        headers = dict(settings.catalog_headers)
        if self.shop_id:
            headers["X-Shop-ID"] = str(self.shop_id)
        return headers

    @staticmethod
    def _error_message(response: Optional[requests.Response]) -> Optional[str]:
        """Mensaje de error enviado por el servicio, si lo hay"""
        if response is None:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("error") or body.get("detail") or body.get("message")
        return None

    def _make_request(self, method: str, endpoint: str, payload: Any = None,
                      params: Optional[Dict[str, Any]] = None,
                      error_cls=CatalogServiceError) -> Dict[str, Any]:
        """
        Ejecutar una petición y devolver el JSON de respuesta.

        Args:
            method: Método HTTP
            endpoint: Ruta relativa a base_url
            payload: Cuerpo JSON (Decimal y fechas se codifican como número/ISO)
            params: Query string
            error_cls: Excepción a lanzar ante fallos

        Raises:
            CatalogServiceError (o error_cls) con el mensaje del servicio cuando existe
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"{method} {url} params={params}")

        response = None
        try:
            response = self.http.request(
                method=method,
                url=url,
                json=jsonable_encoder(payload) if payload is not None else None,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except Timeout:
            logger.error(f"Request to {url} timed out after {self.timeout} seconds")
            raise error_cls(f"Request to catalog service timed out after {self.timeout} seconds")
        except HTTPError:
            message = self._error_message(response)
            logger.error(f"HTTP {response.status_code} from {url}: {message or response.text}")
            raise error_cls(message)
        except RequestException as req_err:
            logger.error(f"Error requesting {url}: {req_err}")
            raise error_cls()

        if not response.text.strip():
            logger.warning(f"Empty response body from {url}")
            return {}

        try:
            return response.json()
        except JSONDecodeError:
            logger.error(f"Non-JSON response from {url}: {response.text[:200]}")
            raise error_cls("Non-JSON response received from catalog service")

    # ===== BÚSQUEDAS =====

    def search_products(self, query: Optional[str] = None,
                        barcode: Optional[str] = None) -> List[Product]:
        """Buscar productos por texto (nombre/SKU/código) o por código de barras exacto"""
        if not query and not barcode:
            raise CatalogServiceError("Barcode or query required")
        params = {"barcode": barcode} if barcode else {"query": query}
        data = self._make_request("GET", "products", params=params)
        products = [Product.model_validate(item) for item in data.get("products", [])]
        return products[:1] if barcode else products[:settings.PRODUCT_SEARCH_LIMIT]

    def search_customers(self, query: str) -> List[Customer]:
        data = self._make_request("GET", "customers", params={"query": query})
        return [Customer.model_validate(item) for item in data.get("customers", [])]

    # ===== CÓDIGOS DE DESCUENTO =====

    def validate_discount_code(self, request: Dict[str, Any]) -> DiscountCodeValidation:
        data = self._make_request("POST", "discount-codes/validate", payload=request)
        return DiscountCodeValidation.model_validate(data)

    def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        data = self._make_request("GET", "discount-codes", params={"code": code.strip().upper()})
        record = data.get("discountCode")
        return DiscountCode.model_validate(record) if record else None

    # ===== ÓRDENES =====

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Crear la orden. El servicio es la única fuente de verdad del resultado.

        Returns:
            Datos de la orden creada ({id, orderNumber, ...})

        Raises:
            OrderSubmissionError con el mensaje del servicio si la orden no se creó
        """
        data = self._make_request("POST", "orders", payload=payload, error_cls=OrderSubmissionError)
        if not data.get("success"):
            raise OrderSubmissionError(data.get("error"))
        return data.get("order") or {}
