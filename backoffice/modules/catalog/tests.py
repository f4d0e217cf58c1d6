"""
Tests para los registros del catálogo y el cliente HTTP

El servicio externo se reemplaza con un requests.Session simulado
(unittest.mock); las respuestas son objetos requests.Response reales.
"""

import json
import pytest
import requests
from decimal import Decimal
from unittest.mock import Mock

from backoffice.common.exceptions import CatalogServiceError, OrderSubmissionError
from backoffice.modules.catalog.client import CatalogClient
from backoffice.modules.catalog.schemas import Product, ProductVariant


def make_response(status_code=200, body=None, text=None):
    response = requests.Response()
    response.status_code = status_code
    response.encoding = "utf-8"
    response.url = "http://catalog.test/api/pos"
    if text is not None:
        response._content = text.encode("utf-8")
    else:
        response._content = json.dumps(body if body is not None else {}).encode("utf-8")
    return response


# ===== FIXTURES =====

@pytest.fixture
def product_payload():
    """Producto tal como lo publica el servicio (camelCase, tva)"""
    return {
        "id": "prod-1",
        "name": "Camiseta",
        "sku": "CAM",
        "images": ["camiseta.png"],
        "categories": [{"id": "cat-ropa", "name": "Ropa"}],
        "hasDiscount": False,
        "variants": [
            {"id": "var-m", "name": "M", "price": 100, "tva": 19, "inventory": 5, "sku": "CAM-M"},
            {"id": "var-l", "name": "L", "price": "110.50", "inventory": 0, "options": {"talla": "L"}},
        ],
    }


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(http):
    return CatalogClient(shop_id="shop-1", base_url="http://catalog.test/api/pos/", timeout=5, session=http)


# ===== TESTS DE REGISTROS =====

class TestCatalogRecords:
    """Tests para productos y variantes"""

    def test_product_from_service_payload(self, product_payload):
        product = Product.model_validate(product_payload)

        medium = product.get_variant("var-m")
        assert medium.tax_rate == Decimal("19")
        assert medium.price == Decimal("100")
        assert product.category_ids == ["cat-ropa"]

    def test_tax_rate_defaults_to_configured_rate(self, product_payload):
        product = Product.model_validate(product_payload)
        assert product.get_variant("var-l").tax_rate == Decimal("19")

    def test_first_variant_when_none_requested(self, product_payload):
        product = Product.model_validate(product_payload)
        assert product.get_variant().id == "var-m"

    def test_unknown_variant_returns_none(self, product_payload):
        product = Product.model_validate(product_payload)
        assert product.get_variant("var-xl") is None

    def test_product_requires_variants(self, product_payload):
        product_payload["variants"] = []
        with pytest.raises(ValueError):
            Product.model_validate(product_payload)

    def test_variant_accepts_field_names(self):
        variant = ProductVariant(id="v", name="Única", price=Decimal("10"), tax_rate=Decimal("5"))
        assert variant.tax_rate == Decimal("5")

    def test_negative_inventory_rejected(self):
        with pytest.raises(ValueError):
            ProductVariant(id="v", name="Única", price=Decimal("10"), inventory=-1)


# ===== TESTS DEL CLIENTE =====

class TestCatalogClient:
    """Tests para las llamadas al servicio de catálogo/órdenes"""

    def test_search_products_by_query(self, client, http, product_payload):
        http.request.return_value = make_response(body={"products": [product_payload]})

        products = client.search_products(query="cami")

        assert [p.id for p in products] == ["prod-1"]
        kwargs = http.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "http://catalog.test/api/pos/products"
        assert kwargs["params"] == {"query": "cami"}
        assert kwargs["headers"]["X-Shop-ID"] == "shop-1"
        assert kwargs["timeout"] == 5

    def test_barcode_search_returns_single_product(self, client, http, product_payload):
        second = dict(product_payload, id="prod-2")
        http.request.return_value = make_response(body={"products": [product_payload, second]})

        products = client.search_products(barcode="7701234567890")

        assert len(products) == 1
        assert http.request.call_args.kwargs["params"] == {"barcode": "7701234567890"}

    def test_search_requires_terms(self, client):
        with pytest.raises(CatalogServiceError):
            client.search_products()

    def test_search_customers(self, client, http):
        http.request.return_value = make_response(body={"customers": [
            {"id": "cus-1", "name": "Ana Gómez", "email": "ana@example.com"}
        ]})

        customers = client.search_customers("ana")

        assert customers[0].name == "Ana Gómez"
        assert http.request.call_args.kwargs["params"] == {"query": "ana"}

    def test_validate_discount_code_encodes_decimals(self, client, http):
        http.request.return_value = make_response(body={
            "valid": True,
            "discountCode": {"id": "dc-1", "code": "SAVE10", "percentage": 10},
            "discountAmount": 20,
        })

        result = client.validate_discount_code({"code": "save10", "subtotal": Decimal("200")})

        assert result.valid is True
        assert result.discount_code.code == "SAVE10"
        assert result.discount_amount == Decimal("20")
        assert http.request.call_args.kwargs["json"]["subtotal"] == 200

    def test_get_discount_code_upper_cases_lookup(self, client, http):
        http.request.return_value = make_response(body={"discountCode": None})

        assert client.get_discount_code(" save10 ") is None
        assert http.request.call_args.kwargs["params"] == {"code": "SAVE10"}

    def test_service_error_message_is_surfaced(self, client, http):
        http.request.return_value = make_response(400, body={"error": "Invalid discount code"})

        with pytest.raises(CatalogServiceError) as exc_info:
            client.validate_discount_code({"code": "NOPE"})

        assert exc_info.value.message == "Invalid discount code"

    def test_timeout_maps_to_service_error(self, client, http):
        http.request.side_effect = requests.Timeout()

        with pytest.raises(CatalogServiceError) as exc_info:
            client.search_customers("ana")

        assert "timed out" in exc_info.value.message
        assert exc_info.value.status_code == 502

    def test_connection_error_uses_generic_message(self, client, http):
        http.request.side_effect = requests.ConnectionError()

        with pytest.raises(CatalogServiceError) as exc_info:
            client.search_customers("ana")

        assert exc_info.value.message == "Catalog service request failed"

    def test_non_json_body(self, client, http):
        http.request.return_value = make_response(text="<html>Bad gateway</html>")

        with pytest.raises(CatalogServiceError):
            client.search_customers("ana")

    def test_empty_body_returns_no_results(self, client, http):
        http.request.return_value = make_response(text="")
        assert client.search_customers("ana") == []

    def test_create_order(self, client, http):
        http.request.return_value = make_response(body={
            "success": True,
            "order": {"id": "ord-1", "orderNumber": "POS-0001"},
        })

        order = client.create_order({"items": [], "expectedTotal": Decimal("162.00")})

        assert order["orderNumber"] == "POS-0001"
        assert http.request.call_args.kwargs["url"].endswith("/orders")
        assert http.request.call_args.kwargs["json"]["expectedTotal"] == 162.0

    def test_create_order_rejected(self, client, http):
        http.request.return_value = make_response(body={"success": False, "error": "Insufficient stock"})

        with pytest.raises(OrderSubmissionError) as exc_info:
            client.create_order({"items": []})

        assert exc_info.value.message == "Insufficient stock"

    def test_create_order_http_error_without_message(self, client, http):
        http.request.return_value = make_response(500, text="")

        with pytest.raises(OrderSubmissionError) as exc_info:
            client.create_order({"items": []})

        assert exc_info.value.message == "Failed to create order"
