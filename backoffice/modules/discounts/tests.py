"""
Tests para la resolución de precios y los códigos de descuento

Cubren:
- Precedencia de descuentos (variante, producto, descuentos antiguos)
- Reglas de códigos de descuento: vigencia, usos, canal y segmentación
- Validador en modo remoto y local con el servicio simulado
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock

from backoffice.common.exceptions import CatalogServiceError, VariantNotFoundError
from backoffice.modules.catalog.schemas import Product
from backoffice.modules.discounts.codes import DiscountCodeValidator, evaluate_discount_code
from backoffice.modules.discounts.resolver import DiscountResolver, apply_percentage
from backoffice.modules.discounts.schemas import (
    AppliedDiscountCode, Discount, DiscountCode, DiscountCodeCartItem, DiscountCodeTarget,
    DiscountCodeValidation, OrderSource
)


NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_discount(percentage, days_from=-1, days_to=1, **overrides):
    data = {
        "id": f"disc-{percentage}",
        "percentage": Decimal(str(percentage)),
        "start_date": NOW + timedelta(days=days_from),
        "end_date": NOW + timedelta(days=days_to),
        "product_id": "prod-1",
    }
    data.update(overrides)
    return Discount(**data)


def make_code(**overrides):
    data = {
        "id": "dc-1",
        "code": "save10",
        "percentage": Decimal("10"),
        "startDate": "2026-06-01T00:00:00Z",
        "endDate": "2026-06-30T23:59:59Z",
    }
    data.update(overrides)
    return DiscountCode.model_validate(data)


# ===== FIXTURES =====

@pytest.fixture
def product():
    return Product.model_validate({
        "id": "prod-1",
        "name": "Camiseta",
        "sku": "CAM",
        "barcode": "7701234567890",
        "images": ["producto.png"],
        "categories": [{"id": "cat-ropa", "name": "Ropa"}],
        "variants": [
            {"id": "var-m", "name": "M", "price": 100, "tva": 19, "inventory": 5},
            {"id": "var-l", "name": "L", "price": 120, "tva": 19, "inventory": 2,
             "sku": "CAM-L", "images": ["l.png"]},
        ],
    })


@pytest.fixture
def cart_items():
    return [
        DiscountCodeCartItem(product_id="prod-1", variant_id="var-m", quantity=2,
                             price=Decimal("100"), category_ids=["cat-ropa"]),
    ]


@pytest.fixture
def resolver():
    return DiscountResolver()


# ===== TESTS DEL RESOLVER =====

class TestDiscountResolver:
    """Tests para el precio efectivo de una variante"""

    def test_no_discount(self, resolver, product):
        pricing = resolver.resolve(product, "var-m", now=NOW)

        assert pricing.final_price == Decimal("100")
        assert pricing.has_discount is False
        assert pricing.discount_percentage == Decimal("0")
        assert pricing.source == "none"
        assert pricing.name == "Camiseta - M"

    def test_variant_discount_beats_legacy_discount(self, resolver, product):
        product.variants[0].has_discount = True
        product.variants[0].final_price = Decimal("85")
        product.variants[0].discount_percentage = Decimal("15")
        product.discounts = [make_discount(50)]

        pricing = resolver.resolve(product, "var-m", now=NOW)

        assert pricing.final_price == Decimal("85")
        assert pricing.discount_percentage == Decimal("15")
        assert pricing.source == "variant"

    def test_variant_flag_without_final_price_keeps_price(self, resolver, product):
        product.variants[0].has_discount = True

        pricing = resolver.resolve(product, "var-m", now=NOW)

        assert pricing.final_price == Decimal("100")

    def test_product_flag(self, resolver, product):
        product.has_discount = True
        product.discount_percentage = Decimal("20")
        product.discounts = [make_discount(50)]

        pricing = resolver.resolve(product, "var-l", now=NOW)

        assert pricing.final_price == Decimal("96")
        assert pricing.discount_amount == Decimal("24")
        assert pricing.source == "product"

    def test_product_flag_without_percentage_falls_through(self, resolver, product):
        product.has_discount = True
        product.discount_percentage = Decimal("0")

        assert resolver.resolve(product, now=NOW).source == "none"

    def test_first_active_legacy_discount_wins(self, resolver, product):
        product.discounts = [
            make_discount(10, enabled=False),
            make_discount(15, days_from=2, days_to=5),
            make_discount(20),
            make_discount(40),
        ]

        pricing = resolver.resolve(product, "var-m", now=NOW)

        assert pricing.final_price == Decimal("80")
        assert pricing.discount_percentage == Decimal("20")
        assert pricing.source == "legacy"

    def test_legacy_discount_not_available_in_store(self, resolver, product):
        product.discounts = [make_discount(20, available_in_store=False)]
        assert resolver.resolve(product, now=NOW).source == "none"

    def test_online_resolver_uses_online_flag(self, product):
        product.discounts = [make_discount(20, available_in_store=False)]
        pricing = DiscountResolver(OrderSource.ONLINE).resolve(product, now=NOW)
        assert pricing.final_price == Decimal("80")

    def test_window_bounds_are_inclusive(self, resolver, product):
        product.discounts = [make_discount(20, days_from=0, days_to=0)]
        assert resolver.resolve(product, now=NOW).source == "legacy"

    def test_defaults_to_first_variant(self, resolver, product):
        pricing = resolver.resolve(product, now=NOW)
        assert pricing.variant_id == "var-m"

    def test_unknown_variant_rejected(self, resolver, product):
        with pytest.raises(VariantNotFoundError):
            resolver.resolve(product, "var-xl", now=NOW)

    def test_variant_presentation_falls_back_to_product(self, resolver, product):
        medium = resolver.resolve(product, "var-m", now=NOW)
        large = resolver.resolve(product, "var-l", now=NOW)

        assert medium.sku == "CAM"
        assert medium.images == ["producto.png"]
        assert medium.barcode == "7701234567890"
        assert large.sku == "CAM-L"
        assert large.images == ["l.png"]
        assert large.category_ids == ["cat-ropa"]

    def test_apply_percentage(self):
        assert apply_percentage(Decimal("99.99"), Decimal("10")) == Decimal("89.991")


class TestDiscountModel:
    """Tests para las validaciones de descuentos"""

    def test_requires_exactly_one_target(self):
        with pytest.raises(ValueError):
            make_discount(10, product_id=None)
        with pytest.raises(ValueError):
            make_discount(10, variant_id="var-m")

    def test_percentage_range(self):
        with pytest.raises(ValueError):
            make_discount(0)


# ===== TESTS DE CÓDIGOS DE DESCUENTO =====

class TestDiscountCodeRules:
    """Tests para la evaluación local de un código"""

    def test_valid_code_amount_on_subtotal(self, cart_items):
        result = evaluate_discount_code(make_code(), cart_items, None, Decimal("200"), now=NOW)

        assert result.valid is True
        assert result.discount_amount == Decimal("20.00")
        assert result.discount_code.code == "SAVE10"

    def test_inactive_code(self, cart_items):
        result = evaluate_discount_code(make_code(isActive=False), cart_items, None, Decimal("200"), now=NOW)
        assert result.error == "Invalid discount code"

    def test_not_yet_active(self, cart_items):
        result = evaluate_discount_code(
            make_code(startDate="2026-06-20T00:00:00Z"), cart_items, None, Decimal("200"), now=NOW
        )
        assert result.error == "This discount code is not yet active"

    def test_expired(self, cart_items):
        result = evaluate_discount_code(
            make_code(startDate="2026-05-01T00:00:00Z", endDate="2026-06-01T00:00:00Z"),
            cart_items, None, Decimal("200"), now=NOW
        )
        assert result.error == "This discount code has expired"

    def test_usage_limit_reached(self, cart_items):
        result = evaluate_discount_code(
            make_code(usageLimit=5, usedCount=5), cart_items, None, Decimal("200"), now=NOW
        )
        assert result.error == "This discount code has reached its usage limit"

    def test_usage_below_limit(self, cart_items):
        result = evaluate_discount_code(
            make_code(usageLimit=5, usedCount=4), cart_items, None, Decimal("200"), now=NOW
        )
        assert result.valid is True

    def test_not_available_in_store(self, cart_items):
        result = evaluate_discount_code(
            make_code(availableInStore=False), cart_items, None, Decimal("200"), now=NOW
        )
        assert result.error == "This discount code is not available for in-store orders"

    def test_customer_targeting(self, cart_items):
        code = make_code(customerIds=["cus-1"])
        assert code.target_type == DiscountCodeTarget.CUSTOMERS

        denied = evaluate_discount_code(code, cart_items, "cus-2", Decimal("200"), now=NOW)
        anonymous = evaluate_discount_code(code, cart_items, None, Decimal("200"), now=NOW)
        allowed = evaluate_discount_code(code, cart_items, "cus-1", Decimal("200"), now=NOW)

        assert denied.error == "This discount code is not available for this customer"
        assert anonymous.valid is False
        assert allowed.valid is True

    def test_category_targeting(self, cart_items):
        matching = make_code(targetType="category", categoryId="cat-ropa", categoryName="Ropa")
        other = make_code(targetType="category", categoryId="cat-hogar", categoryName="Hogar")

        assert evaluate_discount_code(matching, cart_items, None, Decimal("200"), now=NOW).valid is True
        result = evaluate_discount_code(other, cart_items, None, Decimal("200"), now=NOW)
        assert result.error == 'This discount code only applies to products in the "Hogar" category'

    def test_product_targeting_by_variant(self, cart_items):
        by_variant = make_code(variantIds=["var-m"])
        elsewhere = make_code(productIds=["prod-9"])

        assert evaluate_discount_code(by_variant, cart_items, None, Decimal("200"), now=NOW).valid is True
        result = evaluate_discount_code(elsewhere, cart_items, None, Decimal("200"), now=NOW)
        assert result.error == "This discount code only applies to specific products not in your cart"

    def test_code_consistency_validation(self):
        with pytest.raises(ValueError):
            make_code(endDate="2026-05-01T00:00:00Z")
        with pytest.raises(ValueError):
            make_code(usageLimit=2, usedCount=3)
        with pytest.raises(ValueError):
            make_code(targetType="category")


class TestDiscountCodeValidator:
    """Tests para la validación contra el servicio"""

    def test_blank_code_checked_locally(self, cart_items):
        client = Mock()
        result = DiscountCodeValidator(client, mode="remote").validate("  ", cart_items, None, Decimal("200"))

        assert result.error == "Please enter a discount code"
        client.validate_discount_code.assert_not_called()

    def test_empty_cart_checked_locally(self):
        client = Mock()
        result = DiscountCodeValidator(client, mode="remote").validate("SAVE10", [], None, Decimal("0"))

        assert result.error == "Add items to cart before applying discount"
        client.validate_discount_code.assert_not_called()

    def test_remote_request_payload(self, cart_items):
        client = Mock()
        client.validate_discount_code.return_value = DiscountCodeValidation.model_validate({
            "valid": True,
            "discountCode": {"id": "dc-1", "code": "SAVE10", "percentage": 10},
            "discountAmount": "20.00",
        })

        result = DiscountCodeValidator(client, mode="remote").validate(" save10 ", cart_items, "cus-1", Decimal("200"))

        assert result.valid is True
        request = client.validate_discount_code.call_args.args[0]
        assert request["code"] == "save10"
        assert request["orderSource"] == "IN_STORE"
        assert request["customerId"] == "cus-1"
        assert request["subtotal"] == Decimal("200")
        assert request["cartItems"][0]["variantId"] == "var-m"
        assert request["cartItems"][0]["categoryIds"] == ["cat-ropa"]

    def test_remote_rejection_is_passed_through(self, cart_items):
        client = Mock()
        client.validate_discount_code.return_value = DiscountCodeValidation(
            valid=False, error="This discount code has expired"
        )

        result = DiscountCodeValidator(client, mode="remote").validate("OLD", cart_items, None, Decimal("200"))

        assert result.error == "This discount code has expired"

    def test_service_failure_becomes_error(self, cart_items):
        client = Mock()
        client.validate_discount_code.side_effect = CatalogServiceError("Invalid discount code")

        result = DiscountCodeValidator(client, mode="remote").validate("NOPE", cart_items, None, Decimal("200"))

        assert result.valid is False
        assert result.error == "Invalid discount code"

    def test_valid_answer_without_amount_is_rejected(self, cart_items):
        client = Mock()
        client.validate_discount_code.return_value = DiscountCodeValidation(valid=True)

        result = DiscountCodeValidator(client, mode="remote").validate("SAVE10", cart_items, None, Decimal("200"))

        assert result.valid is False
        assert result.error == "Invalid discount code"

    def test_local_mode_evaluates_rules(self, cart_items):
        client = Mock()
        client.get_discount_code.return_value = make_code(percentage=Decimal("15"))

        result = DiscountCodeValidator(client, mode="local").validate("save10", cart_items, None,
                                                                      Decimal("200"), now=NOW)

        assert result.discount_amount == Decimal("30.00")
        client.get_discount_code.assert_called_once_with("save10")
        client.validate_discount_code.assert_not_called()

    def test_local_mode_unknown_code(self, cart_items):
        client = Mock()
        client.get_discount_code.return_value = None

        result = DiscountCodeValidator(client, mode="local").validate("NOPE", cart_items, None, Decimal("200"))

        assert result.error == "Invalid discount code"

    def test_local_mode_validation_builds_applied_code(self, cart_items):
        client = Mock()
        client.get_discount_code.return_value = make_code()

        result = DiscountCodeValidator(client, mode="local").validate("SAVE10", cart_items, None,
                                                                      Decimal("200"), now=NOW)
        applied = AppliedDiscountCode.from_validation(result)

        assert applied.code == "SAVE10"
        assert applied.discount_amount == Decimal("20.00")

    def test_local_mode_inactive_code(self, cart_items):
        client = Mock()
        client.get_discount_code.return_value = make_code(isActive=False)

        result = DiscountCodeValidator(client, mode="local").validate("SAVE10", cart_items, None,
                                                                      Decimal("200"), now=NOW)

        assert result.valid is False
        assert result.error == "Invalid discount code"
