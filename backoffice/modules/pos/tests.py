"""
Tests para el módulo POS

Tests que cubren:
- Totales del carrito con descuentos por ítem, código y descuento manual
- Pagos mixtos con efectivo autoajustable y cheques
- Sesión del terminal y descarte de respuestas tardías
- Envío de la orden y endpoints del terminal

El servicio de catálogo/órdenes siempre se simula con unittest.mock.
"""

import asyncio
import pytest
from datetime import date, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from unittest.mock import Mock

from backoffice.main import app
from backoffice.common.exceptions import (
    CartItemNotFoundError, CheckoutValidationError, InventoryError,
    OrderInProgressError, OrderSubmissionError, PaymentMethodNotFoundError
)
from backoffice.dependencies.posDependencies import get_catalog_client, get_session_registry
from backoffice.modules.catalog.client import CatalogClient
from backoffice.modules.catalog.schemas import Customer, Product
from backoffice.modules.discounts.schemas import AppliedDiscountCode, DiscountCodeValidation
from backoffice.modules.pos.cart import Cart
from backoffice.modules.pos.payments import PaymentReconciler
from backoffice.modules.pos.schemas import (
    ManualDiscount, ManualDiscountType, PaymentMethod, PaymentMethodUpdate, PaymentStatus
)
from backoffice.modules.pos.services import OrderSubmissionService, POSTerminalService
from backoffice.modules.pos.session import CheckoutSession, SessionRegistry, looks_like_barcode


TODAY = date.today()


def make_product(product_id="prod-1", price=100, tva=19, inventory=5, **variant_fields):
    variant = {"id": "var-m", "name": "M", "price": price, "tva": tva, "inventory": inventory}
    variant.update(variant_fields)
    return Product.model_validate({
        "id": product_id,
        "name": "Camiseta",
        "categories": [{"id": "cat-ropa", "name": "Ropa"}],
        "variants": [variant],
    })


def make_applied_code(amount="20"):
    return AppliedDiscountCode(id="dc-1", code="SAVE10", percentage=Decimal("10"),
                               discount_amount=Decimal(amount))


def cash(reconciler):
    return next(p for p in reconciler.payment_methods if p.method == PaymentMethod.CASH)


def non_cash_total(reconciler):
    return sum((p.amount for p in reconciler.payment_methods if p.method != PaymentMethod.CASH), Decimal("0"))


# ===== FIXTURES =====

@pytest.fixture
def product():
    return make_product()


@pytest.fixture
def cart(product):
    """Carrito con 2 unidades a 100 (19% incluido)"""
    cart = Cart()
    cart.add_item(product)
    cart.add_item(product)
    return cart


@pytest.fixture
def session(product):
    session = CheckoutSession("terminal-1")
    session.add_item(product)
    session.add_item(product)
    return session


@pytest.fixture
def catalog_client():
    return Mock(spec=CatalogClient)


@pytest.fixture
def api_client(catalog_client):
    registry = SessionRegistry()
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_catalog_client] = lambda: catalog_client
    client = TestClient(app, headers={"X-Shop-ID": "shop-1"})
    yield client
    app.dependency_overrides.clear()


# ===== TESTS DEL CARRITO =====

class TestCart:
    """Tests para líneas y totales del carrito"""

    def test_reference_cart_totals(self, cart):
        totals = cart.compute_totals()

        assert totals.subtotal_including_tax == Decimal("200.00")
        assert totals.subtotal_excluding_tax == Decimal("168.07")
        assert totals.tax == Decimal("31.93")
        assert totals.total == Decimal("200.00")
        assert totals.discount_ratio == Decimal("0")

    def test_code_and_manual_discount_layers(self, cart):
        cart.apply_discount_code(make_applied_code("20"))
        cart.set_manual_discount(Decimal("10"), ManualDiscountType.PERCENTAGE)

        totals = cart.compute_totals()

        assert totals.discount_code_amount == Decimal("20.00")
        assert totals.subtotal_after_code == Decimal("180.00")
        assert totals.manual_discount_amount == Decimal("18.00")
        assert totals.total_discount == Decimal("38.00")
        assert totals.total == Decimal("162.00")
        assert totals.discount_ratio == Decimal("0.1900")
        assert totals.discounted_subtotal_excluding_tax == Decimal("136.13")
        assert totals.tax == Decimal("25.87")
        assert totals.tax_breakdown[0].base_amount == Decimal("136.13")
        assert totals.tax_breakdown[0].tax_amount == Decimal("25.87")

    def test_fixed_manual_discount(self, cart):
        cart.set_manual_discount(Decimal("50"), ManualDiscountType.FIXED)

        totals = cart.compute_totals()

        assert totals.manual_discount_amount == Decimal("50.00")
        assert totals.total == Decimal("150.00")
        assert totals.discount_ratio == Decimal("0.2500")

    def test_totals_are_idempotent(self, cart):
        first = cart.compute_totals()
        cart.update_quantity("prod-1-var-m", 2)

        assert cart.compute_totals() == first
        assert cart.compute_totals() == first

    def test_empty_cart_totals_are_zero(self):
        totals = Cart().compute_totals()

        assert totals.subtotal_including_tax == 0
        assert totals.tax == 0
        assert totals.total == 0
        assert totals.discount_ratio == 0
        assert totals.tax_breakdown == []

    def test_add_existing_variant_increments(self, cart):
        item = cart.get_item("prod-1-var-m")

        assert len(cart) == 1
        assert item.quantity == 2
        assert item.total == Decimal("200")
        assert item.category_ids == ["cat-ropa"]

    def test_add_beyond_inventory_rejected_without_change(self):
        product = make_product(inventory=2)
        cart = Cart()
        cart.add_item(product)
        cart.add_item(product)

        with pytest.raises(InventoryError) as exc_info:
            cart.add_item(product)

        assert exc_info.value.message == "Only 2 items available"
        assert cart.get_item("prod-1-var-m").quantity == 2

    def test_out_of_stock(self):
        with pytest.raises(InventoryError) as exc_info:
            Cart().add_item(make_product(inventory=0))

        assert exc_info.value.message == "This product is out of stock"
        assert exc_info.value.status_code == 409

    def test_sold_out_product_does_not_increment_existing_line(self):
        cart = Cart()
        cart.add_item(make_product(inventory=5))

        with pytest.raises(InventoryError) as exc_info:
            cart.add_item(make_product(inventory=0))

        assert exc_info.value.message == "This product is out of stock"
        assert cart.get_item("prod-1-var-m").quantity == 1

    def test_existing_line_uses_latest_inventory(self):
        cart = Cart()
        cart.add_item(make_product(inventory=5))

        with pytest.raises(InventoryError) as exc_info:
            cart.add_item(make_product(inventory=1))

        assert exc_info.value.message == "Only 1 items available"
        item = cart.get_item("prod-1-var-m")
        assert item.quantity == 1
        assert item.inventory == 1

    def test_code_amount_capped_at_subtotal(self, cart):
        cart.apply_discount_code(make_applied_code("150"))
        cart.update_quantity("prod-1-var-m", 1)

        totals = cart.compute_totals()

        assert totals.discount_code_amount == Decimal("100.00")
        assert totals.total == Decimal("0.00")
        assert totals.tax == Decimal("0.00")

    def test_update_quantity_above_inventory(self, cart):
        with pytest.raises(InventoryError):
            cart.update_quantity("prod-1-var-m", 6)

        assert cart.get_item("prod-1-var-m").quantity == 2

    def test_update_quantity_zero_removes(self, cart):
        assert cart.update_quantity("prod-1-var-m", 0) is None
        assert cart.is_empty

    def test_unknown_item(self, cart):
        with pytest.raises(CartItemNotFoundError):
            cart.remove_item("prod-9-var-x")

    def test_line_uses_discounted_price(self):
        cart = Cart()
        item = cart.add_item(make_product(price=70, hasDiscount=True, finalPrice="59.50", discountPercentage=15))

        assert item.price == Decimal("70")
        assert item.final_price == Decimal("59.50")
        assert cart.compute_totals().subtotal_excluding_tax == Decimal("50.00")

    def test_discount_code_items_use_original_price(self):
        cart = Cart()
        cart.add_item(make_product(price=70, hasDiscount=True, finalPrice="59.50"))

        items = cart.discount_code_items()

        assert items[0].price == Decimal("70")
        assert items[0].category_ids == ["cat-ropa"]

    def test_new_code_replaces_previous(self, cart):
        cart.apply_discount_code(make_applied_code("20"))
        cart.apply_discount_code(AppliedDiscountCode(id="dc-2", code="VIP", percentage=Decimal("5"),
                                                     discount_amount=Decimal("10")))

        assert cart.compute_totals().discount_code_amount == Decimal("10.00")

    def test_clear_resets_discounts(self, cart):
        cart.apply_discount_code(make_applied_code())
        cart.set_manual_discount(Decimal("10"), ManualDiscountType.PERCENTAGE)
        cart.clear()

        assert cart.is_empty
        assert cart.applied_discount_code is None
        assert cart.manual_discount == ManualDiscount()


class TestManualDiscount:
    """Tests para límites del descuento manual"""

    def test_percentage_is_clamped(self, cart):
        assert cart.set_manual_discount(Decimal("150"), ManualDiscountType.PERCENTAGE).amount == Decimal("100")
        assert cart.set_manual_discount(Decimal("-5"), ManualDiscountType.PERCENTAGE).amount == Decimal("0")

    def test_fixed_is_clamped_to_subtotal_after_code(self, cart):
        cart.apply_discount_code(make_applied_code("20"))
        assert cart.set_manual_discount(Decimal("500"), ManualDiscountType.FIXED).amount == Decimal("180.00")

    def test_validate_fixed_above_subtotal(self, cart):
        cart.manual_discount = ManualDiscount(amount=Decimal("250"), type=ManualDiscountType.FIXED)

        with pytest.raises(CheckoutValidationError) as exc_info:
            cart.validate_manual_discount()

        assert exc_info.value.message == "Amount must be between 0 and 200.00"

    def test_validate_percentage_above_hundred(self, cart):
        cart.manual_discount = ManualDiscount(amount=Decimal("120"), type=ManualDiscountType.PERCENTAGE)

        with pytest.raises(CheckoutValidationError):
            cart.validate_manual_discount()

    def test_percentage_for_record(self, cart):
        cart.set_manual_discount(Decimal("50"), ManualDiscountType.FIXED)
        assert cart.manual_discount_percentage_for_record(Decimal("200")) == Decimal("25.00")
        assert cart.manual_discount_percentage_for_record(Decimal("0")) == Decimal("0")

        cart.set_manual_discount(Decimal("10"), ManualDiscountType.PERCENTAGE)
        assert cart.manual_discount_percentage_for_record(Decimal("200")) == Decimal("10")


# ===== TESTS DE PAGOS =====

class TestPaymentReconciler:
    """Tests para pagos mixtos"""

    def test_starts_with_single_cash_entry(self):
        reconciler = PaymentReconciler()

        assert len(reconciler.payment_methods) == 1
        assert reconciler.payment_methods[0].id == "cash-1"
        assert reconciler.payment_methods[0].amount == 0

    def test_cash_follows_order_total(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("162.00"))

        assert cash(reconciler).amount == Decimal("162.00")

    def test_cash_and_check_split(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("162.00"))

        check = reconciler.add_payment_method(PaymentMethod.CHECK)
        assert check.amount == 0
        assert check.check_date == TODAY

        reconciler.update_payment_method(check.id, PaymentMethodUpdate(amount=Decimal("62"), check_number="000123"))
        assert cash(reconciler).amount == Decimal("100.00")

        validation = reconciler.validate(TODAY)
        assert validation.valid is False
        assert validation.message == "Cash given must be at least 100.00"

        reconciler.update_payment_method("cash-1", PaymentMethodUpdate(cash_given=Decimal("100")))
        assert reconciler.validate(TODAY).valid is True
        assert reconciler.payment_status() == PaymentStatus.PENDING

    def test_cash_change(self):
        reconciler = PaymentReconciler(Decimal("80"))
        reconciler.set_order_total(Decimal("80"))

        entry = reconciler.update_payment_method("cash-1", PaymentMethodUpdate(cash_given=Decimal("100")))

        assert entry.cash_change == Decimal("20.00")
        assert reconciler.payment_summary()["change_amount"] == Decimal("20.00")

    def test_cash_leg_invariant_after_each_operation(self):
        reconciler = PaymentReconciler()
        total = Decimal("250.00")
        reconciler.set_order_total(total)

        def assert_balanced():
            expected = max(Decimal("0"), (total - non_cash_total(reconciler)).quantize(Decimal("0.01")))
            assert cash(reconciler).amount == expected

        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)
        assert_balanced()
        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("120.55")))
        assert_balanced()
        check = reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.update_payment_method(check.id, PaymentMethodUpdate(amount=Decimal("200")))
        assert_balanced()
        assert cash(reconciler).amount == 0
        assert cash(reconciler).cash_given is None
        reconciler.remove_payment_method(check.id)
        assert_balanced()
        total = Decimal("300.00")
        reconciler.set_order_total(total)
        assert_balanced()

    def test_new_card_takes_unfunded_remainder(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        check = reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.update_payment_method(check.id, PaymentMethodUpdate(amount=Decimal("30")))
        reconciler.remove_payment_method("cash-1")

        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)

        assert card.amount == Decimal("70.00")

    def test_re_added_cash_gets_remainder_as_cash_given(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("162"))
        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)
        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("62")))
        reconciler.remove_payment_method("cash-1")

        entry = reconciler.add_payment_method(PaymentMethod.CASH)

        assert entry.amount == Decimal("100.00")
        assert entry.cash_given == Decimal("100.00")
        assert reconciler.validate(TODAY).valid is True

    def test_duplicate_methods_rejected(self):
        reconciler = PaymentReconciler()
        reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)

        with pytest.raises(CheckoutValidationError) as exc_info:
            reconciler.add_payment_method(PaymentMethod.CASH)
        assert "already exists" in exc_info.value.message

        with pytest.raises(CheckoutValidationError):
            reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)

        reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.add_payment_method(PaymentMethod.CHECK)
        assert len(reconciler.payment_methods) == 4

    def test_last_method_cannot_be_removed(self):
        reconciler = PaymentReconciler()

        with pytest.raises(CheckoutValidationError) as exc_info:
            reconciler.remove_payment_method("cash-1")

        assert exc_info.value.message == "At least one payment method is required"
        assert len(reconciler.payment_methods) == 1

    def test_unknown_method(self):
        with pytest.raises(PaymentMethodNotFoundError):
            PaymentReconciler().remove_payment_method("card-x")

    def test_sum_mismatch(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("162"))
        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)
        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("200")))

        validation = reconciler.validate(TODAY)

        assert validation.valid is False
        assert validation.message == "Payment total (200.00) must equal order total (162.00)"

    def test_tolerance_of_one_cent(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)
        reconciler.remove_payment_method("cash-1")

        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("100.01")))
        assert reconciler.validate(TODAY).valid is True

        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("100.02")))
        assert reconciler.validate(TODAY).valid is False

    def test_zero_card_is_invalid(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        reconciler.update_payment_method("cash-1", PaymentMethodUpdate(cash_given=Decimal("100")))
        reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)

        assert reconciler.validate(TODAY).message == "Invalid amount for CREDIT_CARD payment"

    def test_card_covering_total_leaves_cash_at_zero(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        card = reconciler.add_payment_method(PaymentMethod.CREDIT_CARD)
        reconciler.update_payment_method(card.id, PaymentMethodUpdate(amount=Decimal("100")))

        assert cash(reconciler).amount == 0
        assert reconciler.validate(TODAY).valid is True
        assert reconciler.payment_status() == PaymentStatus.COMPLETED

    @pytest.mark.parametrize("updates,message", [
        ({"check_number": "  "}, "Check number is required"),
        ({"check_number": "77", "check_date": None}, "Check date is required for check payments"),
        ({"check_number": "77", "check_date": TODAY - timedelta(days=1)}, "Check date cannot be in the past"),
    ])
    def test_check_rules(self, updates, message):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("50"))
        check = reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.update_payment_method(check.id, PaymentMethodUpdate(amount=Decimal("50"), **updates))

        assert reconciler.validate(TODAY).message == message

    def test_future_check_is_valid(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("50"))
        check = reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.update_payment_method(check.id, PaymentMethodUpdate(
            amount=Decimal("50"), check_number="77", check_date=TODAY + timedelta(days=30)
        ))

        assert reconciler.validate(TODAY).valid is True

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            PaymentMethodUpdate(amount=Decimal("-1"))

    def test_reset(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        reconciler.add_payment_method(PaymentMethod.CHECK)
        reconciler.reset()

        assert [p.id for p in reconciler.payment_methods] == ["cash-1"]
        assert cash(reconciler).amount == Decimal("100.00")

    def test_payment_summary_by_method(self):
        reconciler = PaymentReconciler()
        reconciler.set_order_total(Decimal("100"))
        for amount in ("20", "30"):
            check = reconciler.add_payment_method(PaymentMethod.CHECK)
            reconciler.update_payment_method(check.id, PaymentMethodUpdate(amount=Decimal(amount)))

        summary = reconciler.payment_summary()
        by_method = {m["method"]: m for m in summary["methods"]}

        assert by_method["CHECK"]["count"] == 2
        assert by_method["CHECK"]["total_amount"] == Decimal("50")
        assert by_method["CASH"]["total_amount"] == Decimal("50.00")
        assert summary["total_paid"] == Decimal("100.00")


# ===== TESTS DE SESIÓN =====

class TestCheckoutSession:
    """Tests para la sesión del terminal"""

    def test_payments_follow_cart_total(self, session):
        assert cash(session.payments).amount == Decimal("200.00")

        session.set_manual_discount(Decimal("10"), ManualDiscountType.PERCENTAGE)
        assert cash(session.payments).amount == Decimal("180.00")

    def test_cart_changes_bump_revision(self, product):
        session = CheckoutSession("terminal-1")
        session.add_item(product)
        session.update_quantity("prod-1-var-m", 3)
        session.remove_discount_code()

        assert session.revision == 3
        assert session.generation == 0

    def test_clear(self, session):
        session.set_customer(Customer(id="cus-1", name="Ana"))
        session.set_notes("Regalo")
        session.add_payment_method(PaymentMethod.CHECK)

        session.clear()

        snapshot = session.snapshot()
        assert snapshot.items == []
        assert snapshot.customer is None
        assert snapshot.notes == ""
        assert [p.id for p in snapshot.payment_methods] == ["cash-1"]
        assert snapshot.generation == 1

    def test_stale_product_results_discarded(self, session, product):
        generation = session.generation
        session.clear()

        assert session.apply_product_results([product], generation, query="cami") is None
        assert session.search_results == []

    def test_barcode_single_result_is_added(self, product):
        session = CheckoutSession("terminal-1")
        session.search_query = "previous"

        item = session.apply_product_results([product], session.generation, query="7701234567890", barcode=True)

        assert item.quantity == 1
        assert session.search_query == ""
        assert session.search_results == []

    def test_barcode_with_several_results_only_lists(self, product):
        session = CheckoutSession("terminal-1")
        other = make_product("prod-2")

        assert session.apply_product_results([product, other], 0, query="77", barcode=True) is None
        assert len(session.search_results) == 2
        assert session.cart.is_empty

    def test_stale_discount_code_discarded(self, session, product):
        revision = session.revision
        session.add_item(product)

        assert session.apply_discount_code(make_applied_code(), revision) is False
        assert session.cart.applied_discount_code is None

    def test_stale_customer_results_discarded(self, session):
        generation = session.generation
        session.clear()
        assert session.apply_customer_results([Customer(id="c", name="Ana")], generation) is False

    def test_snapshot(self, session):
        snapshot = session.snapshot()

        assert snapshot.totals.total == Decimal("200.00")
        assert snapshot.total_paid == Decimal("200.00")
        assert snapshot.payment_validation.valid is False
        assert snapshot.payment_status == PaymentStatus.COMPLETED

    @pytest.mark.parametrize("query,expected", [
        ("7701234567890", True), ("12345678", True), ("1234567", False),
        ("abc12345678", False), ("", False), (None, False),
    ])
    def test_barcode_detection(self, query, expected):
        assert looks_like_barcode(query) is expected

    def test_registry_keeps_one_session_per_shop_terminal(self):
        registry = SessionRegistry()

        assert registry.get("shop-a", "t1") is registry.get("shop-a", "t1")
        assert registry.get("shop-a", "t1") is not registry.get("shop-a", "t2")
        assert registry.get("shop-a", "t1") is not registry.get("shop-b", "t1")


# ===== TESTS DE SERVICIOS =====

class TestPOSTerminalService:
    """Tests para búsquedas y códigos de descuento"""

    def test_barcode_query_adds_product(self, catalog_client, product):
        session = CheckoutSession("terminal-1")
        catalog_client.search_products.return_value = [product]

        result = asyncio.run(POSTerminalService(session, catalog_client).search_products(query="7701234567890"))

        catalog_client.search_products.assert_called_once_with(None, "7701234567890")
        assert result.added_item.id == "prod-1-var-m"
        assert len(session.cart) == 1

    def test_text_query_lists_products(self, catalog_client, product):
        session = CheckoutSession("terminal-1")
        catalog_client.search_products.return_value = [product]

        result = asyncio.run(POSTerminalService(session, catalog_client).search_products(query=" cami "))

        catalog_client.search_products.assert_called_once_with("cami", None)
        assert result.added_item is None
        assert session.search_query == "cami"
        assert session.cart.is_empty

    def test_search_finishing_after_clear_is_stale(self, catalog_client, product):
        session = CheckoutSession("terminal-1")

        def clear_during_request(query, barcode):
            session.clear()
            return [product]

        catalog_client.search_products.side_effect = clear_during_request

        result = asyncio.run(POSTerminalService(session, catalog_client).search_products(barcode="7701234567890"))

        assert result.stale is True
        assert session.cart.is_empty

    def test_short_customer_query_skips_service(self, catalog_client):
        session = CheckoutSession("terminal-1")

        result = asyncio.run(POSTerminalService(session, catalog_client).search_customers("an"))

        assert result.customers == []
        catalog_client.search_customers.assert_not_called()

    def test_customer_search(self, catalog_client):
        session = CheckoutSession("terminal-1")
        catalog_client.search_customers.return_value = [Customer(id="cus-1", name="Ana Gómez")]

        result = asyncio.run(POSTerminalService(session, catalog_client).search_customers("ana"))

        assert result.customers[0].id == "cus-1"
        assert session.customer_results == result.customers

    def test_apply_discount_code(self, catalog_client, session):
        validator = Mock()
        validator.validate.return_value = DiscountCodeValidation.model_validate({
            "valid": True,
            "discountCode": {"id": "dc-1", "code": "SAVE10", "percentage": 10},
            "discountAmount": 20,
        })

        result = asyncio.run(POSTerminalService(session, catalog_client, validator).apply_discount_code("save10"))

        assert result.applied.discount_amount == Decimal("20")
        assert session.snapshot().totals.total == Decimal("180.00")
        args = validator.validate.call_args.args
        assert args[0] == "save10"
        assert args[3] == Decimal("200.00")

    def test_rejected_code(self, catalog_client, session):
        validator = Mock()
        validator.validate.return_value = DiscountCodeValidation(valid=False, error="This discount code has expired")

        result = asyncio.run(POSTerminalService(session, catalog_client, validator).apply_discount_code("OLD"))

        assert result.error == "This discount code has expired"
        assert session.cart.applied_discount_code is None

    def test_code_validated_after_cart_change_is_stale(self, catalog_client, session, product):
        validator = Mock()

        def change_cart(*args):
            session.add_item(product)
            return DiscountCodeValidation.model_validate({
                "valid": True,
                "discountCode": {"id": "dc-1", "code": "SAVE10", "percentage": 10},
                "discountAmount": 20,
            })

        validator.validate.side_effect = change_cart

        result = asyncio.run(POSTerminalService(session, catalog_client, validator).apply_discount_code("SAVE10"))

        assert result.stale is True
        assert session.cart.applied_discount_code is None

    def test_code_validated_before_customer_change_is_stale(self, catalog_client, session):
        session.set_customer(Customer(id="cus-a", name="Ana"))
        validator = Mock()

        def change_customer(*args):
            session.set_customer(Customer(id="cus-b", name="Beto"))
            return DiscountCodeValidation.model_validate({
                "valid": True,
                "discountCode": {"id": "dc-1", "code": "VIP", "percentage": 10},
                "discountAmount": 20,
            })

        validator.validate.side_effect = change_customer

        result = asyncio.run(POSTerminalService(session, catalog_client, validator).apply_discount_code("VIP"))

        assert validator.validate.call_args.args[2] == "cus-a"
        assert result.stale is True
        assert session.cart.applied_discount_code is None

    def test_same_customer_keeps_revision(self, session):
        session.set_customer(Customer(id="cus-a", name="Ana"))
        revision = session.revision

        session.set_customer(Customer(id="cus-a", name="Ana"))

        assert session.revision == revision


class TestOrderSubmission:
    """Tests para el envío de la orden"""

    def pay_cash(self, session, amount):
        session.update_payment_method("cash-1", PaymentMethodUpdate(cash_given=Decimal(amount)))

    def test_empty_cart_blocked(self, catalog_client):
        with pytest.raises(CheckoutValidationError) as exc_info:
            asyncio.run(OrderSubmissionService(catalog_client).submit(CheckoutSession("terminal-1")))

        assert exc_info.value.message == "Please add items to the cart"
        catalog_client.create_order.assert_not_called()

    def test_already_processing(self, catalog_client, session):
        session.is_processing = True

        with pytest.raises(OrderInProgressError):
            asyncio.run(OrderSubmissionService(catalog_client).submit(session))

    def test_invalid_payments_block_submission(self, catalog_client, session):
        with pytest.raises(CheckoutValidationError) as exc_info:
            asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        assert exc_info.value.message == "Cash given must be at least 200.00"
        assert session.is_processing is False
        catalog_client.create_order.assert_not_called()

    def test_invalid_manual_discount_blocks_submission(self, catalog_client, session):
        self.pay_cash(session, "200")
        session.cart.manual_discount = ManualDiscount(amount=Decimal("300"), type=ManualDiscountType.FIXED)

        with pytest.raises(CheckoutValidationError):
            asyncio.run(OrderSubmissionService(catalog_client).submit(session))

    def test_cash_order(self, catalog_client, session):
        self.pay_cash(session, "250")
        session.set_notes("  Entrega inmediata ")
        catalog_client.create_order.return_value = {"id": "ord-1", "orderNumber": "POS-0001"}

        result = asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        payload = catalog_client.create_order.call_args.args[0]
        assert payload["items"] == [{"productId": "prod-1", "variantId": "var-m", "quantity": 2}]
        assert payload["paymentMethods"][0]["method"] == "CASH"
        assert payload["paymentMethods"][0]["cashGiven"] == Decimal("250")
        assert payload["paymentMethods"][0]["cashChange"] == Decimal("50.00")
        assert payload["expectedTotal"] == Decimal("200.00")
        assert payload["orderStatus"] == "DELIVERED"
        assert payload["paymentStatus"] == "COMPLETED"
        assert payload["notes"] == "Entrega inmediata"
        assert "discountCodeId" not in payload

        assert result.order_id == "ord-1"
        assert result.message == "Order POS-0001 completed successfully!"
        assert session.cart.is_empty
        assert session.generation == 1
        assert session.is_processing is False

    def test_order_with_check_is_pending(self, catalog_client, session):
        session.cart.apply_discount_code(make_applied_code("20"))
        session.set_manual_discount(Decimal("10"), ManualDiscountType.PERCENTAGE)
        check = session.add_payment_method(PaymentMethod.CHECK)
        session.update_payment_method(check.id, PaymentMethodUpdate(
            amount=Decimal("62"), check_number="000123", check_bank_name="Banco Uno"
        ))
        self.pay_cash(session, "100")
        catalog_client.create_order.return_value = {"id": "ord-2", "orderNumber": "POS-0002"}

        result = asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        payload = catalog_client.create_order.call_args.args[0]
        assert payload["paymentStatus"] == "PENDING"
        assert payload["discountCodeId"] == "dc-1"
        assert payload["discountCodeValue"] == "SAVE10"
        assert payload["orderDiscount"] == Decimal("10")
        assert payload["orderDiscountType"] == "PERCENTAGE"
        assert payload["expectedDiscountCodeAmount"] == Decimal("20.00")
        assert payload["expectedManualDiscountAmount"] == Decimal("18.00")
        assert payload["expectedTotal"] == Decimal("162.00")
        check_payload = payload["paymentMethods"][1]
        assert check_payload["checkNumber"] == "000123"
        assert check_payload["checkDate"] == TODAY
        assert result.payment_status == PaymentStatus.PENDING
        assert result.message == "Order POS-0002 completed! Check payment(s) pending verification."

    def test_rejected_order_keeps_cart(self, catalog_client, session):
        self.pay_cash(session, "200")
        catalog_client.create_order.side_effect = OrderSubmissionError("Insufficient stock")

        with pytest.raises(OrderSubmissionError) as exc_info:
            asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        assert exc_info.value.message == "Insufficient stock"
        assert len(session.cart) == 1
        assert session.is_processing is False

    def test_processing_flag_set_during_request(self, catalog_client, session):
        self.pay_cash(session, "200")
        seen = {}

        def create_order(payload):
            seen["processing"] = session.is_processing
            return {"id": "ord-3"}

        catalog_client.create_order.side_effect = create_order

        result = asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        assert seen["processing"] is True
        assert result.message == "Order ord-3 completed successfully!"

    def test_session_cleared_during_request_is_not_cleared_again(self, catalog_client, session, product):
        self.pay_cash(session, "200")

        def create_order(payload):
            session.clear()
            session.add_item(product)
            return {"id": "ord-4", "orderNumber": "POS-0004"}

        catalog_client.create_order.side_effect = create_order

        asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        assert session.generation == 1
        assert len(session.cart) == 1

    def test_response_without_id(self, catalog_client, session):
        self.pay_cash(session, "200")
        catalog_client.create_order.return_value = {}

        with pytest.raises(OrderSubmissionError):
            asyncio.run(OrderSubmissionService(catalog_client).submit(session))

        assert len(session.cart) == 1


# ===== TESTS DE ENDPOINTS =====

class TestTerminalEndpoints:
    """Tests de integración de los endpoints del terminal"""

    base = "/api/v1/pos/terminals/terminal-1"

    def product_body(self, **variant_fields):
        variant = {"id": "var-m", "name": "M", "price": 100, "tva": 19, "inventory": 5}
        variant.update(variant_fields)
        return {"id": "prod-1", "name": "Camiseta", "variants": [variant]}

    def test_health_without_shop_header(self):
        response = TestClient(app).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_shop_header(self, api_client):
        response = TestClient(app).get(self.base)

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing X-Shop-ID header"

    def test_empty_snapshot(self, api_client):
        response = api_client.get(self.base)

        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert Decimal(data["totals"]["total"]) == 0
        assert data["payment_methods"][0]["id"] == "cash-1"

    def test_cart_and_cash_flow(self, api_client, catalog_client):
        response = api_client.post(f"{self.base}/items", json={"product": self.product_body()})
        assert response.status_code == 201

        response = api_client.patch(f"{self.base}/items/prod-1-var-m", json={"quantity": 2})
        data = response.json()
        assert Decimal(data["totals"]["total"]) == Decimal("200")
        assert Decimal(data["payment_methods"][0]["amount"]) == Decimal("200")

        response = api_client.patch(f"{self.base}/payments/cash-1", json={"cash_given": "200"})
        assert response.json()["payment_validation"]["valid"] is True

        catalog_client.create_order.return_value = {"id": "ord-1", "orderNumber": "POS-0001"}
        response = api_client.post(f"{self.base}/checkout")

        assert response.status_code == 201
        assert response.json()["message"] == "Order POS-0001 completed successfully!"
        assert api_client.get(self.base).json()["items"] == []

    def test_out_of_stock_returns_conflict(self, api_client):
        response = api_client.post(f"{self.base}/items", json={"product": self.product_body(inventory=0)})

        assert response.status_code == 409
        assert response.json()["detail"] == "This product is out of stock"

    def test_unknown_variant_returns_not_found(self, api_client):
        response = api_client.post(f"{self.base}/items",
                                   json={"product": self.product_body(), "variant_id": "var-xl"})
        assert response.status_code == 404

    def test_checkout_empty_cart(self, api_client):
        response = api_client.post(f"{self.base}/checkout")

        assert response.status_code == 422
        assert response.json()["detail"] == "Please add items to the cart"

    def test_remove_last_payment_method(self, api_client):
        response = api_client.delete(f"{self.base}/payments/cash-1")

        assert response.status_code == 422
        assert response.json()["detail"] == "At least one payment method is required"

    def test_check_payment_and_summary(self, api_client):
        api_client.post(f"{self.base}/items", json={"product": self.product_body()})
        response = api_client.post(f"{self.base}/payments", json={"method": "CHECK"})
        assert response.status_code == 201

        check_id = response.json()["payment_methods"][1]["id"]
        api_client.patch(f"{self.base}/payments/{check_id}", json={"amount": "40", "check_number": "9"})

        validation = api_client.get(f"{self.base}/payments/validate").json()
        assert validation["valid"] is False
        assert validation["message"] == "Cash given must be at least 60.00"

        summary = api_client.get(f"{self.base}/payments/summary").json()
        assert summary["payment_count"] == 2

    def test_discount_code_endpoint(self, api_client, catalog_client):
        api_client.post(f"{self.base}/items", json={"product": self.product_body()})
        catalog_client.validate_discount_code.return_value = DiscountCodeValidation.model_validate({
            "valid": True,
            "discountCode": {"id": "dc-1", "code": "SAVE10", "percentage": 10},
            "discountAmount": 10,
        })

        response = api_client.post(f"{self.base}/discount-code", json={"code": "save10"})

        assert response.status_code == 200
        assert response.json()["applied"]["code"] == "SAVE10"
        snapshot = api_client.get(self.base).json()
        assert Decimal(snapshot["totals"]["total"]) == Decimal("90")

        snapshot = api_client.delete(f"{self.base}/discount-code").json()
        assert Decimal(snapshot["totals"]["total"]) == Decimal("100")

    def test_manual_discount_endpoint(self, api_client):
        api_client.post(f"{self.base}/items", json={"product": self.product_body()})

        response = api_client.put(f"{self.base}/manual-discount", json={"amount": "150", "type": "PERCENTAGE"})

        assert Decimal(response.json()["manual_discount"]["amount"]) == Decimal("100")
        assert Decimal(response.json()["totals"]["total"]) == 0

    def test_product_search_by_barcode(self, api_client, catalog_client):
        catalog_client.search_products.return_value = [Product.model_validate(self.product_body())]

        response = api_client.post(f"{self.base}/products/search", json={"barcode": "7701234567890"})

        assert response.status_code == 200
        assert response.json()["added_item"]["id"] == "prod-1-var-m"

    def test_product_search_requires_terms(self, api_client):
        response = api_client.post(f"{self.base}/products/search", json={})
        assert response.status_code == 422

    def test_customer_search_and_select(self, api_client, catalog_client):
        catalog_client.search_customers.return_value = [Customer(id="cus-1", name="Ana Gómez")]

        customers = api_client.get(f"{self.base}/customers/search", params={"query": "ana"}).json()["customers"]
        snapshot = api_client.put(f"{self.base}/customer", json={"customer": customers[0]}).json()

        assert snapshot["customer"]["id"] == "cus-1"

    def test_terminals_are_independent(self, api_client):
        api_client.post(f"{self.base}/items", json={"product": self.product_body()})

        other = api_client.get("/api/v1/pos/terminals/terminal-2").json()

        assert other["items"] == []

    def test_same_terminal_id_in_other_shop_is_independent(self, api_client):
        api_client.post(f"{self.base}/items", json={"product": self.product_body()},
                        headers={"X-Shop-ID": "shop-a"})

        own = api_client.get(self.base, headers={"X-Shop-ID": "shop-a"}).json()
        other = api_client.get(self.base, headers={"X-Shop-ID": "shop-b"}).json()

        assert [item["id"] for item in own["items"]] == ["prod-1-var-m"]
        assert other["items"] == []
        assert Decimal(other["totals"]["total"]) == 0
