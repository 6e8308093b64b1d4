"""
Tests for services/pricing.py

Cart pricing must only ever use database prices and must report stock
problems per product (or variant) after summing duplicate lines.
"""

from decimal import Decimal

import pytest

from services.pricing import calculate_shipping_options, price_cart, shipping_cost_for


class TestShippingOptions:

    def test_caba_zone(self, app):
        result = calculate_shipping_options("1425")
        assert result["zone"] == "CABA"
        prices = {o["id"]: o["price"] for o in result["options"]}
        assert prices == {"pickup": 0, "standard": 800, "express": 1500}

    def test_gba_zone(self, app):
        assert calculate_shipping_options("1611")["zone"] == "GBA"

    def test_default_zone(self, app):
        result = calculate_shipping_options("9410")
        assert result["zone"] == "Resto del país"
        prices = {o["id"]: o["price"] for o in result["options"]}
        assert prices["standard"] == 2500
        assert prices["express"] == 4000

    def test_invalid_postal_code(self, app):
        with pytest.raises(ValueError):
            calculate_shipping_options("12")

    def test_cost_for_methods(self, app):
        assert shipping_cost_for("pickup", "1611") == Decimal("0")
        assert shipping_cost_for(None) == Decimal("0")
        assert shipping_cost_for("standard", "1611") == Decimal("1200")
        assert shipping_cost_for("express", "1611") == Decimal("2000")
        # Carrier service ids bill at the zone rate
        assert shipping_cost_for("oca-64665", "5000") == Decimal("1800")

    def test_cost_without_postal_code_uses_base_price(self, app):
        assert shipping_cost_for("standard") == Decimal("1500")


class TestPriceCart:

    def test_uses_database_prices(self, make_product):
        product = make_product(price="1000", stock=5)
        cart = price_cart([{"productId": product.id, "quantity": 2, "price": 1}])
        assert cart.ok
        assert cart.subtotal == Decimal("2000.00")
        assert cart.total == Decimal("2000.00")

    def test_sale_price_wins_when_on_sale(self, make_product):
        product = make_product(price="1000", sale_price=Decimal("800"), on_sale=True)
        cart = price_cart([{"product_id": product.id, "quantity": 1}])
        assert cart.lines[0].unit_price == Decimal("800.00")

    def test_sale_price_ignored_when_not_on_sale(self, make_product):
        product = make_product(price="1000", sale_price=Decimal("800"), on_sale=False)
        cart = price_cart([{"product_id": product.id, "quantity": 1}])
        assert cart.lines[0].unit_price == Decimal("1000.00")

    def test_shipping_added(self, make_product):
        product = make_product(price="1000")
        cart = price_cart([{"product_id": product.id, "quantity": 1}], shipping_method_id="standard",
                          postal_code="1425")
        assert cart.shipping_cost == Decimal("800.00")
        assert cart.total == Decimal("1800.00")

    def test_duplicate_lines_summed_against_stock(self, make_product):
        product = make_product(stock=3)
        cart = price_cart([
            {"product_id": product.id, "quantity": 2},
            {"product_id": product.id, "quantity": 2},
        ])
        assert not cart.ok
        assert len(cart.problems) == 1
        assert cart.problems[0]["code"] == "INSUFFICIENT_STOCK"
        assert cart.problems[0]["available"] == 3

    def test_check_stock_disabled(self, make_product):
        product = make_product(stock=0)
        cart = price_cart([{"product_id": product.id, "quantity": 2}], check_stock=False)
        assert cart.ok
        assert cart.subtotal == Decimal("2000.00")

    def test_unknown_and_inactive_products(self, make_product):
        inactive = make_product(is_active=False)
        cart = price_cart([
            {"product_id": 9999, "quantity": 1},
            {"product_id": inactive.id, "quantity": 1},
            {"product_id": "abc", "quantity": 1},
        ])
        codes = sorted(p["code"] for p in cart.problems)
        assert codes == ["INACTIVE", "NOT_FOUND", "NOT_FOUND"]
        assert cart.lines == []

    def test_invalid_quantity(self, make_product):
        product = make_product()
        cart = price_cart([{"product_id": product.id, "quantity": 0}])
        assert cart.problems[0]["code"] == "INVALID_QUANTITY"

    def test_variant_stock(self, make_product, make_variant):
        product = make_product(stock=50)
        make_variant(product, color="Rojo", size="M", stock=1)
        cart = price_cart([{"product_id": product.id, "quantity": 2, "color": "Rojo", "size": "M"}])
        assert cart.problems[0]["code"] == "INSUFFICIENT_STOCK"
        assert cart.problems[0]["available"] == 1

    def test_unknown_variant(self, make_product, make_variant):
        product = make_product()
        make_variant(product, color="Rojo", size="M")
        cart = price_cart([{"product_id": product.id, "quantity": 1, "color": "Azul", "size": "M"}])
        assert cart.problems[0]["code"] == "VARIANT_NOT_FOUND"

    def test_cash_discount_from_config(self, app, make_product):
        app.config["CASH_DISCOUNT_PERCENT"] = 0.1
        product = make_product(price="1000")
        cart = price_cart([{"product_id": product.id, "quantity": 1}], payment_method="cash")
        assert cart.discount == Decimal("100.00")
        assert cart.total == Decimal("900.00")

    def test_discount_clamped(self, make_product):
        product = make_product(price="1000")
        cart = price_cart([{"product_id": product.id, "quantity": 1}], discount_percent=5)
        assert cart.discount_percent == Decimal("1")
        assert cart.total == Decimal("0.00")

    def test_to_dict_camel_case(self, make_product):
        product = make_product(price="1000")
        data = price_cart([{"product_id": product.id, "quantity": 1}]).to_dict()
        assert data["valid"] is True
        assert data["items"][0]["lineTotal"] == 1000.0
        assert "shippingCost" in data
