"""
Tests for constants.py lookup helpers.

These tables drive payment reconciliation and carrier selection, so the
mappings are pinned here.
"""

import pytest

from constants import (
    CARRIER_CORREO_ARGENTINO,
    CARRIER_OCA,
    CARRIER_PICKUP,
    OrderStatus,
    can_transition,
    carrier_for_shipping_method,
    map_payment_status,
    province_code_for,
)


class TestMapPaymentStatus:

    def test_approved_is_paid(self):
        assert map_payment_status("approved") == OrderStatus.PAID

    @pytest.mark.parametrize("mp_status", ["refunded", "charged_back"])
    def test_reversals_cancel(self, mp_status):
        assert map_payment_status(mp_status) == OrderStatus.CANCELLED

    @pytest.mark.parametrize("mp_status", ["pending", "in_process", "rejected", "cancelled", "authorized"])
    def test_everything_else_stays_pending(self, mp_status):
        assert map_payment_status(mp_status) == OrderStatus.PENDING

    def test_unknown_and_missing(self):
        assert map_payment_status("something_new") == OrderStatus.PENDING
        assert map_payment_status(None) == OrderStatus.PENDING

    def test_case_insensitive(self):
        assert map_payment_status("APPROVED") == OrderStatus.PAID


class TestTransitions:

    def test_forward_path(self):
        assert can_transition(OrderStatus.PENDING, OrderStatus.PAID)
        assert can_transition(OrderStatus.PAID, OrderStatus.PROCESSED)
        assert can_transition(OrderStatus.PROCESSED, OrderStatus.DELIVERED)

    def test_no_regression(self):
        assert not can_transition(OrderStatus.PAID, OrderStatus.PENDING)
        assert not can_transition(OrderStatus.DELIVERED, OrderStatus.PROCESSED)

    def test_terminal_states(self):
        for status in OrderStatus.ALL:
            assert not can_transition(OrderStatus.DELIVERED, status)
            assert not can_transition(OrderStatus.CANCELLED, status)

    def test_processed_cannot_cancel(self):
        assert not can_transition(OrderStatus.PROCESSED, OrderStatus.CANCELLED)


class TestCarrierForShippingMethod:

    @pytest.mark.parametrize("method_id", [None, "", "pickup"])
    def test_pickup(self, method_id):
        assert carrier_for_shipping_method(method_id) == CARRIER_PICKUP

    @pytest.mark.parametrize("method_id", ["oca", "oca-64665", "oca-express"])
    def test_oca(self, method_id):
        assert carrier_for_shipping_method(method_id) == CARRIER_OCA

    @pytest.mark.parametrize("method_id", ["standard", "express", "ca-CP-D"])
    def test_correo_argentino(self, method_id):
        assert carrier_for_shipping_method(method_id) == CARRIER_CORREO_ARGENTINO


class TestProvinceCodeFor:

    def test_single_letter(self):
        assert province_code_for("x") == "X"

    def test_full_name_with_accents(self):
        assert province_code_for("Córdoba") == "X"
        assert province_code_for("cordoba") == "X"

    def test_aliases(self):
        assert province_code_for("CABA") == "C"
        assert province_code_for("Capital Federal") == "C"
        assert province_code_for("Buenos Aires") == "B"

    def test_unknown(self):
        assert province_code_for("Atlantis") is None
        assert province_code_for(None) is None
