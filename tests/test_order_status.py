"""Tests for the order status state machine and carrier status mapping."""

import pytest
from fastapi import HTTPException

from souk.services.order_status import (
    OrderStatus,
    apply_status,
    can_transition,
    is_terminal,
    map_carrier_status,
    normalize_carrier_status,
)


class TestCarrierStatusMapping:
    @pytest.mark.parametrize("raw, expected", [
        ("Livré", OrderStatus.LIVREE),
        (" DELIVERED ", OrderStatus.LIVREE),
        ("In Transit", OrderStatus.ENVOYEE),
        ("out-for-delivery", OrderStatus.ENVOYEE),
        ("En cours de livraison", OrderStatus.ENVOYEE),
        ("Ramassé", OrderStatus.ENVOYEE),
        ("no answer", OrderStatus.INJOIGNABLE),
        ("Retourné", OrderStatus.RETOURNEE),
        ("Annulé", OrderStatus.ANNULEE),
        ("canceled", OrderStatus.ANNULEE),
    ])
    def test_known_statuses(self, raw, expected):
        assert map_carrier_status(raw) == expected

    def test_unknown_status_maps_to_none(self):
        assert map_carrier_status("lost in space") is None
        assert map_carrier_status(None) is None

    def test_normalization(self):
        assert normalize_carrier_status("  Out -- For  Delivery ") == "out_for_delivery"
        assert normalize_carrier_status("Livrée") == "livree"


class TestTransitions:
    def test_admin_graph(self):
        assert can_transition("NOUVELLE", "CONFIRMEE")
        assert can_transition("CONFIRMEE", "ENVOYEE")
        assert can_transition("ENVOYEE", "LIVREE")
        assert can_transition("INJOIGNABLE", "CONFIRMEE")
        assert not can_transition("CONFIRMEE", "LIVREE")
        assert not can_transition("NOUVELLE", "ENVOYEE")

    def test_same_status_is_allowed(self):
        assert can_transition("ENVOYEE", "ENVOYEE")

    def test_terminal_states_are_never_left(self):
        for terminal in ("LIVREE", "ANNULEE", "RETOURNEE"):
            assert is_terminal(terminal)
            for target in OrderStatus:
                if target.value != terminal:
                    assert not can_transition(terminal, target, by_carrier=True)

    def test_carrier_may_skip_envoyee(self):
        assert not can_transition("CONFIRMEE", "LIVREE")
        assert can_transition("CONFIRMEE", "LIVREE", by_carrier=True)
        assert can_transition("CONFIRMEE", "RETOURNEE", by_carrier=True)

    def test_carrier_cannot_regress(self):
        assert not can_transition("ENVOYEE", "CONFIRMEE", by_carrier=True)
        assert not can_transition("EN_ATTENTE", "LIVREE", by_carrier=True)


class TestApplyStatus:
    async def test_apply_valid_transition(self, db, log, make_order):
        order = await make_order(status="NOUVELLE")
        await apply_status(db, order, OrderStatus.CONFIRMEE, log)
        assert order.status == "CONFIRMEE"

    async def test_reapplying_current_status_is_noop(self, db, log, make_order):
        order = await make_order(status="CONFIRMEE")
        updated_at = order.updated_at
        await apply_status(db, order, OrderStatus.CONFIRMEE, log)
        assert order.status == "CONFIRMEE"
        assert order.updated_at == updated_at

    async def test_illegal_transition_raises_409(self, db, log, make_order):
        order = await make_order(status="LIVREE")
        with pytest.raises(HTTPException) as exc:
            await apply_status(db, order, OrderStatus.ANNULEE, log)
        assert exc.value.status_code == 409
        assert order.status == "LIVREE"
