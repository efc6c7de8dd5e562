import logging
from decimal import Decimal

import pytest

from backend.fulfillment import repository
from backend.fulfillment import service as fulfillment
from backend.fulfillment.models import CustomerContact, NoActiveSessionError, OrderCreationError
from backend.infra.odoo_client import OdooClientError
from backend.payments import cart as cart_codec
from backend.taxes.models import CartLine

CUSTOMER = CustomerContact(name="Ana Lima", email="ana@example.com", phone="+33600000000",
                           street="1 rue du Port", city="Nantes", zip="44000")


def _burgers():
    return [CartLine(product_id=10, quantity=2, unit_price=Decimal("100"), notes="sans oignon")]


def _orders(fake_odoo):
    return fake_odoo.rows("pos.order")


def test_happy_path_creates_paid_invoiced_order(fake_odoo):
    result = fulfillment.fulfill(
        _burgers(), CUSTOMER, notes="sonner deux fois", order_type="delivery",
        payment_ref="pi_1", charged_amount=Decimal("220.00"),
    )

    assert result.state == "invoiced"
    assert result.degraded is False
    assert result.reused is False
    assert result.payment_method == "Stripe"
    assert result.pos_reference.startswith("Order ")

    (order,) = _orders(fake_odoo)
    assert order["id"] == result.order_id
    assert order["name"] == "Online Order - pi_1"
    assert order["session_id"] == 1
    assert order["to_invoice"] is True
    assert order["source"] == "mobile"
    assert order["general_customer_note"] == "[delivery] sonner deux fois"
    assert order["amount_total"] == Decimal("220.00")
    assert order["amount_tax"] == Decimal("20.00")
    (command,) = order["lines"]
    assert command[:2] == [0, 0]
    assert command[2]["product_id"] == 10
    assert command[2]["tax_ids"] == [[6, 0, [1]]]
    assert command[2]["customer_note"] == "sans oignon"

    (payment,) = fake_odoo.rows("pos.payment")
    assert payment["amount"] == Decimal("220.00")
    assert payment["payment_method_id"] == 2


def test_new_customer_created_once_then_reused(fake_odoo):
    fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1")
    fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_2")

    (partner,) = fake_odoo.rows("res.partner")
    assert partner["email"] == "ana@example.com"
    assert partner["city"] == "Nantes"
    assert len(fake_odoo.calls_to("res.partner", "create")) == 1
    assert {o["partner_id"] for o in _orders(fake_odoo)} == {partner["id"]}


def test_store_closed_creates_nothing(fake_odoo):
    fake_odoo.tables["pos.session"][1]["state"] = "closed"

    with pytest.raises(NoActiveSessionError):
        fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1")

    assert fake_odoo.calls_to("pos.order", "create") == []
    assert fake_odoo.calls_to("pos.order", "add_payment") == []
    assert fake_odoo.calls_to("res.partner", "create") == []


def test_invoice_failure_forces_done_and_reports_degraded(fake_odoo):
    fake_odoo.fail("pos.order", "action_pos_order_invoice", status=422, message="no fiscal position")

    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))

    assert result.state == "done"
    assert result.degraded is True
    assert _orders(fake_odoo)[0]["state"] == "done"
    assert len(fake_odoo.rows("pos.payment")) == 1


def test_forced_done_failure_propagates_and_next_delivery_finishes(fake_odoo):
    fake_odoo.fail("pos.order", "action_pos_order_invoice", status=422)
    fake_odoo.fail("pos.order", "write", status=504)

    with pytest.raises(OdooClientError):
        fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))
    assert _orders(fake_odoo)[0]["state"] == "paid"

    del fake_odoo.failures[("pos.order", "write")]
    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))

    assert result.reused is True
    assert result.state == "done"
    assert result.degraded is True
    assert len(_orders(fake_odoo)) == 1
    assert len(fake_odoo.rows("pos.payment")) == 1


def test_existing_order_amount_paid_is_decimal(fake_odoo):
    fake_odoo.add("pos.order", {"id": 78, "name": "Online Order - pi_8", "state": "draft",
                                "amount_paid": 12.3, "pos_reference": ""})

    existing = repository.find_order_by_name("Online Order - pi_8")

    assert existing.amount_paid == Decimal("12.3")
    assert isinstance(existing.amount_paid, Decimal)


def test_payment_method_fallback_reported_as_degraded(fake_odoo):
    fake_odoo.tables["pos.payment.method"][2]["name"] = "Carte"
    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1")
    assert result.state == "invoiced"
    assert result.degraded is True
    assert result.payment_method == "Carte"


def test_redelivery_does_not_duplicate_order(fake_odoo):
    first = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))
    second = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))

    assert second.order_id == first.order_id
    assert second.pos_reference == first.pos_reference
    assert second.reused is True
    assert len(_orders(fake_odoo)) == 1
    assert len(fake_odoo.rows("pos.payment")) == 1


def test_resume_draft_order_without_settlement(fake_odoo):
    fake_odoo.fail("pos.order", "add_payment", status=504)
    with pytest.raises(OdooClientError):
        fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))
    assert _orders(fake_odoo)[0]["state"] == "draft"

    del fake_odoo.failures[("pos.order", "add_payment")]
    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("220.00"))

    assert result.reused is True
    assert result.state == "invoiced"
    assert len(_orders(fake_odoo)) == 1
    assert len(fake_odoo.calls_to("pos.order", "create")) == 1
    (payment,) = fake_odoo.rows("pos.payment")
    assert payment["amount"] == Decimal("220.00")


def test_resume_paid_order_only_finalizes(fake_odoo):
    fake_odoo.add("pos.order", {"id": 77, "name": "Online Order - pi_9", "state": "paid",
                                "amount_paid": 220.0, "pos_reference": "Order 00001-001-0077"})

    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_9")

    assert result.order_id == 77
    assert result.state == "invoiced"
    assert fake_odoo.calls_to("pos.order", "add_payment") == []
    assert fake_odoo.calls_to("pos.order", "action_pos_order_paid") == []


def test_order_creation_failure(fake_odoo):
    fake_odoo.fail("pos.order", "create", status=400, message="invalid line")
    with pytest.raises(OrderCreationError):
        fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1")
    assert fake_odoo.calls_to("pos.order", "add_payment") == []


def test_settles_charged_amount_on_mismatch(fake_odoo, caplog):
    with caplog.at_level(logging.WARNING, logger="backend.fulfillment.service"):
        fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", charged_amount=Decimal("219.99"))
    assert fake_odoo.rows("pos.payment")[0]["amount"] == Decimal("219.99")
    assert "amount_mismatch" in caplog.text


def test_settles_computed_total_without_charged_amount(fake_odoo):
    fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1")
    assert fake_odoo.rows("pos.payment")[0]["amount"] == Decimal("220.00")


def test_combo_children_nested_under_parent_line(fake_odoo):
    menu = cart_codec.CartItem(
        product_id=20, quantity=1, unit_price=Decimal("15.50"),
        combo_selections=(
            cart_codec.ComboSelection(5, 201, 21, Decimal("2.00")),
            cart_codec.ComboSelection(6, 202, 22, Decimal("1.50")),
        ),
    )
    lines = cart_codec.decode(cart_codec.encode([menu]))

    fulfillment.fulfill(lines, CUSTOMER, payment_ref="pi_combo")

    (order,) = _orders(fake_odoo)
    (parent,) = order["lines"]
    assert parent[2]["product_id"] == 20
    assert parent[2]["price_unit"] == Decimal("12.0")
    children = [c[2] for c in parent[2]["combo_line_ids"]]
    assert [(c["product_id"], c["combo_item_id"], c["price_unit"]) for c in children] == [
        (21, 201, Decimal("2.0")),
        (22, 202, Decimal("1.5")),
    ]
    assert order["amount_total"] == Decimal("17.05")


def test_without_payment_ref_no_dedupe_lookup(fake_odoo):
    fulfillment.fulfill(_burgers(), CUSTOMER)
    assert fake_odoo.calls_to("pos.order", "search_read") == []
    assert _orders(fake_odoo)[0]["name"] == "Online Order - WEB"


def test_cash_payment_uses_cash_method(fake_odoo):
    result = fulfillment.fulfill(_burgers(), CUSTOMER, payment_ref="pi_1", payment_method="cash")
    assert result.payment_method == "Cash"
    assert fake_odoo.rows("pos.payment")[0]["payment_method_id"] == 1


def test_general_note():
    assert fulfillment.general_note("sans sel", "takeout") == "[takeout] sans sel"
    assert fulfillment.general_note("", "dine-in") == "[dine-in]"
    assert fulfillment.general_note(None, None) == ""
