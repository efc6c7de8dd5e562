import pytest

from backend.fulfillment.models import NoPaymentMethodError, PaymentMethod
from backend.fulfillment.payment_methods import resolve_payment_method


def test_brand_match_preferred_and_online_method_skipped(fake_odoo):
    resolution = resolve_payment_method([1, 2, 3], "Stripe")
    assert resolution.method.id == 2
    assert resolution.strategy == "brand_match"
    assert resolution.degraded is False
    domain = fake_odoo.calls_to("pos.payment.method", "search_read")[0]["domain"]
    assert ["is_online_payment", "=", False] in domain


def test_renamed_method_falls_back_to_non_cash(fake_odoo, caplog):
    fake_odoo.tables["pos.payment.method"][2]["name"] = "Carte bancaire"
    resolution = resolve_payment_method([1, 2, 3], "Stripe")
    assert resolution.method.name == "Carte bancaire"
    assert resolution.strategy == "non_cash"
    assert resolution.degraded is True
    assert "repli" in caplog.text


def test_cash_only_config_falls_back_to_any_method(fake_odoo):
    resolution = resolve_payment_method([1, 3], "Stripe")
    assert resolution.method.id == 1
    assert resolution.strategy == "any_method"
    assert resolution.degraded is True


def test_cash_brand_matches_cash_method(fake_odoo):
    resolution = resolve_payment_method([1, 2], "Cash")
    assert resolution.method.id == 1
    assert resolution.degraded is False


def test_no_configured_method_is_a_hard_failure(fake_odoo):
    with pytest.raises(NoPaymentMethodError):
        resolve_payment_method([], "Stripe")
    assert fake_odoo.calls_to("pos.payment.method") == []


def test_all_strategies_exhausted(fake_odoo):
    with pytest.raises(NoPaymentMethodError):
        resolve_payment_method([404], "Stripe")
    assert len(fake_odoo.calls_to("pos.payment.method", "search_read")) == 3


def test_strategies_evaluated_in_order():
    seen = []

    def first(ids, brand):
        seen.append("first")
        return None

    def second(ids, brand):
        seen.append("second")
        return PaymentMethod(id=9, name="Manual")

    def third(ids, brand):
        seen.append("third")
        return PaymentMethod(id=10, name="Never")

    resolution = resolve_payment_method([9], "Stripe", strategies=(("first", first), ("second", second), ("third", third)))
    assert seen == ["first", "second"]
    assert resolution.method.id == 9
    assert resolution.degraded is True
