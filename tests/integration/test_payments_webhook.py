from decimal import Decimal

from backend.payments.credentials import StripeCredentialProvider, StripeCredentials, get_credential_provider

URL = "/api/v1/payments/webhook"

METADATA = {
    "line_items": '[{"p":10,"q":2,"u":100,"n":"sans oignon"}]',
    "customer_name": "Ana Lima",
    "customer_email": "ana@example.com",
    "customer_phone": "+33600000000",
    "street": "1 rue du Port",
    "city": "Nantes",
    "zip": "44000",
    "order_type": "delivery",
    "notes": "",
}


def _post(client, payload, header):
    headers = {"Content-Type": "application/json"}
    if header is not None:
        headers["Stripe-Signature"] = header
    return client.post(URL, content=payload, headers=headers)


def test_webhook_creates_order(client, signer, event_factory, fake_odoo):
    payload = event_factory(METADATA, amount=22000, amount_received=22000)
    r = _post(client, payload, signer(payload))

    assert r.status_code == 200
    data = r.json()
    assert data["received"] is True
    assert data["status"] == "ok"
    assert data["state"] == "invoiced"
    assert data["degraded"] is False
    assert data["reused"] is False
    assert data["pos_reference"].startswith("Order ")
    (partner,) = fake_odoo.rows("res.partner")
    assert partner["email"] == "ana@example.com"
    assert fake_odoo.rows("pos.payment")[0]["amount"] == Decimal("220.00")


def test_webhook_redelivery_is_idempotent(client, signer, event_factory, fake_odoo):
    payload = event_factory(METADATA, amount=22000)
    first = _post(client, payload, signer(payload))
    second = _post(client, payload, signer(payload))

    assert first.status_code == second.status_code == 200
    assert second.json()["order_id"] == first.json()["order_id"]
    assert second.json()["reused"] is True
    assert len(fake_odoo.rows("pos.order")) == 1
    assert len(fake_odoo.rows("pos.payment")) == 1


def test_webhook_bad_signature(client, signer, event_factory, fake_odoo):
    payload = event_factory(METADATA)
    r = _post(client, payload, signer(payload, secret="whsec_attacker"))
    assert r.status_code == 400
    assert fake_odoo.calls_to("pos.order") == []


def test_webhook_missing_signature(client, event_factory):
    r = _post(client, event_factory(METADATA), None)
    assert r.status_code == 400
    assert r.json() == {"error": "No signature provided"}


def test_webhook_ignores_other_events(client, signer, event_factory, fake_odoo):
    payload = event_factory(METADATA, event_type="charge.refunded")
    r = _post(client, payload, signer(payload))
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"
    assert fake_odoo.calls_to("pos.order") == []


def test_webhook_malformed_metadata_acknowledged(client, signer, event_factory, fake_odoo):
    payload = event_factory(dict(METADATA, line_items="[{oops"))
    r = _post(client, payload, signer(payload))
    assert r.status_code == 200
    assert r.json() == {"received": True, "status": "rejected"}
    assert fake_odoo.calls_to("pos.order") == []


def test_webhook_store_closed_asks_for_redelivery(client, signer, event_factory, fake_odoo):
    fake_odoo.tables["pos.session"][1]["state"] = "closed"
    payload = event_factory(METADATA, amount=22000)
    r = _post(client, payload, signer(payload))
    assert r.status_code == 500
    assert r.json()["error"].startswith("Fulfillment failed")


def test_webhook_degraded_invoicing_still_acknowledged(client, signer, event_factory, fake_odoo):
    fake_odoo.fail("pos.order", "action_pos_order_invoice", status=422)
    payload = event_factory(METADATA, amount=22000)
    r = _post(client, payload, signer(payload))
    assert r.status_code == 200
    assert r.json()["state"] == "done"
    assert r.json()["degraded"] is True


def test_webhook_without_secret_configured(app, client, signer, event_factory):
    class NoSecret(StripeCredentialProvider):
        def get(self):
            return StripeCredentials(secret_key="sk_test_123")

    app.dependency_overrides[get_credential_provider] = lambda: NoSecret()
    payload = event_factory(METADATA)
    r = _post(client, payload, signer(payload))
    assert r.status_code == 500
