import os
import copy
import hashlib
import hmac
import itertools
import json
import time
import pytest
from typing import Any, Dict, Generator, List, Optional, Tuple
from fastapi.testclient import TestClient

# Avant l'import de l'app: pas de Redis pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from backend.app import app as fastapi_app
from backend.infra.odoo_client import OdooClientError
from backend.payments.credentials import StripeCredentialProvider, StripeCredentials, get_credential_provider

WEBHOOK_SECRET = "whsec_test_secret"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeOdoo:
    """
    Odoo en mémoire pour les tests: tables {model: {id: row}}, domaines simples
    (=, in, ilike), méthodes POS utilisées par le fulfillment. Chaque appel est enregistré.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.failures: Dict[Tuple[str, str], OdooClientError] = {}
        self.tables: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._ids = itertools.count(1000)

    # --- données
    def add(self, model: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        row.setdefault("id", next(self._ids))
        self.tables.setdefault(model, {})[row["id"]] = row
        return row

    def rows(self, model: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(model, {}).values())

    def fail(self, model: str, method: str, status: int = 500, message: str = "boom") -> None:
        self.failures[(model, method)] = OdooClientError(message, status)

    def calls_to(self, model: str, method: Optional[str] = None) -> List[Dict[str, Any]]:
        return [p for m, meth, p in self.calls if m == model and (method is None or meth == method)]

    # --- client
    def call(self, model: str, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        payload = copy.deepcopy(payload or {})
        self.calls.append((model, method, payload))
        if (model, method) in self.failures:
            raise self.failures[(model, method)]
        handler = getattr(self, f"_{method}", None)
        if handler is None:
            raise OdooClientError(f"FakeOdoo: méthode non gérée {model}.{method}", 500)
        return handler(model, payload)

    def close(self) -> None:
        pass

    @staticmethod
    def _value(row: Dict[str, Any], field: str) -> Any:
        value = row.get(field, False)
        if isinstance(value, list) and len(value) == 2 and isinstance(value[1], str):
            return value[0]
        return value

    def _match(self, row: Dict[str, Any], domain: List[Any]) -> bool:
        for field, op, expected in domain:
            value = self._value(row, field)
            if op == "=" and value != expected:
                return False
            if op == "in" and value not in expected:
                return False
            if op == "ilike" and str(expected).lower() not in str(value or "").lower():
                return False
        return True

    @staticmethod
    def _project(row: Dict[str, Any], fields: Optional[List[str]]) -> Dict[str, Any]:
        if not fields:
            return dict(row)
        out = {"id": row["id"]}
        out.update({f: row.get(f, False) for f in fields})
        return out

    def _search_read(self, model, payload):
        found = [r for r in self.rows(model) if self._match(r, payload.get("domain") or [])]
        limit = payload.get("limit")
        if limit:
            found = found[:limit]
        return [self._project(r, payload.get("fields")) for r in found]

    def _read(self, model, payload):
        table = self.tables.get(model, {})
        return [self._project(table[i], payload.get("fields")) for i in payload.get("ids", []) if i in table]

    def _create(self, model, payload):
        ids = []
        for vals in payload.get("vals_list", []):
            if model == "pos.order":
                vals = {"state": "draft", "amount_paid": 0, **vals}
                row = self.add(model, vals)
                row["pos_reference"] = f"Order 00001-001-{row['id']:04d}"
            else:
                row = self.add(model, vals)
            ids.append(row["id"])
        return ids

    def _write(self, model, payload):
        for i in payload.get("ids", []):
            self.tables[model][i].update(payload.get("vals") or {})
        return True

    def _add_payment(self, model, payload):
        data = payload["data"]
        order = self.tables[model][data["pos_order_id"]]
        order["amount_paid"] = order.get("amount_paid", 0) + data["amount"]
        self.add("pos.payment", dict(data))
        return True

    def _action_pos_order_paid(self, model, payload):
        for i in payload["ids"]:
            self.tables[model][i]["state"] = "paid"
        return True

    def _action_pos_order_invoice(self, model, payload):
        for i in payload["ids"]:
            self.tables[model][i]["state"] = "invoiced"
        return True


def seed_restaurant(odoo: FakeOdoo) -> FakeOdoo:
    """
    Restaurant type:
    - session POS 1 ouverte (config 1: moyens 1 Cash, 2 Stripe, 3 Stripe Online)
    - taxes: 1 = 10% exclue, 2 = 10% incluse
    - produits: 10 burger (100.00, taxe 1), 11 boisson (sans prix catalogue, taxe 2),
      20 menu combo (12.00, taxe 1), 21/22 composants du menu
    - articles de combo: 201 (produit 21, +2.00), 202 (produit 22, +1.50)
    """
    odoo.add("pos.payment.method", {"id": 1, "name": "Cash", "is_cash_count": True, "is_online_payment": False})
    odoo.add("pos.payment.method", {"id": 2, "name": "Stripe", "is_cash_count": False, "is_online_payment": False})
    odoo.add("pos.payment.method", {"id": 3, "name": "Stripe Online", "is_cash_count": False, "is_online_payment": True})
    odoo.add("pos.config", {"id": 1, "name": "Restaurant", "payment_method_ids": [1, 2, 3]})
    odoo.add("pos.session", {"id": 1, "state": "opened", "config_id": [1, "Restaurant"]})

    odoo.add("account.tax", {"id": 1, "amount": 10.0, "amount_type": "percent", "price_include": False})
    odoo.add("account.tax", {"id": 2, "amount": 10.0, "amount_type": "percent", "price_include": True})

    odoo.add("product.product", {"id": 10, "taxes_id": [1], "list_price": 100.0})
    odoo.add("product.product", {"id": 11, "taxes_id": [2], "list_price": 0.0})
    odoo.add("product.product", {"id": 20, "taxes_id": [1], "list_price": 12.0, "combo_ids": [5, 6]})
    odoo.add("product.product", {"id": 21, "taxes_id": [1], "list_price": 4.0})
    odoo.add("product.product", {"id": 22, "taxes_id": [1], "list_price": 3.0})
    odoo.add("product.combo.item", {"id": 201, "combo_id": [5, "Accompagnement"], "product_id": [21, "Frites"], "extra_price": 2.0})
    odoo.add("product.combo.item", {"id": 202, "combo_id": [6, "Boisson"], "product_id": [22, "Soda"], "extra_price": 1.5})

    odoo.add("res.currency", {"id": 2, "name": "USD"})
    odoo.add("res.company", {"id": 1, "currency_id": [2, "USD"]})
    odoo.add("payment.provider", {
        "id": 7,
        "code": "stripe",
        "state": "test",
        "stripe_secret_key": "sk_test_odoo",
        "stripe_publishable_key": "pk_test_odoo",
        "stripe_webhook_secret": WEBHOOK_SECRET,
    })
    return odoo


class StaticCredentialProvider(StripeCredentialProvider):
    def __init__(self, credentials: StripeCredentials):
        self.credentials = credentials

    def get(self) -> StripeCredentials:
        return self.credentials


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """En-tête Stripe-Signature valide: t=<ts>,v1=HMAC_SHA256(secret, "<ts>.<payload>")."""
    ts = int(timestamp if timestamp is not None else time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def make_event(metadata: Dict[str, Any], event_type: str = "payment_intent.succeeded", **intent) -> str:
    obj = {"id": "pi_123", "object": "payment_intent", "amount": 13200, "currency": "usd", "metadata": metadata}
    obj.update(intent)
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": obj}})


@pytest.fixture(autouse=True)
def fake_odoo(monkeypatch) -> FakeOdoo:
    """Aucun test ne parle au vrai Odoo: get_odoo() renvoie un Odoo en mémoire pré-rempli."""
    odoo = seed_restaurant(FakeOdoo())
    monkeypatch.setattr("backend.infra.odoo_client.get_odoo", lambda: odoo)
    return odoo


@pytest.fixture()
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider(StripeCredentials(
        secret_key="sk_test_123",
        publishable_key="pk_test_123",
        webhook_secret=WEBHOOK_SECRET,
    ))


@pytest.fixture()
def signer():
    return sign_payload


@pytest.fixture()
def event_factory():
    return make_event


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app, credentials) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_credential_provider] = lambda: credentials
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_credential_provider, None)
