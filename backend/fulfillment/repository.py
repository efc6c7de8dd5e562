"""
Accès Odoo pour la feature 'fulfillment'.
Chaque fonction = un appel distant; les OdooClientError remontent telles quelles au service.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

import backend.infra.odoo_client as odoo_client
from backend.infra import odoo_records as rec
from backend.fulfillment.models import CustomerContact, ExistingOrder, PaymentMethod, PosSession

logger = logging.getLogger(__name__)

PAYMENT_METHOD_FIELDS = ["id", "name", "is_online_payment", "is_cash_count"]

# module backend.fulfillment.repository
def find_open_session() -> Optional[PosSession]:
    rows = odoo_client.odoo_call("pos.session", "search_read", {
        "domain": [["state", "=", "opened"]],
        "fields": ["id", "config_id"],
        "limit": 1,
    }) or []
    if not rows:
        return None
    config_id = rec.relation_id(rows[0], "config_id")
    if config_id is None:
        logger.error("fulfillment.repository.find_open_session session=%s sans config_id", rows[0].get("id"))
        return None
    return PosSession(id=rows[0]["id"], config_id=config_id)


def config_payment_method_ids(config_id: int) -> List[int]:
    rows = odoo_client.odoo_call("pos.config", "read", {
        "ids": [config_id],
        "fields": ["payment_method_ids"],
    }) or []
    return rec.id_list(rows[0], "payment_method_ids") if rows else []


def search_payment_method(method_ids: List[int], domain: List[Any]) -> Optional[PaymentMethod]:
    """Premier moyen de paiement de la config qui satisfait `domain` (None si aucun)."""
    rows = odoo_client.odoo_call("pos.payment.method", "search_read", {
        "domain": [["id", "in", list(method_ids)], *domain],
        "fields": PAYMENT_METHOD_FIELDS,
        "limit": 1,
    }) or []
    if not rows:
        return None
    row = rows[0]
    return PaymentMethod(
        id=row["id"],
        name=rec.text(row, "name"),
        is_online_payment=rec.flag(row, "is_online_payment"),
        is_cash_count=rec.flag(row, "is_cash_count"),
    )


def find_partner_by_email(email: str) -> Optional[int]:
    rows = odoo_client.odoo_call("res.partner", "search_read", {
        "domain": [["email", "=", email]],
        "fields": ["id"],
        "limit": 1,
    }) or []
    return rows[0]["id"] if rows else None


def create_partner(customer: CustomerContact, country_id: Optional[int] = None) -> int:
    vals: Dict[str, Any] = {
        "name": customer.name or customer.email,
        "email": customer.email,
        "phone": customer.phone,
        "street": customer.street,
        "city": customer.city,
        "zip": customer.zip,
    }
    if country_id:
        vals["country_id"] = country_id
    ids = odoo_client.odoo_call("res.partner", "create", {"vals_list": [vals]}) or []
    if not ids:
        raise odoo_client.OdooClientError("Odoo n'a renvoyé aucun id pour res.partner.create", 502)
    return ids[0]


def find_order_by_name(name: str) -> Optional[ExistingOrder]:
    rows = odoo_client.odoo_call("pos.order", "search_read", {
        "domain": [["name", "=", name]],
        "fields": ["id", "state", "pos_reference", "amount_paid"],
        "limit": 1,
    }) or []
    if not rows:
        return None
    row = rows[0]
    return ExistingOrder(
        id=row["id"],
        state=rec.text(row, "state", "draft"),
        pos_reference=rec.text(row, "pos_reference"),
        amount_paid=rec.decimal(row, "amount_paid") or Decimal("0"),
    )


def create_order(vals: Dict[str, Any]) -> int:
    ids = odoo_client.odoo_call("pos.order", "create", {"vals_list": [vals]}) or []
    if not ids:
        raise odoo_client.OdooClientError("Odoo a renvoyé une liste d'ids vide pour pos.order.create", 502)
    return ids[0]


def add_payment(order_id: int, amount: Decimal, payment_method_id: int) -> None:
    odoo_client.odoo_call("pos.order", "add_payment", {
        "ids": [order_id],
        "data": {
            "pos_order_id": order_id,
            "amount": amount,
            "payment_method_id": payment_method_id,
        },
    })


def mark_paid(order_id: int) -> None:
    odoo_client.odoo_call("pos.order", "action_pos_order_paid", {"ids": [order_id]})


def generate_invoice(order_id: int) -> None:
    odoo_client.odoo_call("pos.order", "action_pos_order_invoice", {"ids": [order_id]})


def force_state(order_id: int, state: str) -> None:
    odoo_client.odoo_call("pos.order", "write", {"ids": [order_id], "vals": {"state": state}})


def read_order(order_id: int) -> Dict[str, str]:
    rows = odoo_client.odoo_call("pos.order", "read", {
        "ids": [order_id],
        "fields": ["pos_reference", "state"],
    }) or []
    row = rows[0] if rows else {}
    return {"pos_reference": rec.text(row, "pos_reference"), "state": rec.text(row, "state")}
