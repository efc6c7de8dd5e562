"""
Sérialisation/désérialisation des métadonnées Stripe du PaymentIntent
(coordonnées client, type de commande, notes, panier compact).
"""
from typing import Any, Dict, Optional
import logging

from backend.fulfillment.models import CustomerContact
from backend.payments.cart import MAX_RECORD_BYTES, CompactCartRecord

logger = logging.getLogger(__name__)

LINE_ITEMS_KEY = "line_items"
CONTACT_KEYS = {
    "customer_name": "name",
    "customer_email": "email",
    "customer_phone": "phone",
    "street": "street",
    "city": "city",
    "zip": "zip",
}

# module backend.payments.metadata
def _clip(key: str, value: Optional[str]) -> str:
    value = value or ""
    if len(value) > MAX_RECORD_BYTES:
        logger.warning("payments.metadata %s tronqué (%s caractères)", key, len(value))
        return value[:MAX_RECORD_BYTES]
    return value


def make_metadata(
    *,
    customer: CustomerContact,
    record: CompactCartRecord,
    order_type: Optional[str] = None,
    notes: Optional[str] = None,
    cart_id: Optional[str] = None,
) -> Dict[str, str]:
    """
    Métadonnées attachées au PaymentIntent.
    - line_items: panier compact (déjà borné par encode(), jamais tronqué ici)
    - champs texte libres bornés à 500 caractères (limite Stripe par valeur)
    """
    meta = {
        "cart_id": _clip("cart_id", cart_id),
        "order_type": _clip("order_type", order_type or "delivery"),
        "notes": _clip("notes", notes),
        LINE_ITEMS_KEY: record.serialize(),
    }
    for meta_key, attr in CONTACT_KEYS.items():
        meta[meta_key] = _clip(meta_key, getattr(customer, attr))
    return meta


def extract_payment_intent(event: Dict[str, Any]) -> Dict[str, Any]:
    """event.data.object (le PaymentIntent) ou {}."""
    if not isinstance(event, dict):
        return {}
    return ((event.get("data") or {}).get("object") or {})


def extract_customer(metadata: Dict[str, Any]) -> CustomerContact:
    meta = metadata or {}
    return CustomerContact(**{attr: str(meta.get(key) or "") for key, attr in CONTACT_KEYS.items()})
