"""
Cas d'usage 'payments': prépare l'autorisation de paiement Stripe à partir du panier.
Orchestre cart (codec), taxes (total autoritatif), currency, credentials et stripe_client.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException

from . import cart as cart_codec
from . import currency
from . import metadata as meta
from . import stripe_client
from .credentials import OdooStripeCredentialProvider, StripeCredentialProvider
from backend.fulfillment.models import CustomerContact
from backend.taxes import service as taxes_service
from backend.taxes.models import ProductTaxLookup

logger = logging.getLogger(__name__)


def create_payment_intent(
    *,
    items: List[cart_codec.CartItem],
    customer: CustomerContact,
    order_type: Optional[str] = None,
    notes: Optional[str] = None,
    cart_id: Optional[str] = None,
    credentials: Optional[StripeCredentialProvider] = None,
    catalog: Optional[ProductTaxLookup] = None,
) -> Dict[str, Any]:
    """
    Calcule le total serveur et crée le PaymentIntent portant le panier compact.
    Étapes:
      1) Panier non vide (HTTPException 400 sinon)
      2) Clés Stripe lues dans Odoo (PaymentConfigError si absentes)
      3) Encodage compact du panier (PayloadTooLargeError avant tout mouvement d'argent)
      4) Total autoritatif sur les lignes décodées: mêmes lignes qu'au moment du fulfillment
      5) Devise société, conversion en unité minimale
      6) Synchronisation du client Stripe puis création du PaymentIntent
    Retour: {"client_secret", "provider", "payment_intent_id", "amount", "currency"}
    """
    if not items:
        raise HTTPException(status_code=400, detail="Panier vide")

    provider = credentials or OdooStripeCredentialProvider()
    secret_key = provider.get().require_secret_key()

    record = cart_codec.encode(items)
    lines = cart_codec.decode(record)
    breakdown = taxes_service.compute(lines, catalog)

    currency_code = currency.get_company_currency()
    amount = currency.to_minor_unit(breakdown.amount_total, currency_code)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Montant de commande nul")

    customer_id = stripe_client.sync_customer(secret_key, customer)
    metadata = meta.make_metadata(
        customer=customer,
        record=record,
        order_type=order_type,
        notes=notes,
        cart_id=cart_id,
    )
    intent = stripe_client.create_payment_intent(
        secret_key,
        amount=amount,
        currency=currency_code,
        metadata=metadata,
        customer_id=customer_id,
    )
    logger.info(
        "payments.create intent=%s amount=%s currency=%s items=%s record_bytes=%s",
        intent.get("id"), amount, currency_code, len(items), record.size,
    )
    return {
        "client_secret": intent.get("client_secret"),
        "provider": "stripe",
        "payment_intent_id": intent.get("id"),
        "amount": amount,
        "currency": currency_code,
    }


def get_payment_config(credentials: Optional[StripeCredentialProvider] = None) -> Dict[str, str]:
    """Configuration publique pour la vitrine: clé publiable + devise."""
    provider = credentials or OdooStripeCredentialProvider()
    public_key = provider.get().require_publishable_key()
    return {
        "provider": "stripe",
        "public_key": public_key,
        "currency": currency.get_company_currency(),
    }
