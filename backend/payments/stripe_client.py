"""
Adaptateur Stripe: centralise les appels au SDK.
La clé secrète est passée à chaque appel (api_key=...), jamais posée sur stripe.api_key:
les clés viennent d'Odoo et peuvent changer entre deux requêtes.
"""
import json
from typing import Any, Dict, Optional, Union

import stripe

from backend.config import STRIPE_WEBHOOK_TOLERANCE
from backend.fulfillment.models import CustomerContact

SignatureVerificationError = stripe.SignatureVerificationError

# module backend.payments.stripe_client
def _address(customer: CustomerContact) -> Dict[str, str]:
    return {
        "line1": customer.street or "",
        "city": customer.city or "",
        "postal_code": customer.zip or "",
    }


def sync_customer(api_key: str, customer: CustomerContact) -> str:
    """
    Un client Stripe par email: mise à jour s'il existe, création sinon.
    Retour: identifiant client Stripe (cus_...).
    """
    existing = stripe.Customer.list(api_key=api_key, email=customer.email, limit=1)
    if existing.data:
        customer_id = existing.data[0].id
        stripe.Customer.modify(
            customer_id,
            api_key=api_key,
            name=customer.name,
            phone=customer.phone or None,
            address=_address(customer),
        )
        return customer_id
    created = stripe.Customer.create(
        api_key=api_key,
        email=customer.email,
        name=customer.name,
        phone=customer.phone or None,
        address=_address(customer),
    )
    return created.id


def create_payment_intent(
    api_key: str,
    *,
    amount: int,
    currency: str,
    metadata: Dict[str, str],
    customer_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent (moyens de paiement automatiques).
    Retour: {"id", "client_secret", "amount", "currency"}.
    """
    params: Dict[str, Any] = {
        "amount": amount,
        "currency": currency,
        "automatic_payment_methods": {"enabled": True},
        "metadata": metadata,
    }
    if customer_id:
        params["customer"] = customer_id
    intent = stripe.PaymentIntent.create(api_key=api_key, **params)
    return {
        "id": intent.id,
        "client_secret": intent.client_secret,
        "amount": intent.amount,
        "currency": intent.currency,
    }


def verify_event(payload: Union[bytes, str], sig_header: str, webhook_secret: str) -> Dict[str, Any]:
    """
    Valide la signature Stripe-Signature du body brut puis retourne l'événement (dict).
    - Lève SignatureVerificationError si la signature est invalide ou trop ancienne.
    - Lève ValueError si le body n'est pas du JSON.
    """
    # La signature porte sur le texte exact du body: décoder avant vérification, jamais re-sérialiser
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(payload, sig_header, webhook_secret, STRIPE_WEBHOOK_TOLERANCE)
    return json.loads(payload)
