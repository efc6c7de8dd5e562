"""
Réception des webhooks Stripe: vérification, décodage, déclenchement du fulfillment.

Cycle d'une requête:
    RECEIVED -> VERIFIED -> DECODED -> DISPATCHED -> ACKED
    RECEIVED -> REJECTED (signature absente/invalide: 400, Stripe ne relivre pas)
    DECODED  -> REJECTED (metadata illisible: 200, une re-livraison ne corrigerait rien)
Codes de retour:
    200: traité, ignoré (autre type d'événement) ou rejeté définitivement
    400: signature invérifiable
    500: erreur temporaire (Odoo, config Stripe, fulfillment): Stripe relivrera plus tard
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging

from . import cart as cart_codec
from . import currency
from . import metadata as meta
from . import stripe_client
from .credentials import OdooStripeCredentialProvider, PaymentConfigError, StripeCredentialProvider
from backend.fulfillment import service as fulfillment_service

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class WebhookState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    DECODED = "decoded"
    DISPATCHED = "dispatched"
    ACKED = "acked"
    REJECTED = "rejected"


@dataclass
class WebhookOutcome:
    status_code: int
    body: Dict[str, Any]
    trail: List[WebhookState] = field(default_factory=list)

    @property
    def state(self) -> WebhookState:
        return self.trail[-1]


def _charged_amount(intent: Dict[str, Any]) -> Optional[Decimal]:
    units = intent.get("amount_received") or intent.get("amount")
    if not isinstance(units, int):
        return None
    code = (intent.get("currency") or "").lower() or currency.get_company_currency()
    return currency.from_minor_unit(units, code)


def handle_webhook(
    payload: Union[bytes, str],
    sig_header: Optional[str],
    credentials: Optional[StripeCredentialProvider] = None,
) -> WebhookOutcome:
    trail = [WebhookState.RECEIVED]

    def done(status_code: int, body: Dict[str, Any], state: Optional[WebhookState] = None) -> WebhookOutcome:
        if state is not None:
            trail.append(state)
        return WebhookOutcome(status_code=status_code, body=body, trail=trail)

    logger.info("payments.webhook reçu bytes=%s signature=%s", len(payload or b""), bool(sig_header))

    if not sig_header:
        logger.error("payments.webhook en-tête Stripe-Signature absent")
        return done(400, {"error": "No signature provided"}, WebhookState.REJECTED)

    try:
        webhook_secret = (credentials or OdooStripeCredentialProvider()).get().require_webhook_secret()
    except PaymentConfigError as e:
        logger.error("payments.webhook configuration Stripe indisponible: %s", e)
        return done(500, {"error": "Config error"})

    try:
        event = stripe_client.verify_event(payload, sig_header, webhook_secret)
    except stripe_client.SignatureVerificationError as e:
        logger.error("payments.webhook signature invalide: %s", e)
        return done(400, {"error": "Signature verification failed"}, WebhookState.REJECTED)
    except ValueError as e:
        logger.error("payments.webhook body illisible: %s", e)
        return done(400, {"error": "Invalid payload"}, WebhookState.REJECTED)
    trail.append(WebhookState.VERIFIED)

    event_type = event.get("type")
    logger.info("payments.webhook event=%s type=%s", event.get("id"), event_type)
    if event_type != PAYMENT_SUCCEEDED:
        logger.info("payments.webhook type ignoré: %s", event_type)
        return done(200, {"received": True, "status": "ignored"}, WebhookState.ACKED)

    intent = meta.extract_payment_intent(event)
    payment_ref = intent.get("id")
    metadata = intent.get("metadata") or {}
    try:
        lines = cart_codec.decode_record(metadata.get(meta.LINE_ITEMS_KEY))
    except (cart_codec.MalformedCartRecordError, ValueError) as e:
        # Non rejouable: intervention manuelle (paiement encaissé sans commande Odoo)
        logger.critical(
            "payments.webhook FATAL metadata inexploitable intent=%s: %s (commande à saisir manuellement)",
            payment_ref, e,
        )
        return done(200, {"received": True, "status": "rejected"}, WebhookState.REJECTED)
    trail.append(WebhookState.DECODED)

    customer = meta.extract_customer(metadata)
    charged = _charged_amount(intent)
    logger.info(
        "payments.webhook intent=%s amount=%s lines=%s email=%s",
        payment_ref, charged, len(lines), customer.email,
    )

    trail.append(WebhookState.DISPATCHED)
    try:
        result = fulfillment_service.fulfill(
            lines,
            customer,
            notes=metadata.get("notes") or "",
            order_type=metadata.get("order_type") or "delivery",
            payment_ref=payment_ref,
            charged_amount=charged,
        )
    except Exception as e:
        logger.exception("payments.webhook fulfillment échec intent=%s", payment_ref)
        return done(500, {"error": f"Fulfillment failed: {e}"})

    logger.info(
        "payments.webhook fulfillment ok intent=%s order=%s ref=%s degraded=%s reused=%s",
        payment_ref, result.order_id, result.pos_reference, result.degraded, result.reused,
    )
    return done(200, {
        "received": True,
        "status": "ok",
        "order_id": result.order_id,
        "pos_reference": result.pos_reference,
        "state": result.state,
        "degraded": result.degraded,
        "reused": result.reused,
    }, WebhookState.ACKED)
