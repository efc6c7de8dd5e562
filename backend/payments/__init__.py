"""
Module 'payments' (feature-first): point d'entrée public.
Réunit codec panier, conversion de devise, metadata Stripe, client Stripe, services et webhook.
"""

from .cart import (
    CartItem,
    ComboSelection,
    CompactCartRecord,
    MalformedCartRecordError,
    PayloadTooLargeError,
    encode,
    decode,
    decode_record,
)
from .currency import to_minor_unit, from_minor_unit, get_company_currency
from .metadata import make_metadata, extract_payment_intent, extract_customer
from .stripe_client import sync_customer, create_payment_intent as create_stripe_payment_intent, verify_event
from .credentials import StripeCredentials, PaymentConfigError, get_credential_provider
from .service import create_payment_intent, get_payment_config
from .webhook import handle_webhook, WebhookOutcome, WebhookState

__all__ = [
    # cart
    "CartItem",
    "ComboSelection",
    "CompactCartRecord",
    "MalformedCartRecordError",
    "PayloadTooLargeError",
    "encode",
    "decode",
    "decode_record",
    # currency
    "to_minor_unit",
    "from_minor_unit",
    "get_company_currency",
    # metadata
    "make_metadata",
    "extract_payment_intent",
    "extract_customer",
    # stripe
    "sync_customer",
    "create_stripe_payment_intent",
    "verify_event",
    "StripeCredentials",
    "PaymentConfigError",
    "get_credential_provider",
    # services
    "create_payment_intent",
    "get_payment_config",
    "handle_webhook",
    "WebhookOutcome",
    "WebhookState",
]
