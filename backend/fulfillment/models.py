"""Modèles et erreurs de la feature 'fulfillment' (création de la commande POS dans Odoo)."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


class FulfillmentError(Exception):
    """Base: la commande n'a pas pu être matérialisée; Stripe re-livrera l'événement."""


class NoActiveSessionError(FulfillmentError):
    """Aucune session POS ouverte: restaurant fermé (condition métier, pas un bug)."""


class NoPaymentMethodError(FulfillmentError):
    pass


class OrderCreationError(FulfillmentError):
    pass


@dataclass(frozen=True)
class CustomerContact:
    name: str
    email: str
    phone: str = ""
    street: str = ""
    city: str = ""
    zip: str = ""


@dataclass(frozen=True)
class PosSession:
    id: int
    config_id: int


@dataclass(frozen=True)
class PaymentMethod:
    id: int
    name: str
    is_online_payment: bool = False
    is_cash_count: bool = False


@dataclass(frozen=True)
class PaymentMethodResolution:
    method: PaymentMethod
    strategy: str
    degraded: bool = False


@dataclass(frozen=True)
class ExistingOrder:
    id: int
    state: str
    pos_reference: str = ""
    amount_paid: Decimal = Decimal("0")


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: int
    pos_reference: str
    state: str
    degraded: bool = False
    reused: bool = False
    payment_method: Optional[str] = None
