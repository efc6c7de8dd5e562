"""
Conversion montant décimal <-> unité minimale Stripe (centimes, ou unité pour les devises sans décimale).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union
import logging

import backend.infra.odoo_client as odoo_client
from backend.infra import odoo_records as rec
from backend.config import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)

# Devises sans décimale chez Stripe: https://stripe.com/docs/currencies#zero-decimal
ZERO_DECIMAL_CURRENCIES = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
})

Amount = Union[Decimal, int, float, str]


def is_zero_decimal(currency: str) -> bool:
    return (currency or "").strip().lower() in ZERO_DECIMAL_CURRENCIES


def minor_unit_factor(currency: str) -> int:
    return 1 if is_zero_decimal(currency) else 100


def to_minor_unit(amount: Amount, currency: str) -> int:
    """12.34 'eur' -> 1234 ; 1500 'jpy' -> 1500. Arrondi au plus proche (demi vers le haut)."""
    value = Decimal(str(amount)) * minor_unit_factor(currency)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_unit(units: int, currency: str) -> Decimal:
    """1234 'eur' -> Decimal('12.34') ; 1500 'jpy' -> Decimal('1500')."""
    factor = minor_unit_factor(currency)
    if factor == 1:
        return Decimal(int(units))
    return (Decimal(int(units)) / factor).quantize(Decimal("0.01"))


def get_company_currency() -> str:
    """
    Code devise (minuscules) de la société Odoo: res.company.currency_id -> res.currency.name.
    - Repli sur DEFAULT_CURRENCY si Odoo est injoignable ou incomplet (journalisé).
    """
    try:
        companies = odoo_client.odoo_call("res.company", "search_read", {
            "domain": [],
            "fields": ["currency_id"],
            "limit": 1,
        }) or []
        currency_id = rec.relation_id(companies[0], "currency_id") if companies else None
        if currency_id:
            currencies = odoo_client.odoo_call("res.currency", "read", {
                "ids": [currency_id],
                "fields": ["name"],
            }) or []
            name = rec.text(currencies[0], "name") if currencies else ""
            if name:
                return name.lower()
    except odoo_client.OdooClientError:
        logger.exception("payments.currency.get_company_currency failed, fallback=%s", DEFAULT_CURRENCY)
    return DEFAULT_CURRENCY
