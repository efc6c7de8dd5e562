"""
Résolution du moyen de paiement POS, tolérante aux dérives de configuration Odoo.
Stratégies évaluées dans l'ordre; chacune renvoie un moyen de paiement ou None (« essayer la suivante »):
  1. brand_match   : moyen non « online » dont le nom correspond à la marque (ex: Stripe)
  2. non_cash      : n'importe quel moyen non espèces et non « online »
  3. any_method    : n'importe quel moyen configuré
Les moyens « online » d'Odoo exigent une transaction comptable: add_payment les refuse.
La commande est déjà payée côté Stripe: mieux vaut un libellé approximatif qu'un blocage.
"""
from typing import Callable, List, Optional, Tuple
import logging

from backend.fulfillment import repository
from backend.fulfillment.models import NoPaymentMethodError, PaymentMethod, PaymentMethodResolution

logger = logging.getLogger(__name__)

Strategy = Callable[[List[int], str], Optional[PaymentMethod]]


def brand_match(method_ids: List[int], brand: str) -> Optional[PaymentMethod]:
    return repository.search_payment_method(method_ids, [
        ["name", "ilike", brand],
        ["is_online_payment", "=", False],
    ])


def non_cash(method_ids: List[int], brand: str) -> Optional[PaymentMethod]:
    return repository.search_payment_method(method_ids, [
        ["is_cash_count", "=", False],
        ["is_online_payment", "=", False],
    ])


def any_method(method_ids: List[int], brand: str) -> Optional[PaymentMethod]:
    return repository.search_payment_method(method_ids, [])


STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("brand_match", brand_match),
    ("non_cash", non_cash),
    ("any_method", any_method),
)


def resolve_payment_method(method_ids: List[int], brand: str, strategies=STRATEGIES) -> PaymentMethodResolution:
    """
    Applique les stratégies dans l'ordre.
    - Résultat « dégradé » si la première stratégie n'a pas abouti (journalisé en warning).
    - NoPaymentMethodError si aucune ne trouve de moyen de paiement.
    """
    if not method_ids:
        raise NoPaymentMethodError("La configuration POS ne déclare aucun moyen de paiement.")
    for index, (name, strategy) in enumerate(strategies):
        method = strategy(method_ids, brand)
        if method is None:
            logger.info("fulfillment.payment_method strategy=%s brand=%s: aucun résultat", name, brand)
            continue
        degraded = index > 0
        if degraded:
            logger.warning(
                "fulfillment.payment_method repli strategy=%s method=%s (id=%s) pour brand=%s",
                name, method.name, method.id, brand,
            )
        return PaymentMethodResolution(method=method, strategy=name, degraded=degraded)
    logger.error("fulfillment.payment_method aucun moyen de paiement utilisable ids=%s", method_ids)
    raise NoPaymentMethodError("Aucun moyen de paiement POS utilisable.")
