"""
Cas d'usage 'fulfillment': matérialise dans Odoo une commande POS payée à partir d'un paiement Stripe confirmé.
Étapes (chacune = appel Odoo, aucune relance automatique ici; les reprises passent par la re-livraison Stripe):
  0. Déduplication par référence de paiement (nom de commande déterministe) et reprise d'une commande partielle
  1. Session POS ouverte (sinon NoActiveSessionError: restaurant fermé)
  2. Moyen de paiement (chaîne de repli, voir payment_methods)
  3. Client: recherche par email, création sinon
  4. Recalcul autoritatif des lignes et taxes
  5. Création de la commande (draft) puis règlement (add_payment)
  6. Passage en « paid » puis facturation; si la facturation échoue: état forcé à « done » (succès dégradé)
  7. Relecture de la référence POS et de l'état final
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

import backend.infra.odoo_client as odoo_client
from backend.config import ONLINE_PAYMENT_BRAND, ORDER_SOURCE, PARTNER_COUNTRY_ID
from backend.fulfillment import repository
from backend.fulfillment.models import (
    CustomerContact,
    ExistingOrder,
    FulfillmentResult,
    NoActiveSessionError,
    OrderCreationError,
    PaymentMethodResolution,
)
from backend.fulfillment.payment_methods import resolve_payment_method
from backend.taxes import service as taxes_service
from backend.taxes.models import CartLine, OrderBreakdown, OrderBreakdownLine, ProductTaxLookup

logger = logging.getLogger(__name__)

ORDER_NAME_PREFIX = "Online Order - "
TERMINAL_STATES = ("invoiced", "done", "cancel")


def order_name_for(payment_ref: Optional[str]) -> str:
    """Nom de commande = clé de déduplication: une référence de paiement -> au plus une commande."""
    return f"{ORDER_NAME_PREFIX}{payment_ref or 'WEB'}"


def brand_for(payment_method: Optional[str]) -> str:
    return "Cash" if (payment_method or "").lower() == "cash" else ONLINE_PAYMENT_BRAND


def general_note(notes: Optional[str], order_type: Optional[str]) -> str:
    prefix = f"[{order_type}] " if order_type else ""
    return f"{prefix}{notes or ''}".strip()


def resolve_partner(customer: CustomerContact) -> int:
    """Idempotent par construction: recherche par email avant création."""
    if customer.email:
        partner_id = repository.find_partner_by_email(customer.email)
        if partner_id:
            logger.info("fulfillment.partner existant id=%s email=%s", partner_id, customer.email)
            return partner_id
    else:
        logger.warning("fulfillment.partner email absent: création d'un partenaire sans déduplication")
    partner_id = repository.create_partner(customer, PARTNER_COUNTRY_ID)
    logger.info("fulfillment.partner créé id=%s email=%s", partner_id, customer.email)
    return partner_id


def _line_vals(line: OrderBreakdownLine) -> Dict[str, Any]:
    vals: Dict[str, Any] = {
        "product_id": line.product_id,
        "qty": line.qty,
        "price_unit": line.price_unit,
        "price_subtotal": line.price_subtotal,
        "price_subtotal_incl": line.price_subtotal_incl,
        "tax_ids": [[6, 0, list(line.tax_ids)]] if line.tax_ids else [],
        "customer_note": line.customer_note or "",
    }
    if line.combo_item_id is not None:
        vals["combo_item_id"] = line.combo_item_id
    return vals


def build_order_lines(breakdown: OrderBreakdown) -> List[List[Any]]:
    """
    Commandes x2many [0, 0, vals]. Les composants de combo sont imbriqués dans `combo_line_ids`
    de la dernière ligne parent du même produit (ils la suivent directement dans le panier décodé).
    """
    commands: List[List[Any]] = []
    parents: List[Dict[str, Any]] = []
    for line in breakdown.lines:
        vals = _line_vals(line)
        if line.combo_parent_id is not None:
            parent = next((p for p in reversed(parents) if p["product_id"] == line.combo_parent_id), None)
            if parent is not None:
                parent.setdefault("combo_line_ids", []).append([0, 0, vals])
                continue
            logger.warning("fulfillment.lines parent combo %s introuvable, ligne à plat", line.combo_parent_id)
        commands.append([0, 0, vals])
        parents.append(vals)
    return commands


def build_order_vals(
    *,
    name: str,
    session_id: int,
    partner_id: int,
    breakdown: OrderBreakdown,
    notes: Optional[str],
    order_type: Optional[str],
) -> Dict[str, Any]:
    return {
        "name": name,
        "session_id": session_id,
        "partner_id": partner_id,
        "lines": build_order_lines(breakdown),
        "to_invoice": True,
        "amount_tax": breakdown.amount_tax,
        "amount_total": breakdown.amount_total,
        "amount_paid": 0,
        "amount_return": 0,
        "source": ORDER_SOURCE,
        "general_customer_note": general_note(notes, order_type),
    }


def _settlement_amount(breakdown_total: Optional[Decimal], charged_amount: Optional[Decimal]) -> Decimal:
    if charged_amount is None:
        return breakdown_total or Decimal("0")
    if breakdown_total is not None and breakdown_total != charged_amount:
        logger.warning(
            "fulfillment.amount_mismatch charged=%s computed=%s: règlement du montant encaissé",
            charged_amount, breakdown_total,
        )
    return charged_amount


def _resolve_payment(brand: str) -> tuple:
    session = repository.find_open_session()
    if session is None:
        logger.error("fulfillment.session aucune session POS ouverte (restaurant fermé ?)")
        raise NoActiveSessionError("Aucune session POS ouverte. Le restaurant est peut-être fermé.")
    method_ids = repository.config_payment_method_ids(session.config_id)
    resolution = resolve_payment_method(method_ids, brand)
    logger.info(
        "fulfillment.payment_method session=%s method=%s (id=%s) strategy=%s",
        session.id, resolution.method.name, resolution.method.id, resolution.strategy,
    )
    return session, resolution


def _finalize(order_id: int, already_paid: bool = False) -> Dict[str, Any]:
    """
    Étapes 6-7: paid -> invoiced, repli « done » si la facturation échoue.
    Si le repli échoue aussi, l'erreur Odoo remonte: la commande reste paid et sera reprise.
    """
    if not already_paid:
        repository.mark_paid(order_id)
        logger.info("fulfillment.paid order=%s", order_id)

    degraded = False
    try:
        repository.generate_invoice(order_id)
        logger.info("fulfillment.invoiced order=%s", order_id)
    except odoo_client.OdooClientError as e:
        degraded = True
        logger.warning("fulfillment.invoice échec order=%s (%s): passage forcé à l'état done", order_id, e)
        try:
            repository.force_state(order_id, "done")
        except odoo_client.OdooClientError:
            # Commande laissée à l'état paid: la prochaine livraison reprend à la facturation
            logger.exception("fulfillment.force_done échec order=%s", order_id)
            raise

    final = repository.read_order(order_id)
    return {"degraded": degraded, **final}


def _resume(
    existing: ExistingOrder,
    lines: List[CartLine],
    payment_ref: str,
    charged_amount: Optional[Decimal],
    brand: str,
    catalog: Optional[ProductTaxLookup],
) -> FulfillmentResult:
    logger.info(
        "fulfillment.dedupe commande existante order=%s state=%s payment_ref=%s",
        existing.id, existing.state, payment_ref,
    )
    if existing.state in TERMINAL_STATES:
        return FulfillmentResult(
            order_id=existing.id,
            pos_reference=existing.pos_reference or f"Order #{existing.id}",
            state=existing.state,
            reused=True,
        )

    method_name = None
    if existing.state == "draft" and existing.amount_paid <= 0:
        # Commande créée mais règlement jamais attaché: on le rattache avant de finaliser
        _, resolution = _resolve_payment(brand)
        method_name = resolution.method.name
        breakdown_total = None
        if charged_amount is None:
            breakdown_total = taxes_service.compute(lines, catalog).amount_total
        amount = _settlement_amount(breakdown_total, charged_amount)
        repository.add_payment(existing.id, amount, resolution.method.id)
        logger.info("fulfillment.resume règlement attaché order=%s amount=%s", existing.id, amount)

    final = _finalize(existing.id, already_paid=existing.state == "paid")
    return FulfillmentResult(
        order_id=existing.id,
        pos_reference=final["pos_reference"] or f"Order #{existing.id}",
        state=final["state"],
        degraded=final["degraded"],
        reused=True,
        payment_method=method_name,
    )


def fulfill(
    lines: List[CartLine],
    customer: CustomerContact,
    notes: Optional[str] = None,
    order_type: Optional[str] = None,
    payment_ref: Optional[str] = None,
    *,
    charged_amount: Optional[Decimal] = None,
    payment_method: Optional[str] = None,
    catalog: Optional[ProductTaxLookup] = None,
) -> FulfillmentResult:
    """
    Crée (ou reprend) la commande POS payée correspondant à `payment_ref`.
    - Rejouer l'appel avec la même référence ne crée jamais une seconde commande.
    - Lève NoActiveSessionError, NoPaymentMethodError, OrderCreationError, ou OdooClientError (transport).
    """
    brand = brand_for(payment_method)
    name = order_name_for(payment_ref)
    logger.info("fulfillment.start payment_ref=%s lines=%s email=%s", payment_ref, len(lines), customer.email)

    if payment_ref:
        existing = repository.find_order_by_name(name)
        if existing is not None:
            return _resume(existing, lines, payment_ref, charged_amount, brand, catalog)
    else:
        logger.warning("fulfillment.dedupe pas de référence de paiement: aucune déduplication possible")

    session, resolution = _resolve_payment(brand)
    partner_id = resolve_partner(customer)

    breakdown = taxes_service.compute(lines, catalog)
    logger.info("fulfillment.totals total=%s tax=%s", breakdown.amount_total, breakdown.amount_tax)

    vals = build_order_vals(
        name=name,
        session_id=session.id,
        partner_id=partner_id,
        breakdown=breakdown,
        notes=notes,
        order_type=order_type,
    )
    try:
        order_id = repository.create_order(vals)
    except odoo_client.OdooClientError as e:
        logger.exception("fulfillment.create_order échec partner=%s session=%s", partner_id, session.id)
        raise OrderCreationError(f"Création de la commande POS impossible: {e}") from e
    logger.info("fulfillment.order créée order=%s partner=%s", order_id, partner_id)

    amount = _settlement_amount(breakdown.amount_total, charged_amount)
    try:
        repository.add_payment(order_id, amount, resolution.method.id)
    except odoo_client.OdooClientError:
        # Commande en draft sans règlement: reprise à la prochaine livraison du webhook (déduplication)
        logger.exception("fulfillment.add_payment échec order=%s amount=%s", order_id, amount)
        raise
    logger.info("fulfillment.payment order=%s amount=%s method=%s", order_id, amount, resolution.method.id)

    final = _finalize(order_id)
    degraded = final["degraded"] or resolution.degraded
    logger.info(
        "fulfillment.done order=%s state=%s degraded=%s", order_id, final["state"], degraded,
    )
    return FulfillmentResult(
        order_id=order_id,
        pos_reference=final["pos_reference"] or f"Order #{order_id}",
        state=final["state"],
        degraded=degraded,
        payment_method=resolution.method.name,
    )
