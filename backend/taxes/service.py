"""
Calcul autoritatif des totaux de commande (taxes incluses/exclues), côté serveur.
Règles:
- Prix unitaire: prix catalogue Odoo d'abord; à défaut, le prix fourni par le client (indicatif).
  Si on retombe sur le prix client et qu'une taxe exclue s'applique, ce prix est considéré TTC
  et ramené HT: prix / (1 + somme des taux exclus), arrondi à 2 décimales.
- Composant de combo: toujours le supplément de l'article de combo lu dans Odoo. L'article doit
  exister, désigner le produit de la ligne et appartenir à un combo du produit parent; sinon
  UpstreamLookupError (jamais de repli sur le prix déclaré).
- Taxes incluses d'abord (réduction successive de la base HT), puis taxes exclues sur le sous-total d'origine.
- Taxe et sous-total HT arrondis à la ligne (2 décimales) avant sommation: les lignes créées
  dans Odoo se réconcilient ainsi avec le total affiché (écart toléré: 0,01 par ligne).
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging

from backend.taxes.models import (
    CartLine,
    ComboItemInfo,
    OrderBreakdown,
    OrderBreakdownLine,
    ProductTaxInfo,
    ProductTaxLookup,
    TaxRule,
    UpstreamLookupError,
    round_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")


def combo_item_price(
    line: CartLine,
    combo_items: Dict[int, ComboItemInfo],
    products: Dict[int, ProductTaxInfo],
) -> Decimal:
    """Supplément serveur d'un composant de combo, après contrôle de l'article déclaré."""
    if line.combo_item_id is None:
        raise UpstreamLookupError(f"Composant de combo sans article (produit {line.product_id})")
    item = combo_items.get(line.combo_item_id)
    if item is None:
        raise UpstreamLookupError(f"Article de combo introuvable: {line.combo_item_id}")
    if item.product_id != line.product_id:
        raise UpstreamLookupError(
            f"Article de combo {item.id}: produit {item.product_id} attendu, {line.product_id} reçu"
        )
    parent = products.get(line.combo_parent_id) if line.combo_parent_id is not None else None
    if parent is None or item.combo_id not in parent.combo_ids:
        raise UpstreamLookupError(
            f"Article de combo {item.id} hors des combos du produit {line.combo_parent_id}"
        )
    return item.extra_price


def resolve_unit_price(
    line: CartLine,
    info: ProductTaxInfo,
    exclusive: List[TaxRule],
    server_price: Optional[Decimal] = None,
) -> Decimal:
    if server_price is None and info.list_price is not None and info.list_price > 0:
        server_price = info.list_price
    if server_price is not None:
        if line.is_combo_child and line.unit_price != server_price:
            logger.warning(
                "taxes.price_mismatch product_id=%s combo_item_id=%s declared=%s server=%s",
                line.product_id, line.combo_item_id, line.unit_price, server_price,
            )
        return server_price

    price = Decimal(line.unit_price or 0)
    excluded_rate = sum((t.fraction for t in exclusive), ZERO)
    if excluded_rate > 0:
        price = round_money(price / (ONE + excluded_rate))
    return price


def compute_line(
    line: CartLine,
    info: ProductTaxInfo,
    rules: List[TaxRule],
    server_price: Optional[Decimal] = None,
) -> OrderBreakdownLine:
    inclusive = [t for t in rules if t.inclusive]
    exclusive = [t for t in rules if not t.inclusive]

    price_unit = resolve_unit_price(line, info, exclusive, server_price)
    subtotal = price_unit * line.quantity

    price_excl = subtotal
    line_tax = ZERO
    for tax in inclusive:
        price_excl = price_excl / (ONE + tax.fraction)
        line_tax += price_excl * tax.fraction
    for tax in exclusive:
        line_tax += subtotal * tax.fraction

    line_tax = round_money(line_tax)
    price_excl = round_money(price_excl)

    return OrderBreakdownLine(
        product_id=line.product_id,
        qty=line.quantity,
        price_unit=price_unit,
        price_subtotal=price_excl,
        price_subtotal_incl=price_excl + line_tax,
        tax_ids=tuple(t.id for t in rules),
        customer_note=line.notes or "",
        combo_parent_id=line.combo_parent_id,
        combo_line_id=line.combo_line_id,
        combo_item_id=line.combo_item_id,
    )


def _ordered_unique(values: Iterable[int]) -> List[int]:
    return sorted(set(values))


def compute(lines: List[CartLine], catalog: Optional[ProductTaxLookup] = None) -> OrderBreakdown:
    """
    Calcule le détail (lignes + totaux) d'un panier.
    - catalog: capacité de lecture produits/taxes (Odoo par défaut).
    - Lève UpstreamLookupError si un produit, une taxe ou un article de combo est introuvable ou incohérent.
    """
    if catalog is None:
        from backend.taxes.repository import OdooProductTaxLookup
        catalog = OdooProductTaxLookup()

    product_ids = _ordered_unique(
        [line.product_id for line in lines]
        + [line.combo_parent_id for line in lines if line.combo_parent_id is not None]
    )
    products = catalog.products(product_ids)
    missing_products = [pid for pid in product_ids if pid not in products]
    if missing_products:
        raise UpstreamLookupError(f"Produits introuvables: {missing_products}")

    tax_ids = _ordered_unique(tid for info in products.values() for tid in info.tax_ids)
    taxes = catalog.taxes(tax_ids)
    missing_taxes = [tid for tid in tax_ids if tid not in taxes]
    if missing_taxes:
        raise UpstreamLookupError(f"Taxes introuvables: {missing_taxes}")

    combo_item_ids = _ordered_unique(line.combo_item_id for line in lines if line.combo_item_id is not None)
    combo_items = catalog.combo_items(combo_item_ids) if combo_item_ids else {}

    computed: List[OrderBreakdownLine] = []
    for line in lines:
        info = products[line.product_id]
        rules = [taxes[tid] for tid in info.tax_ids]
        server_price = combo_item_price(line, combo_items, products) if line.is_combo_child else None
        computed.append(compute_line(line, info, rules, server_price))

    amount_tax = sum((l.tax_amount for l in computed), ZERO)
    amount_total = sum((l.price_subtotal_incl for l in computed), ZERO)
    return OrderBreakdown(
        lines=tuple(computed),
        amount_tax=round_money(amount_tax),
        amount_total=round_money(amount_total),
    )
