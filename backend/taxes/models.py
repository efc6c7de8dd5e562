# module backend.taxes.models
"""Types internes du calcul de taxes (aucun accès Odoo ici)."""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class UpstreamLookupError(Exception):
    """Produits ou taxes introuvables côté ERP: aucun calcul partiel n'est renvoyé."""


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price: Decimal = Decimal("0")
    notes: str = ""
    combo_parent_id: Optional[int] = None
    combo_line_id: Optional[int] = None
    combo_item_id: Optional[int] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"quantité invalide pour le produit {self.product_id}: {self.quantity}")
        if self.unit_price is not None and self.unit_price < 0:
            raise ValueError(f"prix unitaire négatif pour le produit {self.product_id}: {self.unit_price}")

    @property
    def is_combo_child(self) -> bool:
        return self.combo_parent_id is not None or self.combo_item_id is not None


@dataclass(frozen=True)
class TaxRule:
    id: int
    rate: Decimal
    inclusive: bool

    @property
    def fraction(self) -> Decimal:
        return self.rate / 100


@dataclass(frozen=True)
class ProductTaxInfo:
    product_id: int
    tax_ids: Tuple[int, ...] = ()
    list_price: Optional[Decimal] = None
    combo_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ComboItemInfo:
    """Article de combo côté serveur: le produit qu'il désigne, son combo et son supplément."""
    id: int
    product_id: Optional[int]
    combo_id: Optional[int]
    extra_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class OrderBreakdownLine:
    product_id: int
    qty: int
    price_unit: Decimal
    price_subtotal: Decimal
    price_subtotal_incl: Decimal
    tax_ids: Tuple[int, ...]
    customer_note: str = ""
    combo_parent_id: Optional[int] = None
    combo_line_id: Optional[int] = None
    combo_item_id: Optional[int] = None

    @property
    def tax_amount(self) -> Decimal:
        return self.price_subtotal_incl - self.price_subtotal


@dataclass(frozen=True)
class OrderBreakdown:
    lines: Tuple[OrderBreakdownLine, ...]
    amount_tax: Decimal
    amount_total: Decimal


class ProductTaxLookup:
    """
    Capacité de lecture catalogue/taxes utilisée par compute().
    L'implémentation Odoo est dans backend.taxes.repository; les tests fournissent la leur.
    """

    def products(self, product_ids: List[int]) -> Dict[int, ProductTaxInfo]:
        raise NotImplementedError

    def taxes(self, tax_ids: List[int]) -> Dict[int, TaxRule]:
        raise NotImplementedError

    def combo_items(self, combo_item_ids: List[int]) -> Dict[int, ComboItemInfo]:
        return {}


@dataclass
class StaticProductTaxLookup(ProductTaxLookup):
    """Catalogue en mémoire (tests, scripts, prévisualisation de panier)."""
    product_map: Dict[int, ProductTaxInfo] = field(default_factory=dict)
    tax_map: Dict[int, TaxRule] = field(default_factory=dict)
    combo_item_map: Dict[int, ComboItemInfo] = field(default_factory=dict)

    def products(self, product_ids: List[int]) -> Dict[int, ProductTaxInfo]:
        return {pid: self.product_map[pid] for pid in product_ids if pid in self.product_map}

    def taxes(self, tax_ids: List[int]) -> Dict[int, TaxRule]:
        return {tid: self.tax_map[tid] for tid in tax_ids if tid in self.tax_map}

    def combo_items(self, combo_item_ids: List[int]) -> Dict[int, ComboItemInfo]:
        return {cid: self.combo_item_map[cid] for cid in combo_item_ids if cid in self.combo_item_map}
