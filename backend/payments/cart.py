"""
Codec panier <-> enregistrement compact attaché au PaymentIntent Stripe (metadata.line_items).
Stripe limite chaque valeur de metadata à 500 caractères: clés d'une lettre, JSON sans espaces,
combos aplatis en tableaux parallèles. Jamais de troncature: au-delà de la limite, on refuse.

Format (une entrée par article du panier):
    {"p": product_id, "q": qty, "u": prix_unitaire_total, "n": "note",
     "s": [{"c": combo_line_id, "i": [item_ids], "p": [product_ids], "e": [extra_prices]}]}
"n" et "s" sont omis s'ils sont vides.
"""
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from backend.taxes.models import CartLine

MAX_RECORD_BYTES = 500


class PayloadTooLargeError(Exception):
    def __init__(self, size: int, limit: int = MAX_RECORD_BYTES):
        super().__init__(f"Panier trop volumineux pour les metadata Stripe ({size} > {limit} octets)")
        self.size = size
        self.limit = limit


class MalformedCartRecordError(ValueError):
    """metadata.line_items illisible: aucune re-livraison ne le corrigera."""


@dataclass(frozen=True)
class ComboSelection:
    combo_line_id: int
    combo_item_id: int
    product_id: int
    extra_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class CartItem:
    """Article du panier tel qu'envoyé par la vitrine: unit_price inclut les suppléments de combo."""
    product_id: int
    quantity: int
    unit_price: Decimal = Decimal("0")
    notes: str = ""
    combo_selections: Sequence[ComboSelection] = ()


@dataclass(frozen=True)
class CompactSubItem:
    combo_line_id: int
    item_ids: List[int]
    product_ids: List[int]
    extra_prices: List[Decimal]


@dataclass(frozen=True)
class CompactItem:
    product_id: int
    qty: int
    unit_price: Decimal
    note: str = ""
    sub_items: List[CompactSubItem] = field(default_factory=list)


def _num(value: Decimal) -> Any:
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class CompactCartRecord:
    items: List[CompactItem]

    def to_wire(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for item in self.items:
            entry: Dict[str, Any] = {"p": item.product_id, "q": item.qty, "u": _num(item.unit_price)}
            if item.note:
                entry["n"] = item.note
            if item.sub_items:
                entry["s"] = [
                    {
                        "c": sub.combo_line_id,
                        "i": list(sub.item_ids),
                        "p": list(sub.product_ids),
                        "e": [_num(e) for e in sub.extra_prices],
                    }
                    for sub in item.sub_items
                ]
            out.append(entry)
        return out

    def serialize(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False)

    @property
    def size(self) -> int:
        return len(self.serialize().encode("utf-8"))

    @classmethod
    def parse(cls, raw: Optional[str]) -> "CompactCartRecord":
        if not raw:
            raise MalformedCartRecordError("metadata line_items absent")
        try:
            data = json.loads(raw, parse_float=Decimal)
        except ValueError as e:
            raise MalformedCartRecordError(f"JSON invalide: {e}") from e
        if not isinstance(data, list) or not data:
            raise MalformedCartRecordError("line_items doit être une liste non vide")
        return cls(items=[_parse_item(entry) for entry in data])


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedCartRecordError(f"{what} doit être un entier (reçu {value!r})")
    return value


def _as_decimal(value: Any, what: str) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, float)):
        raise MalformedCartRecordError(f"{what} doit être un nombre (reçu {value!r})")
    amount = Decimal(str(value))
    if amount < 0:
        raise MalformedCartRecordError(f"{what} ne peut pas être négatif (reçu {value!r})")
    return amount


def _parse_item(entry: Any) -> CompactItem:
    if not isinstance(entry, dict):
        raise MalformedCartRecordError(f"article invalide: {entry!r}")
    product_id = _as_int(entry.get("p"), "p")
    qty = _as_int(entry.get("q"), "q")
    if qty <= 0:
        raise MalformedCartRecordError(f"quantité invalide pour le produit {product_id}: {qty}")
    # "note": clé longue des enregistrements plus anciens
    note = entry.get("n", entry.get("note")) or ""
    subs: List[CompactSubItem] = []
    for sub in entry.get("s") or []:
        if not isinstance(sub, dict):
            raise MalformedCartRecordError(f"sous-article invalide: {sub!r}")
        item_ids = [_as_int(v, "i") for v in sub.get("i") or []]
        product_ids = [_as_int(v, "p") for v in sub.get("p") or []]
        extras = [_as_decimal(v, "e") for v in sub.get("e") or []]
        if not (len(item_ids) == len(product_ids) == len(extras)):
            raise MalformedCartRecordError(f"tableaux de combo de tailles différentes (produit {product_id})")
        subs.append(CompactSubItem(_as_int(sub.get("c"), "c"), item_ids, product_ids, extras))
    return CompactItem(
        product_id=product_id,
        qty=qty,
        unit_price=_as_decimal(entry.get("u"), "u"),
        note=str(note),
        sub_items=subs,
    )


def _group_selections(selections: Sequence[ComboSelection]) -> List[CompactSubItem]:
    grouped: Dict[int, CompactSubItem] = {}
    for sel in selections:
        sub = grouped.get(sel.combo_line_id)
        if sub is None:
            sub = CompactSubItem(sel.combo_line_id, [], [], [])
            grouped[sel.combo_line_id] = sub
        sub.item_ids.append(sel.combo_item_id)
        sub.product_ids.append(sel.product_id)
        sub.extra_prices.append(Decimal(sel.extra_price))
    return list(grouped.values())


def encode(items: Sequence[CartItem], limit: int = MAX_RECORD_BYTES) -> CompactCartRecord:
    """Panier -> enregistrement compact. PayloadTooLargeError si la forme sérialisée dépasse `limit` octets."""
    record = CompactCartRecord(items=[
        CompactItem(
            product_id=item.product_id,
            qty=item.quantity,
            unit_price=Decimal(item.unit_price),
            note=item.notes or "",
            sub_items=_group_selections(item.combo_selections),
        )
        for item in items
    ])
    size = record.size
    if size > limit:
        raise PayloadTooLargeError(size, limit)
    return record


def decode(record: CompactCartRecord) -> List[CartLine]:
    """
    Enregistrement compact -> lignes de commande.
    - Une ligne parent par article: prix = prix total - somme des suppléments (borné à 0).
    - Puis une ligne enfant par composant de combo, au prix de son supplément, avec les ids de liaison.
    """
    lines: List[CartLine] = []
    for item in record.items:
        extras_total = sum((e for sub in item.sub_items for e in sub.extra_prices), Decimal("0"))
        base_price = max(item.unit_price - extras_total, Decimal("0"))
        lines.append(CartLine(
            product_id=item.product_id,
            quantity=item.qty,
            unit_price=base_price,
            notes=item.note,
        ))
        for sub in item.sub_items:
            for item_id, product_id, extra in zip(sub.item_ids, sub.product_ids, sub.extra_prices):
                lines.append(CartLine(
                    product_id=product_id,
                    quantity=item.qty,
                    unit_price=extra,
                    combo_parent_id=item.product_id,
                    combo_line_id=sub.combo_line_id,
                    combo_item_id=item_id,
                ))
    return lines


def decode_record(raw: Optional[str]) -> List[CartLine]:
    return decode(CompactCartRecord.parse(raw))
