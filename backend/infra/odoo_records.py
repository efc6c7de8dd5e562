"""
Décodage des valeurs Odoo à la frontière.
Odoo renvoie des dicts non typés: many2one en [id, "libellé"] (ou id seul selon l'API),
False pour « vide », listes d'ids pour les x2many. On les convertit ici en variantes
explicites; au-delà de ce module, le code ne manipule que des types internes.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class RelationRef:
    id: int
    label: Optional[str] = None


@dataclass(frozen=True)
class Scalar:
    value: Any


class _Missing:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

FieldValue = Union[RelationRef, Scalar, _Missing]


def decode_relation(value: Any) -> FieldValue:
    """[id, label] | id | False/None -> RelationRef | MISSING."""
    if value is None or value is False:
        return MISSING
    if isinstance(value, (list, tuple)):
        if not value:
            return MISSING
        head = value[0]
        if isinstance(head, bool) or not isinstance(head, int):
            return MISSING
        label = value[1] if len(value) > 1 and isinstance(value[1], str) else None
        return RelationRef(head, label)
    if isinstance(value, int) and not isinstance(value, bool):
        return RelationRef(value)
    if isinstance(value, dict) and isinstance(value.get("id"), int):
        return RelationRef(value["id"], value.get("display_name") or value.get("name"))
    return MISSING


def decode_scalar(value: Any) -> FieldValue:
    # Odoo encode « pas de valeur » par False, y compris pour les champs texte
    if value is None or value is False:
        return MISSING
    return Scalar(value)


def relation_id(record: Dict[str, Any], field: str) -> Optional[int]:
    ref = decode_relation((record or {}).get(field))
    return ref.id if isinstance(ref, RelationRef) else None


def id_list(record: Dict[str, Any], field: str) -> List[int]:
    """x2many: liste d'ids (tolère [[id, label], ...] et les valeurs vides)."""
    raw = (record or {}).get(field)
    if not isinstance(raw, (list, tuple)):
        return []
    ids: List[int] = []
    for item in raw:
        ref = decode_relation(item)
        if isinstance(ref, RelationRef):
            ids.append(ref.id)
    return ids


def text(record: Dict[str, Any], field: str, default: str = "") -> str:
    val = decode_scalar((record or {}).get(field))
    return str(val.value) if isinstance(val, Scalar) else default


def flag(record: Dict[str, Any], field: str) -> bool:
    return bool((record or {}).get(field))


def decimal(record: Dict[str, Any], field: str) -> Optional[Decimal]:
    """Montant Odoo (float JSON) -> Decimal via str() pour ne pas hériter du bruit binaire."""
    val = decode_scalar((record or {}).get(field))
    if not isinstance(val, Scalar) or isinstance(val.value, bool):
        return None
    try:
        return Decimal(str(val.value))
    except (InvalidOperation, ValueError):
        return None
