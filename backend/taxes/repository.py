"""
Accès aux données pour la feature 'taxes' (lecture produits, taxes, articles de combo dans Odoo).
"""
from decimal import Decimal
from typing import Dict, List
import logging

import backend.infra.odoo_client as odoo_client
from backend.infra import odoo_records as rec
from backend.taxes.models import ComboItemInfo, ProductTaxInfo, ProductTaxLookup, TaxRule, UpstreamLookupError

logger = logging.getLogger(__name__)

# module backend.taxes.repository
class OdooProductTaxLookup(ProductTaxLookup):
    """Lecture groupée: un read par modèle et par calcul."""

    def products(self, product_ids: List[int]) -> Dict[int, ProductTaxInfo]:
        if not product_ids:
            return {}
        try:
            rows = odoo_client.odoo_call("product.product", "read", {
                "ids": list(product_ids),
                "fields": ["id", "taxes_id", "list_price", "combo_ids"],
            }) or []
        except odoo_client.OdooClientError as e:
            logger.exception("taxes.repository.products failed ids=%s", product_ids)
            raise UpstreamLookupError(f"Lecture produits impossible: {e}") from e
        result: Dict[int, ProductTaxInfo] = {}
        for row in rows:
            pid = row.get("id")
            if not isinstance(pid, int):
                continue
            result[pid] = ProductTaxInfo(
                product_id=pid,
                tax_ids=tuple(rec.id_list(row, "taxes_id")),
                list_price=rec.decimal(row, "list_price"),
                combo_ids=tuple(rec.id_list(row, "combo_ids")),
            )
        return result

    def taxes(self, tax_ids: List[int]) -> Dict[int, TaxRule]:
        if not tax_ids:
            return {}
        try:
            rows = odoo_client.odoo_call("account.tax", "read", {
                "ids": list(tax_ids),
                "fields": ["id", "amount", "amount_type", "price_include"],
            }) or []
        except odoo_client.OdooClientError as e:
            logger.exception("taxes.repository.taxes failed ids=%s", tax_ids)
            raise UpstreamLookupError(f"Lecture taxes impossible: {e}") from e
        result: Dict[int, TaxRule] = {}
        for row in rows:
            tid = row.get("id")
            if not isinstance(tid, int):
                continue
            result[tid] = TaxRule(
                id=tid,
                rate=rec.decimal(row, "amount") or Decimal("0"),
                inclusive=rec.flag(row, "price_include"),
            )
        return result

    def combo_items(self, combo_item_ids: List[int]) -> Dict[int, ComboItemInfo]:
        if not combo_item_ids:
            return {}
        try:
            rows = odoo_client.odoo_call("product.combo.item", "read", {
                "ids": list(combo_item_ids),
                "fields": ["id", "combo_id", "product_id", "extra_price"],
            }) or []
        except odoo_client.OdooClientError as e:
            logger.exception("taxes.repository.combo_items failed ids=%s", combo_item_ids)
            raise UpstreamLookupError(f"Lecture articles de combo impossible: {e}") from e
        return {
            row["id"]: ComboItemInfo(
                id=row["id"],
                product_id=rec.relation_id(row, "product_id"),
                combo_id=rec.relation_id(row, "combo_id"),
                extra_price=rec.decimal(row, "extra_price") or Decimal("0"),
            )
            for row in rows
            if isinstance(row.get("id"), int)
        }
