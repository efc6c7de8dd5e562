"""
Client Odoo (API JSON-2): un seul point d'entrée `call(model, method, payload)`.
- POST {ODOO_BASE_URL}/json/2/{model}/{method}, authentification Bearer + X-Odoo-Database.
- Toute erreur (HTTP, réseau, timeout) est levée en OdooClientError avec un status exploitable.
- Pas de retry ici: les reprises passent par la re-livraison des webhooks Stripe.
"""
import json
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

import httpx

from backend.config import ODOO_BASE_URL, ODOO_API_KEY, ODOO_DB, ODOO_LANG, ODOO_CALL_TIMEOUT_MS

logger = logging.getLogger(__name__)

_odoo: Optional["OdooClient"] = None


def _json_default(value: Any) -> Any:
    # Montants internes en Decimal; Odoo attend des nombres JSON
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Type non sérialisable pour Odoo: {type(value).__name__}")


class OdooClientError(Exception):
    def __init__(self, message: str, status: int = 500, odoo_error: Any = None):
        super().__init__(message)
        self.status = status
        self.odoo_error = odoo_error


class OdooClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        db: str,
        timeout_ms: int = 10000,
        lang: str = "en_US",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.db = db
        self.timeout_ms = timeout_ms
        self.lang = lang
        self._http = httpx.Client(
            timeout=timeout_ms / 1000,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-Odoo-Database": self.db,
            "User-Agent": "online-orders-backend/1.0",
        }

    def call(self, model: str, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Appelle `model.method` et retourne le JSON décodé.
        - payload est fusionné avec un contexte par défaut (lang).
        - 4xx/5xx -> OdooClientError(status=code HTTP, odoo_error=corps décodé si possible)
        - timeout -> OdooClientError(status=504), erreur réseau -> OdooClientError(status=502)
        """
        if not self.api_key:
            msg = f"Clé API Odoo (ODOO_API_KEY) non configurée. URL: {self.base_url}, DB: {self.db}"
            logger.error("odoo.call %s", msg)
            raise OdooClientError(msg, 500)

        url = f"{self.base_url}/json/2/{model}/{method}"
        payload = dict(payload or {})
        context = {"lang": self.lang, **(payload.pop("context", None) or {})}
        body = {"context": context, **payload}

        logger.debug("odoo.call POST %s", url)
        try:
            response = self._http.post(url, headers=self._headers(), content=json.dumps(body, default=_json_default))
        except httpx.TimeoutException:
            msg = f"Odoo request timed out after {self.timeout_ms}ms for {url}"
            logger.error("odoo.call %s", msg)
            raise OdooClientError(msg, 504)
        except httpx.HTTPError as e:
            msg = f"Network error calling Odoo ({url}): {e}"
            logger.error("odoo.call %s", msg)
            raise OdooClientError(msg, 502)

        if response.history:
            logger.warning("odoo.call redirigé vers %s (POST possiblement converti en GET)", response.url)

        if response.status_code >= 400:
            text = response.text
            try:
                error_data: Any = json.loads(text)
            except ValueError:
                error_data = text
            detail = None
            if isinstance(error_data, dict):
                detail = error_data.get("message") or error_data.get("name")
            msg = f"Odoo error {response.status_code}: {detail or response.reason_phrase or 'Unknown Error'}"
            logger.error("odoo.call %s.%s status=%s body=%s", model, method, response.status_code, error_data)
            raise OdooClientError(msg, response.status_code, error_data)

        try:
            return response.json()
        except ValueError:
            raise OdooClientError(f"Réponse Odoo non JSON pour {url}", 502, response.text)

    def close(self) -> None:
        self._http.close()


def get_odoo() -> OdooClient:
    global _odoo
    if _odoo is None:
        _odoo = OdooClient(ODOO_BASE_URL, ODOO_API_KEY, ODOO_DB, timeout_ms=ODOO_CALL_TIMEOUT_MS, lang=ODOO_LANG)
    return _odoo


def odoo_call(model: str, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
    """Raccourci: get_odoo().call(...). Les tests patchent get_odoo()."""
    return get_odoo().call(model, method, payload)
