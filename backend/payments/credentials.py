"""
Clés Stripe lues à chaque appel depuis Odoo (payment.provider), sans état global:
une rotation de clé côté Odoo est prise en compte sans redéploiement.
Le service et le webhook dépendent de la capacité `StripeCredentialProvider`, pas d'une implémentation.
"""
from dataclasses import dataclass
import logging

import backend.infra.odoo_client as odoo_client
from backend.infra import odoo_records as rec

logger = logging.getLogger(__name__)


class PaymentConfigError(Exception):
    """Fournisseur Stripe absent ou incomplet dans Odoo (correction opérateur nécessaire)."""


@dataclass(frozen=True)
class StripeCredentials:
    secret_key: str = ""
    publishable_key: str = ""
    webhook_secret: str = ""

    def require_secret_key(self) -> str:
        if not self.secret_key:
            raise PaymentConfigError("Clé secrète Stripe absente de la configuration Odoo")
        return self.secret_key

    def require_webhook_secret(self) -> str:
        if not self.webhook_secret:
            raise PaymentConfigError("Secret webhook Stripe absent de la configuration Odoo")
        return self.webhook_secret

    def require_publishable_key(self) -> str:
        if not self.publishable_key:
            raise PaymentConfigError("Clé publique Stripe absente de la configuration Odoo")
        return self.publishable_key


class StripeCredentialProvider:
    def get(self) -> StripeCredentials:
        raise NotImplementedError


class OdooStripeCredentialProvider(StripeCredentialProvider):
    """Lit le premier fournisseur 'stripe' actif (enabled/test)."""

    def get(self) -> StripeCredentials:
        try:
            providers = odoo_client.odoo_call("payment.provider", "search_read", {
                "domain": [["code", "=", "stripe"], ["state", "in", ["enabled", "test"]]],
                "fields": ["id", "stripe_secret_key", "stripe_publishable_key", "stripe_webhook_secret"],
                "limit": 1,
            }) or []
        except odoo_client.OdooClientError as e:
            logger.exception("payments.credentials lecture payment.provider impossible")
            raise PaymentConfigError(f"Lecture des clés Stripe impossible: {e}") from e
        if not providers:
            logger.error("payments.credentials aucun fournisseur Stripe actif dans Odoo")
            raise PaymentConfigError("Aucun fournisseur Stripe actif dans Odoo")
        row = providers[0]
        return StripeCredentials(
            secret_key=rec.text(row, "stripe_secret_key"),
            publishable_key=rec.text(row, "stripe_publishable_key"),
            webhook_secret=rec.text(row, "stripe_webhook_secret"),
        )


def get_credential_provider() -> StripeCredentialProvider:
    """Dépendance FastAPI (surchargée dans les tests via app.dependency_overrides)."""
    return OdooStripeCredentialProvider()
