# backend.config
from pathlib import Path
import os
import logging
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

logger = logging.getLogger(__name__)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose la connexion Odoo (URL, clé API, base, timeout)
- Expose les réglages de la chaîne de commande (devise par défaut, pays partenaire, marque de paiement)
- CORS/hosts pour l'API
Les clés Stripe ne sont PAS ici: elles sont lues dans Odoo à chaque appel (payment.provider).
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning("config.%s invalide (%r), valeur par défaut %s", name, raw, default)
        return default

# Odoo: URL de base, clé API (Bearer), base de données
# - Forcer https:// pour éviter qu'une redirection ne transforme le POST en GET
ODOO_BASE_URL = _clean_env(os.getenv("ODOO_BASE_URL") or "")
ODOO_API_KEY = _clean_env(os.getenv("ODOO_API_KEY") or "")
ODOO_DB = _clean_env(os.getenv("ODOO_DB") or "")
ODOO_LANG = _clean_env(os.getenv("ODOO_LANG") or "en_US")
ODOO_CALL_TIMEOUT_MS = _int_env("ODOO_CALL_TIMEOUT_MS", 10000)

if ODOO_BASE_URL and not ODOO_BASE_URL.startswith("http"):
    ODOO_BASE_URL = "https://" + ODOO_BASE_URL
if ODOO_BASE_URL.startswith("http://"):
    ODOO_BASE_URL = "https://" + ODOO_BASE_URL[len("http://"):]
if ODOO_BASE_URL.endswith("/"):
    ODOO_BASE_URL = ODOO_BASE_URL.rstrip("/")

# Commandes en ligne
DEFAULT_CURRENCY = (_clean_env(os.getenv("DEFAULT_CURRENCY") or "usd")).lower()
PARTNER_COUNTRY_ID = _int_env("PARTNER_COUNTRY_ID", 0) or None
ONLINE_PAYMENT_BRAND = _clean_env(os.getenv("ONLINE_PAYMENT_BRAND") or "Stripe")
ORDER_SOURCE = _clean_env(os.getenv("ORDER_SOURCE") or "mobile")

# Stripe: tolérance (secondes) sur l'horodatage de la signature webhook
STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
