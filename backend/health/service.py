from urllib.parse import urlparse
import socket
from backend.config import ODOO_BASE_URL, ODOO_DB
import backend.infra.odoo_client as odoo_client

def health_odoo_info():
    parsed = urlparse(ODOO_BASE_URL) if ODOO_BASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info = {
        "odoo_url": ODOO_BASE_URL,
        "database": ODOO_DB,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "open_session": None,
        "error": None,
    }
    try:
        sessions = odoo_client.odoo_call("pos.session", "search_read", {
            "domain": [["state", "=", "opened"]],
            "fields": ["id"],
            "limit": 1,
        }) or []
        info["connect_ok"] = True
        info["open_session"] = bool(sessions)
    except odoo_client.OdooClientError as e:
        info["error"] = str(e)
    return info
