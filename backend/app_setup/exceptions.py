"""
Gestionnaires d’exceptions enregistrés par la factory.
- HTTPException: corps JSON standard {"detail": ...}.
- OdooClientError non interceptée par une route: 502 (ERP indisponible, réessayable côté client).
- Erreurs métier du fulfillment (ex: restaurant fermé) hors webhook: 503.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.infra.odoo_client import OdooClientError
from backend.fulfillment.models import FulfillmentError, NoActiveSessionError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def json_http_exception(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(OdooClientError)
    async def odoo_unavailable(request: Request, exc: OdooClientError):
        logger.error("odoo erreur non gérée path=%s status=%s: %s", request.url.path, exc.status, exc)
        return JSONResponse(status_code=502, content={"detail": "ERP indisponible"})

    @app.exception_handler(FulfillmentError)
    async def fulfillment_unavailable(request: Request, exc: FulfillmentError):
        detail = "Restaurant fermé" if isinstance(exc, NoActiveSessionError) else str(exc)
        return JSONResponse(status_code=503, content={"detail": detail})
