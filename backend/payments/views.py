import logging
from decimal import Decimal
from typing import List, Literal, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from starlette.concurrency import run_in_threadpool

from backend.utils.rate_limit import optional_rate_limit
from backend.fulfillment.models import CustomerContact
from backend.payments import cart as payments_cart
from backend.payments import service as payments_service
from backend.payments import webhook as payments_webhook
from backend.payments.credentials import PaymentConfigError, StripeCredentialProvider, get_credential_provider
from backend.taxes.models import UpstreamLookupError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class ComboSelectionIn(BaseModel):
    combo_line_id: int
    combo_item_id: int
    product_id: int
    extra_price: Decimal = Field(default=Decimal("0"), ge=0)


class CartItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str = ""
    combo_selections: List[ComboSelectionIn] = Field(default_factory=list)


class CartIn(BaseModel):
    items: List[CartItemIn] = Field(default_factory=list)


class CustomerIn(BaseModel):
    name: str
    email: EmailStr
    phone: str = ""
    street: str = ""
    city: str = ""
    zip: str = ""


class CreatePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart: CartIn
    customer: CustomerIn
    order_type: Literal["dine-in", "delivery", "takeout"] = Field(default="delivery", alias="orderType")
    notes: str = ""
    cart_id: Optional[str] = None


def _to_cart_items(cart: CartIn) -> List[payments_cart.CartItem]:
    return [
        payments_cart.CartItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            notes=item.notes,
            combo_selections=tuple(
                payments_cart.ComboSelection(
                    combo_line_id=sel.combo_line_id,
                    combo_item_id=sel.combo_item_id,
                    product_id=sel.product_id,
                    extra_price=sel.extra_price,
                )
                for sel in item.combo_selections
            ),
        )
        for item in cart.items
    ]

# module backend.payments.views
@router.post("/create", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment(
    body: CreatePaymentRequest,
    credentials: StripeCredentialProvider = Depends(get_credential_provider),
):
    """
    Crée un PaymentIntent Stripe pour le panier (total recalculé côté serveur).
    - Entrée JSON: {cart: {items: [...]}, customer: {...}, order_type, notes, cart_id}
    - Sortie: {client_secret, provider, payment_intent_id, amount, currency}
    - Erreurs: 400 panier vide, 413 panier trop volumineux pour Stripe,
      502 Odoo/Stripe indisponible, 500 configuration Stripe absente
    """
    customer = CustomerContact(**body.customer.model_dump())
    try:
        return payments_service.create_payment_intent(
            items=_to_cart_items(body.cart),
            customer=customer,
            order_type=body.order_type,
            notes=body.notes,
            cart_id=body.cart_id,
            credentials=credentials,
        )
    except HTTPException:
        raise
    except payments_cart.PayloadTooLargeError as e:
        logger.warning("payments.create panier refusé: %s", e)
        raise HTTPException(status_code=413, detail=str(e))
    except UpstreamLookupError as e:
        logger.exception("payments.create calcul des totaux impossible")
        raise HTTPException(status_code=502, detail=str(e))
    except PaymentConfigError as e:
        logger.error("payments.create configuration Stripe: %s", e)
        raise HTTPException(status_code=500, detail="Payment provider misconfigured")
    except stripe.StripeError as e:
        logger.exception("payments.create erreur Stripe")
        raise HTTPException(status_code=502, detail=getattr(e, "user_message", None) or str(e))


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(
    request: Request,
    credentials: StripeCredentialProvider = Depends(get_credential_provider),
):
    """
    Webhook Stripe: payment_intent.succeeded -> commande POS payée dans Odoo.
    - Signature: Stripe-Signature + secret webhook lu dans Odoo
    - Réponses: 200 (ok/ignored/rejected), 400 (signature), 500 (à relivrer)
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    outcome = await run_in_threadpool(payments_webhook.handle_webhook, payload, sig_header, credentials)
    return JSONResponse(outcome.body, status_code=outcome.status_code)


@router.get("/config")
def payment_config(credentials: StripeCredentialProvider = Depends(get_credential_provider)):
    """Clé publiable Stripe + devise pour la vitrine."""
    try:
        return payments_service.get_payment_config(credentials)
    except PaymentConfigError as e:
        logger.error("payments.config %s", e)
        raise HTTPException(status_code=500, detail="No payment provider configured")
