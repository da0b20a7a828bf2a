"""Checkout, webhook and subscription status endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request

from paywall.dependencies import (
    get_checkout_service,
    get_payment_provider,
    get_subscription_service,
)
from paywall.domains.checkout.pricing import format_amount
from paywall.domains.checkout.service import CheckoutService
from paywall.domains.subscriptions.service import SubscriptionService
from paywall.schemas.payments import CheckoutRequest, PaymentUser, VerifySessionRequest
from paywall.services.payment_provider import PaymentProvider
from paywall.utils.errors import PaywallError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


async def raw_body(request: Request) -> bytes:
    """The request body exactly as received, for signature verification."""
    return await request.body()


@router.post("/create-checkout-session")
async def create_checkout_session(
    data: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Price the purchase and open a hosted checkout session."""
    session = await service.create_session(data)
    return {
        "message": "Checkout session created successfully",
        "sessionId": session.session_id,
        "url": session.url,
        "originalAmount": format_amount(session.quote.original_amount),
        "discountAmount": format_amount(session.quote.discount_amount),
        "finalAmount": format_amount(session.quote.final_amount),
        "couponCode": session.quote.coupon_code,
        "currency": session.currency,
    }


@router.post("/webhook")
async def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    provider: PaymentProvider = Depends(get_payment_provider),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Handle Stripe webhook events.

    Nothing is read from the payload before its signature checks out. Errors
    after that answer 500 so Stripe delivers the event again.
    """
    event = provider.construct_event(payload, stripe_signature)
    logger.info(f"Received webhook event {event.get('id')} ({event.get('type')})")
    try:
        return await service.handle_event(event)
    except PaywallError:
        raise
    except Exception as e:
        logger.error(f"Webhook handler failed for event {event.get('id')}: {e}", exc_info=True)
        raise PaywallError("Webhook handler failed")


@router.get("/status/{user_id}")
async def payment_status(
    user_id: str,
    background_tasks: BackgroundTasks,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current entitlement of a user, expiry re-checked against the clock."""
    record, entitlement = await service.status(user_id)
    if entitlement.expiry_due:
        background_tasks.add_task(service.reconcile_expiry, record, entitlement)
    return {
        "message": "Payment status retrieved successfully",
        "requestedUserId": user_id,
        "user": PaymentUser.build(record, entitlement).model_dump(by_alias=True, mode="json"),
    }


@router.post("/verify-session")
async def verify_session(
    data: VerifySessionRequest,
    provider: PaymentProvider = Depends(get_payment_provider),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Confirm a payment after the redirect, in case the webhook is late."""
    paid, record, entitlement = await service.verify_session(provider, data.session_id)
    if not paid:
        return {"success": False, "message": "Payment not completed"}
    return {
        "success": True,
        "message": "Payment verified successfully",
        "user": PaymentUser.build(record, entitlement).model_dump(by_alias=True, mode="json"),
    }
