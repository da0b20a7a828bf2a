"""Checkout orchestration: coupon, price, customer and provider session."""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from ...config import StripeSettings, settings
from ...schemas.payments import CheckoutRequest, CheckoutSession, SubscriptionRecord
from ...services.payment_provider import PaymentProvider
from ...utils.errors import InvalidArgumentError, NotFoundError
from ...utils.utils import parse_object_id
from ..coupons.service import CouponService
from ..subscriptions.repository import SubscriptionRepository
from .pricing import format_amount, quote

logger = logging.getLogger(__name__)


class CheckoutService:
    """Turns a checkout request into a hosted provider session.

    Nothing about the price is stored locally; the computed amounts travel in
    the session metadata and come back with the webhook.
    """

    def __init__(
        self,
        coupons: CouponService,
        subscriptions: SubscriptionRepository,
        provider: PaymentProvider,
        config: Optional[StripeSettings] = None,
    ):
        self.coupons = coupons
        self.subscriptions = subscriptions
        self.provider = provider
        self.config = config or settings.stripe
        self.logger = logging.getLogger(__name__)

    async def create_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a checkout session for a user.

        Args:
            request: User reference, amount in major units, currency and optional coupon

        Returns:
            The session id, redirect URL and the computed quote

        Raises:
            InvalidArgumentError: On a bad user id, a non-positive amount, or a
                coupon that is unknown or inactive
            NotFoundError: If the user does not exist
            UpstreamUnavailableError: If the provider fails
        """
        object_id = parse_object_id(request.user_id, "user ID")
        if request.amount is None or request.amount <= Decimal(0):
            raise InvalidArgumentError("Valid amount is required")
        currency = (request.currency or "usd").strip().lower()

        discount_percent: float = 0
        coupon_code: Optional[str] = None
        if request.coupon_code and request.coupon_code.strip():
            try:
                coupon = await self.coupons.validate(request.coupon_code)
            except NotFoundError as e:
                raise InvalidArgumentError(e.message)
            discount_percent = coupon.discount
            coupon_code = coupon.code

        record = await self.subscriptions.get(object_id)
        if record is None:
            raise NotFoundError("User not found")

        priced = quote(request.amount, discount_percent, coupon_code)
        customer_id = await self._resolve_customer(record)

        frontend_url = self.config.frontend_url.rstrip("/")
        session = await self.provider.create_checkout_session(
            amount=priced.final_amount,
            currency=currency,
            success_url=f"{frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend_url}/payment?userId={record.user_id}",
            metadata={
                "userId": record.user_id,
                "couponCode": coupon_code or "",
                "originalAmount": format_amount(priced.original_amount),
                "discountAmount": format_amount(priced.discount_amount),
                "finalAmount": format_amount(priced.final_amount),
                "currency": currency,
            },
            customer_id=customer_id,
            product_name=self.config.product_name,
            product_description=self.config.product_description,
            idempotency_key=f"checkout-{record.user_id}-{uuid.uuid4().hex}",
        )
        self.logger.info(
            f"Created checkout session {session.id} for user {record.user_id}: "
            f"{format_amount(priced.final_amount)} {currency}"
            + (f" with coupon {coupon_code}" if coupon_code else "")
        )
        return CheckoutSession(session_id=session.id, url=session.url, quote=priced, currency=currency)

    async def _resolve_customer(self, record: SubscriptionRecord) -> str:
        """Return the user's provider customer id, creating it on first use.

        The id is bound with a conditional write; if another request bound
        one first, that stored value wins.
        """
        if record.stripe_customer_id:
            return record.stripe_customer_id

        customer_id = await self.provider.create_customer(
            email=record.email, name=record.username, user_id=record.user_id
        )
        object_id = parse_object_id(record.user_id)
        updated = await self.subscriptions.set_customer_id(object_id, customer_id)
        if updated is not None:
            self.logger.info(f"Bound Stripe customer {customer_id} to user {record.user_id}")
            return customer_id

        current = await self.subscriptions.get(object_id)
        if current is None:
            raise NotFoundError("User not found")
        if current.stripe_customer_id:
            self.logger.info(f"User {record.user_id} already bound to customer {current.stripe_customer_id}")
            return current.stripe_customer_id
        return customer_id
