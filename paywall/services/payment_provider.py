"""Stripe-backed payment provider.

The provider is constructed once at startup from settings and handed to the
checkout and subscription services; nothing in the application touches a
module-level Stripe key.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import stripe

from paywall.config import RetrySettings, StripeSettings
from paywall.schemas.payments import ProviderSession
from paywall.utils.errors import ConfigurationError, UnauthenticatedError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# Errors worth another attempt; card and request errors are not
RETRYABLE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    for method in ("to_dict_recursive", "to_dict"):
        convert = getattr(obj, method, None)
        if callable(convert):
            return convert()
    return dict(obj)


class PaymentProvider:
    """Thin async facade over the Stripe API."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        retries: Optional[RetrySettings] = None,
        webhook_tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        # Seconds a signed delivery stays acceptable; older ones are replays
        self.webhook_tolerance = webhook_tolerance
        self.retries = retries or RetrySettings()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, config: StripeSettings) -> "PaymentProvider":
        """Build the provider, failing loudly when a secret is missing.

        Raises:
            ConfigurationError: If the secret key or webhook secret is unset
        """
        secret_key = config.secret_key.get_secret_value() if config.secret_key else ""
        webhook_secret = config.webhook_secret.get_secret_value() if config.webhook_secret else ""
        if not secret_key:
            raise ConfigurationError("Stripe is not configured. Set STRIPE_SECRET_KEY.")
        if not webhook_secret or webhook_secret == "whsec_your_webhook_secret_here":
            raise ConfigurationError("Stripe webhook secret is not configured. Set STRIPE_WEBHOOK_SECRET.")
        return cls(secret_key, webhook_secret, config.session_retries)

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        """Create a Stripe customer bound to a user.

        Returns:
            The Stripe customer id
        """
        try:
            customer = await asyncio.to_thread(
                stripe.Customer.create,
                api_key=self._secret_key,
                email=email,
                name=name,
                metadata={"userId": user_id},
                idempotency_key=f"customer-{user_id}",
            )
        except stripe.StripeError as e:
            self.logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
            raise UpstreamUnavailableError(e.user_message or str(e))
        return customer.id

    async def create_checkout_session(
        self,
        *,
        amount: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        customer_id: Optional[str],
        product_name: str,
        product_description: str,
        idempotency_key: str,
    ) -> ProviderSession:
        """Create a hosted checkout session for a one-off payment.

        Transient failures are retried with exponential backoff. Every attempt
        carries the same idempotency key so Stripe never creates two sessions
        for one request.

        Args:
            amount: Amount to charge in minor units
            currency: ISO currency code
            success_url: Redirect target after payment
            cancel_url: Redirect target when the user backs out
            metadata: Checkout intent, echoed back on webhook delivery
            customer_id: Stripe customer to attach the session to
            product_name: Line item name on the hosted page
            product_description: Line item description on the hosted page
            idempotency_key: Key shared across retries

        Returns:
            The created session

        Raises:
            UpstreamUnavailableError: If Stripe rejects the request or stays unreachable
        """
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": product_name, "description": product_description},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_id:
            params["customer"] = customer_id

        max_attempts = max(1, self.retries.max_attempts)
        retry_delay = self.retries.initial_delay
        for attempt in range(max_attempts):
            try:
                session = await asyncio.to_thread(
                    stripe.checkout.Session.create,
                    api_key=self._secret_key,
                    idempotency_key=idempotency_key,
                    **params,
                )
                return ProviderSession(
                    id=session.id,
                    payment_status=getattr(session, "payment_status", None),
                    url=getattr(session, "url", None),
                    metadata=_as_dict(getattr(session, "metadata", None)),
                )
            except RETRYABLE_ERRORS as e:
                if attempt < max_attempts - 1:
                    self.logger.warning(
                        f"Checkout session attempt {attempt + 1}/{max_attempts} failed: {e}. "
                        f"Retrying in {retry_delay} seconds..."
                    )
                    await asyncio.sleep(retry_delay)
                    retry_delay *= self.retries.backoff_factor
                    continue
                self.logger.error(f"All {max_attempts} checkout session attempts failed: {e}")
                raise UpstreamUnavailableError(e.user_message or str(e))
            except stripe.StripeError as e:
                self.logger.error(f"Stripe rejected checkout session: {e}")
                raise UpstreamUnavailableError(e.user_message or str(e))

        raise UpstreamUnavailableError("Failed to create checkout session")

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        """Fetch a checkout session by id.

        Raises:
            UpstreamUnavailableError: On any Stripe failure
        """
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self._secret_key
            )
        except stripe.StripeError as e:
            self.logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise UpstreamUnavailableError(e.user_message or str(e))
        return ProviderSession(
            id=session.id,
            payment_status=getattr(session, "payment_status", None),
            url=getattr(session, "url", None),
            metadata=_as_dict(getattr(session, "metadata", None)),
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Authenticate a webhook delivery and decode it.

        The signature is checked over the exact bytes received and its
        timestamp must lie within ``webhook_tolerance`` seconds. The body is
        only parsed once it has been authenticated.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the ``Stripe-Signature`` header

        Returns:
            The event as a plain dict

        Raises:
            UnauthenticatedError: If the payload or its signature is invalid
        """
        if not signature:
            raise UnauthenticatedError("Webhook Error: missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, tolerance=self.webhook_tolerance
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as e:
            raise UnauthenticatedError(f"Webhook Error: {e}")
        except ValueError as e:
            raise UnauthenticatedError(f"Webhook Error: invalid payload ({e})")
        if not isinstance(event, dict) or "type" not in event:
            raise UnauthenticatedError("Webhook Error: payload is not an event")
        return event
