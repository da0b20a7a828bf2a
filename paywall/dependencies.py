"""Dependency providers wiring repositories, services and the payment provider."""

from fastapi import Depends, Request

from paywall.domains.checkout.service import CheckoutService
from paywall.domains.coupons.repository import CouponRepository
from paywall.domains.coupons.service import CouponService
from paywall.domains.subscriptions.repository import SubscriptionRepository
from paywall.domains.subscriptions.service import SubscriptionService
from paywall.services.payment_provider import PaymentProvider
from paywall.utils.errors import ConfigurationError


def get_coupon_repository() -> CouponRepository:
    return CouponRepository()


def get_coupon_service(repository: CouponRepository = Depends(get_coupon_repository)) -> CouponService:
    return CouponService(repository)


def get_subscription_repository() -> SubscriptionRepository:
    return SubscriptionRepository()


def get_subscription_service(
    repository: SubscriptionRepository = Depends(get_subscription_repository),
) -> SubscriptionService:
    return SubscriptionService(repository)


def get_payment_provider(request: Request) -> PaymentProvider:
    """Return the provider built at startup.

    Raises:
        ConfigurationError: The startup error, if the provider could not be built
    """
    provider = getattr(request.app.state, "payment_provider", None)
    if provider is None:
        error = getattr(request.app.state, "payment_provider_error", None)
        raise ConfigurationError(error.message if isinstance(error, ConfigurationError) else "Stripe is not configured")
    return provider


def get_checkout_service(
    coupons: CouponService = Depends(get_coupon_service),
    subscriptions: SubscriptionRepository = Depends(get_subscription_repository),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> CheckoutService:
    return CheckoutService(coupons, subscriptions, provider)
