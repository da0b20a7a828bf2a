"""Subscription state machine.

States are ``none -> active -> expired`` and a new successful payment may
re-enter ``active`` from either of the others. A payment is applied at most
once per provider session id, whichever path (webhook or verify-after-redirect)
gets there first.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ...config import SubscriptionSettings, settings
from ...schemas.payments import Entitlement, PaymentOutcome, SubscriptionRecord
from ...services.payment_provider import PaymentProvider
from ...utils.errors import InvalidArgumentError, NotFoundError
from ...utils.utils import as_naive_utc, parse_object_id, utcnow
from .entitlement import evaluate_entitlement, expiry_for
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)

PAYMENT_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


class SubscriptionService:
    """Applies payment events and answers entitlement reads."""

    def __init__(self, repository: SubscriptionRepository, config: Optional[SubscriptionSettings] = None):
        self.repository = repository
        self.config = config or settings.subscription
        self.logger = logging.getLogger(__name__)

    async def get_record(self, user_id: Optional[str]) -> SubscriptionRecord:
        object_id = parse_object_id(user_id, "user ID")
        record = await self.repository.get(object_id)
        if record is None:
            raise NotFoundError("User not found", details={"requestedUserId": user_id})
        return record

    async def record_payment(
        self, user_id: Optional[str], payment_ref: str, paid_at: Optional[datetime] = None
    ) -> PaymentOutcome:
        """Apply a successful payment exactly once.

        Args:
            user_id: User reference carried in the session metadata
            payment_ref: Provider session id
            paid_at: Payment time, defaults to now

        Returns:
            The record after the call and whether this call changed it

        Raises:
            InvalidArgumentError: If the user id is malformed or the key is empty
            NotFoundError: If the user does not exist
        """
        object_id = parse_object_id(user_id, "user ID")
        if not payment_ref:
            raise InvalidArgumentError("Payment reference is required")

        paid_at = as_naive_utc(paid_at) or utcnow()
        expires_at = expiry_for(paid_at, self.config.period_years)

        record = await self.repository.apply_payment(
            object_id, payment_ref, paid_at, expires_at, max_refs=self.config.max_payment_refs
        )
        if record is not None:
            self.logger.info(f"Payment {payment_ref} applied for user {user_id}, access until {expires_at.isoformat()}")
            return PaymentOutcome(record=record, applied=True)

        existing = await self.repository.get(object_id)
        if existing is None:
            raise NotFoundError("User not found")
        self.logger.info(f"Payment {payment_ref} already applied for user {user_id}, skipping")
        return PaymentOutcome(record=existing, applied=False)

    async def status(
        self, user_id: Optional[str], now: Optional[datetime] = None
    ) -> Tuple[SubscriptionRecord, Entitlement]:
        record = await self.get_record(user_id)
        return record, evaluate_entitlement(record, now or utcnow())

    async def reconcile_expiry(self, record: SubscriptionRecord, entitlement: Entitlement) -> bool:
        """Persist an expiry the evaluator found due.

        Meant to run after the response has been sent. Does nothing when
        persisting on read is disabled or no transition is due.

        Returns:
            True if the stored status was changed
        """
        if not self.config.persist_expiry_on_read or not entitlement.expiry_due or entitlement.expiry_date is None:
            return False
        try:
            changed = await self.repository.mark_expired(parse_object_id(record.user_id), entitlement.expiry_date)
        except Exception as e:
            self.logger.error(f"Failed to persist expiry for user {record.user_id}: {e}", exc_info=True)
            return False
        if changed:
            self.logger.info(f"Subscription for user {record.user_id} expired at {entitlement.expiry_date.isoformat()}")
        return changed

    async def verify_session(
        self, provider: PaymentProvider, session_id: Optional[str]
    ) -> Tuple[bool, Optional[SubscriptionRecord], Optional[Entitlement]]:
        """Confirm a checkout from the client side after the redirect.

        Used when the webhook has not arrived yet. The payment is applied only
        if the user is not currently entitled, and then under the same session
        key the webhook uses, so the two paths cannot both extend access.

        Returns:
            Tuple of (paid, record, entitlement); record and entitlement are None when unpaid

        Raises:
            InvalidArgumentError: If the session id is missing or carries no user reference
            NotFoundError: If the referenced user does not exist
            UpstreamUnavailableError: If the provider cannot be reached
        """
        if not session_id:
            raise InvalidArgumentError("Session ID is required")

        session = await provider.retrieve_session(session_id)
        if not session.is_paid:
            self.logger.info(f"Session {session_id} is not paid yet ({session.payment_status})")
            return False, None, None

        user_id = session.metadata.get("userId")
        if not user_id:
            raise InvalidArgumentError("User ID not found in session metadata")

        record = await self.get_record(user_id)
        entitlement = evaluate_entitlement(record, utcnow())
        if not entitlement.has_access:
            outcome = await self.record_payment(user_id, session.id)
            record = outcome.record
            entitlement = evaluate_entitlement(record, utcnow())
        return True, record, entitlement

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch an authenticated webhook event.

        A missing or unknown user is logged and acknowledged so the provider
        stops redelivering. Anything else that goes wrong propagates.

        Args:
            event: Verified event payload

        Returns:
            Acknowledgement body
        """
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        if event_type in PAYMENT_EVENTS:
            session_id = data.get("id")
            if event_type == "checkout.session.completed" and data.get("payment_status") != "paid":
                self.logger.info(f"Checkout session {session_id} completed but unpaid, waiting for async payment")
                return {"received": True}

            user_id = (data.get("metadata") or {}).get("userId")
            if not user_id:
                self.logger.warning(f"Checkout session {session_id} carries no userId metadata, ignoring")
                return {"received": True}

            try:
                outcome = await self.record_payment(user_id, session_id)
            except (InvalidArgumentError, NotFoundError) as e:
                self.logger.warning(f"Ignoring payment for session {session_id}: {e.message} ({user_id})")
                return {"received": True}
            if not outcome.applied:
                return {"received": True, "duplicate": True}
            return {"received": True}

        if event_type == "payment_intent.succeeded":
            self.logger.info(f"PaymentIntent succeeded: {data.get('id')}")
        else:
            self.logger.info(f"Unhandled event type: {event_type}")
        return {"received": True}
