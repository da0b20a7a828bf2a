"""Repository for the subscription fields of user documents.

Every write here is a single conditional ``find_one_and_update`` so that
concurrent webhook deliveries and client confirmations cannot both apply.
"""

import logging
from datetime import datetime
from typing import Optional

from beanie import PydanticObjectId, UpdateResponse

from ...schemas.payments import SubscriptionRecord
from ...schemas.users import SubscriptionStatus, User

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """Repository for subscription state data access."""

    def __init__(self):
        """Initialize the repository."""
        self.logger = logging.getLogger(__name__)

    async def get(self, user_id: PydanticObjectId) -> Optional[SubscriptionRecord]:
        user = await User.get(user_id)
        return SubscriptionRecord.from_user(user) if user else None

    async def apply_payment(
        self,
        user_id: PydanticObjectId,
        payment_ref: str,
        paid_at: datetime,
        expires_at: datetime,
        max_refs: int = 50,
    ) -> Optional[SubscriptionRecord]:
        """Record a successful payment unless ``payment_ref`` was applied before.

        Args:
            user_id: Owner of the subscription
            payment_ref: Provider session id, the idempotency key
            paid_at: Payment timestamp
            expires_at: End of the period bought
            max_refs: How many applied keys to remember

        Returns:
            The updated record, or None when nothing matched (unknown user or
            an already applied key)
        """
        user = await User.find_one(
            {"_id": user_id, "processed_payment_refs": {"$ne": payment_ref}}
        ).update(
            {
                "$set": {
                    "payment_status": True,
                    "payment_date": paid_at,
                    "subscription_expiry_date": expires_at,
                    "subscription_status": SubscriptionStatus.ACTIVE.value,
                },
                "$push": {"processed_payment_refs": {"$each": [payment_ref], "$slice": -max_refs}},
            },
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        return SubscriptionRecord.from_user(user) if user else None

    async def mark_expired(self, user_id: PydanticObjectId, expected_expiry: datetime) -> bool:
        """Persist the active to expired transition.

        Matches only while the record still holds the expiry that was evaluated,
        so a renewal written in between is left alone.
        """
        user = await User.find_one(
            {
                "_id": user_id,
                "subscription_status": SubscriptionStatus.ACTIVE.value,
                "subscription_expiry_date": expected_expiry,
            }
        ).update(
            {"$set": {"subscription_status": SubscriptionStatus.EXPIRED.value}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        return user is not None

    async def set_customer_id(self, user_id: PydanticObjectId, customer_id: str) -> Optional[SubscriptionRecord]:
        """Bind a provider customer id if none is bound yet.

        Returns:
            The updated record, or None if the user is gone or already bound
        """
        user = await User.find_one({"_id": user_id, "stripe_customer_id": None}).update(
            {"$set": {"stripe_customer_id": customer_id}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        return SubscriptionRecord.from_user(user) if user else None
