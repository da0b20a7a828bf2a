"""Entitlement evaluation and period arithmetic.

Everything here is pure: no I/O, the clock is passed in.
"""

from datetime import datetime
from typing import Optional

from ...schemas.payments import Entitlement, SubscriptionRecord
from ...schemas.users import SubscriptionStatus
from ...utils.utils import add_years, as_naive_utc


def expiry_for(paid_at: datetime, period_years: int = 1) -> datetime:
    """End of the access period bought by a payment made at ``paid_at``."""
    return add_years(as_naive_utc(paid_at), period_years)


def evaluate_entitlement(record: SubscriptionRecord, now: datetime) -> Entitlement:
    """Decide whether a record grants access at ``now``.

    The stored status is never trusted on its own: an ``active`` record whose
    expiry date has passed is reported as ``expired`` with ``expiry_due`` set,
    whether or not that transition has been persisted yet.

    Args:
        record: Subscription fields of the user
        now: Evaluation time

    Returns:
        Access decision, effective status and whether an expiry write is due
    """
    now = as_naive_utc(now)
    expiry: Optional[datetime] = as_naive_utc(record.subscription_expiry_date)

    if not record.payment_status or record.subscription_status == SubscriptionStatus.NONE:
        return Entitlement(has_access=False, status=SubscriptionStatus.NONE, expiry_date=expiry)

    if record.subscription_status == SubscriptionStatus.EXPIRED:
        return Entitlement(has_access=False, status=SubscriptionStatus.EXPIRED, expiry_date=expiry)

    if expiry is not None and now > expiry:
        return Entitlement(
            has_access=False,
            status=SubscriptionStatus.EXPIRED,
            expiry_date=expiry,
            expiry_due=True,
        )

    return Entitlement(has_access=True, status=SubscriptionStatus.ACTIVE, expiry_date=expiry)
