"""Tests for the subscription state machine."""

from datetime import datetime, timedelta

import pytest

from paywall.config import SubscriptionSettings
from paywall.domains.subscriptions.entitlement import expiry_for
from paywall.domains.subscriptions.service import SubscriptionService
from paywall.schemas.users import SubscriptionStatus
from paywall.utils.errors import InvalidArgumentError, NotFoundError, UpstreamUnavailableError
from paywall.utils.utils import utcnow

T0 = datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def service(subscription_repo) -> SubscriptionService:
    return SubscriptionService(subscription_repo, SubscriptionSettings())


def _paid_event(session_id: str, user_id, payment_status: str = "paid", event_type="checkout.session.completed"):
    return {
        "id": f"evt_{session_id}",
        "type": event_type,
        "data": {"object": {"id": session_id, "payment_status": payment_status, "metadata": {"userId": user_id}}},
    }


class TestRecordPayment:
    @pytest.mark.asyncio
    async def test_first_payment_activates_for_a_year(self, service, subscription_repo):
        user = subscription_repo.add_user()

        outcome = await service.record_payment(user.user_id, "cs_1", paid_at=T0)

        assert outcome.applied is True
        record = outcome.record
        assert record.payment_status is True
        assert record.payment_date == T0
        assert record.subscription_status == SubscriptionStatus.ACTIVE
        assert record.subscription_expiry_date == datetime(2025, 3, 15, 12, 0, 0)
        assert record.processed_payment_refs == ["cs_1"]

    @pytest.mark.asyncio
    async def test_duplicate_session_does_not_extend(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)

        outcome = await service.record_payment(user.user_id, "cs_1", paid_at=T0 + timedelta(days=30))

        assert outcome.applied is False
        assert outcome.record.subscription_expiry_date == expiry_for(T0)
        assert outcome.record.payment_date == T0

    @pytest.mark.asyncio
    async def test_new_session_renews_expired(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)
        renewed_at = T0 + timedelta(days=400)

        outcome = await service.record_payment(user.user_id, "cs_2", paid_at=renewed_at)

        assert outcome.applied is True
        assert outcome.record.subscription_expiry_date == expiry_for(renewed_at)
        assert outcome.record.processed_payment_refs == ["cs_1", "cs_2"]

    @pytest.mark.asyncio
    async def test_remembered_keys_are_capped(self, subscription_repo):
        service = SubscriptionService(subscription_repo, SubscriptionSettings(max_payment_refs=2))
        user = subscription_repo.add_user()

        for ref in ["cs_1", "cs_2", "cs_3"]:
            await service.record_payment(user.user_id, ref, paid_at=T0)

        assert subscription_repo.records[user.user_id].processed_payment_refs == ["cs_2", "cs_3"]

    @pytest.mark.asyncio
    async def test_invalid_user_id(self, service):
        with pytest.raises(InvalidArgumentError):
            await service.record_payment("nope", "cs_1")

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            await service.record_payment("65f000000000000000000099", "cs_1")


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_of_new_user(self, service, subscription_repo):
        user = subscription_repo.add_user()

        record, entitlement = await service.status(user.user_id)

        assert record.user_id == user.user_id
        assert entitlement.has_access is False
        assert entitlement.status == SubscriptionStatus.NONE

    @pytest.mark.asyncio
    async def test_status_reports_stale_active_as_expired(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)

        record, entitlement = await service.status(user.user_id, now=expiry_for(T0) + timedelta(seconds=1))

        assert record.subscription_status == SubscriptionStatus.ACTIVE
        assert entitlement.has_access is False
        assert entitlement.status == SubscriptionStatus.EXPIRED
        assert entitlement.expiry_due is True

    @pytest.mark.asyncio
    async def test_invalid_id(self, service):
        with pytest.raises(InvalidArgumentError):
            await service.status("123")


class TestReconcileExpiry:
    @pytest.mark.asyncio
    async def test_persists_due_expiry(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)
        record, entitlement = await service.status(user.user_id, now=T0 + timedelta(days=500))

        changed = await service.reconcile_expiry(record, entitlement)

        assert changed is True
        assert subscription_repo.records[user.user_id].subscription_status == SubscriptionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_does_not_clobber_a_renewal(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)
        record, entitlement = await service.status(user.user_id, now=T0 + timedelta(days=500))
        await service.record_payment(user.user_id, "cs_2", paid_at=T0 + timedelta(days=500))

        changed = await service.reconcile_expiry(record, entitlement)

        assert changed is False
        assert subscription_repo.records[user.user_id].subscription_status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_disabled(self, subscription_repo):
        service = SubscriptionService(subscription_repo, SubscriptionSettings(persist_expiry_on_read=False))
        user = subscription_repo.add_user()
        await service.record_payment(user.user_id, "cs_1", paid_at=T0)
        record, entitlement = await service.status(user.user_id, now=T0 + timedelta(days=500))

        assert await service.reconcile_expiry(record, entitlement) is False
        assert subscription_repo.records[user.user_id].subscription_status == SubscriptionStatus.ACTIVE


class TestVerifySession:
    @pytest.mark.asyncio
    async def test_paid_session_applies_payment(self, service, subscription_repo, provider):
        user = subscription_repo.add_user()
        provider.add_session("cs_1", user.user_id)

        paid, record, entitlement = await service.verify_session(provider, "cs_1")

        assert paid is True
        assert entitlement.has_access is True
        assert record.processed_payment_refs == ["cs_1"]

    @pytest.mark.asyncio
    async def test_repeated_verify_is_a_no_op(self, service, subscription_repo, provider):
        user = subscription_repo.add_user()
        provider.add_session("cs_1", user.user_id)
        _, first, _ = await service.verify_session(provider, "cs_1")

        _, second, _ = await service.verify_session(provider, "cs_1")

        assert second.subscription_expiry_date == first.subscription_expiry_date
        assert subscription_repo.apply_calls == 1

    @pytest.mark.asyncio
    async def test_verify_after_webhook_does_not_extend(self, service, subscription_repo, provider):
        user = subscription_repo.add_user()
        provider.add_session("cs_1", user.user_id)
        await service.handle_event(_paid_event("cs_1", user.user_id))
        expiry = subscription_repo.records[user.user_id].subscription_expiry_date

        paid, record, _ = await service.verify_session(provider, "cs_1")

        assert paid is True
        assert record.subscription_expiry_date == expiry

    @pytest.mark.asyncio
    async def test_unpaid_session(self, service, subscription_repo, provider):
        user = subscription_repo.add_user()
        provider.add_session("cs_1", user.user_id, paid=False)

        paid, record, entitlement = await service.verify_session(provider, "cs_1")

        assert paid is False
        assert record is None and entitlement is None
        assert subscription_repo.records[user.user_id].payment_status is False

    @pytest.mark.asyncio
    async def test_session_without_user(self, service, provider):
        provider.add_session("cs_1", None)

        with pytest.raises(InvalidArgumentError):
            await service.verify_session(provider, "cs_1")

    @pytest.mark.asyncio
    async def test_missing_session_id(self, service, provider):
        with pytest.raises(InvalidArgumentError):
            await service.verify_session(provider, None)

    @pytest.mark.asyncio
    async def test_provider_failure_surfaces(self, service, provider):
        provider.error = UpstreamUnavailableError("Stripe is down")

        with pytest.raises(UpstreamUnavailableError):
            await service.verify_session(provider, "cs_1")


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_paid_checkout_applies(self, service, subscription_repo):
        user = subscription_repo.add_user()

        result = await service.handle_event(_paid_event("cs_1", user.user_id))

        assert result == {"received": True}
        record = subscription_repo.records[user.user_id]
        assert record.subscription_status == SubscriptionStatus.ACTIVE
        assert record.subscription_expiry_date > utcnow() + timedelta(days=360)

    @pytest.mark.asyncio
    async def test_redelivery_is_acknowledged_without_change(self, service, subscription_repo):
        user = subscription_repo.add_user()
        await service.handle_event(_paid_event("cs_1", user.user_id))
        before = subscription_repo.records[user.user_id]

        result = await service.handle_event(_paid_event("cs_1", user.user_id))

        assert result == {"received": True, "duplicate": True}
        assert subscription_repo.records[user.user_id] == before

    @pytest.mark.asyncio
    async def test_unpaid_completion_waits(self, service, subscription_repo):
        user = subscription_repo.add_user()

        result = await service.handle_event(_paid_event("cs_1", user.user_id, payment_status="unpaid"))

        assert result == {"received": True}
        assert subscription_repo.apply_calls == 0

    @pytest.mark.asyncio
    async def test_async_payment_succeeded_applies(self, service, subscription_repo):
        user = subscription_repo.add_user()

        await service.handle_event(
            _paid_event("cs_1", user.user_id, event_type="checkout.session.async_payment_succeeded")
        )

        assert subscription_repo.records[user.user_id].payment_status is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [None, "not-an-id", "65f000000000000000000099"])
    async def test_bad_or_unknown_user_is_acknowledged(self, service, subscription_repo, user_id):
        result = await service.handle_event(_paid_event("cs_1", user_id))

        assert result == {"received": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", ["payment_intent.succeeded", "customer.created"])
    async def test_other_events_are_acknowledged(self, service, subscription_repo, event_type):
        user = subscription_repo.add_user()

        result = await service.handle_event(_paid_event("pi_1", user.user_id, event_type=event_type))

        assert result == {"received": True}
        assert subscription_repo.apply_calls == 0
