import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

# Settings are read at import time
os.environ.setdefault("AUTH_SECRET_KEY", "test-auth-secret")
os.environ.setdefault("API_KEY", "test-admin-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_mock")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")
os.environ.setdefault("ENABLE_FILE_LOGGING", "false")

import pytest
from beanie import PydanticObjectId
from bson import ObjectId
from fastapi.testclient import TestClient
from pydantic import BaseModel

from paywall.auth import UserManager, get_user_db, get_user_manager
from paywall.config import RetrySettings
from paywall.dependencies import get_coupon_repository, get_payment_provider, get_subscription_repository
from paywall.schemas.codes import CodeRead
from paywall.schemas.payments import ProviderSession, SubscriptionRecord
from paywall.schemas.users import SubscriptionStatus
from paywall.services.payment_provider import PaymentProvider
from paywall.utils.errors import ConflictError
from paywall.utils.utils import utcnow

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_HEADERS = {"X-Key": "test-admin-key"}


class FakeCouponRepository:
    """In-memory stand-in for CouponRepository."""

    def __init__(self):
        self.codes: Dict[str, CodeRead] = {}
        self._clock = datetime(2024, 1, 1)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add(self, code: str, discount: float = 0, description: str = "", is_active: bool = True) -> CodeRead:
        now = self._tick()
        item = CodeRead(
            id=str(ObjectId()),
            code=code,
            description=description,
            discount=discount,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self.codes[item.id] = item
        return item

    async def find_by_code_insensitive(self, code: str) -> Optional[CodeRead]:
        matches = [c for c in self.codes.values() if c.code.lower() == code.lower()]
        matches.sort(key=lambda c: c.is_active, reverse=True)
        return matches[0] if matches else None

    async def find_by_code(self, code: str) -> Optional[CodeRead]:
        return next((c for c in self.codes.values() if c.code == code), None)

    async def get(self, code_id: PydanticObjectId) -> Optional[CodeRead]:
        return self.codes.get(str(code_id))

    async def list(
        self, is_active: Optional[bool] = None, search: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> Tuple[List[CodeRead], int]:
        items = [
            c
            for c in self.codes.values()
            if (is_active is None or c.is_active == is_active) and (not search or search.lower() in c.code.lower())
        ]
        items.sort(key=lambda c: c.created_at, reverse=True)
        return items[skip : skip + limit], len(items)

    async def code_taken(self, code: str, exclude_id: Optional[PydanticObjectId] = None) -> bool:
        return any(c.code == code and c.id != str(exclude_id) for c in self.codes.values())

    async def existing_codes(self, codes: List[str]) -> List[str]:
        return [c.code for c in self.codes.values() if c.code in codes]

    async def insert(self, data: Dict[str, Any]) -> CodeRead:
        if await self.code_taken(data["code"]):
            raise ConflictError("Code already exists")
        return self.add(**data)

    async def insert_many(self, items: List[Dict[str, Any]]) -> List[CodeRead]:
        return [self.add(**item) for item in items]

    async def update(self, code_id: PydanticObjectId, data: Dict[str, Any]) -> Optional[CodeRead]:
        current = self.codes.get(str(code_id))
        if current is None:
            return None
        updated = current.model_copy(update={**data, "updated_at": self._tick()})
        self.codes[updated.id] = updated
        return updated

    async def delete(self, code_id: PydanticObjectId) -> Optional[CodeRead]:
        return self.codes.pop(str(code_id), None)


class FakeSubscriptionRepository:
    """In-memory stand-in for SubscriptionRepository with the same conditional writes."""

    def __init__(self):
        self.records: Dict[str, SubscriptionRecord] = {}
        self.apply_calls = 0

    def add_user(self, username: str = "alice", email: str = "alice@example.com", **fields: Any) -> SubscriptionRecord:
        record = SubscriptionRecord(user_id=str(ObjectId()), username=username, email=email, **fields)
        self.records[record.user_id] = record
        return record

    async def get(self, user_id: PydanticObjectId) -> Optional[SubscriptionRecord]:
        return self.records.get(str(user_id))

    async def apply_payment(
        self,
        user_id: PydanticObjectId,
        payment_ref: str,
        paid_at: datetime,
        expires_at: datetime,
        max_refs: int = 50,
    ) -> Optional[SubscriptionRecord]:
        self.apply_calls += 1
        record = self.records.get(str(user_id))
        if record is None or payment_ref in record.processed_payment_refs:
            return None
        updated = record.model_copy(
            update={
                "payment_status": True,
                "payment_date": paid_at,
                "subscription_expiry_date": expires_at,
                "subscription_status": SubscriptionStatus.ACTIVE,
                "processed_payment_refs": (record.processed_payment_refs + [payment_ref])[-max_refs:],
            }
        )
        self.records[updated.user_id] = updated
        return updated

    async def mark_expired(self, user_id: PydanticObjectId, expected_expiry: datetime) -> bool:
        record = self.records.get(str(user_id))
        if (
            record is None
            or record.subscription_status != SubscriptionStatus.ACTIVE
            or record.subscription_expiry_date != expected_expiry
        ):
            return False
        self.records[record.user_id] = record.model_copy(update={"subscription_status": SubscriptionStatus.EXPIRED})
        return True

    async def set_customer_id(self, user_id: PydanticObjectId, customer_id: str) -> Optional[SubscriptionRecord]:
        record = self.records.get(str(user_id))
        if record is None or record.stripe_customer_id is not None:
            return None
        updated = record.model_copy(update={"stripe_customer_id": customer_id})
        self.records[updated.user_id] = updated
        return updated


class StoredUser(BaseModel):
    """Plain stand-in for the User document; Beanie documents need a live database."""

    id: PydanticObjectId
    email: str
    username: str = ""
    hashed_password: str
    is_active: bool = True
    is_superuser: bool = False
    is_verified: bool = False


class FakeUserDatabase:
    """In-memory stand-in for BeanieUserDatabase."""

    def __init__(self):
        self.users: Dict[str, StoredUser] = {}

    async def get(self, user_id: PydanticObjectId) -> Optional[StoredUser]:
        return self.users.get(str(user_id))

    async def get_by_email(self, email: str) -> Optional[StoredUser]:
        return next((u for u in self.users.values() if u.email.lower() == email.lower()), None)

    async def create(self, create_dict: Dict[str, Any]) -> StoredUser:
        user = StoredUser(id=PydanticObjectId(), **create_dict)
        self.users[str(user.id)] = user
        return user

    async def update(self, user: StoredUser, update_dict: Dict[str, Any]) -> StoredUser:
        updated = self.users[str(user.id)].model_copy(update=update_dict)
        self.users[str(user.id)] = updated
        return updated

    async def delete(self, user: StoredUser) -> None:
        self.users.pop(str(user.id), None)


class FakeMailer:
    def __init__(self):
        self.sent: List[Dict[str, str]] = []
        self.error: Optional[Exception] = None

    async def __call__(self, to: str, subject: str, html: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html})


class FakePaymentProvider(PaymentProvider):
    """Keeps the real webhook verification, replaces the network calls."""

    def __init__(self):
        super().__init__("sk_test_mock", WEBHOOK_SECRET, RetrySettings(max_attempts=1, initial_delay=0))
        self.customers: List[Dict[str, str]] = []
        self.checkout_calls: List[Dict[str, Any]] = []
        self.sessions: Dict[str, ProviderSession] = {}
        self.error: Optional[Exception] = None

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        if self.error is not None:
            raise self.error
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({"id": customer_id, "email": email, "name": name, "user_id": user_id})
        return customer_id

    async def create_checkout_session(self, **kwargs: Any) -> ProviderSession:
        if self.error is not None:
            raise self.error
        self.checkout_calls.append(kwargs)
        session = ProviderSession(
            id=f"cs_test_{len(self.checkout_calls)}",
            payment_status="unpaid",
            url=f"https://checkout.stripe.test/cs_test_{len(self.checkout_calls)}",
            metadata=kwargs["metadata"],
        )
        self.sessions[session.id] = session
        return session

    async def retrieve_session(self, session_id: str) -> ProviderSession:
        if self.error is not None:
            raise self.error
        return self.sessions[session_id]

    def add_session(self, session_id: str, user_id: Optional[str], paid: bool = True) -> ProviderSession:
        session = ProviderSession(
            id=session_id,
            payment_status="paid" if paid else "unpaid",
            metadata={"userId": user_id} if user_id else {},
        )
        self.sessions[session_id] = session
        return session


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_completed_event(session_id: str, user_id: Optional[str], payment_status: str = "paid") -> str:
    return json.dumps(
        {
            "id": f"evt_{session_id}",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "payment_status": payment_status,
                    "metadata": {"userId": user_id} if user_id else {},
                }
            },
        }
    )


@pytest.fixture
def coupon_repo() -> FakeCouponRepository:
    return FakeCouponRepository()


@pytest.fixture
def subscription_repo() -> FakeSubscriptionRepository:
    return FakeSubscriptionRepository()


@pytest.fixture
def user_db() -> FakeUserDatabase:
    return FakeUserDatabase()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def user_manager(user_db, mailer) -> UserManager:
    return UserManager(user_db, mailer=mailer)


@pytest.fixture
def app(coupon_repo, subscription_repo, user_db, user_manager, provider):
    from paywall.start import app as fastapi_app

    fastapi_app.dependency_overrides[get_coupon_repository] = lambda: coupon_repo
    fastapi_app.dependency_overrides[get_subscription_repository] = lambda: subscription_repo
    fastapi_app.dependency_overrides[get_user_db] = lambda: user_db
    fastapi_app.dependency_overrides[get_user_manager] = lambda: user_manager
    fastapi_app.dependency_overrides[get_payment_provider] = lambda: provider
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    # No context manager: the lifespan (database, Stripe setup) is not run
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def now() -> datetime:
    return utcnow()


@pytest.fixture
def signer():
    return sign


@pytest.fixture
def completed_event():
    return checkout_completed_event
