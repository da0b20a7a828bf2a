from datetime import datetime
from enum import Enum
from typing import List, Optional

from beanie import Document
from fastapi_users.db import BeanieBaseUser
from fastapi_users.schemas import BaseUserCreate
from pydantic import BaseModel, EmailStr, Field, field_validator

from paywall.utils.utils import utcnow


class SubscriptionStatus(str, Enum):
    """Stored lifecycle state of a user's paid access."""

    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"


class User(BeanieBaseUser, Document):
    username: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    # Owned by the subscription domain; written only through SubscriptionRepository
    payment_status: bool = False
    payment_date: Optional[datetime] = None
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    subscription_expiry_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    processed_payment_refs: List[str] = Field(default_factory=list)

    class Settings(BeanieBaseUser.Settings):
        name = "users"


class SignupRequest(BaseUserCreate):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    # Echoed from the reset link; the token alone identifies the user
    email: Optional[EmailStr] = None


class UserRead(BaseModel):
    id: str
    username: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(id=str(user.id), username=user.username, email=user.email)


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserRead
