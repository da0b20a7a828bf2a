from logging import getLogger
from typing import Awaitable, Callable, Optional

from beanie import PydanticObjectId
from fastapi import Depends, Request
from fastapi_users import BaseUserManager, FastAPIUsers
from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy
from fastapi_users.password import PasswordHelperProtocol
from fastapi_users_db_beanie import ObjectIDIDMixin

from paywall.config import settings
from paywall.db import get_user_db
from paywall.schemas.users import User
from paywall.services.email import send_email
from paywall.utils.errors import ConfigurationError, PaywallError, UpstreamUnavailableError

logger = getLogger(__name__)

Mailer = Callable[[str, str, str], Awaitable[None]]


class UserManager(ObjectIDIDMixin, BaseUserManager[User, PydanticObjectId]):
    reset_password_token_secret = settings.auth.secret_key
    reset_password_token_lifetime_seconds = settings.auth.reset_token_lifetime_seconds
    verification_token_secret = settings.auth.secret_key

    def __init__(
        self,
        user_db,
        password_helper: Optional[PasswordHelperProtocol] = None,
        mailer: Mailer = send_email,
    ):
        super().__init__(user_db, password_helper)
        self.mailer = mailer

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        logger.info(f"User {user.id} has registered.")

    async def on_after_forgot_password(self, user: User, token: str, request: Optional[Request] = None):
        """Mail the reset link.

        The token is a signed JWT bound to the current password hash, so it
        stops working once the password changes or an hour has passed.

        Raises:
            UpstreamUnavailableError: If the reset mail could not be sent
        """
        reset_url = f"{settings.stripe.frontend_url.rstrip('/')}/reset-password?token={token}&email={user.email}"
        html = (
            "<h1>Password Reset Request</h1>"
            "<p>You requested a password reset. Click the link below to choose a new password:</p>"
            f'<p><a href="{reset_url}">Reset password</a></p>'
            "<p>This link expires in one hour. If you did not request it, ignore this email.</p>"
        )
        try:
            await self.mailer(user.email, "Password Reset Request", html)
        except PaywallError as e:
            logger.error(f"Could not send reset mail to user {user.id}: {e.message}")
            raise UpstreamUnavailableError("Email could not be sent")
        logger.info(f"Password reset mail sent to user {user.id}")

    async def on_after_reset_password(self, user: User, request: Optional[Request] = None):
        logger.info(f"User {user.id} has reset their password.")


async def get_user_manager(user_db=Depends(get_user_db)):
    yield UserManager(user_db)


bearer_transport = BearerTransport(tokenUrl="auth/login")


def get_jwt_strategy() -> JWTStrategy:
    if not settings.auth.secret_key.get_secret_value():
        raise ConfigurationError("AUTH_SECRET_KEY is not set")
    return JWTStrategy(secret=settings.auth.secret_key, lifetime_seconds=settings.auth.jwt_lifetime_seconds)


auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, PydanticObjectId](
    get_user_manager,
    [auth_backend],
)

current_active_user = fastapi_users.current_user(active=True)
