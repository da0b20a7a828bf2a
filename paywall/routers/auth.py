"""Signup, login and password reset endpoints."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from fastapi_users import exceptions
from fastapi_users.authentication import JWTStrategy

from paywall.auth import UserManager, get_jwt_strategy, get_user_manager
from paywall.schemas.users import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UserRead,
)
from paywall.utils.errors import ConflictError, InvalidArgumentError, InvalidCredentialsError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
    strategy: JWTStrategy = Depends(get_jwt_strategy),
) -> AuthResponse:
    """Register a user and log them in."""
    try:
        user = await user_manager.create(data, safe=True, request=request)
    except exceptions.UserAlreadyExists:
        raise ConflictError("User already exists")
    except exceptions.InvalidPasswordException as e:
        raise InvalidArgumentError(str(e.reason))
    return AuthResponse(
        message="User created successfully",
        token=await strategy.write_token(user),
        user=UserRead.from_user(user),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
    strategy: JWTStrategy = Depends(get_jwt_strategy),
) -> AuthResponse:
    user = await user_manager.authenticate(OAuth2PasswordRequestForm(username=data.email, password=data.password))
    if user is None:
        raise InvalidCredentialsError("Invalid email or password")
    if not user.is_active:
        raise InvalidCredentialsError("User account is disabled")
    await user_manager.on_after_login(user, request)
    return AuthResponse(
        message="Login successful",
        token=await strategy.write_token(user),
        user=UserRead.from_user(user),
    )


@router.post("/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
):
    """Send a reset link. The answer is the same whether or not the email is registered."""
    message = {"message": "If that email is registered, a password reset link has been sent"}
    try:
        user = await user_manager.get_by_email(data.email)
    except exceptions.UserNotExists:
        logger.info("Password reset requested for an unknown email")
        return message

    try:
        await user_manager.forgot_password(user, request)
    except exceptions.UserInactive:
        logger.info(f"Password reset requested for inactive user {user.id}")
    return message


@router.post("/reset-password")
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
):
    try:
        await user_manager.reset_password(data.token, data.password, request)
    except (exceptions.InvalidResetPasswordToken, exceptions.UserNotExists, exceptions.UserInactive):
        raise InvalidArgumentError("Token is invalid or has expired")
    except exceptions.InvalidPasswordException as e:
        raise InvalidArgumentError(str(e.reason))
    return {"message": "Password reset successful"}
