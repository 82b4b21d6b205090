"""Registration, login and session endpoints."""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from panorama_api.auth import (
    AuthenticatedUser, clear_auth_cookie, create_token, get_current_user,
    hash_password, is_strong_password, set_auth_cookie, verify_password,
)
from panorama_api.db import get_db
from panorama_api.errors import AuthError, Conflict, NotFound, ValidationError
from panorama_api.models import User
from panorama_api.repository import UserRepository
from panorama_api.schemas import AuthOut, LoginRequest, MessageOut, RegisterRequest, UserOut
from panorama_api.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.API_PREFIX}/auth", tags=["auth"])


def _issue(response: Response, user: User) -> AuthOut:
    token = create_token(user.id, user.email)
    set_auth_cookie(response, token)
    return AuthOut(user=UserOut.from_record(user), token=token)


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    if not payload.email or not payload.password or not payload.name:
        raise ValidationError("Email, name, and password are required.")

    if not is_strong_password(payload.password):
        raise ValidationError(
            "Password must be at least 8 characters and include uppercase, lowercase, number, and symbol."
        )

    users = UserRepository(db)
    email = payload.email.strip().lower()
    if await users.find_by_email(email):
        raise Conflict("Email is already in use.")

    user = await users.create(User(
        email=email,
        name=payload.name,
        password_hash=hash_password(payload.password),
    ))
    logger.info("Registered user %s", user.id)
    return _issue(response, user)


@router.post("/login", response_model=AuthOut)
async def login(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")

    user = await UserRepository(db).find_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise AuthError("Invalid credentials")

    return _issue(response, user)


@router.post("/logout", response_model=MessageOut)
async def logout(response: Response):
    clear_auth_cookie(response)
    return MessageOut(message="Logged out")


@router.get("/me", response_model=UserOut)
async def get_me(
    current: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await UserRepository(db).find_by_id(current.id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.from_record(user)
