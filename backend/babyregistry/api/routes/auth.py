import logging
from typing import TypedDict

from fastapi import APIRouter, HTTPException, Request, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from babyregistry.api.deps import CurrentUserDep, DbSessionDep
from babyregistry.core.audit import (
    audit_login_failed,
    audit_login_success,
    audit_logout,
    audit_register,
)
from babyregistry.core.config import settings
from babyregistry.core.rate_limit import check_rate_limit
from babyregistry.core.security import create_access_token, get_password_hash, verify_password
from babyregistry.models.models import User
from babyregistry.schemas.auth import LoginRequest, RegisterRequest, UserPublic


router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("babyregistry.auth")


class CookieOptions(TypedDict, total=False):
    samesite: str
    secure: bool


def _cookie_options() -> CookieOptions:
    """
    Return cookie options based on environment.

    Local and test runs use lax/insecure cookies over plain HTTP; any other
    environment serves the frontend cross-origin over HTTPS.
    """
    environment = (settings.environment or "local").lower()
    if environment in ("local", "test"):
        return {"samesite": "lax", "secure": False}
    return {"samesite": "none", "secure": True}


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        "access_token",
        token,
        httponly=True,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
        **_cookie_options(),
    )


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: RegisterRequest,
    db: DbSessionDep,
    request: Request,
    response: Response,
) -> UserPublic:
    check_rate_limit(request, max_requests=5, window_seconds=300, key_suffix="register")

    existing = await db.execute(
        select(User).where(or_(User.username == payload.username, User.email == payload.email))
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="El usuario o el email ya están registrados",
        )

    user = User(
        username=payload.username,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    # Issue the session cookie immediately, no second /login request needed
    _set_auth_cookie(response, create_access_token(str(user.id)))
    audit_register(request, user.id, user.username)
    return UserPublic.model_validate(user)


@router.post("/login", response_model=UserPublic)
async def login_user(
    payload: LoginRequest,
    response: Response,
    db: DbSessionDep,
    request: Request,
) -> UserPublic:
    check_rate_limit(
        request,
        max_requests=settings.rate_limit_login_requests,
        window_seconds=60,
        key_suffix="login",
    )

    request_id = request.headers.get("X-Request-Id")
    logger.info("Auth login request id=%s username=%s", request_id, payload.username)
    try:
        result = await db.execute(select(User).where(User.username == payload.username))
        user = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Auth login db error id=%s username=%s", request_id, payload.username)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Base de datos no disponible",
        )

    if not user or not verify_password(payload.password, user.hashed_password):
        reason = "user_not_found" if not user else "invalid_password"
        logger.info("Auth login rejected id=%s reason=%s", request_id, reason)
        audit_login_failed(request, payload.username, reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario o contraseña incorrectos",
        )

    _set_auth_cookie(response, create_access_token(str(user.id)))
    audit_login_success(request, user.id, user.username)
    logger.info("Auth login success id=%s user_id=%s", request_id, user.id)
    return UserPublic.model_validate(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_user(request: Request, response: Response) -> None:
    response.delete_cookie("access_token", path="/", **_cookie_options())
    audit_logout(request)


@router.get("/me", response_model=UserPublic)
async def get_me(current_user: CurrentUserDep) -> UserPublic:
    return UserPublic.model_validate(current_user)
