from typing import Annotated
import logging

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from babyregistry.core.mailer import NotificationDispatcher
from babyregistry.core.security import decode_access_token
from babyregistry.db.session import get_db
from babyregistry.models.models import User
from babyregistry.services.registries import RegistryService


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
logger = logging.getLogger("babyregistry.auth")


def _extract_token(request: Request, access_token: str | None) -> str | None:
    if access_token:
        return access_token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip()
    return None


async def get_current_user(
    request: Request,
    db: DbSessionDep,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> User:
    token = _extract_token(request, access_token)
    if not token:
        logger.info(
            "Auth token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")

    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        logger.info("Auth token invalid path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token no válido")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        logger.info("Auth token subject invalid path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token no válido") from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        logger.info("Auth user missing path=%s user_id=%s", request.url.path, user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario no encontrado")

    logger.debug("get_current_user: authenticated user_id=%s", user.id)
    return user


async def get_optional_user(
    request: Request,
    db: DbSessionDep,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> User | None:
    token = _extract_token(request, access_token)
    if not token:
        return None

    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """The dispatcher is built once at startup and stored on the app."""
    return request.app.state.dispatcher


def get_registry_service(db: DbSessionDep) -> RegistryService:
    return RegistryService(db)


CurrentUserDep = Annotated[User, Depends(get_current_user)]
OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
RegistryServiceDep = Annotated[RegistryService, Depends(get_registry_service)]
