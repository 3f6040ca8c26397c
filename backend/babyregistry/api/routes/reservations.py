"""Public reservation endpoints. Guests are anonymous: the cancellation token is their only credential."""
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from babyregistry.api.deps import DbSessionDep, DispatcherDep
from babyregistry.core.audit import AuditAction, audit_reservation
from babyregistry.core.config import settings
from babyregistry.core.rate_limit import check_rate_limit
from babyregistry.schemas.registry import (
    CancellationLookup,
    CancellationResult,
    GiftPublic,
    GiftReserved,
    RegistryPublic,
    ReservationCreate,
    ReservationRequest,
)
from babyregistry.services.reservations import ReservationManager

router = APIRouter(tags=["reservations"])
compat_router = APIRouter(tags=["reservations"])


def get_reservation_manager(
    db: DbSessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> ReservationManager:
    # notifications run after the response is sent
    return ReservationManager(db, dispatcher, schedule=background_tasks.add_task)


ReservationManagerDep = Annotated[ReservationManager, Depends(get_reservation_manager)]


@router.post("/reservations", response_model=GiftReserved, status_code=status.HTTP_201_CREATED)
async def reserve_gift(
    payload: ReservationCreate,
    request: Request,
    manager: ReservationManagerDep,
) -> GiftReserved:
    check_rate_limit(
        request,
        max_requests=settings.rate_limit_reservation_requests,
        key_suffix="reservations",
    )
    gift = await manager.reserve(payload.gift_id, payload.name, payload.email, payload.message)
    audit_reservation(AuditAction.RESERVATION_CREATE, request, gift.id, gift.registry_id)
    return GiftReserved.model_validate(gift)


@router.get("/cancellations/{token}", response_model=CancellationLookup)
async def lookup_cancellation(token: str, manager: ReservationManagerDep) -> CancellationLookup:
    gift, registry = await manager.lookup_by_token(token)
    return CancellationLookup(
        gift=GiftPublic.model_validate(gift),
        registry=RegistryPublic.model_validate(registry),
    )


@router.post("/cancellations/{token}", response_model=CancellationResult)
async def cancel_reservation(
    token: str,
    request: Request,
    manager: ReservationManagerDep,
) -> CancellationResult:
    check_rate_limit(
        request,
        max_requests=settings.rate_limit_reservation_requests,
        key_suffix="cancellations",
    )
    gift = await manager.cancel(token)
    audit_reservation(AuditAction.RESERVATION_CANCEL, request, gift.id, gift.registry_id)
    return CancellationResult(gift=GiftPublic.model_validate(gift))


@compat_router.post("/gifts/{gift_id}/reserve", response_model=GiftReserved)
async def reserve_gift_compat(
    gift_id: int,
    payload: ReservationRequest,
    request: Request,
    manager: ReservationManagerDep,
) -> GiftReserved:
    return await reserve_gift(
        payload=ReservationCreate(gift_id=gift_id, **payload.model_dump()),
        request=request,
        manager=manager,
    )


@compat_router.get("/cancel-reservation/{token}", response_model=CancellationLookup)
async def lookup_cancellation_compat(token: str, manager: ReservationManagerDep) -> CancellationLookup:
    return await lookup_cancellation(token=token, manager=manager)


@compat_router.post("/cancel-reservation/{token}", response_model=CancellationResult)
async def cancel_reservation_compat(
    token: str,
    request: Request,
    manager: ReservationManagerDep,
) -> CancellationResult:
    return await cancel_reservation(token=token, request=request, manager=manager)
