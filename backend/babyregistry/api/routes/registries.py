from fastapi import APIRouter, Query, Request, status

from babyregistry.api.deps import CurrentUserDep, OptionalUserDep, RegistryServiceDep
from babyregistry.core.audit import AuditAction, audit_log
from babyregistry.schemas.registry import (
    ActivityPublic,
    GiftOwnerView,
    GiftPublic,
    RegistryCreate,
    RegistryPublic,
    VisitRecorded,
)

router = APIRouter(prefix="/registries", tags=["registries"])
registry_router = APIRouter(prefix="/registry", tags=["registries"])


@router.get("", response_model=list[RegistryPublic])
async def list_my_registries(
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
) -> list[RegistryPublic]:
    registries = await service.list_user_registries(current_user.id)
    return [RegistryPublic.model_validate(item) for item in registries]


@router.get("/public", response_model=list[RegistryPublic])
async def list_public_registries(service: RegistryServiceDep) -> list[RegistryPublic]:
    registries = await service.list_public_registries()
    return [RegistryPublic.model_validate(item) for item in registries]


@router.post("", response_model=RegistryPublic, status_code=status.HTTP_201_CREATED)
async def create_registry(
    payload: RegistryCreate,
    request: Request,
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
) -> RegistryPublic:
    registry = await service.create_registry(current_user, payload)
    audit_log(
        AuditAction.REGISTRY_CREATE,
        request=request,
        user_id=registry.user_id,
        details={"registry_id": registry.id, "slug": registry.slug},
    )
    return RegistryPublic.model_validate(registry)


@registry_router.get("/{identifier}", response_model=RegistryPublic)
async def get_registry(
    identifier: str,
    viewer: OptionalUserDep,
    service: RegistryServiceDep,
) -> RegistryPublic:
    registry = await service.get_registry(identifier)
    service.ensure_readable(registry, viewer)
    return RegistryPublic.model_validate(registry)


@registry_router.post("/{identifier}/visit", response_model=VisitRecorded)
async def record_visit(
    identifier: str,
    viewer: OptionalUserDep,
    service: RegistryServiceDep,
) -> VisitRecorded:
    registry = await service.get_registry(identifier)
    service.ensure_readable(registry, viewer)
    visitor_count = await service.record_visit(registry)
    return VisitRecorded(visitor_count=visitor_count)


@registry_router.get("/{identifier}/gifts", response_model=None)
async def list_registry_gifts(
    identifier: str,
    viewer: OptionalUserDep,
    service: RegistryServiceDep,
    category: str | None = Query(default=None, max_length=120),
) -> list[GiftOwnerView] | list[GiftPublic]:
    registry = await service.get_registry(identifier)
    service.ensure_readable(registry, viewer)
    is_owner = viewer is not None and viewer.id == registry.user_id
    gifts = await service.list_gifts(registry.id, include_hidden=is_owner, category=category)
    # guests never see who reserved a gift or its cancellation token
    if is_owner:
        return [GiftOwnerView.model_validate(gift) for gift in gifts]
    return [GiftPublic.model_validate(gift) for gift in gifts]


@registry_router.get("/{identifier}/activities", response_model=list[ActivityPublic])
async def list_registry_activities(
    identifier: str,
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
    limit: int | None = Query(default=None, ge=1, le=100),
) -> list[ActivityPublic]:
    registry = await service.get_owned_registry(identifier, current_user)
    activities = await service.list_activities(registry.id, limit=limit)
    return [ActivityPublic.model_validate(item) for item in activities]
