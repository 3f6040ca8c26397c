from fastapi import APIRouter, Request, status

from babyregistry.api.deps import CurrentUserDep, RegistryServiceDep
from babyregistry.core.audit import AuditAction, audit_gift_action
from babyregistry.schemas.registry import GiftCreate, GiftOwnerView, GiftUpdate

router = APIRouter(prefix="/gifts", tags=["gifts"])


@router.post("", response_model=GiftOwnerView, status_code=status.HTTP_201_CREATED)
async def create_gift(
    payload: GiftCreate,
    request: Request,
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
) -> GiftOwnerView:
    registry = await service.get_owned_registry(payload.registry_id, current_user)
    gift = await service.create_gift(registry, payload)
    audit_gift_action(AuditAction.GIFT_CREATE, request, current_user.id, gift.id, registry.id)
    return GiftOwnerView.model_validate(gift)


@router.patch("/{gift_id}", response_model=GiftOwnerView)
async def update_gift(
    gift_id: int,
    payload: GiftUpdate,
    request: Request,
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
) -> GiftOwnerView:
    gift = await service.get_owned_gift(gift_id, current_user)
    gift = await service.update_gift(gift, payload)
    audit_gift_action(AuditAction.GIFT_UPDATE, request, current_user.id, gift.id, gift.registry_id)
    return GiftOwnerView.model_validate(gift)


@router.delete("/{gift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gift(
    gift_id: int,
    request: Request,
    current_user: CurrentUserDep,
    service: RegistryServiceDep,
) -> None:
    gift = await service.get_owned_gift(gift_id, current_user)
    registry_id = gift.registry_id
    await service.delete_gift(gift)
    audit_gift_action(AuditAction.GIFT_DELETE, request, current_user.id, gift_id, registry_id)
