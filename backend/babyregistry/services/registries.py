import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from babyregistry.core.config import settings
from babyregistry.core.errors import (
    GiftNotFoundError,
    PermissionDeniedError,
    RegistryNotFoundError,
    SlugConflictError,
)
from babyregistry.core.identifiers import slugify, suffixed_slug
from babyregistry.models.models import Activity, Gift, Registry, User
from babyregistry.schemas.registry import GiftCreate, GiftUpdate, RegistryCreate
from babyregistry.services.activity import ActivityRecorder

logger = logging.getLogger("babyregistry.registries")


class RegistryService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._activity = ActivityRecorder(session)

    # Registries

    async def _slug_taken(self, slug: str) -> bool:
        result = await self._session.execute(select(Registry.id).where(Registry.slug == slug).limit(1))
        return result.scalar_one_or_none() is not None

    async def create_registry(self, owner: User, payload: RegistryCreate) -> Registry:
        """Insert a registry under a unique slug.

        The unique index on ``registries.slug`` is authoritative: a concurrent
        insert that wins the same slug makes our commit fail, and we retry
        with a fresh random suffix a bounded number of times. Any other
        integrity failure is re-raised.

        A retry rolls the session back, which expires every other ORM object
        the caller loaded in it; reload them before reading their attributes.
        """
        owner_id = owner.id
        base_slug = slugify(payload.baby_name)
        slug = base_slug
        if await self._slug_taken(slug):
            slug = suffixed_slug(base_slug)

        for attempt in range(1, settings.slug_max_attempts + 1):
            registry = Registry(
                user_id=owner_id,
                baby_name=payload.baby_name,
                description=payload.description,
                is_public=payload.is_public,
                slug=slug,
                visitor_count=0,
            )
            self._session.add(registry)
            try:
                await self._session.commit()
            except IntegrityError:
                await self._session.rollback()
                if not await self._slug_taken(slug):
                    raise
                logger.info("Registry slug collision slug=%s attempt=%s", slug, attempt)
                slug = suffixed_slug(base_slug)
                continue
            await self._session.refresh(registry)
            logger.info("Registry created id=%s slug=%s user_id=%s", registry.id, registry.slug, owner_id)
            return registry

        logger.error("Registry slug attempts exhausted base_slug=%s", base_slug)
        raise SlugConflictError()

    async def get_registry(self, identifier: str | int) -> Registry:
        """Resolve a registry by numeric id or by slug."""
        registry = None
        raw = str(identifier).strip()
        if raw.isdigit():
            registry = await self._session.get(Registry, int(raw))
        if registry is None:
            result = await self._session.execute(select(Registry).where(Registry.slug == raw))
            registry = result.scalar_one_or_none()
        if registry is None:
            raise RegistryNotFoundError()
        return registry

    def ensure_readable(self, registry: Registry, viewer: User | None) -> None:
        if registry.is_public:
            return
        if viewer is None or viewer.id != registry.user_id:
            raise PermissionDeniedError("No tienes permiso para ver esta lista")

    async def get_owned_registry(self, identifier: str | int, owner: User) -> Registry:
        registry = await self.get_registry(identifier)
        if registry.user_id != owner.id:
            raise PermissionDeniedError("No tienes permiso para gestionar esta lista")
        return registry

    async def list_user_registries(self, user_id: int) -> list[Registry]:
        result = await self._session.execute(
            select(Registry)
            .where(Registry.user_id == user_id)
            .order_by(Registry.created_at.desc(), Registry.id.desc())
        )
        return list(result.scalars())

    async def list_public_registries(self) -> list[Registry]:
        result = await self._session.execute(
            select(Registry)
            .where(Registry.is_public.is_(True))
            .order_by(Registry.created_at.desc(), Registry.id.desc())
        )
        return list(result.scalars())

    async def record_visit(self, registry: Registry) -> int:
        await self._session.execute(
            update(Registry)
            .where(Registry.id == registry.id)
            .values(visitor_count=Registry.visitor_count + 1)
            .execution_options(synchronize_session=False)
        )
        self._activity.registry_viewed(registry.id)
        await self._session.commit()
        await self._session.refresh(registry)
        return registry.visitor_count

    async def list_activities(self, registry_id: int, limit: int | None = None) -> list[Activity]:
        return await self._activity.list_for_registry(registry_id, limit=limit)

    # Gifts

    async def list_gifts(
        self,
        registry_id: int,
        *,
        include_hidden: bool = False,
        category: str | None = None,
    ) -> list[Gift]:
        stmt = select(Gift).where(Gift.registry_id == registry_id)
        if not include_hidden:
            stmt = stmt.where(Gift.is_hidden.is_(False))
        if category:
            stmt = stmt.where(Gift.category == category)
        # available gifts first
        stmt = stmt.order_by(Gift.reserved_by.is_not(None), Gift.id)
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def get_owned_gift(self, gift_id: int, owner: User) -> Gift:
        gift = await self._session.get(Gift, gift_id)
        if gift is None:
            raise GiftNotFoundError()
        registry = await self._session.get(Registry, gift.registry_id)
        if registry is None or registry.user_id != owner.id:
            raise PermissionDeniedError("No tienes permiso para modificar este regalo")
        return gift

    async def create_gift(self, registry: Registry, payload: GiftCreate) -> Gift:
        gift = Gift(
            registry_id=registry.id,
            **payload.model_dump(exclude={"registry_id"}),
        )
        self._session.add(gift)
        self._activity.gift_added(registry.id, gift.name)
        await self._session.commit()
        await self._session.refresh(gift)
        logger.info("Gift created id=%s registry_id=%s", gift.id, registry.id)
        return gift

    async def update_gift(self, gift: Gift, payload: GiftUpdate) -> Gift:
        for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(gift, key, value)
        await self._session.commit()
        await self._session.refresh(gift)
        return gift

    async def delete_gift(self, gift: Gift) -> None:
        registry_id = gift.registry_id
        gift_name = gift.name
        gift_id = gift.id
        await self._session.delete(gift)
        self._activity.gift_deleted(registry_id, gift_name)
        await self._session.commit()
        logger.info("Gift deleted id=%s registry_id=%s", gift_id, registry_id)
