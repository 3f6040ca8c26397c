from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from babyregistry.core.config import settings
from babyregistry.models.models import Activity, ActivityType


class ActivityRecorder:
    """Append-only activity log. Rows are added to the caller's transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def record(
        self,
        registry_id: int,
        activity_type: ActivityType,
        user_display_name: str,
        target_name: str,
        description: str,
    ) -> Activity:
        activity = Activity(
            registry_id=registry_id,
            type=activity_type.value,
            user_display_name=user_display_name,
            target_name=target_name,
            description=description,
        )
        self._session.add(activity)
        return activity

    def gift_reserved(self, registry_id: int, reserver_name: str, gift_name: str) -> Activity:
        return self.record(
            registry_id,
            ActivityType.GIFT_RESERVED,
            reserver_name,
            gift_name,
            f"{reserver_name} ha reservado {gift_name}",
        )

    def reservation_cancelled(self, registry_id: int, reserver_name: str, gift_name: str) -> Activity:
        return self.record(
            registry_id,
            ActivityType.RESERVATION_CANCELLED,
            reserver_name,
            gift_name,
            f"{reserver_name} ha cancelado la reserva de {gift_name}",
        )

    def gift_added(self, registry_id: int, gift_name: str) -> Activity:
        return self.record(
            registry_id,
            ActivityType.GIFT_ADDED,
            "Administrador",
            gift_name,
            f"Se ha añadido {gift_name} a la lista de regalos",
        )

    def gift_deleted(self, registry_id: int, gift_name: str) -> Activity:
        return self.record(
            registry_id,
            ActivityType.GIFT_DELETED,
            "Administrador",
            gift_name,
            f"Se ha eliminado {gift_name} de la lista de regalos",
        )

    def registry_viewed(self, registry_id: int) -> Activity:
        return self.record(
            registry_id,
            ActivityType.REGISTRY_VIEWED,
            "Visitantes",
            "la lista",
            "Alguien ha visitado la lista de regalos",
        )

    async def list_for_registry(self, registry_id: int, limit: int | None = None) -> list[Activity]:
        result = await self._session.execute(
            select(Activity)
            .where(Activity.registry_id == registry_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit or settings.activity_feed_limit)
        )
        return list(result.scalars())
