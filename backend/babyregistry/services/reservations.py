"""Gift reservation lifecycle.

``ReservationManager`` is the only writer of a gift's reservation fields
(``reserved_by``, ``reserved_by_name``, ``reservation_date``,
``cancellation_token``). Both transitions are single conditional UPDATE
statements whose affected-row count decides the winner, so concurrent
reservers of one gift (or concurrent cancels with one token) cannot both
succeed. Activity and history rows are written in the same transaction.

Notifications are scheduled only after the commit and go through
``deliver``, which logs failures instead of raising them.
"""
import asyncio
import logging
from collections.abc import Callable
from typing import Any

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from babyregistry.core.errors import (
    AlreadyReservedError,
    GiftNotFoundError,
    TokenNotFoundError,
    ValidationError,
)
from babyregistry.core.identifiers import generate_cancellation_token
from babyregistry.core.mailer import NotificationDispatcher, deliver
from babyregistry.models.models import Gift, Registry, Reservation, utcnow
from babyregistry.schemas.registry import GiftPublic
from babyregistry.services.activity import ActivityRecorder

logger = logging.getLogger("babyregistry.reservations")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 120
ANONYMOUS_RESERVER = "Alguien"

Schedule = Callable[..., Any]

_inflight: set[asyncio.Task] = set()


def spawn(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run a coroutine function detached from the caller, keeping a reference until done."""
    task = asyncio.get_running_loop().create_task(func(*args, **kwargs))
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)


def _clean_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError("El nombre es obligatorio")
    return name


def _clean_email(raw: str | None) -> str:
    try:
        return validate_email((raw or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        raise ValidationError("Debe ser un email válido") from None


def _clean_message(raw: str | None) -> str | None:
    if raw is None:
        return None
    return raw.strip() or None


class ReservationManager:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher,
        schedule: Schedule | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher
        self._schedule = schedule or spawn
        self._activity = ActivityRecorder(session)

    async def reserve(
        self,
        gift_id: int,
        reserver_name: str,
        reserver_email: str,
        message: str | None = None,
    ) -> Gift:
        name = _clean_name(reserver_name)
        email = _clean_email(reserver_email)
        note = _clean_message(message)

        result = await self._session.execute(
            select(Gift)
            .options(selectinload(Gift.baby_registry).selectinload(Registry.owner))
            .where(Gift.id == gift_id)
        )
        gift = result.scalar_one_or_none()
        if gift is None:
            raise GiftNotFoundError()

        registry = gift.baby_registry
        registry_id = registry.id
        registry_name = registry.baby_name
        owner_email = registry.owner.email if registry.owner else None
        gift_name = gift.name

        token = generate_cancellation_token()
        reserved_at = utcnow()
        outcome = await self._session.execute(
            update(Gift)
            .where(Gift.id == gift_id, Gift.reserved_by.is_(None))
            .values(
                reserved_by=email,
                reserved_by_name=name,
                reservation_date=reserved_at,
                cancellation_token=token,
                updated_at=reserved_at,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            await self._session.rollback()
            logger.info("Reserve rejected gift_id=%s: already reserved", gift_id)
            raise AlreadyReservedError()

        self._session.add(
            Reservation(
                gift_id=gift_id,
                name=name,
                email=email,
                message=note,
                cancellation_token=token,
                created_at=reserved_at,
            )
        )
        self._activity.gift_reserved(registry_id, name, gift_name)
        await self._session.commit()
        await self._session.refresh(gift)
        logger.info("Gift reserved gift_id=%s registry_id=%s", gift_id, registry_id)

        snapshot = GiftPublic.model_validate(gift)
        self._notify(
            "reservation_confirmation",
            self._dispatcher.send_reservation_confirmation,
            to_email=email,
            reserver_name=name,
            gift=snapshot,
            registry_display_name=registry_name,
            cancellation_token=token,
        )
        if note:
            if owner_email:
                self._notify(
                    "owner_notification",
                    self._dispatcher.send_owner_notification,
                    to_email=owner_email,
                    reserver_name=name,
                    reserver_email=email,
                    gift=snapshot,
                    registry_display_name=registry_name,
                    message=note,
                )
            else:
                logger.warning("No owner email for registry_id=%s, skipping owner notification", registry_id)
        return gift

    async def cancel(self, cancellation_token: str) -> Gift:
        token = (cancellation_token or "").strip()
        if not token:
            raise TokenNotFoundError()

        result = await self._session.execute(
            select(Gift)
            .options(selectinload(Gift.baby_registry))
            .where(Gift.cancellation_token == token)
        )
        gift = result.scalar_one_or_none()
        if gift is None or gift.reserved_by is None:
            raise TokenNotFoundError()

        gift_id = gift.id
        reserver_email = gift.reserved_by
        reserver_name = gift.reserved_by_name or ANONYMOUS_RESERVER
        registry_id = gift.baby_registry.id
        registry_name = gift.baby_registry.baby_name
        gift_name = gift.name

        outcome = await self._session.execute(
            update(Gift)
            .where(Gift.id == gift_id, Gift.cancellation_token == token)
            .values(
                reserved_by=None,
                reserved_by_name=None,
                reservation_date=None,
                cancellation_token=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            await self._session.rollback()
            logger.info("Cancel rejected gift_id=%s: token already used", gift_id)
            raise TokenNotFoundError()

        self._activity.reservation_cancelled(registry_id, reserver_name, gift_name)
        await self._session.commit()
        await self._session.refresh(gift)
        logger.info("Reservation cancelled gift_id=%s registry_id=%s", gift_id, registry_id)

        self._notify(
            "cancellation_confirmation",
            self._dispatcher.send_cancellation_confirmation,
            to_email=reserver_email,
            gift=GiftPublic.model_validate(gift),
            registry_display_name=registry_name,
        )
        return gift

    async def lookup_by_token(self, cancellation_token: str) -> tuple[Gift, Registry]:
        token = (cancellation_token or "").strip()
        if not token:
            raise TokenNotFoundError()
        result = await self._session.execute(
            select(Gift)
            .options(selectinload(Gift.baby_registry))
            .where(Gift.cancellation_token == token)
        )
        gift = result.scalar_one_or_none()
        if gift is None or gift.reserved_by is None:
            raise TokenNotFoundError()
        return gift, gift.baby_registry

    def _notify(self, label: str, send: Callable[..., Any], **kwargs: Any) -> None:
        try:
            self._schedule(deliver, label, send, **kwargs)
        except Exception:
            logger.exception("Failed to schedule notification %s", label)
