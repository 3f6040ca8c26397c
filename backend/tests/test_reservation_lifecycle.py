"""
Reservation lifecycle against the service layer, including concurrent reservers.
"""
import asyncio

import pytest
from sqlalchemy import func, select

from babyregistry.core.errors import (
    AlreadyReservedError,
    GiftNotFoundError,
    TokenNotFoundError,
    ValidationError,
)
from babyregistry.models.models import Activity, Gift, Registry, Reservation, User
from babyregistry.services.reservations import ReservationManager

pytestmark = pytest.mark.anyio


class Scheduled:
    """Collects scheduled notifications so tests can run them explicitly."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, func, *args, **kwargs) -> None:
        self.calls.append((func, args, kwargs))

    async def run_all(self) -> list:
        return [await func(*args, **kwargs) for func, args, kwargs in self.calls]


@pytest.fixture
async def gift_id(session_factory):
    async with session_factory() as session:
        owner = User(username="admin", email="admin@example.com", hashed_password="x")
        registry = Registry(owner=owner, baby_name="Lucas", slug="lucas")
        gift = Gift(
            baby_registry=registry,
            name="Carrito",
            price=299.0,
            image_url="https://example.com/carrito.jpg",
        )
        session.add(gift)
        await session.commit()
        return gift.id


async def _gift_state(session_factory, gift_id):
    async with session_factory() as session:
        return await session.get(Gift, gift_id)


async def test_reserve_sets_all_fields_together(session_factory, dispatcher, gift_id):
    scheduled = Scheduled()
    async with session_factory() as session:
        gift = await ReservationManager(session, dispatcher, schedule=scheduled).reserve(
            gift_id, " Ana ", "Ana@Example.com"
        )
    assert gift.reserved_by == "Ana@example.com"
    assert gift.reserved_by_name == "Ana"
    assert gift.reservation_date is not None
    assert gift.cancellation_token

    stored = await _gift_state(session_factory, gift_id)
    assert stored.is_reserved
    assert stored.cancellation_token == gift.cancellation_token

    assert len(scheduled.calls) == 1
    assert await scheduled.run_all() == [True]
    assert dispatcher.kinds() == ["reservation_confirmation"]


async def test_cancel_clears_all_fields(session_factory, dispatcher, gift_id):
    scheduled = Scheduled()
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=scheduled)
        reserved = await manager.reserve(gift_id, "Ana", "ana@example.com")
        token = reserved.cancellation_token
        await manager.cancel(token)

    stored = await _gift_state(session_factory, gift_id)
    assert stored.reserved_by is None
    assert stored.reserved_by_name is None
    assert stored.reservation_date is None
    assert stored.cancellation_token is None

    await scheduled.run_all()
    assert dispatcher.kinds() == ["reservation_confirmation", "cancellation_confirmation"]


async def test_reserve_rejects_bad_input(session_factory, dispatcher, gift_id):
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=Scheduled())
        with pytest.raises(ValidationError):
            await manager.reserve(gift_id, " ", "ana@example.com")
        with pytest.raises(ValidationError):
            await manager.reserve(gift_id, "Ana", "not-an-email")
        with pytest.raises(GiftNotFoundError):
            await manager.reserve(gift_id + 100, "Ana", "ana@example.com")

    stored = await _gift_state(session_factory, gift_id)
    assert not stored.is_reserved


async def test_history_and_activity_are_append_only(session_factory, dispatcher, gift_id):
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=Scheduled())
        first = await manager.reserve(gift_id, "Ana", "ana@example.com", message="Hola")
        await manager.cancel(first.cancellation_token)
        await manager.reserve(gift_id, "Berta", "berta@example.com")

    async with session_factory() as session:
        reservations = (await session.execute(select(Reservation).order_by(Reservation.id))).scalars().all()
        activities = (await session.execute(select(Activity).order_by(Activity.id))).scalars().all()

    assert [r.name for r in reservations] == ["Ana", "Berta"]
    assert reservations[0].message == "Hola"
    assert reservations[0].cancellation_token != reservations[1].cancellation_token
    assert [a.type for a in activities] == ["GIFT_RESERVED", "RESERVATION_CANCELLED", "GIFT_RESERVED"]
    assert activities[1].description == "Ana ha cancelado la reserva de Carrito"


async def test_lookup_by_token_is_read_only(session_factory, dispatcher, gift_id):
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=Scheduled())
        token = (await manager.reserve(gift_id, "Ana", "ana@example.com")).cancellation_token
        gift, registry = await manager.lookup_by_token(token)
        assert gift.id == gift_id
        assert registry.slug == "lucas"
        with pytest.raises(TokenNotFoundError):
            await manager.lookup_by_token("")

    stored = await _gift_state(session_factory, gift_id)
    assert stored.cancellation_token == token


async def test_concurrent_reservers_single_winner(session_factory, dispatcher, gift_id):
    contenders = 8

    async def attempt(index):
        async with session_factory() as session:
            manager = ReservationManager(session, dispatcher, schedule=Scheduled())
            return await manager.reserve(gift_id, f"Invitado {index}", f"guest{index}@example.com")

    results = await asyncio.gather(*(attempt(i) for i in range(contenders)), return_exceptions=True)

    winners = [r for r in results if isinstance(r, Gift)]
    losers = [r for r in results if isinstance(r, AlreadyReservedError)]
    assert len(winners) == 1
    assert len(losers) == contenders - 1

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(Reservation))
        activity_count = await session.scalar(select(func.count()).select_from(Activity))
    assert count == 1
    assert activity_count == 1

    stored = await _gift_state(session_factory, gift_id)
    assert stored.reserved_by == winners[0].reserved_by


async def test_concurrent_cancels_single_winner(session_factory, dispatcher, gift_id):
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=Scheduled())
        token = (await manager.reserve(gift_id, "Ana", "ana@example.com")).cancellation_token

    async def attempt():
        async with session_factory() as session:
            return await ReservationManager(session, dispatcher, schedule=Scheduled()).cancel(token)

    results = await asyncio.gather(*(attempt() for _ in range(4)), return_exceptions=True)
    assert len([r for r in results if isinstance(r, Gift)]) == 1
    assert len([r for r in results if isinstance(r, TokenNotFoundError)]) == 3


async def test_cancel_that_loses_the_race_reports_token_not_found(session_factory, dispatcher, gift_id):
    async with session_factory() as session:
        manager = ReservationManager(session, dispatcher, schedule=Scheduled())
        token = (await manager.reserve(gift_id, "Ana", "ana@example.com")).cancellation_token

    async with session_factory() as session:
        real_execute = session.execute
        raced = False

        async def execute_then_cancel_elsewhere(statement, *args, **kwargs):
            nonlocal raced
            result = await real_execute(statement, *args, **kwargs)
            if not raced:
                raced = True
                async with session_factory() as other:
                    await ReservationManager(other, dispatcher, schedule=Scheduled()).cancel(token)
            return result

        session.execute = execute_then_cancel_elsewhere
        with pytest.raises(TokenNotFoundError):
            await ReservationManager(session, dispatcher, schedule=Scheduled()).cancel(token)

    stored = await _gift_state(session_factory, gift_id)
    assert stored.reserved_by is None
    async with session_factory() as session:
        cancelled = await session.scalar(
            select(func.count()).select_from(Activity).where(Activity.type == "RESERVATION_CANCELLED")
        )
    assert cancelled == 1


async def test_failed_notification_is_swallowed(session_factory, failing_dispatcher, gift_id):
    scheduled = Scheduled()
    async with session_factory() as session:
        gift = await ReservationManager(session, failing_dispatcher, schedule=scheduled).reserve(
            gift_id, "Ana", "ana@example.com"
        )
    assert gift.is_reserved
    assert await scheduled.run_all() == [False]
