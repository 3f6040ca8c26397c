from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from babyregistry.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityType(str, Enum):
    GIFT_RESERVED = "GIFT_RESERVED"
    GIFT_ADDED = "GIFT_ADDED"
    GIFT_DELETED = "GIFT_DELETED"
    REGISTRY_VIEWED = "REGISTRY_VIEWED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    registries: Mapped[list["Registry"]] = relationship(back_populates="owner")


class Registry(Base):
    __tablename__ = "registries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    baby_name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    slug: Mapped[str] = mapped_column(String(160), unique=True, nullable=False, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    visitor_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    owner: Mapped[User] = relationship(back_populates="registries")
    gifts: Mapped[list["Gift"]] = relationship(back_populates="baby_registry", cascade="all, delete-orphan")
    activities: Mapped[list["Activity"]] = relationship(
        back_populates="baby_registry",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("visitor_count >= 0", name="ck_registries_visitor_count_non_negative"),
    )


class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registry_id: Mapped[int] = mapped_column(ForeignKey("registries.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    image_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    store: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    category: Mapped[str] = mapped_column(String(120), default="General", nullable=False)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Written only by ReservationManager
    reserved_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    reserved_by_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    reservation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_token: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    baby_registry: Mapped[Registry] = relationship(back_populates="gifts")
    reservations: Mapped[list["Reservation"]] = relationship(
        back_populates="gift",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "(reserved_by IS NULL AND cancellation_token IS NULL AND reservation_date IS NULL)"
            " OR (reserved_by IS NOT NULL AND cancellation_token IS NOT NULL AND reservation_date IS NOT NULL)",
            name="ck_gifts_reservation_fields_together",
        ),
        CheckConstraint("price >= 0", name="ck_gifts_price_non_negative"),
    )

    @property
    def is_reserved(self) -> bool:
        return self.reserved_by is not None


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gift_id: Mapped[int] = mapped_column(ForeignKey("gifts.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    gift: Mapped[Gift] = relationship(back_populates="reservations")


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registry_id: Mapped[int] = mapped_column(ForeignKey("registries.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    user_display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    baby_registry: Mapped[Registry] = relationship(back_populates="activities")
