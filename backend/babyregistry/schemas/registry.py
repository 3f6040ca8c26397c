from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, EmailStr, Field, field_validator

from babyregistry.models.models import ActivityType


def _validate_optional_url(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return ""
    parsed = urlparse(normalized)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Debe ser una URL válida")
    return normalized


class RegistryCreate(BaseModel):
    baby_name: str = Field(min_length=2, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool = True

    @field_validator("baby_name")
    @classmethod
    def _baby_name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError("El nombre del bebé es obligatorio")
        return normalized

    @field_validator("description")
    @classmethod
    def _description_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class RegistryPublic(BaseModel):
    id: int
    slug: str
    baby_name: str
    description: str | None
    is_public: bool
    visitor_count: int
    user_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class GiftBase(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    description: str = Field(default="", max_length=5000)
    price: float = Field(ge=0)
    image_url: str = Field(min_length=10, max_length=2048)
    url: str = Field(default="", max_length=2048)
    store: str = Field(default="", max_length=255)
    category: str = Field(default="General", min_length=1, max_length=120)
    is_hidden: bool = False

    @field_validator("name", "store", "category", "description")
    @classmethod
    def _text_strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        return _validate_optional_url(value) or ""


class GiftCreate(GiftBase):
    registry_id: int


class GiftUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    price: float | None = Field(default=None, ge=0)
    image_url: str | None = Field(default=None, min_length=10, max_length=2048)
    url: str | None = Field(default=None, max_length=2048)
    store: str | None = Field(default=None, max_length=255)
    category: str | None = Field(default=None, min_length=1, max_length=120)
    is_hidden: bool | None = None

    @field_validator("url")
    @classmethod
    def _normalize_update_url(cls, value: str | None) -> str | None:
        return _validate_optional_url(value)


class GiftPublic(BaseModel):
    """Gift as shown to guests: reserver identity and token are never exposed."""

    id: int
    registry_id: int
    name: str
    description: str
    price: float
    image_url: str
    url: str
    store: str
    category: str
    is_hidden: bool
    is_reserved: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class GiftOwnerView(GiftPublic):
    reserved_by: str | None = None
    reserved_by_name: str | None = None
    reservation_date: datetime | None = None


class GiftReserved(GiftPublic):
    """Returned to the guest who just reserved; carries their cancellation token."""

    reserved_by_name: str | None = None
    reservation_date: datetime | None = None
    cancellation_token: str


class ReservationRequest(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    email: EmailStr
    message: str | None = Field(default=None, max_length=1000)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError("El nombre es obligatorio")
        return normalized

    @field_validator("message")
    @classmethod
    def _message_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ReservationCreate(ReservationRequest):
    gift_id: int


class CancellationLookup(BaseModel):
    valid: bool = True
    gift: GiftPublic
    registry: RegistryPublic


class CancellationResult(BaseModel):
    success: bool = True
    gift: GiftPublic


class ActivityPublic(BaseModel):
    id: int
    registry_id: int
    type: ActivityType
    user_display_name: str
    target_name: str
    description: str
    created_at: datetime

    model_config = {"from_attributes": True}


class VisitRecorded(BaseModel):
    success: bool = True
    visitor_count: int
