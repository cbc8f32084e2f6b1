from datetime import date, datetime, timezone
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from typing import Annotated, List, Optional

from . import models
from .core import get_settings


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class RegisterIn(BaseModel):
    """Payload for creating an identity together with its profile."""

    email: EmailStr
    password: str = Field(min_length=4, max_length=128)
    display_name: str = Field(min_length=1, max_length=100)
    gender: str = Field(min_length=1, max_length=20)
    date_of_birth: date
    city: str = Field(min_length=2, max_length=100)
    country: str = Field(min_length=2, max_length=100)


class LoginIn(BaseModel):
    """Credentials submitted to the login endpoint."""

    email: EmailStr
    password: str


class UserOut(BaseModel):
    """Authenticated user returned by register and login."""

    id: str
    email: EmailStr
    display_name: str
    image_url: Optional[str] = None
    token: str


class TokenData(BaseModel):
    """Payload stored inside JWT token."""

    sub: str | None = None
    exp: Optional[datetime] = None


class PhotoOut(BaseModel):
    """Schema for returning a photo."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    public_id: Optional[str] = None


class MemberOut(BaseModel):
    """Public member projection shared by every endpoint returning members."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str
    image_url: Optional[str] = None
    date_of_birth: date
    created: UtcDatetime
    last_active: UtcDatetime
    gender: str
    description: Optional[str] = None
    city: str
    country: str
    photos: List[PhotoOut] = []


class MemberUpdate(BaseModel):
    """Mutable profile fields."""

    description: Optional[str] = Field(default=None, max_length=1000)
    city: str = Field(min_length=2, max_length=100)
    country: str = Field(min_length=2, max_length=100)


class LikeToggleOut(BaseModel):
    """Edge state after a toggle."""

    liked: bool


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    recipient_id: str
    content: str = Field(min_length=1, max_length=get_settings().MAX_MESSAGE_LENGTH)


class MessageOut(BaseModel):
    """Message with resolved names and photos of both parties."""

    model_config = ConfigDict(validate_assignment=True)

    id: int
    sender_id: str
    sender_name: str
    sender_photo_url: Optional[str] = None
    recipient_id: str
    recipient_name: str
    recipient_photo_url: Optional[str] = None
    content: str
    date_sent: UtcDatetime
    date_read: Optional[UtcDatetime] = None

    @classmethod
    def from_message(cls, message: models.Message) -> "MessageOut":
        """
        Build the projection from a Message ORM model.

        Names fall back to the identity's display name when the profile
        is missing.

        Args:
            message (Message): Message with sender and recipient loaded.

        Returns:
            MessageOut: Projection of the message.
        """
        sender_name, sender_photo = _party(message.sender)
        recipient_name, recipient_photo = _party(message.recipient)
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            sender_name=sender_name,
            sender_photo_url=sender_photo,
            recipient_id=message.recipient_id,
            recipient_name=recipient_name,
            recipient_photo_url=recipient_photo,
            content=message.content,
            date_sent=message.date_sent,
            date_read=message.date_read,
        )


def _party(user: models.User | None) -> tuple[str, str | None]:
    if user is None:
        return "Unknown", None
    member = user.member
    if member is not None:
        return member.display_name or user.display_name, member.image_url
    return user.display_name or "Unknown", None
