"""Database models for the dating API.

This module defines SQLAlchemy ORM models used by the application:
identities, member profiles with their photos, directed like edges and
direct messages.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from .core import get_settings
from .database import Base


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    SQLAlchemy model representing the credentials facet of a member.

    A user is created together with its :class:`Member` profile and shares
    its identifier with it.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)

    #: Public profile sharing this user's id
    member = relationship(
        "Member",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )


class Member(Base):
    """
    SQLAlchemy model representing a public dating profile.

    ``image_url`` duplicates the URL of the designated main photo.
    """

    __tablename__ = "members"

    id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    display_name = Column(String(100), nullable=False, index=True)
    image_url = Column(String(500), nullable=True)
    date_of_birth = Column(Date, nullable=False)
    created = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_active = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    gender = Column(String(20), nullable=False)
    description = Column(String(1000), nullable=True)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)

    user = relationship("User", back_populates="member")

    #: Photos owned by the member, oldest first
    photos = relationship(
        "Photo",
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="Photo.id",
    )

    @property
    def main_photo(self) -> "Photo | None":
        """Photo currently referenced by ``image_url``, if any."""
        for photo in self.photos:
            if photo.url == self.image_url:
                return photo
        return None


class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(500), nullable=False)
    #: Opaque storage reference used to delete the asset
    public_id = Column(String(255), nullable=True)

    member_id = Column(
        String(36),
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    member = relationship("Member", back_populates="photos")


class Like(Base):
    """
    Directed "like" edge between two users.

    The composite primary key allows at most one edge per ordered pair;
    a mutual match is two edges in opposite directions and is never stored.
    """

    __tablename__ = "likes"
    __table_args__ = (
        CheckConstraint(
            "source_user_id != liked_user_id", name="ck_likes_no_self_like"
        ),
    )

    source_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    liked_user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )


class MessageVisibility(enum.Enum):
    """Storable visibility states of a message.

    The value is the ``(sender_deleted, recipient_deleted)`` flag pair.
    Both flags set is not a state: such a message is destroyed.
    """

    VISIBLE = (False, False)
    HIDDEN_FOR_SENDER = (True, False)
    HIDDEN_FOR_RECIPIENT = (False, True)

    @classmethod
    def from_flags(
        cls, sender_deleted: bool, recipient_deleted: bool
    ) -> "MessageVisibility | None":
        """Map delete flags to a state, ``None`` meaning destroyed."""
        if sender_deleted and recipient_deleted:
            return None
        return cls((bool(sender_deleted), bool(recipient_deleted)))


class Message(Base):
    """
    SQLAlchemy model representing a direct message.

    Each side hides the message independently; users referenced by a
    message cannot be deleted.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_recipient_sent", "recipient_id", "date_sent"),
        Index("ix_messages_sender_sent", "sender_id", "date_sent"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    recipient_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    content = Column(String(get_settings().MAX_MESSAGE_LENGTH), nullable=False)
    date_sent = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    date_read = Column(DateTime(timezone=True), nullable=True)
    sender_deleted = Column(Boolean, default=False, nullable=False)
    recipient_deleted = Column(Boolean, default=False, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])

    @property
    def visibility(self) -> MessageVisibility | None:
        return MessageVisibility.from_flags(
            self.sender_deleted, self.recipient_deleted
        )
