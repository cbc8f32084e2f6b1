"""Direct messages: sending, mailbox listings, threads and two-sided deletion.

A message stays in storage while at least one side still sees it. Each
side hides it with its own flag, written through partial updates so
that concurrent deletes from both sides never overwrite each other; the
row is destroyed once both flags are set.
"""

import enum
import logging

from sqlalchemy import select, update, delete, and_, or_
from sqlalchemy.orm import Session, selectinload

from . import models, schemas, crud
from .core import get_settings
from .errors import InvalidArgument, InvalidOperation, NotFound

logger = logging.getLogger(__name__)


class Container(str, enum.Enum):
    INBOX = "inbox"
    OUTBOX = "outbox"
    UNREAD = "unread"


def _container_filter(container: Container, user_id: str):
    Message = models.Message
    if container is Container.INBOX:
        return and_(Message.recipient_id == user_id, Message.recipient_deleted.is_(False))
    if container is Container.OUTBOX:
        return and_(Message.sender_id == user_id, Message.sender_deleted.is_(False))
    return and_(
        Message.recipient_id == user_id,
        Message.recipient_deleted.is_(False),
        Message.date_read.is_(None),
    )


def _messages_query():
    """Select messages with both parties and their profiles loaded."""
    return select(models.Message).options(
        selectinload(models.Message.sender).selectinload(models.User.member),
        selectinload(models.Message.recipient).selectinload(models.User.member),
    )


def send_message(
    db: Session, sender_id: str, message_in: schemas.MessageCreate
) -> schemas.MessageOut:
    """
    Create a new unread message.

    Args:
        db (Session): Database session.
        sender_id (str): Authenticated sender.
        message_in (MessageCreate): Recipient and content.

    Raises:
        InvalidOperation: If the sender is the recipient.
        InvalidArgument: If the content is blank or too long.
        NotFound: If the recipient does not exist.

    Returns:
        MessageOut: Projection of the stored message.
    """
    if sender_id == message_in.recipient_id:
        raise InvalidOperation("You cannot send messages to yourself")
    content = message_in.content
    if not content or not content.strip():
        raise InvalidArgument("Message content cannot be empty")
    if len(content) > get_settings().MAX_MESSAGE_LENGTH:
        raise InvalidArgument("Message content is too long")

    recipient = crud.get_user_by_id(db, message_in.recipient_id)
    if recipient is None:
        raise NotFound("Recipient not found")

    message = models.Message(
        sender_id=sender_id,
        recipient_id=recipient.id,
        content=content,
        date_sent=models.utcnow(),
        sender_deleted=False,
        recipient_deleted=False,
    )
    db.add(message)
    db.commit()
    logger.info("Message %s sent from %s to %s", message.id, sender_id, recipient.id)

    stored = db.execute(
        _messages_query().where(models.Message.id == message.id)
    ).scalar_one()
    return schemas.MessageOut.from_message(stored)


def get_messages(
    db: Session, user_id: str, container: str | None = Container.INBOX.value
) -> list[schemas.MessageOut]:
    """
    List one mailbox of the user, newest first.

    An unknown container yields an empty list.

    Args:
        db (Session): Database session.
        user_id (str): Mailbox owner.
        container (str | None): ``inbox``, ``outbox`` or ``unread``.

    Returns:
        list[MessageOut]: Messages in the mailbox.
    """
    try:
        box = Container(container)
    except ValueError:
        return []

    stmt = (
        _messages_query()
        .where(_container_filter(box, user_id))
        .order_by(models.Message.date_sent.desc(), models.Message.id.desc())
    )
    return [schemas.MessageOut.from_message(m) for m in db.scalars(stmt).all()]


def get_thread(db: Session, user_id: str, other_id: str) -> list[schemas.MessageOut]:
    """
    Return the conversation between two users, oldest first.

    Messages hidden by the viewing side are left out. Unread messages
    addressed to the viewer are marked read before returning; a message
    deleted in the meantime is skipped.

    Args:
        db (Session): Database session.
        user_id (str): Viewing user.
        other_id (str): The other participant.

    Returns:
        list[MessageOut]: Messages of the conversation.
    """
    Message = models.Message
    stmt = (
        _messages_query()
        .where(
            or_(
                and_(
                    Message.sender_id == user_id,
                    Message.recipient_id == other_id,
                    Message.sender_deleted.is_(False),
                ),
                and_(
                    Message.sender_id == other_id,
                    Message.recipient_id == user_id,
                    Message.recipient_deleted.is_(False),
                ),
            )
        )
        .order_by(Message.date_sent, Message.id)
    )
    messages = list(db.scalars(stmt).all())

    thread = [schemas.MessageOut.from_message(m) for m in messages]
    unread_ids = {
        m.id for m in messages if m.recipient_id == user_id and m.date_read is None
    }
    if unread_ids:
        read_at = models.utcnow()
        result = db.execute(
            update(Message)
            .where(Message.id.in_(unread_ids), Message.date_read.is_(None))
            .values(date_read=read_at)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        # report what is stored: rows may have been read or removed meanwhile
        stored = dict(
            db.execute(
                select(Message.id, Message.date_read).where(Message.id.in_(unread_ids))
            ).all()
        )
        for item in thread:
            if stored.get(item.id) is not None:
                item.date_read = stored[item.id]
        logger.info("Marked %s messages read for %s", result.rowcount, user_id)
    return thread


def delete_message(
    db: Session, user_id: str, message_id: int
) -> models.MessageVisibility | None:
    """
    Hide a message for the acting side, destroying it once both sides did.

    A user who is neither sender nor recipient changes nothing.

    Args:
        db (Session): Database session.
        user_id (str): Acting user.
        message_id (int): Message identifier.

    Raises:
        NotFound: If the message does not exist.

    Returns:
        MessageVisibility | None: State after the call, ``None`` if destroyed.
    """
    Message = models.Message
    exists = db.execute(
        select(Message.id).where(Message.id == message_id)
    ).scalar_one_or_none()
    if exists is None:
        raise NotFound("Message not found")

    db.execute(
        update(Message)
        .where(Message.id == message_id, Message.sender_id == user_id)
        .values(sender_deleted=True)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(Message)
        .where(Message.id == message_id, Message.recipient_id == user_id)
        .values(recipient_deleted=True)
        .execution_options(synchronize_session=False)
    )
    destroyed = db.execute(
        delete(Message)
        .where(
            Message.id == message_id,
            Message.sender_deleted.is_(True),
            Message.recipient_deleted.is_(True),
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()

    if destroyed:
        logger.info("Message %s destroyed by %s", message_id, user_id)
        return None

    flags = db.execute(
        select(Message.sender_deleted, Message.recipient_deleted).where(
            Message.id == message_id
        )
    ).one_or_none()
    if flags is None:
        return None
    state = models.MessageVisibility.from_flags(*flags)
    logger.info("Message %s is now %s", message_id, state.name)
    return state
