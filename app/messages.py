"""Direct message routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas, messages_crud
from .auth import get_current_user
from .database import get_db
from .models import User

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=schemas.MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    message_in: schemas.MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Send a message from the current user.

    Args:
        message_in (MessageCreate): Recipient and content.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Returns:
        MessageOut: Stored message.
    """
    return messages_crud.send_message(db, current_user.id, message_in)


@router.get("", response_model=List[schemas.MessageOut])
def list_messages(
    container: str = Query("inbox"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List the ``inbox``, ``outbox`` or ``unread`` mailbox, newest first.

    Any other container returns an empty list.
    """
    return messages_crud.get_messages(db, current_user.id, container)


@router.get("/thread/{user_id}", response_model=List[schemas.MessageOut])
def get_thread(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Return the conversation with another member and mark it read.
    """
    return messages_crud.get_thread(db, current_user.id, user_id)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Delete a message for the current user.

    The message is removed for good once both participants deleted it.
    """
    messages_crud.delete_message(db, current_user.id, message_id)
