"""Like routes: toggling an edge and listing related members."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from . import schemas, likes_crud
from .auth import get_current_user
from .database import get_db
from .models import User

router = APIRouter(prefix="/likes", tags=["likes"])


@router.post("/{liked_user_id}", response_model=schemas.LikeToggleOut)
def toggle_like(
    liked_user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Like the given member, or remove the like if it already exists.

    Args:
        liked_user_id (str): Member receiving the like.
        db (Session): Database session.
        current_user (User): Authenticated user.

    Returns:
        LikeToggleOut: Whether the like exists after the call.
    """
    liked = likes_crud.toggle_like(db, current_user.id, liked_user_id)
    return schemas.LikeToggleOut(liked=liked)


@router.get("", response_model=List[schemas.MemberOut])
def list_likes(
    predicate: str | None = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List members related to the current user by likes.

    ``liked`` are members the user likes, ``likedBy`` members who like
    the user and ``mutual`` members in both sets.

    Raises:
        HTTPException: 400 for any other predicate.
    """
    return likes_crud.get_liked_members(db, current_user.id, predicate)
