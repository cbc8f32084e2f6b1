"""Like relation: toggling directed edges and deriving liked / liked-by / mutual sets.

Edges are ordered ``(source, target)`` pairs. The three relation queries
are pure functions over a set of such pairs; a mutual match is the
intersection of the two directed sets and is never stored.
"""

import enum
import logging
from typing import Callable, Iterable

from sqlalchemy import select, delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, crud
from .errors import InvalidArgument, InvalidOperation, PersistenceFailure

logger = logging.getLogger(__name__)

Edge = tuple[str, str]


class LikePredicate(str, enum.Enum):
    LIKED = "liked"
    LIKED_BY = "likedBy"
    MUTUAL = "mutual"


def liked(edges: Iterable[Edge], viewer_id: str) -> set[str]:
    """Targets of the viewer's outgoing edges."""
    return {target for source, target in edges if source == viewer_id}


def liked_by(edges: Iterable[Edge], viewer_id: str) -> set[str]:
    """Sources of edges pointing at the viewer."""
    return {source for source, target in edges if target == viewer_id}


def mutual(edges: Iterable[Edge], viewer_id: str) -> set[str]:
    """Members liked by the viewer who also like the viewer back."""
    edges = set(edges)
    return liked(edges, viewer_id) & liked_by(edges, viewer_id)


RELATIONS: dict[LikePredicate, Callable[[Iterable[Edge], str], set[str]]] = {
    LikePredicate.LIKED: liked,
    LikePredicate.LIKED_BY: liked_by,
    LikePredicate.MUTUAL: mutual,
}


def parse_predicate(predicate: str | None) -> LikePredicate:
    """
    Convert a raw query value into a predicate.

    Raises:
        InvalidArgument: If the value is not a known predicate.
    """
    try:
        return LikePredicate(predicate)
    except ValueError:
        raise InvalidArgument("Invalid predicate")


def get_edges(db: Session, user_id: str) -> set[Edge]:
    """
    Load every edge that starts or ends at the given user.

    Args:
        db (Session): Database session.
        user_id (str): User identifier.

    Returns:
        set[tuple[str, str]]: ``(source, target)`` pairs.
    """
    rows = db.execute(
        select(models.Like.source_user_id, models.Like.liked_user_id).where(
            or_(
                models.Like.source_user_id == user_id,
                models.Like.liked_user_id == user_id,
            )
        )
    ).all()
    return {(source, target) for source, target in rows}


def toggle_like(db: Session, source_id: str, target_id: str) -> bool:
    """
    Create the edge ``source -> target`` if absent, remove it if present.

    Calling it twice restores the original state. The written row count
    is checked, so a concurrent toggle of the same edge or an unknown
    target fails instead of leaving an ambiguous state.

    Args:
        db (Session): Database session.
        source_id (str): User giving the like.
        target_id (str): User receiving the like.

    Raises:
        InvalidOperation: If a user tries to like themselves.
        PersistenceFailure: If no row was inserted or deleted.

    Returns:
        bool: ``True`` when the edge exists after the call.
    """
    if source_id == target_id:
        raise InvalidOperation("You cannot like yourself")

    key = (source_id, target_id)
    existing = db.get(models.Like, key, with_for_update=True)
    try:
        if existing is not None:
            result = db.execute(
                delete(models.Like).where(
                    models.Like.source_user_id == source_id,
                    models.Like.liked_user_id == target_id,
                )
            )
            affected = result.rowcount
            now_liked = False
        else:
            db.add(models.Like(source_user_id=source_id, liked_user_id=target_id))
            db.flush()
            affected = 1
            now_liked = True
    except IntegrityError:
        db.rollback()
        logger.warning("Like %s -> %s violated a constraint", source_id, target_id)
        raise PersistenceFailure("Failed to update like")

    if affected == 0:
        db.rollback()
        raise PersistenceFailure("Failed to update like")

    db.commit()
    logger.info(
        "User %s %s user %s", source_id, "liked" if now_liked else "unliked", target_id
    )
    return now_liked


def get_liked_members(
    db: Session, viewer_id: str, predicate: str | None
) -> list[models.Member]:
    """
    Resolve a like relation of the viewer to member profiles.

    Args:
        db (Session): Database session.
        viewer_id (str): User whose relations are queried.
        predicate (str | None): ``liked``, ``likedBy`` or ``mutual``.

    Raises:
        InvalidArgument: If the predicate is unknown.

    Returns:
        list[Member]: Matching members ordered by display name.
    """
    relation = RELATIONS[parse_predicate(predicate)]
    member_ids = relation(get_edges(db, viewer_id), viewer_id)
    return crud.get_members_by_ids(db, member_ids)
