"""CRUD operations for identities, member profiles and photos.

This module contains database interaction logic for users, members and
their photos, isolated from FastAPI route handlers.
"""

import logging
from pathlib import Path

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .core import get_settings
from .errors import InvalidArgument, InvalidOperation, NotFound
from .storage import PhotoStorage

logger = logging.getLogger(__name__)


def create_user(
    db: Session, user_in: schemas.RegisterIn, hashed_password: str
) -> models.User:
    """
    Create and persist a new user together with its member profile.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (RegisterIn): Incoming registration data.
        hashed_password (str): Securely hashed password.

    Raises:
        InvalidOperation: If a user with the same email already exists.

    Returns:
        User: Newly created user instance.
    """
    email = user_in.email.lower()
    if get_user_by_email(db, email) is not None:
        raise InvalidOperation("Email is already in use")

    user = models.User(
        id=models.new_id(),
        email=email,
        display_name=user_in.display_name,
        hashed_password=hashed_password,
    )
    user.member = models.Member(
        id=user.id,
        display_name=user_in.display_name,
        date_of_birth=user_in.date_of_birth,
        gender=user_in.gender,
        city=user_in.city,
        country=user_in.country,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidOperation("Email is already in use")
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def get_user_by_email(db: Session, email: str) -> models.User | None:
    """
    Retrieve a user by email address, ignoring case.

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(func.lower(models.User.email) == email.lower())
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: str) -> models.User | None:
    """
    Retrieve a user by primary key.

    Args:
        db (Session): Database session.
        user_id (str): User identifier.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.get(models.User, user_id)


def user_exists(db: Session, user_id: str) -> bool:
    """Check for a user row without loading the identity."""
    return (
        db.execute(
            select(models.User.id).where(models.User.id == user_id)
        ).scalar_one_or_none()
        is not None
    )


def delete_user(db: Session, user_id: str) -> None:
    """
    Delete a user with its profile, photos records and like edges.

    Args:
        db (Session): Database session.
        user_id (str): User identifier.

    Raises:
        NotFound: If the user does not exist.
        InvalidOperation: If messages still reference the user.
    """
    user = get_user_by_id(db, user_id)
    if user is None:
        raise NotFound("User not found")
    db.delete(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidOperation("Cannot delete a member with message history")
    logger.info("Deleted user %s", user_id)


def members_query():
    """Select statement for members with their photos eagerly loaded."""
    return select(models.Member).options(selectinload(models.Member.photos))


def get_members(db: Session) -> list[models.Member]:
    """
    Retrieve all member profiles.

    Args:
        db (Session): Database session.

    Returns:
        list[Member]: Members ordered by display name.
    """
    stmt = members_query().order_by(models.Member.display_name, models.Member.id)
    return list(db.scalars(stmt).all())


def get_members_by_ids(db: Session, member_ids: set[str]) -> list[models.Member]:
    if not member_ids:
        return []
    stmt = (
        members_query()
        .where(models.Member.id.in_(member_ids))
        .order_by(models.Member.display_name, models.Member.id)
    )
    return list(db.scalars(stmt).all())


def get_member(db: Session, member_id: str) -> models.Member | None:
    """
    Retrieve one member profile.

    Args:
        db (Session): Database session.
        member_id (str): Member identifier.

    Returns:
        Member | None: Member if found, otherwise ``None``.
    """
    return db.execute(
        members_query().where(models.Member.id == member_id)
    ).scalar_one_or_none()


def _require_member(db: Session, member_id: str) -> models.Member:
    member = get_member(db, member_id)
    if member is None:
        raise NotFound("Member not found")
    return member


def update_member(
    db: Session, member_id: str, changes: schemas.MemberUpdate
) -> models.Member:
    """
    Overwrite the mutable profile fields and stamp last activity.

    Args:
        db (Session): Database session.
        member_id (str): Member identifier.
        changes (MemberUpdate): New description, city and country.

    Raises:
        NotFound: If the member does not exist.

    Returns:
        Member: Updated member.
    """
    member = _require_member(db, member_id)
    member.description = changes.description
    member.city = changes.city
    member.country = changes.country
    member.last_active = models.utcnow()
    db.commit()
    db.refresh(member)
    return member


def validate_photo_upload(filename: str, content: bytes) -> None:
    """
    Check an uploaded photo before it is stored.

    Raises:
        InvalidArgument: If the payload is empty, too large or not an image.
    """
    settings = get_settings()
    if not content:
        raise InvalidArgument("File is empty")
    if len(content) > settings.MAX_PHOTO_BYTES:
        raise InvalidArgument("File size cannot exceed 10MB")
    extension = Path(filename or "").suffix.lower()
    if extension not in settings.ALLOWED_PHOTO_EXTENSIONS:
        raise InvalidArgument(
            "Invalid file type. Allowed types: "
            + ", ".join(settings.ALLOWED_PHOTO_EXTENSIONS)
        )


def add_photo(
    db: Session,
    member_id: str,
    storage: PhotoStorage,
    filename: str,
    content: bytes,
) -> models.Photo:
    """
    Store an uploaded photo and attach it to the member.

    The first photo of a member becomes the main photo.

    Args:
        db (Session): Database session.
        member_id (str): Owner of the photo.
        storage (PhotoStorage): Storage collaborator.
        filename (str): Original file name.
        content (bytes): Image payload.

    Raises:
        InvalidArgument: If the upload fails validation.
        NotFound: If the member does not exist.

    Returns:
        Photo: Newly created photo.
    """
    validate_photo_upload(filename, content)
    member = _require_member(db, member_id)

    stored = storage.save(content, filename)
    photo = models.Photo(url=stored.url, public_id=stored.public_id)
    if not member.photos:
        member.image_url = photo.url
    member.photos.append(photo)
    try:
        db.commit()
    except Exception:
        db.rollback()
        storage.delete(stored.public_id)
        raise
    db.refresh(photo)
    logger.info("Member %s added photo %s", member_id, photo.id)
    return photo


def _require_photo(member: models.Member, photo_id: int) -> models.Photo:
    for photo in member.photos:
        if photo.id == photo_id:
            return photo
    raise NotFound("Photo not found")


def set_main_photo(db: Session, member_id: str, photo_id: int) -> models.Member:
    """
    Designate one of the member's photos as the main photo.

    Raises:
        NotFound: If the member or the photo does not exist.
    """
    member = _require_member(db, member_id)
    photo = _require_photo(member, photo_id)
    member.image_url = photo.url
    db.commit()
    db.refresh(member)
    return member


def delete_photo(
    db: Session, member_id: str, photo_id: int, storage: PhotoStorage
) -> None:
    """
    Remove a photo and its stored asset.

    The main photo can only be deleted when it is the last one; the main
    reference then moves to a remaining photo or is cleared.

    Args:
        db (Session): Database session.
        member_id (str): Owner of the photo.
        photo_id (int): Photo identifier.
        storage (PhotoStorage): Storage collaborator.

    Raises:
        NotFound: If the member or the photo does not exist.
        InvalidOperation: If the photo is main and other photos exist.
    """
    member = _require_member(db, member_id)
    photo = _require_photo(member, photo_id)
    was_main = member.main_photo is photo
    if was_main and len(member.photos) > 1:
        raise InvalidOperation(
            "Cannot delete the main photo, set another photo as main first"
        )

    if photo.public_id:
        storage.delete(photo.public_id)
    member.photos.remove(photo)
    if was_main:
        member.image_url = member.photos[0].url if member.photos else None
    db.commit()
    logger.info("Member %s deleted photo %s", member_id, photo_id)
