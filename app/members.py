"""Member profile and photo routes."""

from fastapi import APIRouter, Depends, UploadFile, File, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas, crud
from .auth import get_current_user
from .core import get_settings
from .database import get_db
from .errors import NotFound
from .models import User
from .storage import PhotoStorage, get_photo_storage

router = APIRouter(prefix="/members", tags=["members"])


@router.get("", response_model=List[schemas.MemberOut])
def list_members(db: Session = Depends(get_db)):
    """
    Retrieve all member profiles.

    Returns:
        list[MemberOut]: Public profiles with their photos.
    """
    return crud.get_members(db)


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
def update_member(
    changes: schemas.MemberUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update description, city and country of the current member.

    Args:
        changes (MemberUpdate): New profile values.
        db (Session): Database session.
        current_user (User): Authenticated user.
    """
    crud.update_member(db, current_user.id, changes)


@router.post("/add-photo", response_model=schemas.PhotoOut)
def add_photo(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    """
    Upload a photo for the current member.

    The first uploaded photo becomes the main photo.

    Args:
        file (UploadFile): Uploaded image file.
        db (Session): Database session.
        current_user (User): Authenticated user.
        storage (PhotoStorage): Photo storage backend.

    Returns:
        PhotoOut: Created photo.
    """
    # one byte over the cap is enough to reject the upload
    content = file.file.read(get_settings().MAX_PHOTO_BYTES + 1)
    return crud.add_photo(db, current_user.id, storage, file.filename or "", content)


@router.put("/set-main-photo/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def set_main_photo(
    photo_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Designate one of the current member's photos as main."""
    crud.set_main_photo(db, current_user.id, photo_id)


@router.delete("/delete-photo/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_photo(
    photo_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: PhotoStorage = Depends(get_photo_storage),
):
    """
    Delete one of the current member's photos.

    Raises:
        HTTPException: 400 if the photo is main and others exist,
            404 if it does not belong to the member.
    """
    crud.delete_photo(db, current_user.id, photo_id, storage)


@router.get("/{member_id}", response_model=schemas.MemberOut)
def get_member(
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Retrieve a single member profile.

    Raises:
        HTTPException: If the member is not found.
    """
    member = crud.get_member(db, member_id)
    if member is None:
        raise NotFound("Member not found")
    return member
