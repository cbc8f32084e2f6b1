"""Error taxonomy shared by the data layer and the HTTP routers.

Every error derives from :class:`fastapi.HTTPException`, so data-layer
functions raise them directly and FastAPI renders them as
``{"detail": ...}`` with the matching status code.
"""

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class InvalidArgument(DomainError):
    """Malformed input: bad predicate, bad upload, bad message content."""

    default_detail = "Invalid argument"


class InvalidOperation(DomainError):
    """Well-formed request that breaks a domain rule."""

    default_detail = "Invalid operation"


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class PersistenceFailure(DomainError):
    """A write did not affect the rows it was expected to."""

    default_detail = "Failed to save changes"
