"""Account routes, token handling and the authenticated-user dependency."""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
import redis.asyncio as redis
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import schemas, crud
from .database import get_db
from .errors import Unauthorized
from .models import User
from .core import get_settings, MIN_SECRET_KEY_LENGTH

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/account/login", auto_error=False)
router = APIRouter(prefix="/account", tags=["account"])


@dataclass
class CachedUser:
    """Serializable identity facts stored in cache."""

    id: str
    email: str
    display_name: str

    @classmethod
    def from_model(cls, user: User) -> "CachedUser":
        """
        Create a CachedUser instance from a User ORM model.

        Args:
            user (User): SQLAlchemy User model.

        Returns:
            CachedUser: Serializable cached user representation.
        """
        return cls(id=user.id, email=user.email, display_name=user.display_name)

    def to_model(self) -> User:
        """
        Convert cached user data back into a detached User model.

        Returns:
            User: SQLAlchemy User instance populated from cache.
        """
        return User(
            id=self.id,
            email=self.email,
            display_name=self.display_name,
            hashed_password="",
        )

    def to_json(self) -> str:
        return json.dumps(self.__dict__)

    @classmethod
    def from_json(cls, raw: str) -> "CachedUser":
        data: dict[str, Any] = json.loads(raw)
        return cls(**data)


class MemoryCache:
    """Simple in-memory cache used when Redis is unavailable."""

    def __init__(self):
        self.store: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self.store[key]
            return None
        return value

    async def set(self, key: str, value: str, ex: int | None = None):
        """
        Store a value in in-memory cache.

        Args:
            key (str): Cache key.
            value (str): Value to store.
            ex (int | None): Expiration time in seconds.
        """
        expires_at = time.monotonic() + ex if ex else None
        self.store[key] = (value, expires_at)

    async def delete(self, key: str):
        self.store.pop(key, None)


_cache_client: Any | None = None


async def get_cache_client():
    """
    Return a Redis client or an in-memory fallback cache.

    Returns:
        Redis | MemoryCache: Cache backend instance.
    """
    global _cache_client
    if _cache_client is not None:
        return _cache_client
    settings = get_settings()
    try:
        client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        await client.ping()
        _cache_client = client
    except Exception:
        logger.warning("Redis unavailable at %s, using in-memory cache", settings.REDIS_URL)
        _cache_client = MemoryCache()
    return _cache_client


async def cache_user(user: User):
    """
    Store identity facts in cache for the lifetime of an access token.

    Args:
        user (User): User ORM model.
    """
    client = await get_cache_client()
    settings = get_settings()
    await client.set(
        f"user:{user.id}",
        CachedUser.from_model(user).to_json(),
        ex=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


async def get_cached_user(user_id: str) -> User | None:
    """
    Retrieve user from cache if available.

    Args:
        user_id (str): User identifier.

    Returns:
        User | None: Cached user or None.
    """
    client = await get_cache_client()
    cached = await client.get(f"user:{user_id}")
    if cached:
        return CachedUser.from_json(cached).to_model()
    return None


async def forget_user(user_id: str):
    """
    Drop cached identity facts of a user.

    Args:
        user_id (str): User identifier.
    """
    client = await get_cache_client()
    await client.delete(f"user:{user_id}")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a PBKDF2 password hash using the configured context."""
    return pwd_context.hash(password)


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT whose subject is the user id.

    Raises:
        RuntimeError: If the signing key is shorter than 64 characters.
    """
    settings = get_settings()
    if len(settings.SECRET_KEY) < MIN_SECRET_KEY_LENGTH:
        raise RuntimeError(
            f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters"
        )
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": user_id, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def to_user_out(user: User) -> schemas.UserOut:
    return schemas.UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        image_url=user.member.image_url if user.member else None,
        token=create_access_token(user.id),
    )


async def get_current_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Dependency that returns authenticated user from JWT token with caching."""

    if not token:
        raise Unauthorized("Not authenticated")
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_aud": False, "verify_iss": False},
        )
        token_data = schemas.TokenData(sub=payload.get("sub"))
    except JWTError:
        raise Unauthorized()
    if not token_data.sub:
        raise Unauthorized()
    cached_user = await get_cached_user(token_data.sub)
    if cached_user:
        # the identity may have been deleted since it was cached
        if crud.user_exists(db, cached_user.id):
            return cached_user
        await forget_user(cached_user.id)
        raise Unauthorized()
    user = crud.get_user_by_id(db, token_data.sub)
    if user is None:
        raise Unauthorized()
    await cache_user(user)
    return user


@router.post("/register", response_model=schemas.UserOut)
def register(user_in: schemas.RegisterIn, db: Session = Depends(get_db)):
    """Create an identity with its member profile and sign it in."""

    hashed_password = get_password_hash(user_in.password)
    user = crud.create_user(db, user_in, hashed_password)
    return to_user_out(user)


@router.post("/login", response_model=schemas.UserOut)
def login(credentials: schemas.LoginIn, db: Session = Depends(get_db)):
    """Authenticate with email and password and return a fresh token."""

    user = crud.get_user_by_email(db, credentials.email)
    if user is None:
        logger.warning("Login attempt for unknown email")
        raise Unauthorized("Invalid email address")
    if not verify_password(credentials.password, user.hashed_password):
        logger.warning("Invalid password for user %s", user.id)
        raise Unauthorized("Invalid password")
    logger.info("User %s logged in", user.id)
    return to_user_out(user)
