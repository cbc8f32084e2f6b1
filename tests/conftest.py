# tests/conftest.py
import os
import sys
import asyncio
import json
from datetime import date
from urllib.parse import urlencode

import pytest
from fakeredis.aioredis import FakeRedis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

from app import auth, crud
from app.database import Base, get_db
from app.schemas import RegisterIn
from app.storage import LocalPhotoStorage, get_photo_storage
from main import app


# DB (SQLite in-memory for tests)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# One event loop for the WHOLE pytest session
@pytest.fixture(scope="session")
def session_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture(autouse=True)
def identity_cache():
    auth._cache_client = FakeRedis(decode_responses=True)
    yield auth._cache_client
    auth._cache_client = None


# Two sessions on separate connections to one file database, for interleaving
@pytest.fixture()
def session_pair(tmp_path):
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'shared.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=file_engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    first, second = Session(), Session()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        file_engine.dispose()


@pytest.fixture()
def photo_storage(tmp_path):
    return LocalPhotoStorage(tmp_path / "media", "/media")


# Simple ASGI response/client
class SimpleResponse:
    def __init__(
        self, status_code: int, body: bytes, headers: list[tuple[bytes, bytes]]
    ):
        self.status_code = status_code
        self._body = body
        self.headers = {k.decode(): v.decode() for k, v in headers}

    def json(self):
        return json.loads(self._body.decode())


class SimpleClient:
    """
    Important:
    - uses ONE shared session loop (passed from fixture)
    - does NOT call asyncio.run()
    - does NOT close the loop
    """

    def __init__(self, app, loop):
        self.app = app
        self.loop = loop

    def close(self):
        # do not close the loop here (session fixture closes it)
        pass

    def request(
        self,
        method: str,
        path: str,
        json_body=None,
        data=None,
        headers=None,
        files=None,
    ):
        headers = dict(headers or {})
        body_bytes = b""
        path, _, query = path.partition("?")

        if files:
            boundary = "TESTBOUNDARY"
            parts: list[bytes] = []
            for name, (filename, content, content_type) in files.items():
                disposition = f'form-data; name="{name}"; filename="{filename}"'
                part_headers = (
                    f"--{boundary}\r\n"
                    f"Content-Disposition: {disposition}\r\n"
                    f"Content-Type: {content_type or 'application/octet-stream'}\r\n\r\n"
                )
                parts.append(part_headers.encode() + content + b"\r\n")
            parts.append(f"--{boundary}--\r\n".encode())
            body_bytes = b"".join(parts)
            headers["content-type"] = f"multipart/form-data; boundary={boundary}"

        elif json_body is not None:
            body_bytes = json.dumps(json_body).encode()
            headers.setdefault("content-type", "application/json")

        elif data is not None:
            if isinstance(data, dict):
                body_bytes = urlencode(data, doseq=True).encode()
            elif isinstance(data, bytes):
                body_bytes = data
            else:
                body_bytes = str(data).encode()
            headers.setdefault("content-type", "application/x-www-form-urlencoded")

        raw_headers = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
        scope = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "headers": raw_headers,
            "query_string": query.encode(),
            "client": ("testclient", 5000),
        }

        async def receive():
            nonlocal body_bytes
            chunk, body_bytes = body_bytes, b""
            return {"type": "http.request", "body": chunk, "more_body": False}

        response_body = bytearray()
        response_status = 500
        response_headers: list[tuple[bytes, bytes]] = []

        async def send(message):
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = message.get("headers", [])
            elif message["type"] == "http.response.body":
                response_body.extend(message.get("body", b""))

        # ensure the loop is the current one
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.app(scope, receive, send))
        return SimpleResponse(response_status, bytes(response_body), response_headers)

    def get(self, path: str, headers=None):
        return self.request("GET", path, headers=headers)

    def post(self, path: str, json=None, data=None, headers=None, files=None):
        return self.request(
            "POST", path, json_body=json, data=data, headers=headers, files=files
        )

    def put(self, path: str, json=None, data=None, headers=None, files=None):
        return self.request(
            "PUT", path, json_body=json, data=data, headers=headers, files=files
        )

    def delete(self, path: str, headers=None):
        return self.request("DELETE", path, headers=headers)


# Client fixture: override DB and storage dependencies per test
@pytest.fixture()
def client(db_session, session_loop, photo_storage):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_photo_storage] = lambda: photo_storage

    c = SimpleClient(app, loop=session_loop)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()
        c.close()


def register_member(db_session, email, display_name=None, password="secret123"):
    """Create a user with its profile directly through the data layer."""
    user_in = RegisterIn(
        email=email,
        password=password,
        display_name=display_name or email.split("@")[0].title(),
        gender="female",
        date_of_birth=date(1995, 5, 17),
        city="Lisbon",
        country="Portugal",
    )
    return crud.create_user(db_session, user_in, auth.get_password_hash(password))


def auth_headers(user):
    return {"Authorization": f"Bearer {auth.create_access_token(user.id)}"}


@pytest.fixture()
def make_member(db_session):
    def factory(email, display_name=None):
        user = register_member(db_session, email, display_name)
        return user, auth_headers(user)

    return factory


@pytest.fixture()
def pair_members(session_pair):
    first, _ = session_pair
    alice = register_member(first, "alice@example.com", "Alice")
    bob = register_member(first, "bob@example.com", "Bob")
    return alice.id, bob.id
