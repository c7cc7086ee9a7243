"""Shared fixtures: isolated database, controllable clock, recording outbox."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("MAIL_BACKEND", "log")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from services.accounts import AccountService
from services.users import UserRepository
from utils.otp_service import MemoryOTPStore, get_notifier, get_otp_store


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Outbox:
    """Notification sink that remembers what it was asked to deliver."""

    def __init__(self):
        self.sent = []

    def __call__(self, email, code):
        self.sent.append((email, code))

    def last_code(self, email):
        for to, code in reversed(self.sent):
            if to == email:
                return code
        raise AssertionError(f"no code sent to {email}")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def otp_store(clock):
    return MemoryOTPStore(ttl_seconds=300, clock=clock)


@pytest.fixture()
def outbox():
    return Outbox()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def accounts(db, otp_store, outbox):
    return AccountService(UserRepository(db), otp_store, outbox)


@pytest.fixture()
def client(session_factory, otp_store, outbox):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_otp_store] = lambda: otp_store
    app.dependency_overrides[get_notifier] = lambda: outbox
    yield TestClient(app)
    app.dependency_overrides.clear()
