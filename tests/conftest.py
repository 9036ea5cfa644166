"""
Shared pytest fixtures.

Uses a SQLite database file so no Postgres is required for tests.
"""
import os

SQLITE_URL = "sqlite:///./test_citas.db"
os.environ["DATABASE_URL"] = SQLITE_URL

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from citas.core.cache import NullCache, get_cache  # noqa: E402
from citas.db.base import Base, get_db  # noqa: E402
from citas.main import app  # noqa: E402
from citas.models import Appointment, Order  # noqa: E402

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    db = TestingSessionLocal()
    try:
        db.query(Appointment).delete()
        db.query(Order).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: NullCache()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
