from __future__ import annotations

import os

os.environ.setdefault("LMS_JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lms_module import init_lms_module
from lms_module.app import create_app
from lms_module.database import build_engine, get_db_session
from lms_module.models import UserRole
from lms_module.security import create_access_token
from lms_module.services import create_account


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_lms_module(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    app = create_app()

    def _override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = _override_db
    # Not entered as a context manager: the lifespan would initialise the real database.
    return TestClient(app)


@pytest.fixture()
def auth_header():
    def _header(account) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(account.id, account.role)}"}

    return _header


@pytest.fixture()
def teacher(db):
    return create_account(db, full_name="Mme Rakoto", role=UserRole.TEACHER, username="rakoto", raw_password="Teacher@2026")


@pytest.fixture()
def student(db):
    return create_account(db, full_name="Hery Rabe", role=UserRole.STUDENT, student_code="S001", raw_password="Student@2026")


@pytest.fixture()
def admin(db):
    return create_account(db, full_name="Chef Admin", role=UserRole.ADMIN, username="chef", raw_password="Admin@2026")
