"""
Shared fixtures: a fresh SQLite database and local storage directory per test.
"""

import pytest

from talhub.auth import AuthContext, auth_context_from_profile, get_password_hash
from talhub.db.models import Profile, UserRole


@pytest.fixture
def sqlalchemy_db(tmp_path, monkeypatch):
    """Configure a fresh SQLAlchemy SQLite DB and storage dir for tests."""
    from talhub.db.session import reset_engine, init_db
    from talhub.storage import reset_storage

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'talhub_test.db'}")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "storage"))
    reset_engine()
    reset_storage()
    init_db()

    yield tmp_path

    reset_engine()
    reset_storage()


@pytest.fixture
def db(sqlalchemy_db):
    from talhub.db.session import SessionLocal, get_engine

    get_engine()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Factory: create a profile and return its AuthContext."""

    def _make(email: str, role: UserRole = UserRole.TENANT, full_name: str = None,
              password: str = None) -> AuthContext:
        profile = Profile(
            email=email,
            role=role,
            full_name=full_name or email.split("@")[0].title(),
            password_hash=get_password_hash(password) if password else None,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return auth_context_from_profile(profile)

    return _make
