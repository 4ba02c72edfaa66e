import os
import tempfile

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

_TMP_DIR = tempfile.mkdtemp(prefix="photoshare-tests-")

# Settings are read once at import time, so the environment must be ready first.
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'photoshare.db')}"
os.environ["DB_INIT_MODE"] = "create_all"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_FILE", os.path.join(_TMP_DIR, "app.log"))

from photoshare.core.database import Base  # noqa: E402
from photoshare.core.security import get_password_hash  # noqa: E402
from photoshare.models.user import User  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite:///:memory:")
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture()
def make_user(db_session):
    def _make(email: str, password: str = "correct horse battery", name: str = "Test User") -> User:
        user = User(email=email, name=name, password_hash=get_password_hash(password))
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from photoshare.core.database import engine
    from photoshare.main import app

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # https so the Secure session cookies are sent back
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client
