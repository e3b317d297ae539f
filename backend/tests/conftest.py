import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure tests use an in-memory SQLite DB and JSON columns stay generic
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FORCE_GENERIC_JSON", "1")

# Ensure the project root is on sys.path so `import backend` works when running
# pytest from the repository root.
ROOT_DIR = Path(__file__).resolve().parents[2]  # repository root
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.app import app
from backend.db.session import Base, get_db
from backend.auth.deps import get_current_user
from backend.models.standard_item import StandardItemMaster, UserStandardItem
from backend.models.item_alias import ItemAliasMaster, UserItemAlias


# In-memory SQLite shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

USER_ID = "user-1"
ADMIN_USER = SimpleNamespace(id=USER_ID, email="u@example.com", is_admin=True)
PLAIN_USER = SimpleNamespace(id=USER_ID, email="u@example.com", is_admin=False)


@pytest.fixture(scope="session", autouse=True)
def create_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = _override_get_db
app.dependency_overrides[get_current_user] = lambda: ADMIN_USER

# Code paths that import SessionLocal/engine directly use the test engine
import backend.db.session as session_mod
session_mod.engine = engine
session_mod.SessionLocal = TestingSessionLocal
import backend.models as models_mod
models_mod.engine = engine


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def as_plain_user():
    app.dependency_overrides[get_current_user] = lambda: PLAIN_USER
    yield PLAIN_USER
    app.dependency_overrides[get_current_user] = lambda: ADMIN_USER


@pytest.fixture
def make_item(db):
    def _make(name, **fields):
        fields.setdefault("category", fields.get("exam_type", "Chemistry"))
        item = StandardItemMaster(name=name, **fields)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item
    return _make


@pytest.fixture
def make_override(db):
    def _make(master, user_id=USER_ID, **fields):
        row = UserStandardItem(user_id=user_id, master_item_id=master.id, **fields)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    return _make


@pytest.fixture
def make_custom(db):
    def _make(name, user_id=USER_ID, **fields):
        row = UserStandardItem(user_id=user_id, master_item_id=None, name=name, **fields)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    return _make


@pytest.fixture
def make_alias(db):
    def _make(alias, item, user_id=None, source_hint=None):
        if user_id:
            row = UserItemAlias(
                user_id=user_id, alias=alias, canonical_name=item.name,
                standard_item_id=item.id, source_hint=source_hint,
            )
        else:
            row = ItemAliasMaster(
                alias=alias, canonical_name=item.name,
                standard_item_id=item.id, source_hint=source_hint,
            )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    return _make


def pytest_configure(config):
    """Allow overriding the coverage floor via environment variable for local runs."""
    env_floor = os.getenv("PYTEST_COV_FAIL_UNDER") or os.getenv("COV_FAIL_UNDER")
    if env_floor is not None:
        try:
            config.option.cov_fail_under = float(env_floor)
        except (AttributeError, ValueError):
            pass
