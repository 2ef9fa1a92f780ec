import os
import tempfile

# Settings are read once per process, so configure them before importing the app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CACHE_ENABLED"] = "false"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["REFRESH_COOKIE_SECURE"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="marketplace-uploads-")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from marketplace.main import app
from marketplace.api.dependencies import get_low_stock_notifier
from marketplace.database import Base, build_engine, get_db
from marketplace.migrations import run_migrations
from marketplace.models.product import Product
from marketplace.models.user import User, UserRole
from marketplace.services.notifier import LowStockNotifier


# Create test database (SQLite in-memory for testing)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = build_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the dependency
app.dependency_overrides[get_db] = override_get_db


class RecordingNotifier(LowStockNotifier):
    """Keeps notices in memory instead of sending them."""

    def __init__(self):
        self.notices = []

    def notify(self, notice):
        self.notices.append(notice)


class FailingNotifier(LowStockNotifier):
    """Raises on every notice, like a mail server that is down."""

    def __init__(self):
        self.calls = 0

    def notify(self, notice):
        self.calls += 1
        raise ConnectionError("SMTP server unreachable")


def _reset_database():
    Base.metadata.drop_all(bind=engine)
    with engine.begin() as connection:
        connection.execute(text("DROP TABLE IF EXISTS alembic_version"))


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def failing_notifier():
    return FailingNotifier()


@pytest.fixture(scope="function")
def client(notifier):
    """Create test client with fresh database for each test."""
    run_migrations(engine)
    app.dependency_overrides[get_low_stock_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_low_stock_notifier, None)
    _reset_database()


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    run_migrations(engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    _reset_database()


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------

def register(client, email, role="USER", farm_name=None, password="password"):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "role": role, "farm_name": farm_name}
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(client, email, password="password"):
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def villager(client):
    """Registered seller with auth headers."""
    account = register(client, "test@villager.com", role="VILLAGER", farm_name="Test Farm")
    return {"id": account["id"], "headers": auth_headers(client, "test@villager.com")}


@pytest.fixture
def other_villager(client):
    account = register(client, "other@villager.com", role="VILLAGER", farm_name="Other Farm")
    return {"id": account["id"], "headers": auth_headers(client, "other@villager.com")}


@pytest.fixture
def buyer(client):
    """Registered buyer with auth headers."""
    account = register(client, "test@user.com", role="USER")
    return {"id": account["id"], "headers": auth_headers(client, "test@user.com")}


@pytest.fixture
def product_id(client, villager):
    """Product of the villager with stock 100 and threshold 10."""
    response = client.post(
        "/api/v1/products/",
        data={
            "name": "Test Product",
            "price": "10.0",
            "stock": "100.0",
            "category": "Sweet",
            "low_stock_threshold": "10.0",
        },
        headers=villager["headers"]
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def seller(db_session):
    user = User(
        email="farmer@example.com",
        password_hash="not-a-real-hash",
        role=UserRole.VILLAGER,
        farm_name="Green Farm",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def shopper(db_session):
    user = User(
        email="shopper@example.com",
        password_hash="not-a-real-hash",
        role=UserRole.USER,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_product(db_session, seller):
    """Factory inserting products owned by ``seller``."""
    def _make(stock=100.0, threshold=10.0, name="Mango", owner=None, low_stock_since_date=None):
        product = Product(
            owner_id=(owner or seller).id,
            name=name,
            category="Sweet",
            price=10.0,
            stock=stock,
            low_stock_threshold=threshold,
            low_stock_since_date=low_stock_since_date,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make
