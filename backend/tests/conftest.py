"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core import database as db_module
from app.core.config import settings
from app.core.database import Base
from app.models.user import CustomerLevel
from app.models.voucher import DiscountType
from app.repositories.product_repository import ProductRepository
from app.repositories.user_repository import UserRepository
from app.repositories.voucher_repository import VoucherRepository
from app.schemas.product import ProductCreate
from app.schemas.user import UserCreate
from app.schemas.voucher import VoucherCreate

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


def make_token(user_id: uuid.UUID, role: str = "user", expires_in: timedelta | None = None) -> str:
    """Build a bearer token the way the auth service signs them."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + (expires_in or timedelta(minutes=30))).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id: uuid.UUID, role: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = db_module.get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def now():
    return datetime.now(UTC)


@pytest.fixture
def token_for():
    """Factory fixture: ``token_for(user_id, role="user", expires_in=None)``."""
    return make_token


@pytest.fixture
def headers_for():
    """Factory fixture: ``headers_for(user_id, role="user")``."""
    return auth_headers


@pytest.fixture
def create_user(db_session):
    """Factory fixture creating users through the repository."""

    def _create(level: CustomerLevel = CustomerLevel.NEW, email: str | None = None):
        return UserRepository(db_session).create(
            UserCreate(
                email=email or f"user-{uuid.uuid4().hex[:12]}@shop.io", customer_level=level
            )
        )

    return _create


@pytest.fixture
def create_product(db_session):
    """Factory fixture creating catalog products."""

    def _create(price: str = "100000"):
        return ProductRepository(db_session).create(
            ProductCreate(
                sku=f"SKU-{uuid.uuid4().hex[:8]}", name="Test product", price=Decimal(price)
            )
        )

    return _create


@pytest.fixture
def create_voucher(db_session, now):
    """Factory fixture creating a voucher valid around ``now``.

    Defaults to 10% off orders of at least 200000, one use, open to everyone.
    """

    def _create(**overrides):
        fields = {
            "code": f"V{uuid.uuid4().hex[:10].upper()}",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "minimum_order_value": Decimal("200000"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=1),
            "usage_limit": 1,
        }
        fields.update(overrides)
        return VoucherRepository(db_session).create(VoucherCreate(**fields))

    return _create
