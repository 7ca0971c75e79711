import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from datetime import datetime, timedelta, UTC
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from jose import jwt

from retail_pos.database import get_db
from retail_pos.config import settings
# Import all model classes to ensure they're registered with SQLAlchemy
from retail_pos.models import Base, Tenant, User, Product, ProductVariant
from retail_pos.models.role import UserRole
from retail_pos.models.tenant_context import TenantContext
# Import FastAPI app AFTER model imports
from retail_pos.main import app

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with test database"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_test_token(
    user_id: int = 1,
    role: str = "SELLER",
    tenant_id: str | None = None,
    expired: bool = False,
) -> str:
    """
    Generate valid JWT token for testing.

    Args:
        user_id: User ID to embed in 'sub' claim
        role: ADMIN or SELLER
        tenant_id: Seller's tenant (omitted from the claims when None)
        expired: If True, create expired token

    Returns:
        Encoded JWT token
    """
    if expired:
        exp = datetime.now(UTC) - timedelta(minutes=5)
    else:
        exp = datetime.now(UTC) + timedelta(minutes=15)

    payload = {"sub": str(user_id), "role": role, "exp": exp, "iat": datetime.now(UTC)}
    if tenant_id is not None:
        payload["tenant_id"] = tenant_id

    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def headers_for(user: User) -> dict:
    """Authorization headers carrying a user's identity triple"""
    token = create_test_token(user_id=user.id, role=user.role.value, tenant_id=user.tenant_id)
    return {"Authorization": f"Bearer {token}"}


def context_for(user: User) -> TenantContext:
    return TenantContext.from_identity(user.id, user.role, user.tenant_id)


def stock_of(db, variant_id: int) -> int:
    """Read stock straight from storage, bypassing the identity map"""
    db.expire_all()
    return db.query(ProductVariant.stock).filter(ProductVariant.id == variant_id).scalar()


# Tenants and users


@pytest.fixture
def tenant_a(db_session):
    tenant = Tenant(name="Store A", address="1 Main St", contact="a@store.test")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def tenant_b(db_session):
    tenant = Tenant(name="Store B")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def admin_user(db_session):
    user = User(email="admin@pos.test", username="admin", role=UserRole.ADMIN)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def seller_a(db_session, tenant_a):
    user = User(email="seller-a@pos.test", username="seller_a", role=UserRole.SELLER, tenant_id=tenant_a.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def seller_a2(db_session, tenant_a):
    """A second seller in tenant A"""
    user = User(email="seller-a2@pos.test", username="seller_a2", role=UserRole.SELLER, tenant_id=tenant_a.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def seller_b(db_session, tenant_b):
    user = User(email="seller-b@pos.test", username="seller_b", role=UserRole.SELLER, tenant_id=tenant_b.id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def unassigned_seller(db_session):
    user = User(email="floating@pos.test", username="floating", role=UserRole.SELLER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def admin_context(admin_user):
    return context_for(admin_user)


@pytest.fixture
def seller_a_context(seller_a):
    return context_for(seller_a)


@pytest.fixture
def seller_b_context(seller_b):
    return context_for(seller_b)


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def seller_a_headers(seller_a):
    return headers_for(seller_a)


@pytest.fixture
def seller_b_headers(seller_b):
    return headers_for(seller_b)


# Catalog factories


@pytest.fixture
def make_product(db_session):
    """Factory inserting a product directly into storage"""

    def _make(tenant: Tenant, name: str = "T-Shirt", category: str | None = "apparel") -> Product:
        product = Product(name=name, category=category, tenant_id=tenant.id)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db_session):
    """Factory inserting a variant under a product"""

    def _make(product: Product, barcode: str, stock: int = 10, price: str = "10.00") -> ProductVariant:
        variant = ProductVariant(
            barcode=barcode,
            weight=Decimal("0.250"),
            price=Decimal(price),
            stock=stock,
            product_id=product.id,
            tenant_id=product.tenant_id,
        )
        db_session.add(variant)
        db_session.commit()
        return variant

    return _make


@pytest.fixture
def product_a(make_product, tenant_a):
    return make_product(tenant_a)


@pytest.fixture
def product_b(make_product, tenant_b):
    return make_product(tenant_b, name="Mug", category="kitchen")


@pytest.fixture
def variant_a1(make_variant, product_a):
    return make_variant(product_a, "TSHIRT-S", stock=10, price="10.00")


@pytest.fixture
def variant_a2(make_variant, product_a):
    return make_variant(product_a, "TSHIRT-M", stock=5, price="12.50")


@pytest.fixture
def variant_b1(make_variant, product_b):
    return make_variant(product_b, "MUG-WHITE", stock=20, price="7.00")
