import os

# Must be set before the storefront modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["EVENT_BACKEND"] = "none"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["ENABLE_INVENTORY_DECREMENT"] = "true"
os.environ.pop("JWT_AUDIENCE", None)
os.environ.pop("JWT_ISSUER", None)

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.cache import ReadThroughCache
from storefront.db import Base, get_db
from storefront.main import app, get_mailer, get_order_cache, get_settings_cache
from storefront.models import Product, User
from storefront.orders import create_order_from_cart
from storefront.schemas import CartIn
from storefront.site import SettingsCache

ADDRESS = {
    "full_name": "Ada Obi",
    "street": "12 Marina Road",
    "city": "Lagos",
    "postal_code": "101241",
    "province": "Lagos",
    "country": "Nigeria",
    "phone": "+234 800 000 0000",
}


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html_body, scheduled_at=None):
        self.sent.append({"to": to, "subject": subject, "html": html_body, "scheduled_at": scheduled_at})


class FailingMailer:
    def send(self, to, subject, html_body, scheduled_at=None):
        raise RuntimeError("smtp down")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def order_cache():
    return ReadThroughCache("order-detail-test")


@pytest.fixture
def client(db, mailer, order_cache):
    def override_get_db():
        yield db

    settings_cache = SettingsCache(ttl=0)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_order_cache] = lambda: order_cache
    app.dependency_overrides[get_settings_cache] = lambda: settings_cache
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_token(user_id: int, role: str = "User") -> str:
    return jwt.encode({"sub": str(user_id), "role": role}, "test-secret", algorithm="HS256")


def auth_headers(user_id: int, role: str = "User") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def user(db):
    u = User(name="Ada Obi", email="ada@example.com", role="User")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def admin(db):
    u = User(name="Admin", email="admin@example.com", role="Admin")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def make_product(db, name: str, price: str = "10.00", stock: int = 10, category: str = "Shoes", **kwargs) -> Product:
    slug = kwargs.pop("slug", name.lower().replace(" ", "-"))
    p = Product(
        name=name,
        slug=slug,
        category=category,
        price=Decimal(price),
        count_in_stock=stock,
        is_published=kwargs.pop("is_published", True),
        images=kwargs.pop("images", [f"/images/{slug}.jpg"]),
        tags=kwargs.pop("tags", []),
        **kwargs,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def cart_line(product: Product, quantity: int) -> dict:
    return {
        "product_id": product.id,
        "client_id": f"client-{product.id}",
        "name": product.name,
        "slug": product.slug,
        "image": product.images[0] if product.images else "",
        "category": product.category,
        "price": float(product.price),
        "quantity": quantity,
        "count_in_stock": product.count_in_stock,
    }


def place_order(db, user: User, lines: list[tuple[Product, int]], delivery_date_index=None, now=None, payment_method="PayPal"):
    cart = CartIn.model_validate({
        "items": [cart_line(p, q) for p, q in lines],
        "shipping_address": ADDRESS,
        "payment_method": payment_method,
        "delivery_date_index": delivery_date_index,
    })
    return create_order_from_cart(db, cart, user.id, now=now or datetime.now(timezone.utc))
